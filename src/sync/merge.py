"""Merge stage combining per-family change lists into one ordered stream."""

import heapq
from collections.abc import Iterable
from itertools import islice

from src.models.change import ChangeRow


def merge_changes(
    sources: Iterable[Iterable[ChangeRow]],
    limit: int | None = None,
) -> list[ChangeRow]:
    """
    Merge sorted change sources into a single ordered list.

    Ordering is by ``(updated_at_ms, type_priority, tie_key)``. Each source
    must already be sorted by that key; the k-way merge then pulls from the
    sources lazily and stops once ``limit`` rows are produced.

    Args:
        sources: Change lists, each sorted by ordering key
        limit: Optional maximum number of rows to return

    Returns:
        Merged change rows in ordering-key order
    """
    merged = heapq.merge(*sources, key=sort_key)
    if limit is None:
        return list(merged)
    return list(islice(merged, limit))


def sort_key(row: ChangeRow) -> tuple:
    return row.sort_key
