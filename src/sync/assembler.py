"""Mapping from internal change rows to wire-level change items."""

from collections.abc import Iterable

from src.models.change import ChangeItem, ChangeRow


def to_change_item(row: ChangeRow) -> ChangeItem:
    """
    Project a change row onto the wire shape.

    Relational ids are set only for the families they apply to, and ``data``
    only for entity snapshots.

    Args:
        row: Change row from a source reader

    Returns:
        Wire-level change item
    """
    return ChangeItem(
        type=row.entity_type,
        op=row.op,
        id=row.id,
        user_id=row.user_id,
        updated_at=row.updated_at_iso,
        data=row.payload(),
        **row.relational_ids(),
    )


def to_change_items(rows: Iterable[ChangeRow]) -> list[ChangeItem]:
    return [to_change_item(row) for row in rows]
