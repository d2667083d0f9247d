"""Pagination controller for the per-user change feed."""

from collections.abc import Callable, Sequence

import structlog

from src.exceptions import InvalidLimit
from src.models.change import ChangePage, ChangeRow, Cursor
from src.storage.database import ChangeStore
from src.sync.assembler import to_change_items
from src.sync.merge import merge_changes
from src.sync.readers import ChangeSourceReader, default_readers
from src.utils.timestamps import now_ms

log = structlog.stdlib.get_logger()

MAX_PAGE_SIZE = 1000


class ChangeFeed:
    """Serves ordered pages of a user's changes after a cursor.

    The feed keeps no state between calls; every pull is a single read of
    the store.
    """

    def __init__(
        self,
        store: ChangeStore,
        readers: Sequence[ChangeSourceReader] | None = None,
        clock: Callable[[], int] = now_ms,
        max_limit: int = MAX_PAGE_SIZE,
    ):
        """
        Initialize the change feed.

        Args:
            store: Entity store to read from
            readers: Change source readers; one per entity family if None
            clock: Returns the current time in milliseconds since the epoch
            max_limit: Largest accepted page size
        """
        self._store: ChangeStore = store
        self._readers: list[ChangeSourceReader] = list(readers or default_readers())
        self._clock: Callable[[], int] = clock
        self._max_limit: int = max_limit

    @property
    def max_limit(self) -> int:
        return self._max_limit

    def pull(self, user_id: str, cursor: Cursor, limit: int) -> ChangePage:
        """
        Fetch the next page of changes after cursor.

        Args:
            user_id: Authenticated owner of the changes
            cursor: Position returned by the previous pull, or the initial cursor
            limit: Maximum number of items to return

        Returns:
            ChangePage with items, has_more and the cursor to resume from

        Raises:
            InvalidLimit: If limit is outside [1, max_limit]
            InvalidCursor: If the cursor's key does not fit its entity family
            StoreFailure: If the store read fails
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self._max_limit:
            raise InvalidLimit(limit, self._max_limit)

        bound_ms = self._clock()

        if cursor.timestamp > bound_ms:
            # Every visible change is at or before the bound
            log.debug("cursor_ahead_of_bound", user_id=user_id, bound_ms=bound_ms)
            return ChangePage(items=[], has_more=False, next_cursor=cursor)

        with self._store.snapshot() as session:
            sources = [
                reader.list_changes(session, user_id, cursor, bound_ms, limit=limit + 1)
                for reader in self._readers
            ]

        candidates = merge_changes(sources, limit=limit + 1)
        has_more = len(candidates) > limit
        rows = candidates[:limit]

        next_cursor = self._next_cursor(cursor, rows, bound_ms)

        log.debug(
            "change_page_built",
            user_id=user_id,
            bound_ms=bound_ms,
            candidates=len(candidates),
            items=len(rows),
            has_more=has_more,
        )

        return ChangePage(
            items=to_change_items(rows),
            has_more=has_more,
            next_cursor=next_cursor,
        )

    @staticmethod
    def _next_cursor(cursor: Cursor, rows: list[ChangeRow], bound_ms: int) -> Cursor:
        """Cursor positioned just after the last delivered row.

        With no rows the cursor jumps to the snapshot bound so idle clients
        keep moving forward, but never behind where the caller already is.
        """
        if not rows:
            if cursor.timestamp >= bound_ms:
                return cursor
            return Cursor(timestamp=bound_ms, sequence=0)

        last = rows[-1]
        return Cursor(
            timestamp=last.updated_at_ms,
            sequence=last.type_priority,
            key=last.tie_key,
        )
