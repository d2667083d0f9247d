"""Request boundary for the change feed."""

from collections.abc import Callable

import structlog

from src.exceptions import InvalidLimit, SyncError
from src.models.change import ChangesResponse
from src.models.config import AppConfig, SyncConfig
from src.storage.database import ChangeStore
from src.sync.change_feed import ChangeFeed
from src.sync.cursor import encode_cursor, parse_since
from src.utils.timestamps import now_ms

log = structlog.stdlib.get_logger()


class SyncService:
    """Validates raw request values and serves change feed pages."""

    def __init__(self, feed: ChangeFeed, sync_config: SyncConfig | None = None):
        """
        Initialize sync service.

        Args:
            feed: Pagination controller to serve pages from
            sync_config: Page size settings; defaults if None
        """
        self._feed: ChangeFeed = feed
        self._config: SyncConfig = sync_config or SyncConfig()

    @classmethod
    def from_config(
        cls, config: AppConfig, clock: Callable[[], int] = now_ms
    ) -> "SyncService":
        """Build a service with its own store from application configuration."""
        store = ChangeStore.from_config(config.database)
        feed = ChangeFeed(store, clock=clock, max_limit=config.sync.max_limit)
        return cls(feed, config.sync)

    def get_changes(
        self,
        user_id: str,
        since: str | None = None,
        limit: str | int | None = None,
    ) -> ChangesResponse:
        """
        Serve the changes after ``since`` for an authenticated user.

        Args:
            user_id: Authenticated caller identity
            since: Opaque cursor from the previous response; absent, "null" or
                "undefined" start from the beginning
            limit: Page size as an int or decimal string; configured default if None

        Returns:
            ChangesResponse with the next cursor, hasMore flag and items

        Raises:
            InvalidCursor: If since is malformed
            InvalidLimit: If limit is not an integer within range
            StoreFailure: If the store read fails
        """
        try:
            cursor = parse_since(since)
            page_size = self._parse_limit(limit)
            page = self._feed.pull(user_id, cursor, page_size)
        except SyncError as e:
            if e.status_code >= 500:
                log.error(
                    "sync_changes_failed",
                    user_id=user_id,
                    since=since or "initial",
                    error=str(e.__cause__ or e),
                )
            else:
                log.warning(
                    "sync_changes_rejected",
                    user_id=user_id,
                    since=since or "initial",
                    limit=limit,
                    error=str(e),
                )
            raise

        response = ChangesResponse(
            next=encode_cursor(page.next_cursor),
            has_more=page.has_more,
            items=page.items,
        )

        log.info(
            "sync_changes_served",
            user_id=user_id,
            since=since or "initial",
            returned=len(page.items),
            has_more=page.has_more,
        )
        return response

    def _parse_limit(self, limit: str | int | None) -> int:
        if limit is None:
            return self._config.default_limit

        if isinstance(limit, bool):
            raise InvalidLimit(limit, self._config.max_limit)

        if isinstance(limit, str):
            text = limit.strip()
            if not text.isdigit() or not text.isascii():
                raise InvalidLimit(limit, self._config.max_limit)
            value = int(text)
        elif isinstance(limit, int):
            value = limit
        else:
            raise InvalidLimit(limit, self._config.max_limit)

        if not 1 <= value <= self._config.max_limit:
            raise InvalidLimit(limit, self._config.max_limit)
        return value
