"""Client-side drain of the change feed into a local replica."""

import time
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from src.exceptions import StoreFailure, SyncError
from src.sync.replica import LocalReplica
from src.sync.service import SyncService
from src.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()


class SyncPullReport(BaseModel):
    """Report of a pull operation."""

    user_id: str = Field(..., description="User whose feed was pulled")
    pages: int = Field(default=0, ge=0, description="Number of pages fetched")
    items_received: int = Field(default=0, ge=0, description="Number of change items fetched")
    items_applied: int = Field(default=0, ge=0, description="Number of items applied")
    next_cursor: str | None = Field(default=None, description="Cursor to resume from")
    complete: bool = Field(default=False, description="True when the feed was fully drained")
    duration_seconds: float = Field(default=0.0, ge=0.0, description="Pull duration in seconds")
    start_time: datetime = Field(..., description="Pull start timestamp")
    end_time: datetime = Field(..., description="Pull end timestamp")
    errors: list[str] = Field(default_factory=list, description="Errors encountered during pull")

    @property
    def success(self) -> bool:
        """Check if the pull completed without errors."""
        return len(self.errors) == 0


class SyncPuller:
    """Pulls pages from the change feed until drained or out of budget."""

    def __init__(
        self,
        service: SyncService,
        replica: LocalReplica | None = None,
        page_limit: int = 500,
        max_pages: int | None = None,
        max_duration_seconds: float | None = None,
        max_retries: int = 0,
        retry_base_delay: float = 1.0,
    ):
        """
        Initialize sync puller.

        Args:
            service: Sync service to pull from
            replica: Replica to apply changes to; a fresh one if None
            page_limit: Page size requested on every pull
            max_pages: Optional cap on pages per pull operation
            max_duration_seconds: Optional time budget per pull operation
            max_retries: Retries of a page after a store failure
            retry_base_delay: Initial retry delay in seconds
        """
        self._service: SyncService = service
        self.replica: LocalReplica = replica if replica is not None else LocalReplica()
        self._page_limit: int = page_limit
        self._max_pages: int | None = max_pages
        self._max_duration_seconds: float | None = max_duration_seconds
        self._fetch = exponential_backoff_retry(
            max_retries=max_retries,
            base_delay=retry_base_delay,
            exceptions=(StoreFailure,),
        )(service.get_changes)

    def pull(self, user_id: str, since: str | None = None) -> SyncPullReport:
        """
        Drain the user's change feed into the replica.

        Starts from ``since`` or, if None, from the replica's stored cursor.
        The replica's cursor advances after every applied page, so an
        interrupted pull resumes where it stopped.

        Args:
            user_id: User whose feed to pull
            since: Cursor to start from; the replica cursor if None

        Returns:
            SyncPullReport describing the pull
        """
        start_time = datetime.now()
        started = time.monotonic()
        cursor = since if since is not None else self.replica.cursor

        log.info("sync_pull_started", user_id=user_id, since=cursor or "initial")

        pages = 0
        received = 0
        applied = 0
        complete = False
        errors: list[str] = []

        while True:
            if self._max_pages is not None and pages >= self._max_pages:
                log.info("sync_pull_page_budget_reached", user_id=user_id, pages=pages)
                break
            if (
                self._max_duration_seconds is not None
                and time.monotonic() - started > self._max_duration_seconds
            ):
                log.info("sync_pull_time_budget_reached", user_id=user_id, pages=pages)
                break

            try:
                response = self._fetch(user_id, since=cursor, limit=self._page_limit)
            except SyncError as e:
                errors.append(f"Pull failed: {e}")
                log.error("sync_pull_failed", user_id=user_id, pages=pages, error=str(e))
                break

            pages += 1
            received += len(response.items)
            applied += self.replica.apply(response.items)
            cursor = response.next
            self.replica.cursor = cursor

            log.info(
                "sync_pull_page_applied",
                user_id=user_id,
                page=pages,
                items=len(response.items),
                has_more=response.has_more,
            )

            if not response.has_more:
                complete = True
                break

        end_time = datetime.now()
        report = SyncPullReport(
            user_id=user_id,
            pages=pages,
            items_received=received,
            items_applied=applied,
            next_cursor=cursor,
            complete=complete,
            duration_seconds=time.monotonic() - started,
            start_time=start_time,
            end_time=end_time,
            errors=errors,
        )

        log.info(
            "sync_pull_completed",
            user_id=user_id,
            pages=pages,
            items=received,
            complete=complete,
            success=report.success,
        )
        return report
