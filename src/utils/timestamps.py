"""Millisecond timestamp helpers shared by the store readers and the wire format."""

import time
from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_MS = timedelta(milliseconds=1)


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime, treating naive values as UTC.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Floor a datetime to whole milliseconds since the epoch."""
    return (as_utc(value) - EPOCH) // ONE_MS


def from_epoch_ms(ms: int) -> datetime:
    """Aware UTC datetime at the start of the given millisecond."""
    return EPOCH + timedelta(milliseconds=ms)


def to_iso(value: datetime) -> str:
    """ISO-8601 UTC string with millisecond precision and a Z suffix."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")
