"""Shared utilities for configuration, logging, retries and timestamps"""

from src.utils.retry import exponential_backoff_retry
from src.utils.timestamps import from_epoch_ms, now_ms, to_epoch_ms, to_iso

__all__ = [
    "exponential_backoff_retry",
    "from_epoch_ms",
    "now_ms",
    "to_epoch_ms",
    "to_iso",
]
