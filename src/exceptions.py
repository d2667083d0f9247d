"""Failure taxonomy for change feed requests."""

from typing import Any


class SyncError(Exception):
    """Base class for errors raised while serving a change feed request."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def to_error_response(self) -> dict[str, Any]:
        """Build the error body returned to the caller."""
        return {
            "error": self.error,
            "message": str(self),
            "statusCode": self.status_code,
        }


class InvalidCursor(SyncError):
    """Raised when a since token cannot be decoded into a cursor."""

    status_code = 400
    error = "Bad Request"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid cursor format: {reason}")


class InvalidLimit(SyncError):
    """Raised when the requested page size is outside the accepted range."""

    status_code = 400
    error = "Bad Request"

    def __init__(self, limit: Any, max_limit: int):
        self.limit = limit
        self.max_limit = max_limit
        super().__init__(f"Limit must be between 1 and {max_limit}")


class StoreFailure(SyncError):
    """Raised when the underlying store fails during a pull.

    The whole pull fails; callers retry the identical request.
    """

    def __init__(self, message: str = "Failed to fetch sync changes"):
        super().__init__(message)
