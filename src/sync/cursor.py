"""Opaque cursor encoding for the change feed."""

import base64
import binascii
import json
from typing import Any

import structlog

from src.exceptions import InvalidCursor
from src.models.change import Cursor

log = structlog.stdlib.get_logger()

INT64_MAX = 2**63 - 1

# Real tokens stay well under this
MAX_TOKEN_LENGTH = 4096

# Values clients send when they have no stored position yet
INITIAL_SENTINELS = frozenset({"", "null", "undefined"})


def initial_cursor() -> Cursor:
    """Cursor positioned before every change."""
    return Cursor(timestamp=0, sequence=0)


def encode_cursor(cursor: Cursor) -> str:
    """
    Serialize a cursor into an opaque token.

    The token is base64 of compact JSON with sorted keys, so equal cursors
    always produce the same token.

    Args:
        cursor: Cursor to encode

    Returns:
        Opaque cursor token
    """
    payload: dict[str, Any] = {"timestamp": cursor.timestamp, "sequence": cursor.sequence}
    if cursor.key is not None:
        payload["key"] = list(cursor.key)

    raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_cursor(token: str) -> Cursor:
    """
    Deserialize a token produced by encode_cursor.

    Args:
        token: Opaque cursor token

    Returns:
        Decoded cursor

    Raises:
        InvalidCursor: If the token is not valid base64 JSON or a field has the wrong type
    """
    if len(token) > MAX_TOKEN_LENGTH:
        raise InvalidCursor("token is too long")

    try:
        raw = base64.b64decode(token.encode("ascii"), validate=True)
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeError, binascii.Error, ValueError, RecursionError) as e:
        log.debug("cursor_decode_failed", error=str(e))
        raise InvalidCursor("token is not an encoded cursor") from e

    if not isinstance(payload, dict):
        raise InvalidCursor("token is not an encoded cursor")

    timestamp = _require_int(payload, "timestamp")
    sequence = _require_int(payload, "sequence")

    key = payload.get("key")
    if key is not None:
        if not isinstance(key, list) or not all(isinstance(part, str) for part in key):
            raise InvalidCursor("key must be a list of strings")
        key = tuple(key)

    return Cursor(timestamp=timestamp, sequence=sequence, key=key)


def parse_since(since: str | None) -> Cursor:
    """
    Turn the caller's since value into a cursor.

    Absent, empty, "null" and "undefined" mean "from the beginning"; any
    other value must decode.

    Args:
        since: Raw since value from the request

    Returns:
        Cursor to resume from

    Raises:
        InvalidCursor: If since is present but malformed
    """
    if since is None or since.strip() in INITIAL_SENTINELS:
        return initial_cursor()
    return decode_cursor(since.strip())


def _require_int(payload: dict[str, Any], field: str) -> int:
    value = payload.get(field)
    # bool is an int subclass
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidCursor(f"{field} must be an integer")
    if value < 0 or value > INT64_MAX:
        raise InvalidCursor(f"{field} is out of range")
    return value
