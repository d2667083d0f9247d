"""Property-based tests for cursor encoding.

Cursors are opaque to clients: whatever the server hands out must decode to
the same position, and anything else must be rejected as a bad request.
"""

import base64
import json

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from src.exceptions import InvalidCursor
from src.models.change import Cursor
from src.sync.cursor import (
    INT64_MAX,
    MAX_TOKEN_LENGTH,
    decode_cursor,
    encode_cursor,
    initial_cursor,
    parse_since,
)


def _token(payload) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


@st.composite
def cursor_strategy(draw: st.DrawFn) -> Cursor:
    key = draw(
        st.one_of(
            st.none(),
            st.lists(st.text(min_size=1, max_size=40), min_size=1, max_size=2).map(tuple),
        )
    )
    return Cursor(
        timestamp=draw(st.integers(min_value=0, max_value=INT64_MAX)),
        sequence=draw(st.integers(min_value=0, max_value=5)),
        key=key,
    )


@given(cursor=cursor_strategy())
@settings(max_examples=200)
def test_encoded_cursor_decodes_to_same_position(cursor: Cursor) -> None:
    """Every cursor the server emits decodes back to the same cursor."""
    token = encode_cursor(cursor)

    assert decode_cursor(token) == cursor
    assert parse_since(token) == cursor


@given(cursor=cursor_strategy())
@settings(max_examples=50)
def test_encoding_is_deterministic(cursor: Cursor) -> None:
    """Equal cursors always produce the same token."""
    same = Cursor(timestamp=cursor.timestamp, sequence=cursor.sequence, key=cursor.key)

    assert encode_cursor(cursor) == encode_cursor(same)


def test_token_is_base64_json_with_timestamp_and_sequence() -> None:
    token = encode_cursor(Cursor(timestamp=1_700_000_000_123, sequence=2, key=("f1",)))

    payload = json.loads(base64.b64decode(token))

    assert payload == {"timestamp": 1_700_000_000_123, "sequence": 2, "key": ["f1"]}


def test_initial_cursor_sits_before_everything() -> None:
    cursor = initial_cursor()

    assert cursor.timestamp == 0
    assert cursor.sequence == 0
    assert cursor.key is None
    assert decode_cursor(encode_cursor(cursor)) == cursor


@pytest.mark.parametrize("since", [None, "", "null", "undefined", "  null  "])
def test_sentinels_start_from_the_beginning(since) -> None:
    assert parse_since(since) == initial_cursor()


@pytest.mark.parametrize(
    "token",
    [
        "not-valid-base64!!",
        "%%%%",
        base64.b64encode(b"not json").decode("ascii"),
        base64.b64encode(b"\xff\xfe\xfd").decode("ascii"),
        _token([1, 2]),
        _token("cursor"),
        _token({"timestamp": "1700000000000", "sequence": 0}),
        _token({"timestamp": 1.5, "sequence": 0}),
        _token({"timestamp": True, "sequence": 0}),
        _token({"timestamp": 0, "sequence": None}),
        _token({"timestamp": -1, "sequence": 0}),
        _token({"timestamp": 0, "sequence": -3}),
        _token({"timestamp": INT64_MAX + 1, "sequence": 0}),
        _token({"sequence": 0}),
        _token({"timestamp": 0}),
        _token({"timestamp": 0, "sequence": 1, "key": "r1"}),
        _token({"timestamp": 0, "sequence": 1, "key": [1]}),
    ],
)
def test_malformed_tokens_are_rejected(token: str) -> None:
    with pytest.raises(InvalidCursor) as exc_info:
        parse_since(token)

    error = exc_info.value
    assert error.status_code == 400
    assert str(error).startswith("Invalid cursor format: ")
    assert error.to_error_response() == {
        "error": "Bad Request",
        "message": str(error),
        "statusCode": 400,
    }


def test_deeply_nested_payload_is_rejected() -> None:
    nested = "[" * 100_000 + "]" * 100_000
    token = base64.b64encode(nested.encode("ascii")).decode("ascii")

    with pytest.raises(InvalidCursor):
        decode_cursor(token)


def test_decoder_recursion_is_a_cursor_error(monkeypatch) -> None:
    def too_deep(_text):
        raise RecursionError("maximum recursion depth exceeded while decoding a JSON array")

    monkeypatch.setattr("src.sync.cursor.json.loads", too_deep)

    with pytest.raises(InvalidCursor):
        decode_cursor(_token([[[]]]))


def test_oversized_token_is_rejected_before_decoding() -> None:
    token = "A" * (MAX_TOKEN_LENGTH + 4)

    with pytest.raises(InvalidCursor) as exc_info:
        decode_cursor(token)

    assert str(exc_info.value) == "Invalid cursor format: token is too long"


@given(text=st.text(max_size=60))
@settings(max_examples=200)
def test_arbitrary_text_decodes_or_is_rejected(text: str) -> None:
    """Decoding never fails with anything but InvalidCursor."""
    try:
        cursor = parse_since(text)
    except InvalidCursor:
        return

    assert cursor.timestamp >= 0
    assert cursor.sequence >= 0


def test_surrounding_whitespace_is_ignored() -> None:
    cursor = Cursor(timestamp=42, sequence=1, key=("r1",))

    assert parse_since(f"  {encode_cursor(cursor)}\n") == cursor
