"""Incremental change feed: cursor codec, source readers, merge and pagination."""

from src.sync.assembler import to_change_item, to_change_items
from src.sync.change_feed import ChangeFeed
from src.sync.cursor import decode_cursor, encode_cursor, initial_cursor, parse_since
from src.sync.merge import merge_changes
from src.sync.puller import SyncPuller, SyncPullReport
from src.sync.readers import (
    ChangeSourceReader,
    FolderReader,
    RecordingFolderReader,
    RecordingReader,
    RecordingTagReader,
    TagReader,
    default_readers,
)
from src.sync.replica import LocalReplica
from src.sync.service import SyncService

__all__ = [
    "ChangeFeed",
    "ChangeSourceReader",
    "FolderReader",
    "LocalReplica",
    "RecordingFolderReader",
    "RecordingReader",
    "RecordingTagReader",
    "SyncPullReport",
    "SyncPuller",
    "SyncService",
    "TagReader",
    "decode_cursor",
    "default_readers",
    "encode_cursor",
    "initial_cursor",
    "merge_changes",
    "parse_since",
    "to_change_item",
    "to_change_items",
]
