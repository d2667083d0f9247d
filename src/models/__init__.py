"""Data models for the recording library sync service."""

from src.models.change import (
    ChangeItem,
    ChangeOp,
    ChangePage,
    ChangeRow,
    ChangesResponse,
    Cursor,
    EntityType,
    FolderChange,
    FolderData,
    RecordingChange,
    RecordingData,
    RecordingFolderChange,
    RecordingTagChange,
    TagChange,
    TagData,
)
from src.models.config import (
    AppConfig,
    DatabaseConfig,
    LoggingConfig,
    SyncConfig,
)

__all__ = [
    "Cursor",
    "EntityType",
    "ChangeOp",
    "ChangeRow",
    "RecordingChange",
    "FolderChange",
    "TagChange",
    "RecordingTagChange",
    "RecordingFolderChange",
    "RecordingData",
    "FolderData",
    "TagData",
    "ChangeItem",
    "ChangePage",
    "ChangesResponse",
    "AppConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "SyncConfig",
]
