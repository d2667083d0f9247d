"""Entity store mappings and snapshot access."""

from src.storage.database import ChangeStore
from src.storage.schema import (
    Base,
    Folder,
    Recording,
    RecordingFolder,
    RecordingTag,
    Tag,
    User,
)

__all__ = [
    "Base",
    "ChangeStore",
    "Folder",
    "Recording",
    "RecordingFolder",
    "RecordingTag",
    "Tag",
    "User",
]
