"""Pydantic models for sync cursors, change rows and wire-level change items."""

from abc import abstractmethod
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

SortKey = tuple[int, int, tuple[str, ...]]


class EntityType(str, Enum):
    """Entity families published on the change feed."""

    RECORDING = "recording"
    FOLDER = "folder"
    TAG = "tag"
    RECORDING_TAG = "recording_tag"
    RECORDING_FOLDER = "recording_folder"


class ChangeOp(str, Enum):
    """Operation carried by a change."""

    UPSERT = "upsert"
    DELETE = "delete"


class Cursor(BaseModel):
    """Position in a user's change feed.

    ``sequence`` holds the type priority of the last delivered row and ``key``
    its tie key, so a resumed pull starts strictly after that row even when
    other rows share its timestamp. ``sequence=0`` with no key sits before
    every row at ``timestamp``.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(default=0, ge=0, description="Milliseconds since the epoch")
    sequence: int = Field(default=0, ge=0, description="Type priority of the last delivered row")
    key: tuple[str, ...] | None = Field(
        default=None, description="Tie key of the last delivered row"
    )

    @property
    def position(self) -> SortKey:
        """Ordering key the next row must exceed."""
        return (self.timestamp, self.sequence, self.key or ())


class RecordingData(BaseModel):
    """Snapshot of a recording's fields."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    duration_sec: int = Field(alias="durationSec")
    s3_key: str = Field(alias="s3Key")
    created_at: str = Field(alias="createdAt")
    folder_id: str | None = Field(default=None, alias="folderId")


class FolderData(BaseModel):
    """Snapshot of a folder's fields."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    parent_id: str | None = Field(default=None, alias="parentId")
    created_at: str = Field(alias="createdAt")


class TagData(BaseModel):
    """Snapshot of a tag's fields."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    created_at: str = Field(alias="createdAt")


class ChangeRow(BaseModel):
    """A single derived change, common to every entity family.

    Subclasses fix ``entity_type`` and ``type_priority`` and define the tie
    key; the merge stage only ever looks at ``sort_key``.
    """

    model_config = ConfigDict(frozen=True)

    entity_type: ClassVar[EntityType]
    type_priority: ClassVar[int]

    op: ChangeOp
    user_id: str
    updated_at_ms: int = Field(ge=0)
    updated_at_iso: str

    @property
    @abstractmethod
    def id(self) -> str:
        """Identifier of the changed entity or relationship."""

    @property
    @abstractmethod
    def tie_key(self) -> tuple[str, ...]:
        """Orders rows of one family that share a millisecond."""

    @property
    def sort_key(self) -> SortKey:
        return (self.updated_at_ms, self.type_priority, self.tie_key)

    def payload(self) -> dict[str, Any] | None:
        """Field snapshot for entity rows, None for pure relationship rows."""
        return None

    def relational_ids(self) -> dict[str, str]:
        """Related ids that apply to this family, keyed by field name."""
        return {}


class RecordingChange(ChangeRow):
    entity_type: ClassVar[EntityType] = EntityType.RECORDING
    type_priority: ClassVar[int] = 1

    recording_id: str
    data: RecordingData

    @property
    def id(self) -> str:
        return self.recording_id

    @property
    def tie_key(self) -> tuple[str, ...]:
        return (self.recording_id,)

    def payload(self) -> dict[str, Any] | None:
        return self.data.model_dump(by_alias=True)


class FolderChange(ChangeRow):
    entity_type: ClassVar[EntityType] = EntityType.FOLDER
    type_priority: ClassVar[int] = 2

    folder_id: str
    data: FolderData

    @property
    def id(self) -> str:
        return self.folder_id

    @property
    def tie_key(self) -> tuple[str, ...]:
        return (self.folder_id,)

    def payload(self) -> dict[str, Any] | None:
        return self.data.model_dump(by_alias=True)

    def relational_ids(self) -> dict[str, str]:
        if self.data.parent_id is None:
            return {}
        return {"parent_id": self.data.parent_id}


class TagChange(ChangeRow):
    entity_type: ClassVar[EntityType] = EntityType.TAG
    type_priority: ClassVar[int] = 3

    tag_id: str
    data: TagData

    @property
    def id(self) -> str:
        return self.tag_id

    @property
    def tie_key(self) -> tuple[str, ...]:
        return (self.tag_id,)

    def payload(self) -> dict[str, Any] | None:
        return self.data.model_dump(by_alias=True)


class RecordingTagChange(ChangeRow):
    entity_type: ClassVar[EntityType] = EntityType.RECORDING_TAG
    type_priority: ClassVar[int] = 4

    recording_id: str
    tag_id: str

    @property
    def id(self) -> str:
        return f"{self.recording_id}/{self.tag_id}"

    @property
    def tie_key(self) -> tuple[str, ...]:
        return (self.recording_id, self.tag_id)

    def relational_ids(self) -> dict[str, str]:
        return {"recording_id": self.recording_id, "tag_id": self.tag_id}


class RecordingFolderChange(ChangeRow):
    """Folder assignment of a recording.

    Always an upsert: a recording holds at most one assignment, and removing
    it is not announced as a separate event.
    """

    entity_type: ClassVar[EntityType] = EntityType.RECORDING_FOLDER
    type_priority: ClassVar[int] = 5

    recording_id: str
    folder_id: str

    @property
    def id(self) -> str:
        return self.recording_id

    @property
    def tie_key(self) -> tuple[str, ...]:
        return (self.recording_id,)

    def relational_ids(self) -> dict[str, str]:
        return {"recording_id": self.recording_id, "folder_id": self.folder_id}


class ChangeItem(BaseModel):
    """Wire-level change delivered to clients."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, use_enum_values=True)

    type: EntityType
    op: ChangeOp
    id: str
    user_id: str = Field(alias="userId")
    updated_at: str = Field(alias="updatedAt")
    data: dict[str, Any] | None = None
    recording_id: str | None = Field(default=None, alias="recordingId")
    tag_id: str | None = Field(default=None, alias="tagId")
    folder_id: str | None = Field(default=None, alias="folderId")
    parent_id: str | None = Field(default=None, alias="parentId")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with absent optional fields omitted.

        ``data`` is copied as-is so null snapshot fields survive.
        """
        wire = self.model_dump(by_alias=True, exclude_none=True, exclude={"data"})
        if self.data is not None:
            wire["data"] = dict(self.data)
        return wire


class ChangePage(BaseModel):
    """One page of the change feed as produced by the pagination controller."""

    items: list[ChangeItem] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: Cursor


class ChangesResponse(BaseModel):
    """Response body of a change feed request."""

    model_config = ConfigDict(populate_by_name=True)

    next: str = Field(default=..., description="Opaque cursor for the next request")
    has_more: bool = Field(default=False, alias="hasMore")
    items: list[ChangeItem] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {
            "next": self.next,
            "hasMore": self.has_more,
            "items": [item.to_wire() for item in self.items],
        }
