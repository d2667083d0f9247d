"""Change source readers, one per entity family.

Each reader selects the rows of its table that changed after a cursor and
at or before a snapshot bound, for a single user, and maps them to typed
change rows. Timestamps are compared in whole milliseconds: a row's
position is ``(floor_ms(ts), type_priority, tie_key)``.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import structlog
from sqlalchemy import ColumnElement, Row, Select, and_, or_, select, tuple_
from sqlalchemy.orm import InstrumentedAttribute, Session

from src.exceptions import InvalidCursor
from src.models.change import (
    ChangeOp,
    ChangeRow,
    Cursor,
    FolderChange,
    FolderData,
    RecordingChange,
    RecordingData,
    RecordingFolderChange,
    RecordingTagChange,
    TagChange,
    TagData,
)
from src.storage.schema import Folder, Recording, RecordingFolder, RecordingTag, Tag
from src.utils.timestamps import from_epoch_ms, to_epoch_ms, to_iso

log = structlog.stdlib.get_logger()


class ChangeSourceReader(ABC):
    """Reads candidate changes for one entity family."""

    row_type: type[ChangeRow]

    @property
    def type_priority(self) -> int:
        return self.row_type.type_priority

    @property
    @abstractmethod
    def timestamp_column(self) -> InstrumentedAttribute:
        """Column holding the row's last modification time."""

    @property
    @abstractmethod
    def tie_columns(self) -> Sequence[InstrumentedAttribute]:
        """Columns forming the row's natural sort key."""

    @abstractmethod
    def base_query(self, user_id: str) -> Select:
        """Select the family's rows owned by user_id."""

    @abstractmethod
    def to_row(self, record: Row[Any]) -> ChangeRow:
        """Map a selected record to a change row."""

    def list_changes(
        self,
        session: Session,
        user_id: str,
        cursor: Cursor,
        bound_ms: int,
        limit: int | None = None,
    ) -> list[ChangeRow]:
        """
        List this family's changes after cursor, up to bound_ms.

        With a limit, the result holds at least this family's first ``limit``
        changes in ordering-key order; rows sharing the millisecond of the
        last fetched row are all included so sub-millisecond timestamps never
        split a tie group.

        Args:
            session: Snapshot session shared by the whole pull
            user_id: Owner of the changes
            cursor: Position to read after
            bound_ms: Snapshot upper bound in milliseconds (inclusive)
            limit: Optional cap on fetched rows

        Returns:
            Change rows sorted by ordering key
        """
        ts = self.timestamp_column
        stmt = (
            self.base_query(user_id)
            .where(self._after(cursor), ts < from_epoch_ms(bound_ms + 1))
            .order_by(ts, *self.tie_columns)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        records = list(session.execute(stmt).all())

        if limit is not None and records and len(records) >= limit:
            records = self._complete_last_bucket(session, user_id, cursor, bound_ms, records)

        rows = [self.to_row(record) for record in records]
        rows.sort(key=lambda row: row.sort_key)

        log.debug(
            "source_changes_listed",
            entity_type=self.row_type.entity_type.value,
            user_id=user_id,
            count=len(rows),
        )
        return rows

    def _after(self, cursor: Cursor) -> ColumnElement[bool]:
        """Predicate selecting rows strictly after the cursor position."""
        ts = self.timestamp_column
        bucket_start = from_epoch_ms(cursor.timestamp)
        bucket_end = from_epoch_ms(cursor.timestamp + 1)

        if self.type_priority > cursor.sequence or (
            self.type_priority == cursor.sequence and cursor.key is None
        ):
            return ts >= bucket_start
        if self.type_priority < cursor.sequence:
            return ts >= bucket_end

        return or_(
            ts >= bucket_end,
            and_(ts >= bucket_start, ts < bucket_end, self._tie_after(cursor.key)),
        )

    def _tie_after(self, key: tuple[str, ...]) -> ColumnElement[bool]:
        columns = self.tie_columns
        if len(key) != len(columns):
            raise InvalidCursor("key does not match the entity family")
        if len(columns) == 1:
            return columns[0] > key[0]
        return tuple_(*columns) > tuple_(*key)

    def _complete_last_bucket(
        self,
        session: Session,
        user_id: str,
        cursor: Cursor,
        bound_ms: int,
        records: list[Row[Any]],
    ) -> list[Row[Any]]:
        ts = self.timestamp_column
        last_ms = to_epoch_ms(getattr(records[-1], ts.key))

        stmt = (
            self.base_query(user_id)
            .where(
                self._after(cursor),
                ts < from_epoch_ms(bound_ms + 1),
                ts >= from_epoch_ms(last_ms),
                ts < from_epoch_ms(last_ms + 1),
            )
            .order_by(ts, *self.tie_columns)
        )
        bucket = list(session.execute(stmt).all())

        head = [record for record in records if to_epoch_ms(getattr(record, ts.key)) < last_ms]
        return head + bucket

    @staticmethod
    def _op(deleted_at: Any) -> ChangeOp:
        return ChangeOp.DELETE if deleted_at is not None else ChangeOp.UPSERT


class RecordingReader(ChangeSourceReader):
    row_type = RecordingChange

    @property
    def timestamp_column(self) -> InstrumentedAttribute:
        return Recording.updated_at

    @property
    def tie_columns(self) -> Sequence[InstrumentedAttribute]:
        return (Recording.id,)

    def base_query(self, user_id: str) -> Select:
        current_folder = (
            select(RecordingFolder.folder_id)
            .where(RecordingFolder.recording_id == Recording.id)
            .scalar_subquery()
        )
        return select(
            Recording.id,
            Recording.user_id,
            Recording.title,
            Recording.duration_sec,
            Recording.s3_key,
            Recording.created_at,
            Recording.updated_at,
            Recording.deleted_at,
            current_folder.label("folder_id"),
        ).where(Recording.user_id == user_id)

    def to_row(self, record: Row[Any]) -> ChangeRow:
        return RecordingChange(
            op=self._op(record.deleted_at),
            user_id=record.user_id,
            updated_at_ms=to_epoch_ms(record.updated_at),
            updated_at_iso=to_iso(record.updated_at),
            recording_id=record.id,
            data=RecordingData(
                title=record.title,
                duration_sec=record.duration_sec,
                s3_key=record.s3_key,
                created_at=to_iso(record.created_at),
                folder_id=record.folder_id,
            ),
        )


class FolderReader(ChangeSourceReader):
    row_type = FolderChange

    @property
    def timestamp_column(self) -> InstrumentedAttribute:
        return Folder.updated_at

    @property
    def tie_columns(self) -> Sequence[InstrumentedAttribute]:
        return (Folder.id,)

    def base_query(self, user_id: str) -> Select:
        return select(
            Folder.id,
            Folder.user_id,
            Folder.name,
            Folder.parent_id,
            Folder.created_at,
            Folder.updated_at,
            Folder.deleted_at,
        ).where(Folder.user_id == user_id)

    def to_row(self, record: Row[Any]) -> ChangeRow:
        return FolderChange(
            op=self._op(record.deleted_at),
            user_id=record.user_id,
            updated_at_ms=to_epoch_ms(record.updated_at),
            updated_at_iso=to_iso(record.updated_at),
            folder_id=record.id,
            data=FolderData(
                name=record.name,
                parent_id=record.parent_id,
                created_at=to_iso(record.created_at),
            ),
        )


class TagReader(ChangeSourceReader):
    row_type = TagChange

    @property
    def timestamp_column(self) -> InstrumentedAttribute:
        return Tag.updated_at

    @property
    def tie_columns(self) -> Sequence[InstrumentedAttribute]:
        return (Tag.id,)

    def base_query(self, user_id: str) -> Select:
        return select(
            Tag.id,
            Tag.user_id,
            Tag.name,
            Tag.created_at,
            Tag.updated_at,
            Tag.deleted_at,
        ).where(Tag.user_id == user_id)

    def to_row(self, record: Row[Any]) -> ChangeRow:
        return TagChange(
            op=self._op(record.deleted_at),
            user_id=record.user_id,
            updated_at_ms=to_epoch_ms(record.updated_at),
            updated_at_iso=to_iso(record.updated_at),
            tag_id=record.id,
            data=TagData(name=record.name, created_at=to_iso(record.created_at)),
        )


class RecordingTagReader(ChangeSourceReader):
    """Tag assignments, owned through their recording."""

    row_type = RecordingTagChange

    @property
    def timestamp_column(self) -> InstrumentedAttribute:
        return RecordingTag.updated_at

    @property
    def tie_columns(self) -> Sequence[InstrumentedAttribute]:
        return (RecordingTag.recording_id, RecordingTag.tag_id)

    def base_query(self, user_id: str) -> Select:
        return (
            select(
                RecordingTag.recording_id,
                RecordingTag.tag_id,
                RecordingTag.updated_at,
                RecordingTag.deleted_at,
                Recording.user_id,
            )
            .join(Recording, RecordingTag.recording_id == Recording.id)
            .where(Recording.user_id == user_id)
        )

    def to_row(self, record: Row[Any]) -> ChangeRow:
        return RecordingTagChange(
            op=self._op(record.deleted_at),
            user_id=record.user_id,
            updated_at_ms=to_epoch_ms(record.updated_at),
            updated_at_iso=to_iso(record.updated_at),
            recording_id=record.recording_id,
            tag_id=record.tag_id,
        )


class RecordingFolderReader(ChangeSourceReader):
    """Folder assignments, owned through their recording.

    Assignments carry no soft-delete marker, so every row is an upsert.
    """

    row_type = RecordingFolderChange

    @property
    def timestamp_column(self) -> InstrumentedAttribute:
        return RecordingFolder.created_at

    @property
    def tie_columns(self) -> Sequence[InstrumentedAttribute]:
        return (RecordingFolder.recording_id,)

    def base_query(self, user_id: str) -> Select:
        return (
            select(
                RecordingFolder.recording_id,
                RecordingFolder.folder_id,
                RecordingFolder.created_at,
                Recording.user_id,
            )
            .join(Recording, RecordingFolder.recording_id == Recording.id)
            .where(Recording.user_id == user_id)
        )

    def to_row(self, record: Row[Any]) -> ChangeRow:
        return RecordingFolderChange(
            op=ChangeOp.UPSERT,
            user_id=record.user_id,
            updated_at_ms=to_epoch_ms(record.created_at),
            updated_at_iso=to_iso(record.created_at),
            recording_id=record.recording_id,
            folder_id=record.folder_id,
        )


def default_readers() -> list[ChangeSourceReader]:
    """One reader per entity family, in type priority order."""
    return [
        RecordingReader(),
        FolderReader(),
        TagReader(),
        RecordingTagReader(),
        RecordingFolderReader(),
    ]
