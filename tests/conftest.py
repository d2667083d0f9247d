"""Shared fixtures: in-memory entity store, fixed clock and a library writer."""

from datetime import datetime, timedelta
from typing import Callable

import pytest
from sqlalchemy import Engine, create_engine, delete, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from src.models.config import SyncConfig
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
from src.sync.change_feed import ChangeFeed
from src.sync.service import SyncService
from src.utils.timestamps import from_epoch_ms

# 2023-11-14T22:13:20Z
T0 = 1_700_000_000_000

USER = "11111111-1111-1111-1111-111111111111"
OTHER_USER = "22222222-2222-2222-2222-222222222222"


def at(ms: int, micros: int = 0) -> datetime:
    """Aware UTC datetime for a millisecond offset, optionally inside the millisecond."""
    return from_epoch_ms(ms) + timedelta(microseconds=micros)


class FixedClock:
    """Clock returning a settable time in milliseconds."""

    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now


class LibraryWriter:
    """Stands in for the entity write paths, stamping rows with explicit times."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _write(self, *objects) -> None:
        with Session(self.engine) as session:
            session.add_all(objects)
            session.commit()

    def add_user(self, user_id: str) -> None:
        self._write(User(id=user_id, created_at=at(T0)))

    def add_recording(
        self,
        recording_id: str,
        at_ms: int,
        user_id: str = USER,
        title: str | None = None,
        duration_sec: int = 30,
        micros: int = 0,
    ) -> None:
        self._write(
            Recording(
                id=recording_id,
                user_id=user_id,
                title=title or f"Recording {recording_id}",
                duration_sec=duration_sec,
                s3_key=f"recordings/{recording_id}.m4a",
                created_at=at(at_ms, micros),
                updated_at=at(at_ms, micros),
            )
        )

    def update_recording(self, recording_id: str, at_ms: int, title: str) -> None:
        with Session(self.engine) as session:
            recording = session.get(Recording, recording_id)
            recording.title = title
            recording.updated_at = at(at_ms)
            session.commit()

    def delete_recording(self, recording_id: str, at_ms: int) -> None:
        with Session(self.engine) as session:
            recording = session.get(Recording, recording_id)
            recording.deleted_at = at(at_ms)
            recording.updated_at = at(at_ms)
            session.commit()

    def add_folder(
        self,
        folder_id: str,
        at_ms: int,
        user_id: str = USER,
        name: str | None = None,
        parent_id: str | None = None,
        micros: int = 0,
    ) -> None:
        self._write(
            Folder(
                id=folder_id,
                user_id=user_id,
                name=name or f"Folder {folder_id}",
                parent_id=parent_id,
                created_at=at(at_ms, micros),
                updated_at=at(at_ms, micros),
            )
        )

    def delete_folder(self, folder_id: str, at_ms: int) -> None:
        with Session(self.engine) as session:
            folder = session.get(Folder, folder_id)
            folder.deleted_at = at(at_ms)
            folder.updated_at = at(at_ms)
            session.commit()

    def add_tag(
        self,
        tag_id: str,
        at_ms: int,
        user_id: str = USER,
        name: str | None = None,
        micros: int = 0,
    ) -> None:
        self._write(
            Tag(
                id=tag_id,
                user_id=user_id,
                name=name or f"tag-{tag_id}",
                created_at=at(at_ms, micros),
                updated_at=at(at_ms, micros),
            )
        )

    def delete_tag(self, tag_id: str, at_ms: int) -> None:
        with Session(self.engine) as session:
            tag = session.get(Tag, tag_id)
            tag.deleted_at = at(at_ms)
            tag.updated_at = at(at_ms)
            session.commit()

    def tag_recording(self, recording_id: str, tag_id: str, at_ms: int, micros: int = 0) -> None:
        with Session(self.engine) as session:
            link = session.get(RecordingTag, (recording_id, tag_id))
            if link is None:
                session.add(
                    RecordingTag(
                        recording_id=recording_id,
                        tag_id=tag_id,
                        created_at=at(at_ms, micros),
                        updated_at=at(at_ms, micros),
                    )
                )
            else:
                link.deleted_at = None
                link.updated_at = at(at_ms, micros)
            session.commit()

    def untag_recording(self, recording_id: str, tag_id: str, at_ms: int) -> None:
        with Session(self.engine) as session:
            link = session.get(RecordingTag, (recording_id, tag_id))
            link.deleted_at = at(at_ms)
            link.updated_at = at(at_ms)
            session.commit()

    def assign_folder(self, recording_id: str, folder_id: str, at_ms: int, micros: int = 0) -> None:
        with Session(self.engine) as session:
            session.execute(
                delete(RecordingFolder).where(RecordingFolder.recording_id == recording_id)
            )
            session.add(
                RecordingFolder(
                    recording_id=recording_id,
                    folder_id=folder_id,
                    created_at=at(at_ms, micros),
                )
            )
            session.commit()

    def live_recording_ids(self, user_id: str = USER) -> set[str]:
        with Session(self.engine) as session:
            rows = session.execute(
                select(Recording.id).where(
                    Recording.user_id == user_id, Recording.deleted_at.is_(None)
                )
            )
            return {row.id for row in rows}


def make_engine() -> Engine:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


class Library:
    """A fresh store with its writer, feed and service."""

    def __init__(self, now: int = T0 + 10_000_000):
        self.engine = make_engine()
        self.clock = FixedClock(now)
        self.store = ChangeStore(self.engine)
        self.writer = LibraryWriter(self.engine)
        self.feed = ChangeFeed(self.store, clock=self.clock)
        self.service = SyncService(self.feed, SyncConfig())
        self.writer.add_user(USER)
        self.writer.add_user(OTHER_USER)


@pytest.fixture
def library() -> Library:
    return Library()


@pytest.fixture
def make_library() -> Callable[..., Library]:
    """Factory for fresh libraries, for property tests that need one per example."""
    return Library


@pytest.fixture
def writer(library: Library) -> LibraryWriter:
    return library.writer


@pytest.fixture
def feed(library: Library) -> ChangeFeed:
    return library.feed


@pytest.fixture
def service(library: Library) -> SyncService:
    return library.service
