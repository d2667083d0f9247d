"""Tests for draining the feed into a local replica.

A replica built purely from feed items must converge to the store's live
state, whatever the page size and however the pull is interrupted.
"""

from datetime import datetime

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy import select
from sqlalchemy.orm import Session

from src.exceptions import StoreFailure
from src.models.change import ChangeItem, ChangesResponse
from src.storage.schema import Folder, Recording, RecordingFolder, RecordingTag, Tag
from src.sync.puller import SyncPuller, SyncPullReport
from src.sync.replica import LocalReplica
from tests.conftest import T0, USER


def store_state(library) -> dict:
    """Live state of USER's library, read straight from the tables."""
    with Session(library.engine) as session:
        recordings = set(
            session.scalars(
                select(Recording.id).where(Recording.user_id == USER, Recording.deleted_at.is_(None))
            )
        )
        folders = set(
            session.scalars(
                select(Folder.id).where(Folder.user_id == USER, Folder.deleted_at.is_(None))
            )
        )
        tags = set(
            session.scalars(select(Tag.id).where(Tag.user_id == USER, Tag.deleted_at.is_(None)))
        )
        links = {
            (link.recording_id, link.tag_id)
            for link in session.scalars(select(RecordingTag).where(RecordingTag.deleted_at.is_(None)))
            if link.recording_id in recordings
        }
        assignments = {
            assignment.recording_id: assignment.folder_id
            for assignment in session.scalars(select(RecordingFolder))
            if assignment.recording_id in recordings
        }
    return {
        "recordings": recordings,
        "folders": folders,
        "tags": tags,
        "links": links,
        "assignments": assignments,
    }


def replica_state(replica: LocalReplica) -> dict:
    return {
        "recordings": set(replica.recordings),
        "folders": set(replica.folders),
        "tags": set(replica.tags),
        "links": set(replica.recording_tags),
        "assignments": dict(replica.recording_folders),
    }


def seed(library) -> None:
    writer = library.writer
    writer.add_folder("inbox", T0)
    writer.add_folder("archive", T0, parent_id="inbox")
    writer.add_tag("work", T0 + 1)
    writer.add_tag("home", T0 + 1)
    for i in range(5):
        writer.add_recording(f"r{i}", T0 + 2)
    writer.tag_recording("r0", "work", T0 + 3)
    writer.tag_recording("r1", "work", T0 + 3)
    writer.tag_recording("r1", "home", T0 + 3)
    writer.assign_folder("r2", "inbox", T0 + 4)
    writer.assign_folder("r3", "archive", T0 + 4)


# Mutations applied after the first drain, each at a distinct later time
MUTATIONS = [
    lambda w, t: w.delete_recording("r0", t),
    lambda w, t: w.untag_recording("r1", "home", t),
    lambda w, t: w.assign_folder("r2", "archive", t),
    lambda w, t: w.update_recording("r4", t, title="Renamed"),
    lambda w, t: w.delete_tag("home", t),
    lambda w, t: w.add_recording("r9", t),
    lambda w, t: w.tag_recording("r1", "home", t),
    lambda w, t: w.delete_folder("archive", t),
]


@given(
    page_limit=st.integers(min_value=1, max_value=6),
    mutations=st.lists(st.sampled_from(range(len(MUTATIONS))), unique=True, max_size=len(MUTATIONS)),
)
@settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)
def test_replica_converges_to_store_state(make_library, page_limit, mutations) -> None:
    library = make_library()
    seed(library)
    puller = SyncPuller(library.service, page_limit=page_limit)

    first = puller.pull(USER)
    assert first.complete
    assert replica_state(puller.replica) == store_state(library)

    for step, index in enumerate(mutations):
        MUTATIONS[index](library.writer, T0 + 100 + step)

    second = puller.pull(USER)

    assert second.complete
    assert second.success
    assert replica_state(puller.replica) == store_state(library)


def test_pull_reports_pages_and_items(library) -> None:
    seed(library)
    puller = SyncPuller(library.service, page_limit=4)

    report = puller.pull(USER)

    # 2 folders, 2 tags, 5 recordings, 3 tag links, 2 folder links
    assert report.items_received == 14
    assert report.items_applied == 14
    assert report.pages == 4
    assert report.complete is True
    assert report.success is True
    assert report.next_cursor == puller.replica.cursor
    assert report.end_time >= report.start_time


def test_page_budget_stops_early_and_resumes(library) -> None:
    seed(library)
    puller = SyncPuller(library.service, page_limit=3, max_pages=2)

    partial = puller.pull(USER)
    assert partial.pages == 2
    assert partial.items_received == 6
    assert partial.complete is False
    assert partial.success is True

    unlimited = SyncPuller(library.service, replica=puller.replica, page_limit=3)
    rest = unlimited.pull(USER)

    assert rest.items_received == 8
    assert rest.complete is True
    assert replica_state(unlimited.replica) == store_state(library)


def test_caught_up_replica_gets_empty_page(library) -> None:
    seed(library)
    puller = SyncPuller(library.service, page_limit=100)
    puller.pull(USER)

    again = puller.pull(USER)

    assert again.pages == 1
    assert again.items_received == 0
    assert again.complete is True


def test_invalid_cursor_is_reported_not_retried(library) -> None:
    puller = SyncPuller(library.service, max_retries=3, retry_base_delay=0.0)

    report = puller.pull(USER, since="not-valid-base64!!")

    assert report.pages == 0
    assert report.success is False
    assert report.errors[0].startswith("Pull failed: Invalid cursor format")
    assert puller.replica.cursor is None


class FlakyService:
    """Fails a fixed number of requests with a store failure, then serves empty pages."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    def get_changes(self, user_id, since=None, limit=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreFailure()
        return ChangesResponse(next="Y3Vyc29y", has_more=False, items=[])


def test_store_failures_are_retried() -> None:
    service = FlakyService(failures=2)
    puller = SyncPuller(service, max_retries=2, retry_base_delay=0.0)

    report = puller.pull(USER)

    assert service.calls == 3
    assert report.success is True
    assert report.next_cursor == "Y3Vyc29y"


def test_persistent_store_failure_ends_the_pull() -> None:
    service = FlakyService(failures=10)
    puller = SyncPuller(service, max_retries=1, retry_base_delay=0.0)

    report = puller.pull(USER, since="c3RhcnQ=")

    assert service.calls == 2
    assert report.success is False
    assert report.errors == ["Pull failed: Failed to fetch sync changes"]
    assert report.next_cursor == "c3RhcnQ="


def _item(**fields) -> ChangeItem:
    base = {"userId": USER, "updatedAt": "2023-11-14T22:13:20.000Z", "op": "upsert"}
    base.update(fields)
    return ChangeItem(**base)


def test_replica_applies_items_in_order() -> None:
    replica = LocalReplica()
    recording_data = {
        "title": "Memo",
        "durationSec": 3,
        "s3Key": "k",
        "createdAt": "2023-11-14T22:13:20.000Z",
        "folderId": "f1",
    }

    applied = replica.apply(
        [
            _item(type="recording", id="r1", data=recording_data),
            _item(type="tag", id="t1", data={"name": "x", "createdAt": "x"}),
            _item(type="recording_tag", id="r1/t1", recordingId="r1", tagId="t1"),
            _item(type="recording_folder", id="r1", recordingId="r1", folderId="f2"),
            _item(type="recording_tag", id="r1/t1", op="delete", recordingId="r1", tagId="t1"),
        ]
    )

    assert applied == 5
    assert replica.recordings["r1"]["title"] == "Memo"
    assert replica.recording_folders == {"r1": "f2"}
    assert replica.recording_tags == set()
    assert set(replica.tags) == {"t1"}

    replica.apply([_item(type="recording", id="r1", op="delete", data=recording_data)])

    assert replica.recordings == {}
    assert replica.recording_folders == {}


def test_replica_ignores_links_to_deleted_recordings() -> None:
    replica = LocalReplica()
    recording_data = {"title": "Memo", "createdAt": "2023-11-14T22:13:20.000Z"}
    replica.apply(
        [
            _item(type="recording", id="r1", data=recording_data),
            _item(type="recording", id="r1", op="delete", data=recording_data),
            _item(type="recording_tag", id="r1/t1", recordingId="r1", tagId="t1"),
            _item(type="recording_folder", id="r1", recordingId="r1", folderId="f1"),
        ]
    )

    assert replica.recording_tags == set()
    assert replica.recording_folders == {}

    # A later snapshot brings the recording back and links apply again
    replica.apply(
        [
            _item(type="recording", id="r1", data=recording_data),
            _item(type="recording_tag", id="r1/t1", recordingId="r1", tagId="t1"),
        ]
    )

    assert replica.recording_tags == {("r1", "t1")}


def test_links_before_their_recording_are_kept() -> None:
    """A recording updated after tagging arrives later in the feed than its link."""
    replica = LocalReplica()

    replica.apply(
        [
            _item(type="recording_tag", id="r1/t1", recordingId="r1", tagId="t1"),
            _item(type="recording", id="r1", data={"title": "Memo"}),
        ]
    )

    assert replica.recording_tags == {("r1", "t1")}


def test_report_model_defaults() -> None:
    now = datetime.now()
    report = SyncPullReport(user_id=USER, start_time=now, end_time=now)

    assert report.success is True
    assert report.pages == 0
    assert report.next_cursor is None
