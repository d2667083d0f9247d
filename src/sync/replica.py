"""In-memory client replica built by applying change items in feed order."""

from collections.abc import Iterable
from typing import Any

import structlog

from src.models.change import ChangeItem, ChangeOp, EntityType

log = structlog.stdlib.get_logger()


class LocalReplica:
    """Mirror of one user's library as seen through the change feed.

    Items are applied as they arrive: upserts replace the stored snapshot and
    deletes remove it. Links that arrive for a recording already deleted
    locally are dropped. No conflict resolution is attempted.
    """

    def __init__(self) -> None:
        self.recordings: dict[str, dict[str, Any]] = {}
        self.folders: dict[str, dict[str, Any]] = {}
        self.tags: dict[str, dict[str, Any]] = {}
        self.recording_tags: set[tuple[str, str]] = set()
        self.recording_folders: dict[str, str] = {}
        self.deleted_recordings: set[str] = set()
        self.cursor: str | None = None

    def apply(self, items: Iterable[ChangeItem]) -> int:
        """
        Apply change items in order.

        Args:
            items: Change items as delivered by the feed

        Returns:
            Number of items applied
        """
        applied = 0
        for item in items:
            self._apply_item(item)
            applied += 1
        return applied

    def _apply_item(self, item: ChangeItem) -> None:
        entity_type = EntityType(item.type)
        deleting = ChangeOp(item.op) == ChangeOp.DELETE

        if entity_type == EntityType.RECORDING:
            if deleting:
                self.recordings.pop(item.id, None)
                self.deleted_recordings.add(item.id)
                self.recording_folders.pop(item.id, None)
                self.recording_tags = {
                    link for link in self.recording_tags if link[0] != item.id
                }
                return
            data = dict(item.data or {})
            self.recordings[item.id] = data
            self.deleted_recordings.discard(item.id)
            # The snapshot is newer than any assignment already applied
            if data.get("folderId"):
                self.recording_folders[item.id] = data["folderId"]
            else:
                self.recording_folders.pop(item.id, None)

        elif entity_type == EntityType.FOLDER:
            if deleting:
                self.folders.pop(item.id, None)
            else:
                self.folders[item.id] = dict(item.data or {})

        elif entity_type == EntityType.TAG:
            if deleting:
                self.tags.pop(item.id, None)
            else:
                self.tags[item.id] = dict(item.data or {})

        elif entity_type == EntityType.RECORDING_TAG:
            link = (item.recording_id, item.tag_id)
            if deleting:
                self.recording_tags.discard(link)
            elif item.recording_id in self.deleted_recordings:
                log.debug("link_to_deleted_recording_skipped", id=item.id)
                return
            else:
                self.recording_tags.add(link)

        elif entity_type == EntityType.RECORDING_FOLDER:
            if item.recording_id in self.deleted_recordings:
                log.debug("link_to_deleted_recording_skipped", id=item.id)
                return
            self.recording_folders[item.recording_id] = item.folder_id

        log.debug("change_applied", type=entity_type.value, op=item.op, id=item.id)
