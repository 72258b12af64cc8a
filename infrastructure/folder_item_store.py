"""Item store backed by a folder tree of media files.

The tree is scanned once and cached until `reload()`. Item ids are normalized
absolute file paths; each item is grouped by the year-month of its capture
time. The soft-deletion exclusion set lives only in memory.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime
import os
from pathlib import Path
import threading

from loguru import logger

from core.models import GroupKey, MediaItem
from core.services.interfaces import DeletionOutcome, IItemStore
from infrastructure.delete_service import DeletePlanGroupSummary, DeleteService
from infrastructure.utils import get_creation_datetime

ConfirmDelete = Callable[[list[DeletePlanGroupSummary]], bool]


class FolderItemStore(IItemStore):
    """Scan `root` for media files and serve them grouped by month."""

    def __init__(
        self,
        root: str | Path,
        extensions: Iterable[str],
        delete_service: DeleteService | None = None,
        confirm_delete: ConfirmDelete | None = None,
        date_reader: Callable[[str], datetime | None] = get_creation_datetime,
    ) -> None:
        """Create the store; the folder is scanned lazily on first access.

        Args:
            root: Folder scanned recursively.
            extensions: Lower-case file extensions (with dot) treated as media.
            delete_service: Performs the recycle-bin move and audit log.
            confirm_delete: Shown the per-group delete plan before a physical
                delete; False cancels it.
            date_reader: Returns the capture time for a path.
        """
        self._root = Path(root).expanduser()
        self._extensions = {e.lower() for e in extensions}
        self._deleter = delete_service or DeleteService()
        self._confirm = confirm_delete
        self._date_reader = date_reader
        self._lock = threading.RLock()
        self._groups: dict[GroupKey, list[MediaItem]] | None = None
        self._group_of: dict[str, GroupKey] = {}
        self._excluded: set[str] = set()

    def _scan(self) -> dict[GroupKey, list[MediaItem]]:
        grouped: dict[GroupKey, list[MediaItem]] = defaultdict(list)
        if not self._root.is_dir():
            logger.warning("Library root does not exist: {}", self._root)
            return {}
        count = 0
        nil_date_count = 0
        for dirpath, _dirnames, filenames in os.walk(self._root):
            for name in filenames:
                if os.path.splitext(name)[1].lower() not in self._extensions:
                    continue
                path = os.path.normpath(os.path.abspath(os.path.join(dirpath, name)))
                created = self._date_reader(path)
                if created is None:
                    nil_date_count += 1
                key = GroupKey.from_datetime(created or datetime.now())
                grouped[key].append(MediaItem(id=path, created_at=created))
                count += 1
        for items in grouped.values():
            # Newest first, undated items last, stable by path.
            items.sort(key=lambda it: it.id)
            items.sort(key=lambda it: it.created_at or datetime.min, reverse=True)
        logger.info(
            "Scanned {}: {} items in {} groups ({} without date)",
            self._root,
            count,
            len(grouped),
            nil_date_count,
        )
        return dict(grouped)

    def _ensure_loaded(self) -> dict[GroupKey, list[MediaItem]]:
        with self._lock:
            if self._groups is None:
                self._groups = self._scan()
                self._group_of = {
                    it.id: key for key, items in self._groups.items() for it in items
                }
            return self._groups

    def reload(self) -> None:
        with self._lock:
            self._groups = None
            self._ensure_loaded()
            # Excluded ids that vanished from disk are no longer needed.
            self._excluded &= set(self._group_of)

    def list_group_keys(self) -> list[GroupKey]:
        with self._lock:
            groups = self._ensure_loaded()
            return sorted(
                (k for k, items in groups.items() if any(it.id not in self._excluded for it in items)),
                reverse=True,
            )

    def fetch_group(self, key: GroupKey) -> list[MediaItem]:
        with self._lock:
            items = self._ensure_loaded().get(key, [])
            return [it for it in items if it.id not in self._excluded]

    def apply_exclusion(self, ids: Iterable[str]) -> None:
        with self._lock:
            self._excluded.update(ids)

    def remove_exclusion(self, ids: Iterable[str]) -> None:
        with self._lock:
            self._excluded.difference_update(ids)

    def excluded_ids(self) -> set[str]:
        with self._lock:
            return set(self._excluded)

    def purge(self, ids: Iterable[str]) -> None:
        gone = set(ids)
        with self._lock:
            groups = self._ensure_loaded()
            for key in {self._group_of[i] for i in gone if i in self._group_of}:
                remaining = [it for it in groups[key] if it.id not in gone]
                if remaining:
                    groups[key] = remaining
                else:
                    del groups[key]
            for item_id in gone:
                self._group_of.pop(item_id, None)
            self._excluded -= gone

    def physical_delete(self, ids: list[str]) -> DeletionOutcome:
        if not ids:
            return DeletionOutcome.confirmed([])
        with self._lock:
            groups = self._ensure_loaded()
            path_to_group = {i: self._group_of[i] for i in ids if i in self._group_of}
            selected: dict[GroupKey, list[str]] = defaultdict(list)
            for item_id, key in path_to_group.items():
                selected[key].append(item_id)
            totals = {key: len(groups.get(key, [])) for key in selected}
        plan = self._deleter.plan_delete(totals, selected)
        if self._confirm is not None and not self._confirm(plan):
            logger.info("Physical delete of {} items cancelled by user", len(ids))
            return DeletionOutcome.cancelled()
        result = self._deleter.execute_delete(list(ids), path_to_group)
        if not result.failed:
            return DeletionOutcome.confirmed(result.success_paths, log_path=result.log_path)
        reason = "; ".join(f"{p}: {why}" for p, why in result.failed)
        return DeletionOutcome.failed(reason, result.success_paths, log_path=result.log_path)
