"""JSON persistence for review state.

Each blob (item review states, group completion snapshots, pending deletion
ids, in-progress counters) lives in its own JSON file under a state directory.
Reads never raise: a missing or undecodable file is treated as "no prior
state". Writes are best-effort and go through a temp file plus `os.replace`.
"""

from __future__ import annotations

from collections.abc import Iterable
import json
import os
from pathlib import Path
import threading
from typing import Any

from loguru import logger

from core.models import GroupCompletionState, GroupKey, GroupSummary, MediaItem
from core.services.interfaces import IStatePersistence

ASSET_REVIEW_STATES = "asset_review_states"
GROUP_COMPLETION_STATES = "group_completion_states"
PENDING_DELETION_IDS = "pending_deletion_ids"
REVIEW_PROGRESS = "review_progress"


class JsonStateStore(IStatePersistence):
    """File-backed `IStatePersistence` with an in-memory decoded cache."""

    def __init__(self, state_dir: str | Path) -> None:
        self._dir = Path(state_dir)
        self._lock = threading.RLock()
        self._cache: dict[str, Any] = {}

    def _path(self, blob: str) -> Path:
        return self._dir / f"{blob}.json"

    def _read_raw(self, blob: str, expected: type) -> Any:
        path = self._path(blob)
        if not path.exists():
            return expected()
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as ex:
            logger.warning("Persisted state {} unreadable, using defaults: {}", path, ex)
            return expected()
        if not isinstance(data, expected):
            logger.warning("Persisted state {} has type {}, using defaults", path, type(data).__name__)
            return expected()
        return data

    def _write_raw(self, blob: str, data: Any) -> None:
        path = self._path(blob)
        tmp = path.with_suffix(".json.tmp")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=1)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as ex:
            logger.error("Write persisted state {} failed: {}", path, ex)

    def invalidate(self) -> None:
        with self._lock:
            self._cache.clear()

    # -- review states

    def _review_states(self) -> dict[str, MediaItem]:
        cached = self._cache.get(ASSET_REVIEW_STATES)
        if cached is not None:
            return cached
        states: dict[str, MediaItem] = {}
        for item_id, raw in self._read_raw(ASSET_REVIEW_STATES, dict).items():
            try:
                states[str(item_id)] = MediaItem.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as ex:
                logger.warning("Dropping corrupt review state for {}: {}", item_id, ex)
        self._cache[ASSET_REVIEW_STATES] = states
        return states

    def _flush_review_states(self, states: dict[str, MediaItem]) -> None:
        self._cache[ASSET_REVIEW_STATES] = states
        self._write_raw(ASSET_REVIEW_STATES, {k: v.to_dict() for k, v in states.items()})

    def load_review_states(self) -> dict[str, MediaItem]:
        with self._lock:
            return dict(self._review_states())

    def save_review_state(self, item: MediaItem) -> None:
        with self._lock:
            states = dict(self._review_states())
            states[item.id] = item
            self._flush_review_states(states)

    def remove_review_states(self, ids: Iterable[str]) -> None:
        with self._lock:
            states = dict(self._review_states())
            for item_id in ids:
                states.pop(item_id, None)
            self._flush_review_states(states)

    # -- group completion snapshots

    def _completions(self) -> dict[GroupKey, GroupCompletionState]:
        cached = self._cache.get(GROUP_COMPLETION_STATES)
        if cached is not None:
            return cached
        completions: dict[GroupKey, GroupCompletionState] = {}
        for raw_key, raw in self._read_raw(GROUP_COMPLETION_STATES, dict).items():
            try:
                completions[GroupKey.parse(raw_key)] = GroupCompletionState.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as ex:
                logger.warning("Dropping corrupt completion state for {}: {}", raw_key, ex)
        self._cache[GROUP_COMPLETION_STATES] = completions
        return completions

    def _flush_completions(self, completions: dict[GroupKey, GroupCompletionState]) -> None:
        self._cache[GROUP_COMPLETION_STATES] = completions
        self._write_raw(
            GROUP_COMPLETION_STATES, {k.storage_key: v.to_dict() for k, v in completions.items()}
        )

    def save_group_completion(self, summary: GroupSummary) -> None:
        with self._lock:
            completions = dict(self._completions())
            completions[summary.key] = GroupCompletionState.from_summary(summary)
            self._flush_completions(completions)

    def get_group_completion(self, key: GroupKey) -> GroupCompletionState | None:
        with self._lock:
            return self._completions().get(key)

    def clear_group_completion(self, key: GroupKey) -> None:
        with self._lock:
            completions = dict(self._completions())
            if completions.pop(key, None) is not None:
                self._flush_completions(completions)

    # -- pending deletions

    def _pending(self) -> set[str]:
        cached = self._cache.get(PENDING_DELETION_IDS)
        if cached is not None:
            return cached
        pending = {str(i) for i in self._read_raw(PENDING_DELETION_IDS, list)}
        self._cache[PENDING_DELETION_IDS] = pending
        return pending

    def _flush_pending(self, pending: set[str]) -> None:
        self._cache[PENDING_DELETION_IDS] = pending
        self._write_raw(PENDING_DELETION_IDS, sorted(pending))

    def add_pending_deletions(self, ids: Iterable[str]) -> None:
        with self._lock:
            self._flush_pending(self._pending() | set(ids))

    def remove_pending_deletions(self, ids: Iterable[str]) -> None:
        with self._lock:
            self._flush_pending(self._pending() - set(ids))

    def pending_deletion_ids(self) -> set[str]:
        with self._lock:
            return set(self._pending())

    # -- in-progress counters

    def _progress(self) -> dict[GroupKey, int]:
        cached = self._cache.get(REVIEW_PROGRESS)
        if cached is not None:
            return cached
        progress: dict[GroupKey, int] = {}
        for raw_key, raw in self._read_raw(REVIEW_PROGRESS, dict).items():
            try:
                progress[GroupKey.parse(raw_key)] = int(raw)
            except (TypeError, ValueError) as ex:
                logger.warning("Dropping corrupt review progress for {}: {}", raw_key, ex)
        self._cache[REVIEW_PROGRESS] = progress
        return progress

    def _flush_progress(self, progress: dict[GroupKey, int]) -> None:
        self._cache[REVIEW_PROGRESS] = progress
        self._write_raw(REVIEW_PROGRESS, {k.storage_key: v for k, v in progress.items()})

    def save_review_progress(self, key: GroupKey, count: int) -> None:
        with self._lock:
            progress = dict(self._progress())
            progress[key] = int(count)
            self._flush_progress(progress)

    def get_review_progress(self, key: GroupKey) -> int:
        with self._lock:
            return self._progress().get(key, 0)

    def clear_review_progress(self, key: GroupKey) -> None:
        with self._lock:
            progress = dict(self._progress())
            if progress.pop(key, None) is not None:
                self._flush_progress(progress)
