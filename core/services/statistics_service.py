"""Aggregate per-group review statistics.

Summaries are updated in O(1) from a live review session after each of its
mutations, or fully recomputed from the item store plus persisted review state
when that state changed outside the active session.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import threading

from loguru import logger

from core.models import GroupKey, GroupSummary, MediaItem, ReviewStatus
from core.services.interfaces import IItemStore, IStatePersistence


def overlay_review_states(
    items: Iterable[MediaItem], states: Mapping[str, MediaItem]
) -> list[MediaItem]:
    """Replace each item by its persisted review state when one exists."""
    return [states.get(item.id, item) for item in items]


def count_items(key: GroupKey, items: list[MediaItem]) -> GroupSummary:
    """Build a summary by counting flags and statuses of `items`."""
    kept = sum(1 for it in items if it.is_kept)
    staged = sum(1 for it in items if it.is_staged_for_deletion)
    skipped = sum(1 for it in items if it.status is ReviewStatus.SKIPPED)
    return GroupSummary(
        key=key, total=len(items), kept=kept, staged_for_deletion=staged, skipped=skipped
    )


class StatisticsCache:
    """Thread-safe map of group key to `GroupSummary`.

    Each key has its own lock so that a recompute and the following store are
    atomic for that key; different keys never block each other.
    """

    def __init__(self, item_store: IItemStore, persistence: IStatePersistence) -> None:
        self._store = item_store
        self._persistence = persistence
        self._summaries: dict[GroupKey, GroupSummary] = {}
        self._key_locks: dict[GroupKey, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: GroupKey) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def update_from_session(
        self, key: GroupKey, total: int, kept: int, staged: int, skipped: int = 0
    ) -> GroupSummary:
        """Store a summary computed from a session's in-memory sizes."""
        summary = GroupSummary(
            key=key, total=total, kept=kept, staged_for_deletion=staged, skipped=skipped
        )
        with self._lock_for(key):
            self._summaries[key] = summary
        return summary

    def invalidate(self, key: GroupKey) -> GroupSummary | None:
        """Drop the cached summary for `key` and recompute it from scratch.

        Returns the fresh summary, or None when the group no longer holds any
        visible item (its entry is removed).
        """
        with self._lock_for(key):
            self._summaries.pop(key, None)
            items = overlay_review_states(
                self._store.fetch_group(key), self._persistence.load_review_states()
            )
            if not items:
                logger.debug("Group {} is empty after recompute", key)
                return None
            summary = count_items(key, items)
            self._summaries[key] = summary
            return summary

    def rebuild_all(self) -> list[GroupSummary]:
        """Recompute every group known to the item store."""
        states = self._persistence.load_review_states()
        keys = set(self._store.list_group_keys())
        for key in keys:
            items = overlay_review_states(self._store.fetch_group(key), states)
            with self._lock_for(key):
                if items:
                    self._summaries[key] = count_items(key, items)
                else:
                    self._summaries.pop(key, None)
        for stale in [k for k in list(self._summaries) if k not in keys]:
            with self._lock_for(stale):
                self._summaries.pop(stale, None)
        logger.info("Statistics rebuilt for {} groups", len(keys))
        return self.summaries()

    def get(self, key: GroupKey) -> GroupSummary | None:
        with self._lock_for(key):
            return self._summaries.get(key)

    def summaries(self) -> list[GroupSummary]:
        """Non-empty summaries, newest group first."""
        values = list(self._summaries.values())
        return sorted((s for s in values if s.total > 0), key=lambda s: s.key, reverse=True)

    def total_item_count(self) -> int:
        return sum(s.total for s in self.summaries())
