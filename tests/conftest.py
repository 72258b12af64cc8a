"""Shared fixtures: an in-memory item store and a JSON state store in tmp_path."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import pytest

from core.models import GroupKey, MediaItem
from core.services.interfaces import DeletionOutcome, IItemStore
from core.services.review_session import ReviewSession
from core.services.statistics_service import StatisticsCache
from infrastructure.json_state_store import JsonStateStore

MARCH = GroupKey(2024, 3)
APRIL = GroupKey(2024, 4)


def make_items(key: GroupKey, *names: str) -> list[MediaItem]:
    return [
        MediaItem(id=name, created_at=datetime(key.year, key.month, 28 - i, 12, 0))
        for i, name in enumerate(names)
    ]


class MemoryItemStore(IItemStore):
    """Item store over plain lists; physical deletes return a scripted outcome."""

    def __init__(self, groups: dict[GroupKey, list[MediaItem]]) -> None:
        self.groups = {k: list(v) for k, v in groups.items()}
        self.excluded: set[str] = set()
        self.next_outcome: DeletionOutcome | None = None
        self.delete_calls: list[list[str]] = []

    def list_group_keys(self) -> list[GroupKey]:
        return sorted(self.groups, reverse=True)

    def fetch_group(self, key: GroupKey) -> list[MediaItem]:
        return [it for it in self.groups.get(key, []) if it.id not in self.excluded]

    def apply_exclusion(self, ids: Iterable[str]) -> None:
        self.excluded.update(ids)

    def remove_exclusion(self, ids: Iterable[str]) -> None:
        self.excluded.difference_update(ids)

    def excluded_ids(self) -> set[str]:
        return set(self.excluded)

    def purge(self, ids: Iterable[str]) -> None:
        gone = set(ids)
        for key in list(self.groups):
            self.groups[key] = [it for it in self.groups[key] if it.id not in gone]
        self.excluded -= gone

    def physical_delete(self, ids: list[str]) -> DeletionOutcome:
        self.delete_calls.append(list(ids))
        if self.next_outcome is not None:
            return self.next_outcome
        return DeletionOutcome.confirmed(ids)

    def reload(self) -> None:
        pass


@pytest.fixture
def store() -> MemoryItemStore:
    return MemoryItemStore(
        {
            MARCH: make_items(MARCH, "A", "B", "C"),
            APRIL: make_items(APRIL, "P", "Q"),
        }
    )


@pytest.fixture
def persistence(tmp_path) -> JsonStateStore:
    return JsonStateStore(tmp_path / "state")


@pytest.fixture
def statistics(store, persistence) -> StatisticsCache:
    return StatisticsCache(store, persistence)


@pytest.fixture
def session(store, persistence, statistics) -> ReviewSession:
    return ReviewSession(MARCH, store, persistence, statistics)


def ids(items: Iterable[MediaItem]) -> list[str]:
    return [it.id for it in items]
