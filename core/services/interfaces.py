"""Core service interfaces and shared data structures.

This module defines the contracts of the two external collaborators of the
review engine (the item store and the state persistence) plus the outcome
type reported by a physical deletion.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from core.models import GroupCompletionState, GroupKey, GroupSummary, MediaItem


class InvariantViolation(RuntimeError):
    """Raised when in-memory session structures diverge (programming defect)."""


class DeletionStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class DeletionOutcome:
    """Outcome of a physical deletion request.

    Attributes:
        status: Confirmed, cancelled by the user, or failed.
        reason: Failure description; empty unless `status` is failed.
        deleted_ids: Ids that are physically gone. Equals the request on
            success, may be a non-empty subset on failure.
        log_path: Optional path to the audit log written for the request.
    """

    status: DeletionStatus
    reason: str = ""
    deleted_ids: list[str] = field(default_factory=list)
    log_path: str | None = None

    @classmethod
    def confirmed(cls, ids: Iterable[str], log_path: str | None = None) -> DeletionOutcome:
        return cls(status=DeletionStatus.CONFIRMED, deleted_ids=list(ids), log_path=log_path)

    @classmethod
    def cancelled(cls) -> DeletionOutcome:
        return cls(status=DeletionStatus.CANCELLED)

    @classmethod
    def failed(
        cls, reason: str, deleted_ids: Iterable[str] = (), log_path: str | None = None
    ) -> DeletionOutcome:
        return cls(
            status=DeletionStatus.FAILED,
            reason=reason,
            deleted_ids=list(deleted_ids),
            log_path=log_path,
        )


class IItemStore:
    """Interface for the source collection of media items."""

    def list_group_keys(self) -> list[GroupKey]:
        """Return every group key that currently holds items."""
        raise NotImplementedError

    def fetch_group(self, key: GroupKey) -> list[MediaItem]:
        """Return the group's items in review order, excluded ids filtered out."""
        raise NotImplementedError

    def apply_exclusion(self, ids: Iterable[str]) -> None:
        """Hide `ids` from all group views without touching the source."""
        raise NotImplementedError

    def remove_exclusion(self, ids: Iterable[str]) -> None:
        """Make previously hidden `ids` visible again."""
        raise NotImplementedError

    def excluded_ids(self) -> set[str]:
        """Return a copy of the current exclusion set."""
        raise NotImplementedError

    def purge(self, ids: Iterable[str]) -> None:
        """Forget `ids` after they were physically deleted."""
        raise NotImplementedError

    def physical_delete(self, ids: list[str]) -> DeletionOutcome:
        """Irreversibly delete `ids` from the source collection (blocking)."""
        raise NotImplementedError

    def reload(self) -> None:
        """Re-read the source collection."""
        raise NotImplementedError


class IStatePersistence:
    """Interface for durable per-item and per-group review state.

    Reads never raise: missing or corrupt data yields empty defaults. Writes
    are best-effort and never raise either.
    """

    def load_review_states(self) -> dict[str, MediaItem]:
        raise NotImplementedError

    def save_review_state(self, item: MediaItem) -> None:
        raise NotImplementedError

    def remove_review_states(self, ids: Iterable[str]) -> None:
        raise NotImplementedError

    def save_group_completion(self, summary: GroupSummary) -> None:
        raise NotImplementedError

    def get_group_completion(self, key: GroupKey) -> GroupCompletionState | None:
        raise NotImplementedError

    def clear_group_completion(self, key: GroupKey) -> None:
        raise NotImplementedError

    def add_pending_deletions(self, ids: Iterable[str]) -> None:
        raise NotImplementedError

    def remove_pending_deletions(self, ids: Iterable[str]) -> None:
        raise NotImplementedError

    def pending_deletion_ids(self) -> set[str]:
        raise NotImplementedError

    def save_review_progress(self, key: GroupKey, count: int) -> None:
        raise NotImplementedError

    def get_review_progress(self, key: GroupKey) -> int:
        raise NotImplementedError

    def clear_review_progress(self, key: GroupKey) -> None:
        raise NotImplementedError

    def invalidate(self) -> None:
        """Drop any in-memory cache so the next read hits durable storage."""
        raise NotImplementedError
