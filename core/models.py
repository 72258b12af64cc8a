"""Core domain models for media items, groups, decisions and summaries."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Union


def _format_datetime(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


class ReviewStatus(str, Enum):
    """Review disposition of a single item."""

    UNREVIEWED = "unreviewed"
    KEPT = "kept"
    STAGED_FOR_DELETION = "staged_for_deletion"
    # No code path produces this yet; it is counted by statistics.
    SKIPPED = "skipped"

    @property
    def is_reviewed(self) -> bool:
        return self is not ReviewStatus.UNREVIEWED


@dataclass(frozen=True)
class MediaItem:
    """A single media item originating from the item store.

    `is_kept` and `is_staged_for_deletion` mirror `status` for fast filtering.
    """

    id: str
    created_at: datetime | None = None
    status: ReviewStatus = ReviewStatus.UNREVIEWED
    is_kept: bool = False
    is_staged_for_deletion: bool = False

    def with_status(self, status: ReviewStatus) -> MediaItem:
        """Return a copy with `status` set and the flags mirrored from it."""
        return replace(
            self,
            status=status,
            is_kept=status is ReviewStatus.KEPT,
            is_staged_for_deletion=status is ReviewStatus.STAGED_FOR_DELETION,
        )

    def reset(self) -> MediaItem:
        """Return an unreviewed copy with both flags cleared."""
        return self.with_status(ReviewStatus.UNREVIEWED)

    @property
    def is_unreviewed(self) -> bool:
        return (
            self.status is ReviewStatus.UNREVIEWED
            and not self.is_kept
            and not self.is_staged_for_deletion
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": _format_datetime(self.created_at),
            "status": self.status.value,
            "is_kept": self.is_kept,
            "is_staged_for_deletion": self.is_staged_for_deletion,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaItem:
        """Decode a persisted item; flags are taken as stored."""
        return cls(
            id=str(data["id"]),
            created_at=_parse_datetime(data.get("created_at")),
            status=ReviewStatus(data.get("status", ReviewStatus.UNREVIEWED.value)),
            is_kept=bool(data.get("is_kept", False)),
            is_staged_for_deletion=bool(data.get("is_staged_for_deletion", False)),
        )


@dataclass(frozen=True, order=True)
class GroupKey:
    """Year-month bucket used to group items.

    Natural ordering is ascending; views sort with `reverse=True` to show the
    newest month first.
    """

    year: int
    month: int

    @property
    def display_string(self) -> str:
        return f"{self.year:04d}/{self.month:02d}"

    @property
    def storage_key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @classmethod
    def from_datetime(cls, dt: datetime) -> GroupKey:
        return cls(year=dt.year, month=dt.month)

    @classmethod
    def parse(cls, value: str) -> GroupKey:
        """Parse `YYYY-MM` or `YYYY/MM`."""
        text = str(value).strip().replace("/", "-")
        year_part, sep, month_part = text.partition("-")
        if not sep:
            raise ValueError(f"Invalid group key: {value!r}")
        month = int(month_part)
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month in group key: {value!r}")
        return cls(year=int(year_part), month=month)

    def __str__(self) -> str:
        return self.display_string


@dataclass(frozen=True)
class KeepDecision:
    item: MediaItem


@dataclass(frozen=True)
class DeleteDecision:
    item: MediaItem


Decision = Union[KeepDecision, DeleteDecision]


@dataclass(frozen=True)
class GroupSummary:
    """Aggregate review counters for one group."""

    key: GroupKey
    total: int
    kept: int = 0
    staged_for_deletion: int = 0
    skipped: int = 0

    @property
    def reviewed(self) -> int:
        return self.kept + self.staged_for_deletion + self.skipped

    @property
    def remaining(self) -> int:
        return self.total - self.reviewed

    @property
    def completion_rate(self) -> float:
        if self.total <= 0:
            return 0.0
        return self.reviewed / self.total

    @property
    def is_completed(self) -> bool:
        return self.reviewed >= self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key.storage_key,
            "total": self.total,
            "reviewed": self.reviewed,
            "kept": self.kept,
            "staged_for_deletion": self.staged_for_deletion,
            "skipped": self.skipped,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupSummary:
        return cls(
            key=GroupKey.parse(data["key"]),
            total=int(data["total"]),
            kept=int(data.get("kept", 0)),
            staged_for_deletion=int(data.get("staged_for_deletion", 0)),
            skipped=int(data.get("skipped", 0)),
        )


@dataclass(frozen=True)
class GroupCompletionState:
    """Snapshot written when a group has been fully reviewed."""

    summary: GroupSummary
    is_completed: bool
    last_updated: datetime

    @classmethod
    def from_summary(cls, summary: GroupSummary, when: datetime | None = None) -> GroupCompletionState:
        return cls(
            summary=summary,
            is_completed=summary.is_completed,
            last_updated=when or datetime.now(),
        )

    def to_dict(self) -> dict[str, Any]:
        data = self.summary.to_dict()
        data["is_completed"] = self.is_completed
        data["last_updated"] = _format_datetime(self.last_updated)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupCompletionState:
        summary = GroupSummary.from_dict(data)
        return cls(
            summary=summary,
            is_completed=bool(data.get("is_completed", summary.is_completed)),
            last_updated=_parse_datetime(data.get("last_updated")) or datetime.now(),
        )
