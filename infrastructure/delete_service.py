"""Deletion planning and execution service.

Provides a high-level API to summarise staged deletions per group and to
execute deletes by moving files to the recycle bin, while writing an audit
CSV log.
"""

from __future__ import annotations

from collections.abc import Mapping
import csv
from dataclasses import dataclass
from datetime import datetime
import os
from pathlib import Path

from loguru import logger
from send2trash import send2trash
from send2trash.exceptions import TrashPermissionError

from core.models import GroupKey
from infrastructure.logging import get_delete_log_directory


@dataclass
class DeleteResult:
    """Outcome of a delete operation.

    Attributes:
        success_paths: Paths successfully deleted.
        failed: Tuples of (path, reason) for failures.
        log_path: Optional path to a detailed log file.
    """

    success_paths: list[str]
    failed: list[tuple[str, str]]
    log_path: str | None = None


@dataclass
class DeletePlanGroupSummary:
    """Summary of delete intent for a single group.

    Attributes:
        key: Group the items belong to.
        selected_count: Number of items of the group selected for deletion.
        total_count: Total items in the group.
        is_full_delete: Whether all items in the group are selected.
    """

    key: GroupKey
    selected_count: int
    total_count: int
    is_full_delete: bool


class DeleteService:
    """Coordinates delete operations and audit logging."""

    def __init__(self, log_dir: str | None = None) -> None:
        self._log_dir = log_dir

    def plan_delete(
        self, group_totals: Mapping[GroupKey, int], selected: Mapping[GroupKey, list[str]]
    ) -> list[DeletePlanGroupSummary]:
        """Summarise how many items of each group are about to be deleted."""
        summaries: list[DeletePlanGroupSummary] = []
        for key in sorted(selected, reverse=True):
            sel = len(selected[key])
            tot = group_totals.get(key, 0)
            summaries.append(
                DeletePlanGroupSummary(
                    key=key,
                    selected_count=sel,
                    total_count=tot,
                    is_full_delete=(tot > 0 and sel == tot),
                )
            )
        return summaries

    def delete_to_recycle(self, paths: list[str]) -> DeleteResult:
        """Send files to recycle bin and report per-path results."""
        success: list[str] = []
        failed: list[tuple[str, str]] = []
        for p in paths:
            normalized_path = os.path.normpath(p)
            if not os.path.exists(normalized_path):
                logger.error("File does not exist: {}", normalized_path)
                failed.append((p, "File does not exist"))
                continue
            try:
                send2trash(normalized_path)
                success.append(p)
            except (TrashPermissionError, UnicodeEncodeError, OSError) as ex:
                logger.error("Failed to delete {}: {}", normalized_path, ex)
                failed.append((p, str(ex)))
        return DeleteResult(success_paths=success, failed=failed)

    def execute_delete(
        self, paths: list[str], path_to_group: Mapping[str, GroupKey] | None = None
    ) -> DeleteResult:
        """Delete `paths` and write an audit CSV log.

        Args:
            paths: Files to move to the recycle bin.
            path_to_group: Optional mapping used to tag each log row with its group.
        """
        result = self.delete_to_recycle(paths)
        groups = path_to_group or {}
        try:
            base_dir = self._log_dir or get_delete_log_directory()
            Path(base_dir).mkdir(parents=True, exist_ok=True)
            ts = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_path = os.path.join(base_dir, f"delete_{ts}.csv")
            with open(log_path, "w", encoding="utf-8", newline="") as f:
                writer = csv.writer(f)
                writer.writerow(["Group", "FilePath", "Success", "Reason"])
                for p in result.success_paths:
                    key = groups.get(p)
                    writer.writerow([key.display_string if key else "", p, 1, ""])
                for p, reason in result.failed:
                    key = groups.get(p)
                    writer.writerow([key.display_string if key else "", p, 0, reason])
            result.log_path = log_path
            logger.info(
                "Delete log written: {} ({} success, {} failed)",
                log_path,
                len(result.success_paths),
                len(result.failed),
            )
        except (OSError, ValueError) as ex:
            logger.error("Write delete log failed: {}", ex)
        return result
