"""Logging initialization utilities using loguru."""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

APP_DIR_NAME = "MediaTriage"


def _app_data_dir() -> Path:
    """Per-user application data directory (LOCALAPPDATA or XDG state home)."""
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
    else:
        base = os.environ.get("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    return Path(base) / APP_DIR_NAME


def init_logging(log_dir: str | None = None, level: str = "INFO") -> None:
    """Initialize rotating file logging under the given directory."""
    if log_dir is None:
        log_dir = get_log_directory()
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        str(log_path / "app_{time:YYYYMMDD}.log"),
        rotation="10 MB",
        retention="10 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=level,
    )


def get_log_directory() -> str:
    """Get the main log directory path."""
    return str(_app_data_dir() / "logs")


def get_delete_log_directory() -> str:
    """Get the delete audit log directory path."""
    return str(_app_data_dir() / "delete_logs")


def get_state_directory() -> str:
    """Get the default directory for persisted review state."""
    return str(_app_data_dir() / "state")


def _find_latest(directory: str, pattern: str) -> Path | None:
    try:
        path = Path(directory)
        if not path.exists():
            return None
        files = list(path.glob(pattern))
        if not files:
            return None
        # Return the most recently modified file
        return max(files, key=lambda p: p.stat().st_mtime)
    except (OSError, ValueError):
        return None


def find_latest_log_file(log_dir: str | None = None) -> Path | None:
    """Find the latest app_*.log file in the specified directory."""
    return _find_latest(log_dir or get_log_directory(), "app_*.log")


def find_latest_delete_log_file(log_dir: str | None = None) -> Path | None:
    """Find the latest delete_*.csv audit log."""
    return _find_latest(log_dir or get_delete_log_directory(), "delete_*.csv")
