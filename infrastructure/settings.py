"""Settings access helpers for JSON-based configuration."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

DEFAULT_SETTINGS: dict[str, Any] = {
    "library": {
        "root": "",
        "extensions": [".jpg", ".jpeg", ".png", ".heic", ".heif", ".gif", ".webp", ".tif", ".tiff"],
    },
    "state": {"dir": None},
    "logging": {"dir": None, "level": "INFO"},
    "delete": {"log_dir": None},
}

_MISSING = object()


def _lookup(data: Any, parts: list[str]) -> Any:
    node: Any = data
    for part in parts:
        if isinstance(node, dict) and part in node:
            node = node[part]
        else:
            return _MISSING
    return node


class JsonSettings:
    """Lightweight JSON settings reader with dotted-key access.

    Keys missing from the file fall back to `DEFAULT_SETTINGS`, then to the
    `default` passed to `get`.
    """

    def __init__(self, settings_path: str | Path, defaults: dict[str, Any] | None = None) -> None:
        self._path = Path(settings_path)
        if not self._path.exists():
            raise FileNotFoundError(f"settings.json not found: {self._path}")
        with self._path.open("r", encoding="utf-8") as f:
            self._data = json.load(f)
        self._defaults = DEFAULT_SETTINGS if defaults is None else defaults

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any | None = None) -> Any:
        """Return value for dotted `key`, or `default` if not present."""
        parts = key.split(".")
        value = _lookup(self._data, parts)
        if value is _MISSING or value is None:
            value = _lookup(self._defaults, parts)
        if value is _MISSING or value is None:
            return default
        return value

    def get_path(self, key: str, default: str | None = None) -> Path | None:
        """Return `key` as a path; relative paths resolve against the settings file."""
        value = self.get(key, default)
        if not value:
            return None
        path = Path(str(value)).expanduser()
        if not path.is_absolute():
            path = self._path.parent / path
        return path
