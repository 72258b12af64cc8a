"""Utilities for capture-date extraction (EXIF and filesystem).

This module centralizes how an item's creation time is determined so the
library scanner can depend on a single behavior. It uses best-effort parsing
and will not raise on errors; callers should expect `None` when data is not
available.
"""

from __future__ import annotations

from datetime import datetime
import os
from typing import Any

from loguru import logger
from PIL import Image, UnidentifiedImageError

# EXIF tag 36867 is DateTimeOriginal (Exif IFD), 306 is DateTime (IFD0)
_EXIF_IFD = 0x8769
_TAG_DATETIME_ORIGINAL = 36867
_TAG_DATETIME = 306


def get_filesystem_creation_datetime(path: str) -> datetime | None:
    """Best-effort file creation time.

    Uses `st_birthtime` where the platform reports it, otherwise the older of
    ctime and mtime.
    """
    try:
        st = os.stat(path)
    except OSError as ex:
        logger.debug("stat failed for {}: {}", path, ex)
        return None
    ts = getattr(st, "st_birthtime", None) or min(st.st_ctime, st.st_mtime)
    try:
        return datetime.fromtimestamp(ts)
    except (OverflowError, OSError, ValueError) as ex:
        logger.debug("Invalid timestamp for {}: {}", path, ex)
        return None


def parse_exif_datetime(value: Any) -> datetime | None:
    """Parse an EXIF date string such as "YYYY:MM:DD HH:MM:SS"."""
    if not value:
        return None
    val_str = str(value).strip().rstrip("\x00")
    try:
        if len(val_str) >= 19 and val_str[4] == ":" and val_str[7] == ":":
            return datetime.strptime(val_str[:19], "%Y:%m:%d %H:%M:%S")
        return datetime.fromisoformat(val_str.replace("/", "-"))
    except ValueError:
        logger.debug("Unparseable EXIF datetime: {}", val_str)
        return None


def get_exif_datetime_original(path: str) -> datetime | None:
    """Extract EXIF DateTimeOriginal (falling back to DateTime) via Pillow."""
    try:
        with Image.open(path) as im:
            exif = im.getexif()
            if not exif:
                return None
            val = exif.get_ifd(_EXIF_IFD).get(_TAG_DATETIME_ORIGINAL) or exif.get(_TAG_DATETIME)
            return parse_exif_datetime(val)
    except (OSError, UnidentifiedImageError, ValueError, TypeError) as ex:
        logger.debug("EXIF read failed for {}: {}", path, ex)
        return None


def get_creation_datetime(path: str) -> datetime | None:
    """EXIF capture time when present, else filesystem creation time."""
    return get_exif_datetime_original(path) or get_filesystem_creation_datetime(path)
