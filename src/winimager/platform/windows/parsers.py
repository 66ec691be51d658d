"""
Windows output parsers.

Parsers for fsutil output and drive/path strings reported by the engine.
"""

from __future__ import annotations

import re

_DRIVE_PATTERN = re.compile(r"^\s*([A-Za-z])(?::\\?)?\s*$")
_LONG_PATH_PREFIXES = ("\\\\?\\", "\\??\\")


def parse_dirty_output(output: str) -> bool | None:
    """
    Parse ``fsutil dirty query`` output.

    Returns True for "is Dirty", False for "is NOT Dirty", None when the
    output matches neither.
    """
    text = output.lower()
    if "is not dirty" in text:
        return False
    if "is dirty" in text:
        return True
    return None


def normalize_drive_letter(value: str | None) -> str | None:
    """
    Normalize a single-letter drive reference to ``X:``.

    Accepts ``d``, ``D:`` and ``D:\\``. Anything else returns None.
    """
    if value is None:
        return None
    match = _DRIVE_PATTERN.match(value)
    if not match:
        return None
    return f"{match.group(1).upper()}:"


def strip_long_path_prefix(path: str) -> str:
    """Remove the ``\\\\?\\`` prefix the engine uses for long paths."""
    for prefix in _LONG_PATH_PREFIXES:
        if path.startswith(prefix):
            return path[len(prefix):]
    return path


def volume_relative_path(path: str) -> str:
    """``C:\\Users\\a.txt`` -> ``\\Users\\a.txt``."""
    path = strip_long_path_prefix(path)
    if len(path) >= 2 and path[1] == ":":
        path = path[2:]
    path = path.replace("/", "\\")
    if not path.startswith("\\"):
        path = "\\" + path
    return path
