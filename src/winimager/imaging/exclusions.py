"""
Exclusion list for system volume captures.

The engine reads an ``[ExclusionList]`` section from a configuration file.
Entries are volume-relative globs starting with a backslash.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from collections.abc import Iterable
from pathlib import Path

from winimager.core.errors import ExclusionFileError
from winimager.core.logging import get_logger

logger = get_logger(__name__)

EXCLUSION_HEADER = "[ExclusionList]"

DEFAULT_EXCLUSIONS: tuple[str, ...] = (
    "\\pagefile.sys",
    "\\swapfile.sys",
    "\\hiberfil.sys",
    "\\System Volume Information",
    "\\RECYCLER",
    "\\$Recycle.Bin",
    "\\Windows\\Temp\\*.*",
    "\\Windows\\Temp",
    "\\Users\\*\\AppData\\Local\\Temp\\*.*",
    "\\Users\\*\\AppData\\Local\\Temp",
    "\\Temp\\*.*",
    "\\Temp",
    "\\b042787fde8c8f3f_0",
)


def normalize_exclusion(entry: str) -> str:
    """Make an exclusion volume-relative: strip drive, use backslashes."""
    entry = entry.strip().replace("/", "\\")
    if len(entry) >= 2 and entry[1] == ":":
        entry = entry[2:]
    if not entry.startswith("\\"):
        entry = "\\" + entry
    return entry


def build_exclusion_list(extra: Iterable[str] = ()) -> list[str]:
    """Header followed by the fixed exclusions and ``extra``, without duplicates."""
    entries = [EXCLUSION_HEADER]
    seen: set[str] = set()
    for raw in (*DEFAULT_EXCLUSIONS, *extra):
        if not raw or not raw.strip():
            continue
        entry = normalize_exclusion(raw)
        key = entry.lower()
        if key in seen:
            continue
        seen.add(key)
        entries.append(entry)
    return entries


def write_exclusion_file(entries: Iterable[str], directory: Path | None = None) -> Path:
    """Write the list to a uniquely named file in the temp directory."""
    directory = directory or Path(tempfile.gettempdir())
    path = directory / f"wimlib-config-{uuid.uuid4()}.txt"
    try:
        with open(path, "w", encoding="utf-8", newline="\r\n") as f:
            for entry in entries:
                f.write(entry + "\n")
    except OSError as e:
        remove_exclusion_file(path)
        raise ExclusionFileError(f"Could not write exclusion list {path}: {e}") from e
    logger.debug("Exclusion list written", path=str(path))
    return path


def remove_exclusion_file(path: Path) -> bool:
    """Delete the temporary list. Returns False if it could not be removed."""
    try:
        os.unlink(path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.warning("Could not delete temporary exclusion list", path=str(path), error=str(e))
        return False
    logger.debug("Exclusion list deleted", path=str(path))
    return True

