"""
Cloud-placeholder detection.

Files synced by OneDrive and similar providers can exist as placeholders
whose content is fetched on open. Reading them from a snapshot fails, and
retrying cannot succeed locally.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path

FILE_ATTRIBUTE_OFFLINE = 0x00001000
FILE_ATTRIBUTE_RECALL_ON_OPEN = 0x00040000
FILE_ATTRIBUTE_RECALL_ON_DATA_ACCESS = 0x00400000

IO_REPARSE_TAG_CLOUD = 0x9000001A
IO_REPARSE_TAG_CLOUD_MASK = 0x0000F000

_PLACEHOLDER_ATTRIBUTES = (
    FILE_ATTRIBUTE_OFFLINE
    | FILE_ATTRIBUTE_RECALL_ON_OPEN
    | FILE_ATTRIBUTE_RECALL_ON_DATA_ACCESS
)


def is_cloud_only(path: str | Path) -> bool:
    """True when ``path`` is not a fully materialized local file."""
    try:
        st = os.lstat(path)
    except (FileNotFoundError, NotADirectoryError):
        return True
    except OSError:
        return False

    if not stat.S_ISREG(st.st_mode):
        return True

    attributes = getattr(st, "st_file_attributes", 0)
    if attributes & _PLACEHOLDER_ATTRIBUTES:
        return True

    reparse_tag = getattr(st, "st_reparse_tag", 0)
    return (reparse_tag & ~IO_REPARSE_TAG_CLOUD_MASK) == IO_REPARSE_TAG_CLOUD
