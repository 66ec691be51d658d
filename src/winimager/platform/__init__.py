"""
WinImager Platform Layer.

Child-process supervision and the Windows tools the orchestrators drive.
"""

from __future__ import annotations

import os
import platform
from pathlib import PureWindowsPath

from winimager.platform.base import (
    END_OF_STREAM,
    CommandResult,
    EndOfStream,
    LineCallback,
    ProcessRunner,
)
from winimager.platform.process import AsyncProcessRunner


def get_platform_name() -> str:
    """Get the current platform name."""
    return platform.system().lower()


def is_windows() -> bool:
    """Check if running on Windows."""
    return platform.system().lower() == "windows"


def is_admin() -> bool:
    """Check if running with administrative privileges."""
    system = platform.system().lower()

    if system == "windows":
        import ctypes

        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except Exception:
            return False
    elif hasattr(os, "geteuid"):
        return os.geteuid() == 0
    return False


def get_system_drive() -> str:
    """Drive holding the running Windows installation, e.g. ``C:``."""
    drive = os.environ.get("SystemDrive", "")
    if not drive:
        drive = PureWindowsPath(os.environ.get("SystemRoot", r"C:\Windows")).drive
    return drive.rstrip("\\").upper() or "C:"


__all__ = [
    "END_OF_STREAM",
    "AsyncProcessRunner",
    "CommandResult",
    "EndOfStream",
    "LineCallback",
    "ProcessRunner",
    "get_platform_name",
    "get_system_drive",
    "is_admin",
    "is_windows",
]
