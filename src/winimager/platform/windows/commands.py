"""
Command builders for the external Windows tools.

Arguments are returned as lists for direct process creation; no shell
quoting is involved.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence
from pathlib import Path

from winimager.core.models import ImagingJob, JobKind
from winimager.platform.windows.parsers import volume_relative_path


def capture_arguments(job: ImagingJob, config_file: Path) -> list[str]:
    """``capture <src> <dest> <name> <description> --snapshot ...``."""
    if job.kind is not JobKind.CAPTURE:
        raise ValueError(f"Not a capture job: {job.kind.value}")
    return [
        "capture",
        job.source.rstrip("\\"),
        job.destination,
        job.image_name,
        job.description,
        "--snapshot",
        f"--config={config_file}",
        f"--compress={job.compression.engine_argument}",
        f"--threads={job.threads}",
    ]


def apply_arguments(job: ImagingJob) -> list[str]:
    """``apply <image> <index> <targetDir> --check``."""
    if job.kind is not JobKind.APPLY:
        raise ValueError(f"Not an apply job: {job.kind.value}")
    target = job.destination if job.destination.endswith("\\") else job.destination + "\\"
    return ["apply", job.source, str(job.image_index), target, "--check"]


def update_arguments(image: str, index: int, file_path: str) -> list[str]:
    """Add a single file to an existing image at its volume-relative location."""
    wim_path = volume_relative_path(file_path)
    return [
        "update",
        image,
        str(index),
        f'--command=add "{file_path}" "{wim_path}"',
    ]


def boot_config_arguments(windows_directory: str, firmware: str) -> list[str]:
    """``bcdboot <X:\\Windows> /f <UEFI|BIOS|ALL>``."""
    return [windows_directory, "/f", firmware]


def dirty_query_arguments(drive: str) -> list[str]:
    """``fsutil dirty query <X:>``."""
    return ["dirty", "query", drive]


def format_command(executable: str, arguments: Sequence[str]) -> str:
    """Render a command line for display and manual remediation."""
    return subprocess.list2cmdline([executable, *arguments])
