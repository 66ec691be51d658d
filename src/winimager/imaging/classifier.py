"""
Imaging engine output classifier.

Turns one line of engine diagnostics into a ClassifiedLine. Classification
is pure: no console output, no state.
"""

from __future__ import annotations

import re

from winimager.core.models import (
    ClassifiedLine,
    FatalErrorLine,
    FileMarker,
    ProgressUpdate,
    SkipReason,
    SkippableErrorLine,
    UnrecognizedLine,
    WarningLine,
)
from winimager.platform.windows.parsers import strip_long_path_prefix

FILE_MARKER_PREFIX = "Adding file: ["
FILE_MARKER_SUFFIX = "]"
DEFAULT_LABEL_WIDTH = 50
ELLIPSIS = "..."

ERROR_TOKENS: tuple[str, ...] = ("error", "failed", "cannot")

# Known NTFS metadata inconsistency; the image is still usable.
BENIGN_SIGNATURES: tuple[tuple[str, ...], ...] = (
    ("Parent inode", "was missing from the MFT listing"),
)

SKIPPABLE_SIGNATURES: tuple[tuple[SkipReason, str], ...] = (
    (SkipReason.ACCESS_DENIED, "access is denied"),
    (SkipReason.SHARING_VIOLATION, "sharing violation"),
    (
        SkipReason.SHARING_VIOLATION,
        "the process cannot access the file because it is being used by another process",
    ),
    (SkipReason.DEVICE_NOT_READY, "device is not ready"),
)

_PROGRESS_PATTERN = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*GiB\s*/\s*(\d+(?:[.,]\d+)?)\s*GiB\s*\((\d+(?:[.,]\d+)?)\s*%\s*done\)",
    re.IGNORECASE,
)
_QUOTED_PATH_PATTERN = re.compile(r"\"([^\"]+)\"")


def truncate_label(value: str, max_length: int = DEFAULT_LABEL_WIDTH) -> str:
    """Keep the tail of ``value``, prefixed with an ellipsis when too long."""
    if not value:
        return ""
    if len(value) <= max_length:
        return value
    return ELLIPSIS + value[len(value) - max_length + len(ELLIPSIS):]


def parse_number(text: str) -> float | None:
    """Parse ``12.5`` or ``12,5``."""
    try:
        return float(text.replace(",", "."))
    except ValueError:
        return None


def is_potential_error(line: str) -> bool:
    lowered = line.lower()
    return any(token in lowered for token in ERROR_TOKENS)


def is_benign(line: str) -> bool:
    return any(all(part in line for part in signature) for signature in BENIGN_SIGNATURES)


def match_skip_reason(line: str) -> SkipReason | None:
    lowered = line.lower()
    for reason, needle in SKIPPABLE_SIGNATURES:
        if needle in lowered:
            return reason
    return None


def extract_path(line: str) -> str | None:
    """First quoted path in an engine error line, without the long-path prefix."""
    match = _QUOTED_PATH_PATTERN.search(line)
    if not match:
        return None
    return strip_long_path_prefix(match.group(1))


def parse_progress(line: str) -> ProgressUpdate | None:
    match = _PROGRESS_PATTERN.search(line)
    if not match:
        return None
    processed = parse_number(match.group(1))
    total = parse_number(match.group(2))
    percent = parse_number(match.group(3))
    if processed is None or total is None or percent is None:
        return None
    return ProgressUpdate(processed_gib=processed, total_gib=total, percent=percent)


def parse_file_marker(line: str, label_width: int = DEFAULT_LABEL_WIDTH) -> FileMarker | None:
    stripped = line.strip()
    if not (stripped.startswith(FILE_MARKER_PREFIX) and stripped.endswith(FILE_MARKER_SUFFIX)):
        return None
    name = stripped[len(FILE_MARKER_PREFIX):-len(FILE_MARKER_SUFFIX)]
    return FileMarker(name=name, label=truncate_label(name, label_width))


def classify(
    line: str,
    tolerance_enabled: bool,
    label_width: int = DEFAULT_LABEL_WIDTH,
) -> ClassifiedLine:
    """
    Classify a single engine diagnostic line.

    File markers and progress lines are recognized by their structure before
    the error tokens are considered, so a file whose path contains "error"
    is never mistaken for a failure. A line that looks like progress but
    does not parse is Unrecognized.
    """
    # Checked before error tokens: "Adding file: [...\ErrorReporting\...]" is a marker, not a failure.
    marker = parse_file_marker(line, label_width)
    if marker is not None:
        return marker

    lowered = line.lower()
    if "gib /" in lowered and "% done" in lowered:
        progress = parse_progress(line)
        if progress is not None:
            return progress
        return UnrecognizedLine(line)

    if not is_potential_error(line):
        if line.lstrip().upper().startswith("[WARNING]"):
            return WarningLine(line)
        return UnrecognizedLine(line)

    if is_benign(line):
        return WarningLine(line)

    if tolerance_enabled:
        reason = match_skip_reason(line)
        if reason is not None:
            return SkippableErrorLine(text=line, reason=reason, path=extract_path(line))

    return FatalErrorLine(line)
