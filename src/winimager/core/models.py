"""
WinImager data models.

Defines imaging jobs, classified engine output, skip records and job results.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Any, Union


class JobKind(Enum):
    """Kind of imaging job."""

    CAPTURE = "capture"
    APPLY = "apply"


class CompressionMode(Enum):
    """Compression presets understood by the imaging engine."""

    NONE = "none"
    FAST = "fast"
    MAXIMUM = "maximum"

    @classmethod
    def from_string(cls, value: str | None) -> CompressionMode:
        """Create CompressionMode from a setting value, defaulting to FAST."""
        value_lower = (value or "").strip().lower()
        for mode in cls:
            if mode.value == value_lower:
                return mode
        return cls.FAST

    @property
    def engine_argument(self) -> str:
        return {"none": "none", "fast": "fast", "maximum": "lzx"}[self.value]

    @property
    def display_name(self) -> str:
        return {
            "none": "None (Fastest, Largest File)",
            "fast": "Fast (Balanced)",
            "maximum": "Maximum (Slowest, Smallest File)",
        }[self.value]


class SkipReason(Enum):
    """Recoverable per-file read conditions."""

    ACCESS_DENIED = "access denied"
    SHARING_VIOLATION = "sharing violation"
    DEVICE_NOT_READY = "device not ready"


class SkipStatus(Enum):
    """Lifecycle of a skipped file."""

    PENDING = auto()
    RECOVERED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class ImagingJob:
    """One capture or apply invocation. Immutable once created."""

    kind: JobKind
    source: str
    destination: str
    exclusions: tuple[str, ...] = ()
    compression: CompressionMode = CompressionMode.FAST
    threads: int = 1
    tolerate_file_errors: bool = False
    image_index: int = 1
    image_name: str = "Windows System Backup"
    description: str = ""
    skip_log_path: Path | None = None

    @classmethod
    def capture(
        cls,
        source: str,
        destination: str,
        *,
        exclusions: tuple[str, ...] = (),
        compression: CompressionMode = CompressionMode.FAST,
        threads: int = 1,
        tolerate_file_errors: bool = False,
        image_name: str = "Windows System Backup",
        skip_log_path: Path | None = None,
        taken_at: datetime | None = None,
    ) -> ImagingJob:
        """Build a capture job with a timestamped description."""
        stamp = (taken_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
        return cls(
            kind=JobKind.CAPTURE,
            source=source,
            destination=destination,
            exclusions=tuple(exclusions),
            compression=compression,
            threads=threads,
            tolerate_file_errors=tolerate_file_errors,
            image_name=image_name,
            description=f"Backup taken on {stamp}",
            skip_log_path=skip_log_path or default_skip_log_path(destination),
        )

    @classmethod
    def apply(cls, image: str, target: str, *, image_index: int = 1) -> ImagingJob:
        """Build an apply job writing ``image`` onto ``target``."""
        return cls(
            kind=JobKind.APPLY,
            source=image,
            destination=target,
            image_index=image_index,
        )


def default_skip_log_path(destination: str | Path) -> Path:
    """Skip log lives beside the image: ``backup.wim`` -> ``backup.wim.skipped.log``."""
    return Path(destination).with_suffix(".wim.skipped.log")


# ==================== Classified engine output ====================


@dataclass(frozen=True)
class ProgressUpdate:
    """``<processed> GiB / <total> GiB (<percent> % done)``."""

    processed_gib: float
    total_gib: float
    percent: float

    @property
    def processed_bytes(self) -> int:
        return int(self.processed_gib * 1024**3)

    @property
    def total_bytes(self) -> int:
        return int(self.total_gib * 1024**3)


@dataclass(frozen=True)
class FileMarker:
    """The engine started processing a file."""

    name: str
    label: str


@dataclass(frozen=True)
class WarningLine:
    text: str


@dataclass(frozen=True)
class SkippableErrorLine:
    text: str
    reason: SkipReason
    path: str | None = None


@dataclass(frozen=True)
class FatalErrorLine:
    text: str


@dataclass(frozen=True)
class UnrecognizedLine:
    text: str


ClassifiedLine = Union[
    ProgressUpdate,
    FileMarker,
    WarningLine,
    SkippableErrorLine,
    FatalErrorLine,
    UnrecognizedLine,
]


# ==================== Skip records and results ====================


@dataclass
class SkipRecord:
    """A file that failed with a recoverable condition during capture."""

    file_path: str
    first_failure_reason: SkipReason
    attempts_made: int = 0
    cloud_only: bool = False
    status: SkipStatus = SkipStatus.PENDING
    last_error: str = ""


@dataclass(frozen=True)
class JobResult:
    """Outcome of one orchestrator run. Produced once, never mutated."""

    kind: JobKind
    success: bool
    exit_code: int | None = None
    fatal_error_occurred: bool = False
    files_skipped_permanently: tuple[str, ...] = ()
    final_state: str = ""
    error: str | None = None
    warnings: tuple[str, ...] = ()
    secondary_phase_error: str | None = None
    remediation_command: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    @property
    def degraded(self) -> bool:
        """Files restored but the volume is not guaranteed bootable."""
        return self.success and self.secondary_phase_error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "success": self.success,
            "exit_code": self.exit_code,
            "fatal_error_occurred": self.fatal_error_occurred,
            "files_skipped_permanently": list(self.files_skipped_permanently),
            "final_state": self.final_state,
            "error": self.error,
            "warnings": list(self.warnings),
            "secondary_phase_error": self.secondary_phase_error,
            "remediation_command": self.remediation_command,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "duration_seconds": self.duration_seconds,
        }
