"""
Tests for winimager.core.models module.
"""

from datetime import datetime, timedelta
from pathlib import Path

import pytest

from winimager.core.models import (
    CompressionMode,
    ImagingJob,
    JobKind,
    JobResult,
    ProgressUpdate,
    default_skip_log_path,
)


class TestCompressionMode:
    def test_engine_arguments(self) -> None:
        assert CompressionMode.NONE.engine_argument == "none"
        assert CompressionMode.FAST.engine_argument == "fast"
        assert CompressionMode.MAXIMUM.engine_argument == "lzx"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("none", CompressionMode.NONE),
            ("Maximum", CompressionMode.MAXIMUM),
            ("FAST", CompressionMode.FAST),
            ("bogus", CompressionMode.FAST),
            (None, CompressionMode.FAST),
        ],
    )
    def test_from_string(self, value, expected) -> None:
        assert CompressionMode.from_string(value) is expected

    def test_display_name(self) -> None:
        assert CompressionMode.FAST.display_name == "Fast (Balanced)"


class TestImagingJob:
    def test_capture_description_is_timestamped(self) -> None:
        job = ImagingJob.capture(
            "C:", r"D:\backup\system.wim", taken_at=datetime(2024, 5, 1, 13, 2, 3)
        )
        assert job.kind is JobKind.CAPTURE
        assert job.description == "Backup taken on 2024-05-01 13:02:03"
        assert job.image_name == "Windows System Backup"

    def test_capture_default_skip_log(self) -> None:
        job = ImagingJob.capture("C:", "/backups/system.wim")
        assert job.skip_log_path == Path("/backups/system.wim.skipped.log")

    def test_job_is_immutable(self) -> None:
        job = ImagingJob.apply("image.wim", "D:")
        with pytest.raises(AttributeError):
            job.destination = "E:"  # type: ignore[misc]

    def test_apply(self) -> None:
        job = ImagingJob.apply("image.wim", "D:", image_index=2)
        assert job.kind is JobKind.APPLY
        assert job.image_index == 2


class TestSkipLogPath:
    def test_replaces_extension(self) -> None:
        assert default_skip_log_path("/x/backup.wim").name == "backup.wim.skipped.log"

    def test_adds_extension(self) -> None:
        assert default_skip_log_path("/x/backup").name == "backup.wim.skipped.log"


class TestProgressUpdate:
    def test_byte_conversion(self) -> None:
        update = ProgressUpdate(processed_gib=1.5, total_gib=10.0, percent=15)
        assert update.processed_bytes == int(1.5 * 1024**3)
        assert update.total_bytes == 10 * 1024**3


class TestJobResult:
    def test_duration(self) -> None:
        start = datetime(2024, 1, 1, 12, 0, 0)
        result = JobResult(
            kind=JobKind.CAPTURE,
            success=True,
            start_time=start,
            end_time=start + timedelta(seconds=90),
        )
        assert result.duration_seconds == 90.0

    def test_degraded_only_when_successful_with_secondary_error(self) -> None:
        assert JobResult(kind=JobKind.APPLY, success=True, secondary_phase_error="x").degraded
        assert not JobResult(kind=JobKind.APPLY, success=True).degraded
        assert not JobResult(
            kind=JobKind.APPLY, success=False, secondary_phase_error="x"
        ).degraded

    def test_to_dict(self) -> None:
        result = JobResult(
            kind=JobKind.CAPTURE,
            success=False,
            exit_code=0,
            fatal_error_occurred=True,
            files_skipped_permanently=("C:\\a.txt",),
        )
        data = result.to_dict()
        assert data["kind"] == "capture"
        assert data["fatal_error_occurred"] is True
        assert data["files_skipped_permanently"] == ["C:\\a.txt"]
        assert data["duration_seconds"] is None
