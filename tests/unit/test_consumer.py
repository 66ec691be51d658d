"""
Tests for winimager.imaging.consumer module.
"""

import pytest

from winimager.core.errors import BenignWarning
from winimager.imaging.consumer import EngineOutputConsumer
from winimager.imaging.progress import ProgressTracker, Spinner
from winimager.imaging.retry import SkipLog, SkipRetryManager
from winimager.platform.base import END_OF_STREAM


@pytest.fixture
def consumer(sink) -> EngineOutputConsumer:
    return EngineOutputConsumer(
        tolerance_enabled=False,
        tracker=ProgressTracker(clock=lambda: 0.0),
        sink=sink,
    )


class TestEngineOutputConsumer:
    def test_end_of_stream_marks_closed(self, consumer) -> None:
        consumer.on_stdout_line(END_OF_STREAM)
        consumer.on_stderr_line(END_OF_STREAM)
        assert consumer.stdout_closed
        assert consumer.stderr_closed

    def test_progress_writes_status_line(self, consumer, console_output) -> None:
        consumer.on_stderr_line("1 GiB / 2 GiB (50% done)")
        assert "\r50.0% (1.00/2.00 GiB)" in console_output.getvalue()

    def test_progress_hides_spinner(self, sink) -> None:
        spinner = Spinner(sink.status)
        consumer = EngineOutputConsumer(
            tolerance_enabled=False,
            tracker=ProgressTracker(),
            sink=sink,
            spinner=spinner,
        )
        consumer.on_stderr_line("1 GiB / 2 GiB (50% done)")
        assert spinner.visible is False

    def test_marker_sets_label(self, consumer) -> None:
        consumer.on_stderr_line("Adding file: [C:\\a.txt]")
        assert consumer.tracker.state.label == "C:\\a.txt"

    def test_fatal_line_recorded(self, consumer, console_output) -> None:
        consumer.on_stderr_line("ERROR: Failed to create snapshot")
        assert consumer.fatal_error_occurred
        assert "[Engine Error] ERROR: Failed to create snapshot" in console_output.getvalue()

    def test_warning_recorded(self, consumer) -> None:
        consumer.on_stderr_line(
            "Parent inode 0x10 was missing from the MFT listing (error ignored)"
        )
        assert not consumer.fatal_error_occurred
        assert len(consumer.warnings) == 1
        assert isinstance(consumer.warnings[0], BenignWarning)

    def test_blank_and_stdout_lines_ignored(self, consumer) -> None:
        consumer.on_stderr_line("   ")
        consumer.on_stdout_line("ERROR: this is stdout")
        assert consumer.fatal_lines == []

    def test_skippable_forwarded_to_retry(self, sink, fake_runner, temp_dir) -> None:
        retry = SkipRetryManager(
            fake_runner,
            "wimlib-imagex.exe",
            "D:\\b.wim",
            SkipLog(temp_dir / "b.wim.skipped.log"),
            cloud_only=lambda path: False,
        )
        consumer = EngineOutputConsumer(
            tolerance_enabled=True,
            tracker=ProgressTracker(),
            sink=sink,
            retry=retry,
        )
        consumer.on_stderr_line('ERROR: Failed to open "C:\\x.dat": Access is denied.')
        assert not consumer.fatal_error_occurred
        assert len(consumer.skipped) == 1
        assert consumer.skipped[0].path == "C:\\x.dat"
        assert consumer.skipped[0].reason == "access denied"
        assert [r.file_path for r in retry.records] == ["C:\\x.dat"]
