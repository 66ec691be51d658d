"""
Routes classified engine output to the progress line, the skip/retry
subsystem and the console.

Every callback runs on the event loop thread, so the consumer mutates its
state without locks; only the console sink is shared.
"""

from __future__ import annotations

from winimager.core.errors import BenignWarning, SkippableFileError
from winimager.core.logging import get_logger
from winimager.core.models import (
    ClassifiedLine,
    FatalErrorLine,
    FileMarker,
    ProgressUpdate,
    SkippableErrorLine,
    WarningLine,
)
from winimager.core.output import ConsoleSink
from winimager.imaging.classifier import DEFAULT_LABEL_WIDTH, classify
from winimager.imaging.progress import ProgressTracker, Spinner
from winimager.imaging.retry import SkipRetryManager
from winimager.platform.base import EndOfStream

logger = get_logger(__name__)


class EngineOutputConsumer:
    """Single consumer of one engine run's output."""

    def __init__(
        self,
        tolerance_enabled: bool,
        tracker: ProgressTracker,
        sink: ConsoleSink,
        retry: SkipRetryManager | None = None,
        spinner: Spinner | None = None,
        label_width: int = DEFAULT_LABEL_WIDTH,
    ) -> None:
        self.tolerance_enabled = tolerance_enabled
        self.tracker = tracker
        self.sink = sink
        self.retry = retry
        self.spinner = spinner
        self.label_width = label_width
        self.fatal_lines: list[str] = []
        self.warnings: list[BenignWarning] = []
        self.skipped: list[SkippableFileError] = []
        self.stdout_closed = False
        self.stderr_closed = False

    @property
    def fatal_error_occurred(self) -> bool:
        return bool(self.fatal_lines)

    def on_stdout_line(self, line: str | EndOfStream) -> None:
        if isinstance(line, EndOfStream):
            self.stdout_closed = True
            return
        if line.strip():
            logger.debug("Engine stdout", line=line)

    def on_stderr_line(self, line: str | EndOfStream) -> None:
        if isinstance(line, EndOfStream):
            self.stderr_closed = True
            return
        if not line.strip():
            return
        self.handle(classify(line, self.tolerance_enabled, self.label_width))

    def handle(self, classified: ClassifiedLine) -> None:
        if isinstance(classified, ProgressUpdate):
            if self.spinner is not None:
                self.spinner.hide()
            self.sink.status(self.tracker.observe(classified))
        elif isinstance(classified, FileMarker):
            self.tracker.set_label(classified.label)
        elif isinstance(classified, WarningLine):
            self.warnings.append(BenignWarning(classified.text))
            logger.warning("Engine warning", line=classified.text)
            self.sink.warning(f"[Engine Warning] {classified.text}")
        elif isinstance(classified, SkippableErrorLine):
            skipped = SkippableFileError(
                classified.path, classified.reason.value, classified.text
            )
            self.skipped.append(skipped)
            logger.info("Skippable file error", line=classified.text, error=str(skipped))
            if self.retry is not None:
                self.retry.on_skippable_error(
                    classified.path, classified.reason, classified.text
                )
        elif isinstance(classified, FatalErrorLine):
            self.fatal_lines.append(classified.text)
            logger.error("Engine error", line=classified.text)
            self.sink.error(f"[Engine Error] {classified.text}")
        else:
            logger.debug("Engine output", line=classified.text)
