"""
Skip/retry subsystem for files the engine could not read.

Skippable files are collected while the capture runs and retried one by one
with the engine's single-file update once the capture has finished, since
the image is locked while it is being written.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path

from winimager.core.logging import get_logger
from winimager.core.models import (
    FatalErrorLine,
    SkipReason,
    SkipRecord,
    SkipStatus,
)
from winimager.core.output import ConsoleSink
from winimager.imaging.classifier import classify
from winimager.platform.base import EndOfStream, ProcessRunner
from winimager.platform.windows.commands import update_arguments
from winimager.platform.windows.placeholder import is_cloud_only

logger = get_logger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0


class SkipLog:
    """Durable, append-only record of files left out of an image."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Remove a log left over from a previous run."""
        with self._lock:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Could not delete old skip log", path=str(self.path), error=str(e))

    def append(self, path: str, reason: str, attempts: int) -> bool:
        entry = f"{datetime.now().isoformat(timespec='seconds')} | {reason} | attempts={attempts} | {path}"
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(entry + "\n")
            except OSError as e:
                logger.error("Failed to write skip log entry", path=str(self.path), error=str(e))
                return False
        return True

    def entries(self) -> list[str]:
        with self._lock:
            if not self.path.exists():
                return []
            return self.path.read_text(encoding="utf-8").splitlines()


class SkipRetryManager:
    """Deduplicates skipped files and retries each one against the engine."""

    def __init__(
        self,
        runner: ProcessRunner,
        engine_path: str,
        image_path: str,
        skip_log: SkipLog,
        image_index: int = 1,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        cloud_only: Callable[[str], bool] = is_cloud_only,
        sink: ConsoleSink | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.runner = runner
        self.engine_path = engine_path
        self.image_path = image_path
        self.image_index = image_index
        self.skip_log = skip_log
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._cloud_only = cloud_only
        self._sink = sink
        self._sleep = sleep
        self._records: dict[str, SkipRecord] = {}
        self._unresolved: list[str] = []
        self._permanent: list[str] = []

    @property
    def records(self) -> list[SkipRecord]:
        return list(self._records.values())

    @property
    def pending(self) -> list[SkipRecord]:
        return [r for r in self._records.values() if r.status is SkipStatus.PENDING]

    @property
    def permanent_failures(self) -> list[str]:
        return list(self._permanent)

    @property
    def has_skips(self) -> bool:
        return bool(self._records or self._unresolved)

    def on_skippable_error(
        self,
        path: str | None,
        reason: SkipReason,
        text: str = "",
    ) -> SkipRecord | None:
        """Record a skipped file; repeated reports of one path are ignored."""
        if path is None:
            # No file name to retry with; keep the engine's message.
            detail = text.strip() or reason.value
            if detail not in self._unresolved:
                self._unresolved.append(detail)
                self._fail(detail, reason.value, 0)
            return None

        key = path.lower()
        existing = self._records.get(key)
        if existing is not None:
            return existing

        record = SkipRecord(file_path=path, first_failure_reason=reason, last_error=text)
        self._records[key] = record

        if self._cloud_only(path):
            record.cloud_only = True
            record.status = SkipStatus.FAILED
            logger.info("Cloud-only file skipped", path=path)
            self._fail(path, f"cloud-only placeholder ({reason.value})", 0)
        else:
            logger.info("File queued for retry", path=path, reason=reason.value)
        return record

    async def finalize(self) -> list[str]:
        """Retry every pending file; return all permanently skipped paths."""
        for record in self.pending:
            await self._retry(record)
        return self.permanent_failures

    async def _retry(self, record: SkipRecord) -> None:
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await self._sleep(self.retry_delay)
            record.attempts_made = attempt
            succeeded, detail = await self._attempt(record.file_path)
            if succeeded:
                record.status = SkipStatus.RECOVERED
                logger.info("Skipped file recovered", path=record.file_path, attempt=attempt)
                if self._sink:
                    self._sink.info(f"[Retry] Added {record.file_path} on attempt {attempt}")
                return
            record.last_error = detail
            logger.debug(
                "Retry attempt failed",
                path=record.file_path,
                attempt=attempt,
                error=detail,
            )

        record.status = SkipStatus.FAILED
        self._fail(record.file_path, record.first_failure_reason.value, record.attempts_made)

    async def _attempt(self, path: str) -> tuple[bool, str]:
        fatal_lines: list[str] = []

        def on_stderr(line: str | EndOfStream) -> None:
            if isinstance(line, EndOfStream):
                return
            if isinstance(classify(line, tolerance_enabled=False), FatalErrorLine):
                fatal_lines.append(line)

        result = await self.runner.run(
            self.engine_path,
            update_arguments(self.image_path, self.image_index, path),
            on_stderr_line=on_stderr,
        )
        if result.success and not fatal_lines:
            return True, ""
        if fatal_lines:
            return False, fatal_lines[0]
        return False, f"exit code {result.returncode}"

    def _fail(self, path: str, reason: str, attempts: int) -> None:
        self._permanent.append(path)
        self.skip_log.append(path, reason, attempts)
        logger.warning("File skipped permanently", path=path, reason=reason, attempts=attempts)
        if self._sink:
            self._sink.notice(
                f"[Skipping File] {path} ({reason}), logged to '{self.skip_log.path.name}'",
                "cyan",
            )
