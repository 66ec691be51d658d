"""
Backup orchestrator.

Idle -> ExclusionsWritten -> EngineRunning -> Succeeded
                                           -> SkippedFilesRetried
                                           -> Failed

The engine's exit code alone never decides success: some failures are
only reported in its diagnostic text.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from winimager.core.config import WinImagerConfig
from winimager.core.errors import ExclusionFileError, FatalEngineError, LaunchError
from winimager.core.job import BackupState, Orchestrator
from winimager.core.logging import get_logger
from winimager.core.models import CompressionMode, ImagingJob, JobKind, JobResult
from winimager.core.output import ConsoleSink
from winimager.core.safety import probe_volume_dirty
from winimager.imaging.consumer import EngineOutputConsumer
from winimager.imaging.exclusions import (
    build_exclusion_list,
    remove_exclusion_file,
    write_exclusion_file,
)
from winimager.imaging.progress import DiskRateSampler, ProgressTracker, Spinner
from winimager.imaging.retry import SkipLog, SkipRetryManager
from winimager.platform import get_system_drive
from winimager.platform.base import ProcessRunner
from winimager.platform.windows.commands import capture_arguments, format_command
from winimager.platform.windows.placeholder import is_cloud_only

logger = get_logger(__name__)


class BackupOrchestrator(Orchestrator[BackupState]):
    """Captures a live volume into a WIM image."""

    kind = JobKind.CAPTURE

    def __init__(
        self,
        job: ImagingJob,
        runner: ProcessRunner,
        config: WinImagerConfig | None = None,
        sink: ConsoleSink | None = None,
        probe_volume: bool = True,
        temp_directory: Path | None = None,
        cloud_only: Callable[[str], bool] = is_cloud_only,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if job.kind is not JobKind.CAPTURE:
            raise ValueError("BackupOrchestrator requires a capture job")
        super().__init__("system backup", BackupState.IDLE, sink)
        self.job = job
        self.runner = runner
        self.config = config or WinImagerConfig()
        self.probe_volume = probe_volume and self.config.probe.enabled
        self.temp_directory = temp_directory
        self.engine_path = str(self.config.engine.engine_path)
        self.skip_log = SkipLog(job.skip_log_path or Path(job.destination + ".skipped.log"))
        self.volume_dirty: bool | None = None
        self.retry: SkipRetryManager | None = None
        self._cloud_only = cloud_only
        self._sleep = sleep
        self._clock = clock
        self._exclusion_path: Path | None = None

    @classmethod
    def from_config(
        cls,
        config: WinImagerConfig,
        destination: str,
        runner: ProcessRunner,
        source: str | None = None,
        **kwargs: Any,
    ) -> BackupOrchestrator:
        """Build the capture job for the system drive from configuration."""
        engine = config.engine
        job = ImagingJob.capture(
            source=source or get_system_drive(),
            destination=destination,
            exclusions=tuple(engine.extra_exclusions),
            compression=CompressionMode.from_string(engine.compression),
            threads=engine.resolve_threads(),
            tolerate_file_errors=engine.ignore_file_read_errors,
            image_name=engine.image_name,
        )
        return cls(job, runner, config=config, **kwargs)

    def validate(self) -> list[str]:
        errors = []
        destination = Path(self.job.destination)
        if not self.job.destination or not destination.name:
            errors.append("Invalid destination path (no file name)")
        elif not destination.parent.is_dir():
            errors.append(f"Destination directory does not exist: {destination.parent}")
        if not self.job.source:
            errors.append("No source volume given")
        return errors

    def get_plan(self) -> str:
        job = self.job
        lines = [
            f"Capture {job.source} to {job.destination}",
            f"  Compression: {job.compression.display_name}",
            f"  Threads: {job.threads}",
            "  Snapshot: Volume Shadow Copy Service",
            f"  Skipped files log: {self.skip_log.path}",
        ]
        if job.tolerate_file_errors:
            lines.append("  Unreadable files are skipped; the image may be INCOMPLETE.")
        return "\n".join(lines)

    async def execute(self) -> JobResult:
        job = self.job
        self.skip_log.reset()

        if self.probe_volume:
            await self._check_volume()

        try:
            self._exclusion_path = write_exclusion_file(
                build_exclusion_list(job.exclusions), self.temp_directory
            )
        except ExclusionFileError as e:
            return self._failed(str(e))
        self.transition(BackupState.EXCLUSIONS_WRITTEN)

        try:
            return await self._capture(self._exclusion_path)
        finally:
            if not remove_exclusion_file(self._exclusion_path):
                self.sink.warning(
                    f"Warning: Could not delete temporary config file '{self._exclusion_path}'"
                )

    async def _check_volume(self) -> None:
        drive = self.job.source.rstrip("\\")
        self.volume_dirty = await probe_volume_dirty(self.runner, self.config.probe, drive)
        if self.volume_dirty:
            message = f"Volume {drive} is marked dirty; the image may capture inconsistencies"
            self.add_warning(message)
            self.sink.warning(message)

    async def _capture(self, exclusion_path: Path) -> JobResult:
        job = self.job
        progress_config = self.config.progress
        arguments = capture_arguments(job, exclusion_path)

        self.retry = (
            SkipRetryManager(
                self.runner,
                self.engine_path,
                job.destination,
                self.skip_log,
                image_index=job.image_index,
                max_attempts=self.config.retry.max_attempts,
                retry_delay=self.config.retry.delay_seconds,
                cloud_only=self._cloud_only,
                sink=self.sink,
                sleep=self._sleep,
            )
            if job.tolerate_file_errors
            else None
        )
        tracker = ProgressTracker(
            min_sample_interval=progress_config.min_sample_interval,
            idle_reset_seconds=progress_config.idle_reset_seconds,
            clock=self._clock,
            disk_sampler=DiskRateSampler() if progress_config.sample_disk_rates else None,
        )
        spinner = Spinner(self.sink.status, progress_config.spinner_interval)
        consumer = EngineOutputConsumer(
            tolerance_enabled=job.tolerate_file_errors,
            tracker=tracker,
            sink=self.sink,
            retry=self.retry,
            spinner=spinner,
            label_width=progress_config.label_width,
        )

        logger.info("Starting capture", command=format_command(self.engine_path, arguments))
        self.transition(BackupState.ENGINE_RUNNING)
        try:
            async with spinner:
                result = await self.runner.run(
                    self.engine_path,
                    arguments,
                    on_stdout_line=consumer.on_stdout_line,
                    on_stderr_line=consumer.on_stderr_line,
                )
        except LaunchError as e:
            return self._failed(str(e))
        finally:
            self.sink.clear_status()

        self.warnings.extend(str(warning) for warning in consumer.warnings)
        exit_code = result.returncode
        logger.info(
            "Imaging engine finished",
            exit_code=exit_code,
            fatal_errors=len(consumer.fatal_lines),
            skipped=len(consumer.skipped),
        )

        if exit_code != 0 or consumer.fatal_error_occurred:
            error = FatalEngineError(consumer.fatal_lines, exit_code)
            return self._failed(
                str(error),
                exit_code=exit_code,
                fatal_error_occurred=consumer.fatal_error_occurred,
                files_skipped_permanently=tuple(self.retry.permanent_failures if self.retry else ()),
            )

        if self.retry is not None and self.retry.has_skips:
            try:
                permanent = await self.retry.finalize()
            except LaunchError as e:
                return self._failed(str(e), exit_code=exit_code)
            self.transition(BackupState.SKIPPED_FILES_RETRIED)
            if permanent:
                self.add_warning(
                    f"{len(permanent)} file(s) were not included; see {self.skip_log.path}"
                )
            return self._build_result(
                True,
                exit_code=exit_code,
                files_skipped_permanently=tuple(permanent),
            )

        self.transition(BackupState.SUCCEEDED)
        return self._build_result(True, exit_code=exit_code)

    def _failed(self, error: str, **fields: Any) -> JobResult:
        self.transition(BackupState.FAILED)
        self.sink.error(f"Backup failed: {error}")
        return self._build_result(False, error=error, **fields)
