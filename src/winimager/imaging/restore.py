"""
Restore orchestrator.

Idle -> ImageApplied -> BootConfigured | BootConfigFailed -> Done

Applying the image is the primary phase and fails the job. Boot
configuration runs only on a fully applied volume; its failure leaves the
files in place and is reported as a degraded success together with the
command to run by hand.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from winimager.core.config import WinImagerConfig
from winimager.core.errors import FatalEngineError, LaunchError, SecondaryPhaseFailure
from winimager.core.job import Orchestrator, RestoreState
from winimager.core.logging import get_logger
from winimager.core.models import ImagingJob, JobKind, JobResult
from winimager.core.output import ConsoleSink
from winimager.core.safety import validate_restore_target
from winimager.imaging.consumer import EngineOutputConsumer
from winimager.imaging.progress import ProgressTracker, Spinner
from winimager.platform import get_system_drive
from winimager.platform.base import ProcessRunner
from winimager.platform.windows.commands import (
    apply_arguments,
    boot_config_arguments,
    format_command,
)
from winimager.platform.windows.parsers import normalize_drive_letter

logger = get_logger(__name__)


class RestoreOrchestrator(Orchestrator[RestoreState]):
    """Applies a WIM image to a drive and makes it bootable."""

    kind = JobKind.APPLY

    def __init__(
        self,
        job: ImagingJob,
        runner: ProcessRunner,
        config: WinImagerConfig | None = None,
        sink: ConsoleSink | None = None,
        system_drive: Callable[[], str] = get_system_drive,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if job.kind is not JobKind.APPLY:
            raise ValueError("RestoreOrchestrator requires an apply job")
        super().__init__("system restore", RestoreState.IDLE, sink)
        self.job = job
        self.runner = runner
        self.config = config or WinImagerConfig()
        self.engine_path = str(self.config.engine.engine_path)
        self.secondary_failure: SecondaryPhaseFailure | None = None
        self._system_drive = system_drive
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: WinImagerConfig,
        image: str,
        target: str,
        runner: ProcessRunner,
        **kwargs: Any,
    ) -> RestoreOrchestrator:
        job = ImagingJob.apply(image, target, image_index=config.restore.image_index)
        return cls(job, runner, config=config, **kwargs)

    @property
    def target_drive(self) -> str:
        return normalize_drive_letter(self.job.destination) or self.job.destination

    @property
    def apply_command_arguments(self) -> list[str]:
        resolved = ImagingJob.apply(
            self.job.source, self.target_drive, image_index=self.job.image_index
        )
        return apply_arguments(resolved)

    @property
    def boot_arguments(self) -> list[str]:
        return boot_config_arguments(f"{self.target_drive}\\Windows", self.config.restore.firmware)

    @property
    def remediation_command(self) -> str:
        return format_command(self.config.restore.boot_tool, self.boot_arguments)

    def validate(self) -> list[str]:
        errors = validate_restore_target(self.job.destination, self._system_drive())
        if not Path(self.job.source).is_file():
            errors.append(f"Image not found: {self.job.source}")
        return errors

    def get_plan(self) -> str:
        return "\n".join(
            [
                f"Restore {self.job.source} (image {self.job.image_index}) to {self.target_drive}",
                "  1. Apply image files onto the target volume",
                f"  2. Configure boot files: {self.remediation_command}",
            ]
        )

    async def execute(self) -> JobResult:
        applied = await self._apply()
        if applied is not None:
            return applied

        self.transition(RestoreState.IMAGE_APPLIED)
        self.sink.success("Image applied. Configuring boot files...")
        await self._configure_boot()
        self.transition(RestoreState.DONE)

        if self.secondary_failure is not None:
            return self._build_result(
                True,
                exit_code=0,
                secondary_phase_error=str(self.secondary_failure),
                remediation_command=self.secondary_failure.remediation,
            )
        return self._build_result(True, exit_code=0)

    async def _apply(self) -> JobResult | None:
        """Run the apply phase; returns a failed result, or None on success."""
        arguments = self.apply_command_arguments
        progress_config = self.config.progress
        tracker = ProgressTracker(
            min_sample_interval=progress_config.min_sample_interval,
            idle_reset_seconds=progress_config.idle_reset_seconds,
            clock=self._clock,
        )
        spinner = Spinner(self.sink.status, progress_config.spinner_interval)
        consumer = EngineOutputConsumer(
            tolerance_enabled=False,
            tracker=tracker,
            sink=self.sink,
            spinner=spinner,
            label_width=progress_config.label_width,
        )

        logger.info("Starting apply", command=format_command(self.engine_path, arguments))
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

        self.warnings.extend(consumer.warnings)
        if result.returncode != 0 or consumer.fatal_error_occurred:
            error = FatalEngineError(consumer.fatal_lines, result.returncode)
            return self._failed(
                f"{error}. Boot configuration was not attempted.",
                exit_code=result.returncode,
                fatal_error_occurred=consumer.fatal_error_occurred,
            )
        return None

    async def _configure_boot(self) -> None:
        boot_tool = self.config.restore.boot_tool
        remediation = self.remediation_command
        logger.info("Configuring boot files", command=remediation)

        try:
            result = await self.runner.run_command([boot_tool, *self.boot_arguments])
        except LaunchError as e:
            self._boot_failed(str(e), remediation, None)
            return

        if not result.success:
            detail = result.stderr or result.stdout
            message = f"{boot_tool} exited with code {result.returncode}"
            if detail:
                message += f": {detail}"
            self._boot_failed(message, remediation, result.returncode)
            return

        if result.stderr_lines:
            # Reported on stderr with a zero exit code; kept as a warning.
            warning = f"{boot_tool} reported: {result.stderr}"
            self.add_warning(warning)
            self.sink.warning(f"[Boot Warning] {warning}")

        self.transition(RestoreState.BOOT_CONFIGURED)
        self.sink.success("Boot configuration completed.")

    def _boot_failed(self, message: str, remediation: str, exit_code: int | None) -> None:
        self.secondary_failure = SecondaryPhaseFailure(message, remediation, exit_code)
        self.transition(RestoreState.BOOT_CONFIG_FAILED)
        logger.warning("Boot configuration failed", error=message, remediation=remediation)
        self.sink.notice(
            "WARNING: Files were restored but the volume is NOT guaranteed to be bootable.",
            "bold yellow",
        )
        self.sink.warning(f"Boot configuration failed: {message}")
        self.sink.warning(f"Run this command manually to repair: {remediation}")

    def _failed(self, error: str, **fields: Any) -> JobResult:
        self.transition(RestoreState.FAILED)
        self.sink.error(f"Restore failed: {error}")
        return self._build_result(False, error=error, **fields)

