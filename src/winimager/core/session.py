"""
WinImager Session Management.

A session ties together configuration, logging, the process runner and the
console, runs orchestrators and keeps a report of what they did.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import psutil

from winimager.core.config import WinImagerConfig, load_config
from winimager.core.errors import PreconditionFailure
from winimager.core.logging import get_logger, setup_logging
from winimager.core.models import JobResult
from winimager.core.output import ConsoleSink
from winimager.core.safety import (
    PreflightReport,
    create_backup_preflight_checker,
    probe_volume_dirty,
)
from winimager.platform import AsyncProcessRunner, get_system_drive, is_admin

if TYPE_CHECKING:
    from winimager.core.job import Orchestrator
    from winimager.imaging.backup import BackupOrchestrator
    from winimager.imaging.restore import RestoreOrchestrator
    from winimager.platform.base import ProcessRunner

logger = get_logger(__name__)


@dataclass
class SessionReport:
    """Complete session report for audit and review."""

    session_id: str
    started_at: datetime
    ended_at: datetime | None = None
    operations: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    config_snapshot: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "operations": self.operations,
            "errors": self.errors,
            "warnings": self.warnings,
            "config_snapshot": self.config_snapshot,
            "summary": {
                "total_operations": len(self.operations),
                "successful_operations": sum(
                    1 for op in self.operations if op.get("success", False)
                ),
                "failed_operations": sum(
                    1 for op in self.operations if not op.get("success", True)
                ),
                "total_errors": len(self.errors),
                "total_warnings": len(self.warnings),
            },
        }

    def save(self, path: Path) -> None:
        """Save report to file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)


class Session:
    """
    Runs WinImager operations with shared configuration and reporting.

    This is the main entry point for the CLI.
    """

    def __init__(
        self,
        config: WinImagerConfig | None = None,
        runner: ProcessRunner | None = None,
        sink: ConsoleSink | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.config = config or load_config()
        self.started_at = datetime.now()

        setup_logging(self.config.logging)

        self.runner = runner or AsyncProcessRunner()
        self.sink = sink or ConsoleSink()
        self.report_file = self.config.get_session_file()
        self._report = SessionReport(
            session_id=self.id,
            started_at=self.started_at,
            config_snapshot=self.config.model_dump(mode="json"),
        )

        logger.info("Session started", session_id=self.id)

    def create_backup(self, destination: str, **kwargs: Any) -> BackupOrchestrator:
        from winimager.imaging.backup import BackupOrchestrator

        return BackupOrchestrator.from_config(
            self.config, destination, self.runner, sink=self.sink, **kwargs
        )

    def create_restore(self, image: str, target: str, **kwargs: Any) -> RestoreOrchestrator:
        from winimager.imaging.restore import RestoreOrchestrator

        return RestoreOrchestrator.from_config(
            self.config, image, target, self.runner, sink=self.sink, **kwargs
        )

    async def backup_preflight(self, destination: str) -> PreflightReport:
        """Advisory checks before a capture, including the volume dirty bit."""
        drive = get_system_drive()
        dirty = None
        if self.config.probe.enabled:
            dirty = await probe_volume_dirty(self.runner, self.config.probe, drive)

        required = 0
        try:
            required = psutil.disk_usage(drive + "\\").used
        except OSError as e:
            logger.debug("Could not read source usage", drive=drive, error=str(e))

        report = create_backup_preflight_checker().run_checks(
            {
                "is_admin": is_admin(),
                "destination": destination,
                "required_bytes": required,
                "source_drive": drive,
                "volume_dirty": dirty,
            }
        )
        self._report.warnings.extend(
            c.message for c in report.checks if not c.passed and c.severity == "warning"
        )
        return report

    async def run(self, orchestrator: Orchestrator[Any]) -> JobResult:
        """Run an orchestrator and record its outcome."""
        try:
            result = await orchestrator.run()
        except PreconditionFailure as e:
            self._report.errors.append(
                {
                    "timestamp": datetime.now().isoformat(),
                    "operation": orchestrator.name,
                    "error": str(e),
                }
            )
            raise

        self.record_operation(orchestrator.name, result)
        return result

    def record_operation(self, operation: str, result: JobResult) -> None:
        entry = {"operation": operation, "timestamp": datetime.now().isoformat()}
        entry.update(result.to_dict())
        self._report.operations.append(entry)
        self._report.warnings.extend(result.warnings)
        if not result.success and result.error:
            self._report.errors.append(
                {"timestamp": entry["timestamp"], "operation": operation, "error": result.error}
            )

    def get_report(self) -> SessionReport:
        return self._report

    def close(self) -> Path:
        """End the session and save its report."""
        self._report.ended_at = datetime.now()
        self._report.save(self.report_file)
        logger.info("Session ended", session_id=self.id, report=str(self.report_file))
        return self.report_file

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
