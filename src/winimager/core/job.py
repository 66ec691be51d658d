"""
WinImager orchestrator base.

An orchestrator supervises one imaging job from start to finish. It owns
its state machine, validates preconditions before launching anything and
turns unexpected failures into a failed JobResult.
"""

from __future__ import annotations

import traceback
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from winimager.core.errors import PreconditionFailure
from winimager.core.logging import JobLogContext, get_logger
from winimager.core.models import JobKind, JobResult
from winimager.core.output import ConsoleSink

S = TypeVar("S", bound=Enum)
logger = get_logger(__name__)


class BackupState(Enum):
    """States of a capture job."""

    IDLE = "idle"
    EXCLUSIONS_WRITTEN = "exclusions_written"
    ENGINE_RUNNING = "engine_running"
    SUCCEEDED = "succeeded"
    SKIPPED_FILES_RETRIED = "skipped_files_retried"
    FAILED = "failed"


class RestoreState(Enum):
    """States of a restore job."""

    IDLE = "idle"
    IMAGE_APPLIED = "image_applied"
    BOOT_CONFIGURED = "boot_configured"
    BOOT_CONFIG_FAILED = "boot_config_failed"
    DONE = "done"
    FAILED = "failed"


class Orchestrator(ABC, Generic[S]):
    """Base class for capture and restore orchestrators."""

    kind: JobKind

    def __init__(
        self,
        name: str,
        initial_state: S,
        sink: ConsoleSink | None = None,
    ) -> None:
        self.id = str(uuid.uuid4())
        self.name = name
        self.state: S = initial_state
        self.history: list[tuple[S, datetime]] = [(initial_state, datetime.now())]
        self.sink = sink or ConsoleSink()
        self.warnings: list[str] = []
        self.started_at: datetime | None = None
        self.result: JobResult | None = None

    @abstractmethod
    async def execute(self) -> JobResult:
        """Run the job. Subclasses must implement this."""

    @abstractmethod
    def get_plan(self) -> str:
        """Return a human-readable execution plan."""

    def validate(self) -> list[str]:
        """
        Validate job parameters before execution.
        Returns a list of validation errors (empty if valid).
        """
        return []

    async def run(self) -> JobResult:
        """Validate, execute and record the result exactly once."""
        if self.result is not None:
            return self.result

        errors = self.validate()
        if errors:
            logger.warning("Job rejected", job_id=self.id, job_name=self.name, errors=errors)
            raise PreconditionFailure(errors)

        self.started_at = datetime.now()
        with JobLogContext(self.name, logger, job_id=self.id, job_kind=self.kind.value):
            try:
                self.result = await self.execute()
            except Exception as e:
                logger.error(
                    "Job crashed",
                    job_id=self.id,
                    job_name=self.name,
                    error=str(e),
                    error_traceback=traceback.format_exc(),
                )
                self.result = self._failed(str(e))
        return self.result

    def transition(self, state: S) -> None:
        logger.debug(
            "Job state change",
            job_id=self.id,
            job_name=self.name,
            from_state=self.state.value,
            to_state=state.value,
        )
        self.state = state
        self.history.append((state, datetime.now()))

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)

    def _build_result(self, success: bool, **fields: Any) -> JobResult:
        return JobResult(
            kind=self.kind,
            success=success,
            final_state=self.state.value,
            warnings=tuple(self.warnings),
            start_time=self.started_at,
            end_time=datetime.now(),
            **fields,
        )

    @abstractmethod
    def _failed(self, error: str, **fields: Any) -> JobResult:
        """Move to the failed state and build the failure result."""
