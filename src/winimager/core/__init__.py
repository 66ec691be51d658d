"""
WinImager Core - Backend service layer.

Contains configuration, logging, the data model, orchestrator base and
session management for WinImager operations.
"""

from winimager.core.config import WinImagerConfig
from winimager.core.job import BackupState, Orchestrator, RestoreState
from winimager.core.logging import get_logger, setup_logging
from winimager.core.models import ImagingJob, JobKind, JobResult
from winimager.core.session import Session

__all__ = [
    "WinImagerConfig",
    "BackupState",
    "Orchestrator",
    "RestoreState",
    "ImagingJob",
    "JobKind",
    "JobResult",
    "Session",
    "get_logger",
    "setup_logging",
]
