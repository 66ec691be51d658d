"""
WinImager imaging supervision.

Exclusion lists, engine output classification, progress display,
skipped-file retries and the backup/restore orchestrators.
"""

from winimager.imaging.backup import BackupOrchestrator
from winimager.imaging.classifier import classify, truncate_label
from winimager.imaging.exclusions import build_exclusion_list
from winimager.imaging.progress import ProgressTracker, Spinner
from winimager.imaging.restore import RestoreOrchestrator
from winimager.imaging.retry import SkipLog, SkipRetryManager

__all__ = [
    "BackupOrchestrator",
    "RestoreOrchestrator",
    "ProgressTracker",
    "SkipLog",
    "SkipRetryManager",
    "Spinner",
    "build_exclusion_list",
    "classify",
    "truncate_label",
]
