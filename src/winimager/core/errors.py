"""
WinImager error taxonomy.

Exception Hierarchy:
    WinImagerError (base)
        ├── LaunchError            child process could not be started
        ├── ProcessTimeout         auxiliary command exceeded its timeout
        ├── ExclusionFileError     exclusion list could not be written
        ├── FatalEngineError       failure detected in engine diagnostics
        ├── SkippableFileError     recoverable per-file read condition
        ├── BenignWarning          known-safe engine diagnostic
        ├── SecondaryPhaseFailure  boot configuration failed after restore
        └── PreconditionFailure    invalid restore target, nothing launched

Only LaunchError, ProcessTimeout and PreconditionFailure are raised across
module boundaries. SkippableFileError and BenignWarning are never raised;
the output consumer collects them as records of what the engine reported.
"""

from __future__ import annotations

from collections.abc import Sequence


class WinImagerError(Exception):
    """Base exception for all WinImager operations."""


class LaunchError(WinImagerError):
    """An external executable could not be started."""

    def __init__(self, executable: str, reason: str = ""):
        self.executable = executable
        self.reason = reason
        msg = f"Failed to start process: {executable}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class ProcessTimeout(WinImagerError):
    """An external command did not finish within its configured timeout."""

    def __init__(self, command: Sequence[str], timeout: float):
        self.command = list(command)
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s: {' '.join(self.command)}")


class ExclusionFileError(WinImagerError):
    """The temporary exclusion list could not be written."""


class FatalEngineError(WinImagerError):
    """The imaging engine reported a failure in its diagnostic output."""

    def __init__(self, lines: Sequence[str], exit_code: int | None = None):
        self.lines = list(lines)
        self.exit_code = exit_code
        if self.lines:
            msg = f"Imaging engine reported {len(self.lines)} critical error(s): {self.lines[0]}"
        else:
            msg = f"Imaging engine exited with error code: {exit_code}"
        super().__init__(msg)


class SkippableFileError(WinImagerError):
    """A single file could not be read but the job may continue."""

    def __init__(self, path: str | None, reason: str, text: str = ""):
        self.path = path
        self.reason = reason
        self.text = text
        super().__init__(f"Skipped {path or 'unknown file'}: {reason}")


class BenignWarning(WinImagerError):
    """A diagnostic known to be harmless for the resulting image."""


class SecondaryPhaseFailure(WinImagerError):
    """Boot configuration failed after the files were restored."""

    def __init__(self, message: str, remediation: str, exit_code: int | None = None):
        self.remediation = remediation
        self.exit_code = exit_code
        super().__init__(message)


class PreconditionFailure(WinImagerError):
    """A job was rejected before any process was launched."""

    def __init__(self, errors: Sequence[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
