"""
WinImager preflight checks and restore preconditions.

Preflight checks are advisory and produce a report. Restore preconditions
are hard: a failing precondition rejects the job before anything launches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import humanize
import psutil

from winimager.core.errors import LaunchError, ProcessTimeout
from winimager.core.logging import get_logger
from winimager.platform.windows.commands import dirty_query_arguments
from winimager.platform.windows.parsers import normalize_drive_letter, parse_dirty_output

if TYPE_CHECKING:
    from winimager.core.config import ProbeConfig
    from winimager.platform.base import ProcessRunner

logger = get_logger(__name__)


@dataclass
class PreflightCheck:
    """Result of a single preflight check."""

    name: str
    passed: bool
    message: str
    severity: str = "info"  # info, warning, error
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreflightReport:
    """Complete preflight check report."""

    checks: list[PreflightCheck] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def has_errors(self) -> bool:
        return any(c.severity == "error" and not c.passed for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.severity == "warning" and not c.passed for c in self.checks)

    def get_summary(self) -> str:
        """Get human-readable summary."""
        lines = [f"Preflight Check Report ({self.timestamp.isoformat(timespec='seconds')})"]
        lines.append("=" * 60)

        passed = sum(1 for c in self.checks if c.passed)
        lines.append(f"Results: {passed}/{len(self.checks)} checks passed")
        lines.append("")

        for check in self.checks:
            status = "✓" if check.passed else "✗"
            lines.append(f"[{status}] {check.name}: {check.message}")
            for key, value in check.details.items():
                lines.append(f"    {key}: {value}")

        return "\n".join(lines)


class PreflightChecker:
    """Runs preflight checks before an operation."""

    def __init__(self) -> None:
        self._checks: list[tuple[str, Any]] = []

    def add_check(self, name: str, check_func: Any) -> None:
        self._checks.append((name, check_func))

    def run_checks(self, context: dict[str, Any]) -> PreflightReport:
        report = PreflightReport()

        for name, check_func in self._checks:
            try:
                result = check_func(context)
            except Exception as e:
                logger.warning("Preflight check raised", check=name, error=str(e))
                result = PreflightCheck(
                    name=name,
                    passed=False,
                    message=f"Check failed with error: {e}",
                    severity="error",
                )
            if isinstance(result, bool):
                result = PreflightCheck(
                    name=name,
                    passed=result,
                    message="Passed" if result else "Failed",
                )
            report.checks.append(result)

        return report


def check_admin(context: dict[str, Any]) -> PreflightCheck:
    """Snapshots and raw volume reads need an elevated process."""
    if context.get("is_admin", False):
        return PreflightCheck(name="Privileges", passed=True, message="Running as administrator")
    return PreflightCheck(
        name="Privileges",
        passed=False,
        message="Not running as administrator",
        severity="error",
    )


def check_power_status(context: dict[str, Any]) -> PreflightCheck:
    """Check if system is on AC power (not battery)."""
    try:
        battery = psutil.sensors_battery()
    except (AttributeError, NotImplementedError, OSError) as e:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message=f"Could not check power status: {e}",
        )

    if battery is None:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message="No battery detected (desktop/server)",
        )

    if battery.power_plugged:
        return PreflightCheck(
            name="Power Status",
            passed=True,
            message="System is on AC power",
            details={"battery_percent": battery.percent},
        )

    return PreflightCheck(
        name="Power Status",
        passed=battery.percent > 50,
        message=f"System on battery ({battery.percent}%)",
        severity="warning",
        details={"battery_percent": battery.percent},
    )


def check_destination_space(context: dict[str, Any]) -> PreflightCheck:
    """Destination volume should hold at least the used space of the source."""
    destination = context.get("destination")
    required = int(context.get("required_bytes", 0))
    if not destination:
        return PreflightCheck(
            name="Destination Space",
            passed=False,
            message="No destination given",
            severity="error",
        )

    directory = Path(destination).parent
    try:
        free = psutil.disk_usage(str(directory)).free
    except OSError as e:
        return PreflightCheck(
            name="Destination Space",
            passed=False,
            message=f"Could not read free space of {directory}: {e}",
            severity="warning",
        )

    details = {
        "free": humanize.naturalsize(free, binary=True),
        "source_used": humanize.naturalsize(required, binary=True),
    }
    if required and free < required:
        return PreflightCheck(
            name="Destination Space",
            passed=False,
            message="Destination may be too small (compression can still make it fit)",
            severity="warning",
            details=details,
        )
    return PreflightCheck(
        name="Destination Space",
        passed=True,
        message="Destination has sufficient free space",
        details=details,
    )


def check_volume_state(context: dict[str, Any]) -> PreflightCheck:
    """Report the dirty bit gathered by ``probe_volume_dirty``."""
    dirty = context.get("volume_dirty")
    drive = context.get("source_drive", "")
    if dirty is None:
        return PreflightCheck(
            name="Volume State",
            passed=True,
            message=f"Dirty state of {drive} unknown",
        )
    if dirty:
        return PreflightCheck(
            name="Volume State",
            passed=False,
            message=f"Volume {drive} is marked dirty; consider running chkdsk before imaging",
            severity="warning",
        )
    return PreflightCheck(name="Volume State", passed=True, message=f"Volume {drive} is clean")


def create_backup_preflight_checker() -> PreflightChecker:
    """Create a preflight checker with the capture checks."""
    checker = PreflightChecker()
    checker.add_check("Privileges", check_admin)
    checker.add_check("Power Status", check_power_status)
    checker.add_check("Destination Space", check_destination_space)
    checker.add_check("Volume State", check_volume_state)
    return checker


async def probe_volume_dirty(
    runner: ProcessRunner,
    config: ProbeConfig,
    drive: str,
) -> bool | None:
    """
    Ask the OS whether ``drive`` has its dirty bit set.

    Advisory only: any failure to run or parse the probe yields None.
    """
    command = [config.probe_tool, *dirty_query_arguments(drive)]
    try:
        result = await runner.run_command(command, timeout=config.timeout_seconds)
    except (LaunchError, ProcessTimeout) as e:
        logger.warning("Volume dirty probe unavailable", drive=drive, error=str(e))
        return None

    dirty = parse_dirty_output(result.stdout + "\n" + result.stderr)
    logger.info("Volume dirty probe", drive=drive, dirty=dirty, returncode=result.returncode)
    return dirty


def validate_restore_target(target: str, system_drive: str) -> list[str]:
    """Errors for a restore target; empty when the target is acceptable."""
    errors: list[str] = []
    drive = normalize_drive_letter(target)
    if drive is None:
        errors.append(f"Invalid target drive '{target}': expected a single drive letter such as D:")
        return errors

    if drive == (normalize_drive_letter(system_drive) or system_drive.upper()):
        errors.append(f"Cannot restore onto the running system volume {drive}")
    return errors
