"""
Pytest configuration and fixtures for WinImager tests.
"""

import asyncio
import io
import sys
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generator

import pytest
from rich.console import Console

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from winimager.core.errors import LaunchError  # noqa: E402
from winimager.core.output import ConsoleSink  # noqa: E402
from winimager.platform.base import (  # noqa: E402
    END_OF_STREAM,
    CommandResult,
    LineCallback,
    ProcessRunner,
)


@dataclass
class ScriptedRun:
    """What a fake process prints and returns."""

    returncode: int = 0
    stderr: list[str] = field(default_factory=list)
    stdout: list[str] = field(default_factory=list)
    launch_error: bool = False


class FakeRunner(ProcessRunner):
    """
    Replays scripted output instead of starting processes.

    Responses are queued per key: the engine sub-command ("capture",
    "apply", "update") for wimlib, otherwise the executable file name.
    The last queued response for a key is reused once the queue runs dry.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._responses: dict[str, list[ScriptedRun]] = {}

    def add(self, key: str, *runs: ScriptedRun) -> "FakeRunner":
        self._responses.setdefault(key, []).extend(runs)
        return self

    def calls_for(self, key: str) -> list[list[str]]:
        return [c for c in self.calls if self._key(c[0], c[1:]) == key]

    @staticmethod
    def _key(executable: str, arguments: Sequence[str]) -> str:
        name = Path(executable.replace("\\", "/")).name.lower()
        if name.startswith("wimlib") and arguments:
            return arguments[0]
        return name

    async def run(
        self,
        executable: str,
        arguments: Sequence[str],
        on_stdout_line: LineCallback | None = None,
        on_stderr_line: LineCallback | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        command = [executable, *arguments]
        self.calls.append(command)
        key = self._key(executable, arguments)
        queue = self._responses.get(key, [])
        run = (queue.pop(0) if len(queue) > 1 else queue[0]) if queue else ScriptedRun()

        if run.launch_error:
            raise LaunchError(executable, "executable not found")

        for line in run.stdout:
            if on_stdout_line:
                on_stdout_line(line)
            await asyncio.sleep(0)
        if on_stdout_line:
            on_stdout_line(END_OF_STREAM)
        for line in run.stderr:
            if on_stderr_line:
                on_stderr_line(line)
            await asyncio.sleep(0)
        if on_stderr_line:
            on_stderr_line(END_OF_STREAM)

        return CommandResult(returncode=run.returncode, command=command)


async def no_sleep(seconds: float) -> None:
    """Stand-in for asyncio.sleep in retry tests."""
    await asyncio.sleep(0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def console_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def sink(console_output: io.StringIO) -> ConsoleSink:
    """Console sink writing to an in-memory buffer."""
    return ConsoleSink(Console(file=console_output, width=120, force_terminal=False))


@pytest.fixture
def sample_config(temp_dir: Path) -> "WinImagerConfig":
    """Create a sample configuration for testing."""
    from winimager.core.config import WinImagerConfig

    config = WinImagerConfig(session_directory=temp_dir / "sessions")
    config.logging.log_directory = temp_dir / "logs"
    config.logging.console_enabled = False
    config.probe.enabled = False
    config.progress.spinner_interval = 0.01
    config.ensure_directories()
    return config


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")
