"""
WinImager Platform Base.

Defines the process runner interface the orchestrators drive. Tests
substitute a fake runner that replays scripted output lines.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Final


class EndOfStream:
    """Marker delivered once per stream after its last line."""

    _instance: EndOfStream | None = None

    def __new__(cls) -> EndOfStream:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM: Final = EndOfStream()

LineCallback = Callable[[str | EndOfStream], None]


@dataclass
class CommandResult:
    """Result of a command execution."""

    returncode: int
    command: list[str]
    stdout_lines: list[str] = field(default_factory=list)
    stderr_lines: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def stdout(self) -> str:
        return "\n".join(self.stdout_lines)

    @property
    def stderr(self) -> str:
        return "\n".join(self.stderr_lines)

    def __repr__(self) -> str:
        cmd = " ".join(self.command)
        return f"CommandResult(rc={self.returncode}, cmd='{cmd[:50]}...')"


class ProcessRunner(ABC):
    """Launches external executables and streams their output line by line."""

    @abstractmethod
    async def run(
        self,
        executable: str,
        arguments: Sequence[str],
        on_stdout_line: LineCallback | None = None,
        on_stderr_line: LineCallback | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """
        Run ``executable`` and feed each output line to the callbacks.

        Each callback receives every line of its stream exactly once, in
        order, followed by END_OF_STREAM. Returns only after the process has
        exited and both streams are drained. Raises LaunchError when the
        process cannot be started and ProcessTimeout when ``timeout`` expires.
        """

    async def run_command(
        self,
        command: Sequence[str],
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a short auxiliary command and collect its output."""
        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        def collect(sink: list[str]) -> LineCallback:
            def _on_line(line: str | EndOfStream) -> None:
                if not isinstance(line, EndOfStream):
                    sink.append(line)

            return _on_line

        result = await self.run(
            command[0],
            list(command[1:]),
            on_stdout_line=collect(stdout_lines),
            on_stderr_line=collect(stderr_lines),
            timeout=timeout,
        )
        result.stdout_lines = stdout_lines
        result.stderr_lines = stderr_lines
        return result
