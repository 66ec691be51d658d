"""
Integration tests for AsyncProcessRunner against real child processes.
"""

import sys

import psutil
import pytest

from winimager.core.errors import LaunchError, ProcessTimeout
from winimager.platform.base import EndOfStream
from winimager.platform.process import AsyncProcessRunner

pytestmark = pytest.mark.integration


class Recorder:
    def __init__(self) -> None:
        self.lines: list[str] = []
        self.ends = 0

    def __call__(self, line) -> None:
        if isinstance(line, EndOfStream):
            self.ends += 1
        else:
            self.lines.append(line)


def python_args(code: str) -> list[str]:
    return ["-c", code]


class TestAsyncProcessRunner:
    @pytest.mark.asyncio
    async def test_streams_both_outputs(self) -> None:
        out, err = Recorder(), Recorder()
        code = (
            "import sys\n"
            "sys.stdout.write('hello\\nworld\\n')\n"
            "sys.stderr.write('1 GiB / 2 GiB (50% done)\\r2 GiB / 2 GiB (100% done)\\r\\n')\n"
        )
        result = await AsyncProcessRunner().run(
            sys.executable, python_args(code), on_stdout_line=out, on_stderr_line=err
        )
        assert result.returncode == 0
        assert out.lines == ["hello", "world"]
        assert err.lines == ["1 GiB / 2 GiB (50% done)", "2 GiB / 2 GiB (100% done)"]
        assert out.ends == 1
        assert err.ends == 1

    @pytest.mark.asyncio
    async def test_large_output_does_not_block(self) -> None:
        out, err = Recorder(), Recorder()
        code = (
            "import sys\n"
            "for i in range(20000):\n"
            "    sys.stderr.write('line %d\\n' % i)\n"
            "    sys.stdout.write('x' * 50 + '\\n')\n"
        )
        result = await AsyncProcessRunner().run(
            sys.executable, python_args(code), on_stdout_line=out, on_stderr_line=err
        )
        assert result.success
        assert len(err.lines) == 20000
        assert err.lines[-1] == "line 19999"
        assert len(out.lines) == 20000

    @pytest.mark.asyncio
    async def test_final_line_without_newline(self) -> None:
        err = Recorder()
        await AsyncProcessRunner().run(
            sys.executable,
            python_args("import sys; sys.stderr.write('last')"),
            on_stderr_line=err,
        )
        assert err.lines == ["last"]

    @pytest.mark.asyncio
    async def test_exit_code(self) -> None:
        result = await AsyncProcessRunner().run(
            sys.executable, python_args("import sys; sys.exit(3)")
        )
        assert result.returncode == 3
        assert not result.success

    @pytest.mark.asyncio
    async def test_run_command_collects(self) -> None:
        result = await AsyncProcessRunner().run_command(
            [sys.executable, "-c", "print('Volume - C: is NOT Dirty')"]
        )
        assert result.stdout == "Volume - C: is NOT Dirty"

    @pytest.mark.asyncio
    async def test_missing_executable(self, temp_dir) -> None:
        with pytest.raises(LaunchError) as exc_info:
            await AsyncProcessRunner().run(str(temp_dir / "no-such-tool.exe"), [])
        assert "no-such-tool.exe" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        with pytest.raises(ProcessTimeout) as exc_info:
            await AsyncProcessRunner().run(
                sys.executable, python_args("import time; time.sleep(30)"), timeout=0.5
            )
        assert exc_info.value.timeout == 0.5

    @pytest.mark.asyncio
    async def test_failing_callback_kills_child(self) -> None:
        pids: list[int] = []

        def on_stdout(line) -> None:
            if isinstance(line, str) and line.isdigit():
                pids.append(int(line))

        def on_stderr(line) -> None:
            if isinstance(line, str):
                raise UnicodeEncodeError("cp1252", line, 0, 1, "character maps to <undefined>")

        code = (
            "import os, sys, time\n"
            "print(os.getpid(), flush=True)\n"
            "time.sleep(0.2)\n"
            "for i in range(100):\n"
            "    sys.stderr.write('%d GiB / 100 GiB (%d%% done)\\r' % (i, i))\n"
            "    sys.stderr.flush()\n"
            "    time.sleep(0.05)\n"
        )
        with pytest.raises(UnicodeEncodeError):
            await AsyncProcessRunner().run(
                sys.executable,
                python_args(code),
                on_stdout_line=on_stdout,
                on_stderr_line=on_stderr,
            )
        assert pids
        assert not psutil.pid_exists(pids[0])
