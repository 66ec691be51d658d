"""
Asynchronous child-process runner.

Both standard streams are drained concurrently so a chatty child can never
block on a full pipe. Lines are split on ``\\n``, ``\\r\\n`` and bare ``\\r``
because the imaging engine redraws its progress line with carriage returns.
"""

from __future__ import annotations

import asyncio
import codecs
import subprocess
import sys
import time
from collections.abc import Sequence

from winimager.core.errors import LaunchError, ProcessTimeout
from winimager.core.logging import get_logger
from winimager.platform.base import (
    END_OF_STREAM,
    CommandResult,
    LineCallback,
    ProcessRunner,
)

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class LineSplitter:
    """Incrementally decodes bytes and yields complete lines."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[str]:
        self._buffer += self._decoder.decode(data)
        return self._drain(final=False)

    def close(self) -> list[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        lines = self._drain(final=True)
        if self._buffer:
            lines.append(self._buffer)
            self._buffer = ""
        return lines

    def _drain(self, final: bool) -> list[str]:
        lines: list[str] = []
        start = 0
        buffer = self._buffer
        length = len(buffer)
        index = 0
        while index < length:
            char = buffer[index]
            if char == "\n":
                lines.append(buffer[start:index])
                start = index + 1
            elif char == "\r":
                if index + 1 < length:
                    lines.append(buffer[start:index])
                    if buffer[index + 1] == "\n":
                        index += 1
                    start = index + 1
                elif final:
                    lines.append(buffer[start:index])
                    start = index + 1
                else:
                    # A "\n" may still arrive in the next chunk.
                    break
            index += 1
        self._buffer = buffer[start:]
        return lines


async def _pump(
    stream: asyncio.StreamReader | None,
    callback: LineCallback | None,
    encoding: str,
) -> None:
    splitter = LineSplitter(encoding)
    if stream is not None:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            for line in splitter.feed(chunk):
                if callback is not None:
                    callback(line)
    for line in splitter.close():
        if callback is not None:
            callback(line)
    if callback is not None:
        callback(END_OF_STREAM)


class AsyncProcessRunner(ProcessRunner):
    """ProcessRunner backed by asyncio subprocesses."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding

    async def run(
        self,
        executable: str,
        arguments: Sequence[str],
        on_stdout_line: LineCallback | None = None,
        on_stderr_line: LineCallback | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        command = [executable, *arguments]
        logger.debug("Running command", command=command, timeout=timeout)
        start_time = time.monotonic()

        kwargs: dict[str, object] = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **kwargs,
            )
        except FileNotFoundError as e:
            raise LaunchError(executable, "executable not found") from e
        except PermissionError as e:
            raise LaunchError(executable, "permission denied") from e
        except OSError as e:
            raise LaunchError(executable, str(e)) from e

        pumps = [
            asyncio.ensure_future(_pump(process.stdout, on_stdout_line, self.encoding)),
            asyncio.ensure_future(_pump(process.stderr, on_stderr_line, self.encoding)),
        ]
        readers = asyncio.gather(*pumps)

        async def _complete() -> int:
            # Trailing output may still be buffered after exit.
            await readers
            return await process.wait()

        try:
            if timeout is None:
                returncode = await _complete()
            else:
                returncode = await asyncio.wait_for(_complete(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Command timed out", command=command, timeout=timeout)
            await self._terminate(process, pumps)
            raise ProcessTimeout(command, timeout) from None
        except BaseException:
            # Cancellation or a failing line callback; the child must not outlive run().
            await self._terminate(process, pumps)
            raise

        duration = time.monotonic() - start_time
        if returncode != 0:
            logger.warning("Command failed", command=command, returncode=returncode)
        else:
            logger.debug("Command finished", command=command, duration_seconds=duration)

        return CommandResult(
            returncode=returncode,
            command=command,
            duration_seconds=duration,
        )

    @staticmethod
    async def _terminate(
        process: asyncio.subprocess.Process,
        pumps: list[asyncio.Future[None]],
    ) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        for pump in pumps:
            pump.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)
