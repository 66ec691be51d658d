"""
Progress tracking and the single-line status display.

ProgressTracker is updated only from the line-consumer path; it keeps no
locks of its own. Rendering goes through the shared ConsoleSink.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import psutil

from winimager.core.logging import get_logger
from winimager.core.models import ProgressUpdate

logger = get_logger(__name__)

GIB = 1024**3
MIB = 1024**2


def format_elapsed(seconds: float) -> str:
    """``hh:mm:ss``; hours are not wrapped at 24."""
    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


@dataclass
class ProgressState:
    """Mutable progress of one imaging job."""

    start_time: float
    last_sample_time: float
    bytes_processed: int = 0
    bytes_total: int = 0
    last_sample_bytes: int = 0
    percent: float = 0.0
    rate_mb_per_sec: float | None = None
    label: str = "Initializing..."


class DiskRateSampler:
    """System-wide disk read/write throughput from psutil I/O counters."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._last: Any = None
        self._last_time = 0.0

    def sample(self) -> tuple[float, float] | None:
        """Return (read, write) in MB/s since the previous sample."""
        try:
            counters = psutil.disk_io_counters()
        except (RuntimeError, OSError) as e:
            logger.debug("Disk counters unavailable", error=str(e))
            return None
        if counters is None:
            return None

        now = self._clock()
        previous, previous_time = self._last, self._last_time
        self._last, self._last_time = counters, now
        if previous is None or now <= previous_time:
            return None

        elapsed = now - previous_time
        read_rate = (counters.read_bytes - previous.read_bytes) / MIB / elapsed
        write_rate = (counters.write_bytes - previous.write_bytes) / MIB / elapsed
        return max(read_rate, 0.0), max(write_rate, 0.0)


class ProgressTracker:
    """Cumulative bytes, sliding-window throughput and the rendered status line."""

    def __init__(
        self,
        min_sample_interval: float = 0.2,
        idle_reset_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        disk_sampler: DiskRateSampler | None = None,
    ) -> None:
        self.min_sample_interval = min_sample_interval
        self.idle_reset_seconds = idle_reset_seconds
        self._clock = clock
        self._disk_sampler = disk_sampler
        self._disk_rates: tuple[float, float] | None = None
        now = clock()
        self.state = ProgressState(start_time=now, last_sample_time=now)

    def set_label(self, label: str) -> None:
        self.state.label = label

    def observe(self, progress: ProgressUpdate) -> str:
        """Fold a progress event into the state and return the rendered line."""
        state = self.state
        now = self._clock()

        state.bytes_processed = max(state.bytes_processed, progress.processed_bytes)
        state.bytes_total = progress.total_bytes
        state.percent = progress.percent

        since_sample = now - state.last_sample_time
        if since_sample > self.min_sample_interval and state.bytes_processed > state.last_sample_bytes:
            advanced = state.bytes_processed - state.last_sample_bytes
            state.rate_mb_per_sec = advanced / MIB / since_sample
            state.last_sample_bytes = state.bytes_processed
            state.last_sample_time = now
        elif since_sample > self.idle_reset_seconds:
            state.last_sample_time = now
            state.rate_mb_per_sec = None

        if self._disk_sampler is not None:
            self._disk_rates = self._disk_sampler.sample() or self._disk_rates

        return self.render(now)

    def render(self, now: float | None = None) -> str:
        state = self.state
        now = self._clock() if now is None else now
        rate = (
            f"{state.rate_mb_per_sec:.1f} MB/s"
            if state.rate_mb_per_sec is not None
            else "-- MB/s"
        )
        parts = [
            f"{state.percent:.1f}% ({state.bytes_processed / GIB:.2f}/{state.bytes_total / GIB:.2f} GiB)",
            f"Speed: {rate}",
        ]
        if self._disk_rates is not None:
            read_rate, write_rate = self._disk_rates
            parts.append(f"Disk R/W: {read_rate:.1f}/{write_rate:.1f} MB/s")
        parts.append(f"Elapsed: {format_elapsed(now - state.start_time)}")
        parts.append(f"File: {state.label}")
        return " | ".join(parts)


class Spinner:
    """Periodic "still working" indicator shown until real progress arrives."""

    FRAMES = ("|", "/", "-", "\\")

    def __init__(
        self,
        write: Callable[[str], None],
        interval: float = 0.15,
        text: str = "Processing...",
    ) -> None:
        self._write = write
        self.interval = interval
        self.text = text
        self.visible = True
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._spin(), name="spinner")

    def hide(self) -> None:
        self.visible = False

    async def stop(self) -> None:
        """Cancel the ticker and wait for it; never raises."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        except Exception as e:
            logger.warning("Spinner task error", error=str(e))

    async def __aenter__(self) -> Spinner:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def _spin(self) -> None:
        index = 0
        while True:
            if self.visible:
                self._write(f"{self.text} {self.FRAMES[index]}")
                index = (index + 1) % len(self.FRAMES)
            await asyncio.sleep(self.interval)
