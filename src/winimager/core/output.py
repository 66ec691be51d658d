"""
Shared console output sink.

All user-facing output of a running job goes through one ConsoleSink so the
overwrite-in-place status line and the inline notices never interleave.
A console that cannot take a write (closed pipe, unencodable file name) is
logged and otherwise ignored; display problems never abort a job.
"""

from __future__ import annotations

import threading

from rich.console import Console
from rich.markup import escape

from winimager.core.logging import get_logger

logger = get_logger(__name__)


class ConsoleSink:
    """Serializes writes to the console with a single lock."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(highlight=False)
        self._lock = threading.Lock()
        self._status_visible = False

    @property
    def width(self) -> int:
        return max(self.console.width, 20)

    def status(self, text: str) -> None:
        """Overwrite the current line with ``text`` padded to the console width."""
        width = self.width - 1
        line = text[:width].ljust(width)
        with self._lock:
            if self._write("\r" + line):
                self._status_visible = True

    def clear_status(self) -> None:
        with self._lock:
            self._clear_status_locked()

    def notice(self, message: str, style: str | None = None) -> None:
        """Print a full line below any status line."""
        with self._lock:
            self._clear_status_locked()
            text = escape(message)
            try:
                self.console.print(f"[{style}]{text}[/{style}]" if style else text)
            except (OSError, UnicodeError) as e:
                logger.warning("Console write failed", error=str(e))

    def info(self, message: str) -> None:
        self.notice(message)

    def warning(self, message: str) -> None:
        self.notice(message, "yellow")

    def error(self, message: str) -> None:
        self.notice(message, "red")

    def success(self, message: str) -> None:
        self.notice(message, "green")

    def _clear_status_locked(self) -> None:
        if self._status_visible:
            self._write("\r" + " " * (self.width - 1) + "\r")
            self._status_visible = False

    def _write(self, text: str) -> bool:
        try:
            self.console.file.write(text)
            self.console.file.flush()
        except (OSError, UnicodeError) as e:
            logger.debug("Status line write failed", error=str(e))
            return False
        return True
