"""
WinImager structured logging.

Records go to stderr and to a daily log file. While an orchestrator runs,
its job id and kind are bound into structlog's context variables, so every
record written during the run carries the job it belongs to.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from contextvars import Token
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, WrappedLogger

if TYPE_CHECKING:
    from winimager.core.config import LoggingConfig

# Engine diagnostics are unbounded; fields longer than this are clipped.
MAX_FIELD_LENGTH = 2000
CLIPPED_FIELDS = ("line", "error", "command")

_configured = False


def add_timestamp(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["timestamp"] = datetime.now().isoformat(timespec="milliseconds")
    return event_dict


def clip_long_fields(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Shorten oversized engine lines and command strings."""
    for key in CLIPPED_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
            event_dict[key] = value[:MAX_FIELD_LENGTH] + "...[clipped]"
    return event_dict


def log_file_path(config: LoggingConfig, day: datetime | None = None) -> Path:
    """One file per day: ``winimager_YYYYMMDD.log``."""
    return config.log_directory / f"winimager_{(day or datetime.now()):%Y%m%d}.log"


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog on top of the standard logging handlers. Runs once."""
    global _configured

    if _configured:
        return

    config.log_directory.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = []
    if config.console_enabled:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(getattr(logging, config.level))
        handlers.append(console_handler)
    if config.file_enabled:
        file_handler = logging.FileHandler(log_file_path(config), encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, format="%(message)s")
    # asyncio logs every subprocess transport at DEBUG.
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_timestamp,
        clip_long_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if config.json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name or "winimager")


class JobLogContext:
    """
    Binds a job's identity to every record logged inside the block and
    logs when the job starts and ends.
    """

    def __init__(
        self,
        operation: str,
        logger: structlog.stdlib.BoundLogger | None = None,
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.context = context
        self.start_time: datetime | None = None
        self._tokens: Mapping[str, Token[Any]] = {}

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return (datetime.now() - self.start_time).total_seconds()

    def __enter__(self) -> JobLogContext:
        self.start_time = datetime.now()
        self._tokens = structlog.contextvars.bind_contextvars(**self.context)
        self.logger.info("Job started", operation=self.operation)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        try:
            if exc_type is not None:
                self.logger.error(
                    "Job aborted",
                    operation=self.operation,
                    duration_seconds=self.elapsed_seconds,
                    error_type=exc_type.__name__,
                    error=str(exc_val),
                )
            else:
                self.logger.info(
                    "Job ended",
                    operation=self.operation,
                    duration_seconds=self.elapsed_seconds,
                )
        finally:
            structlog.contextvars.reset_contextvars(**self._tokens)
