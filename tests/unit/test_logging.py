"""
Tests for winimager.core.logging module.
"""

from datetime import datetime

import structlog

from winimager.core.config import LoggingConfig
from winimager.core.logging import (
    MAX_FIELD_LENGTH,
    JobLogContext,
    clip_long_fields,
    log_file_path,
)


class TestProcessors:
    def test_long_engine_line_is_clipped(self) -> None:
        event = clip_long_fields(None, "info", {"line": "x" * (MAX_FIELD_LENGTH + 10)})
        assert len(event["line"]) == MAX_FIELD_LENGTH + len("...[clipped]")
        assert event["line"].endswith("...[clipped]")

    def test_short_and_non_string_fields_untouched(self) -> None:
        event = clip_long_fields(None, "info", {"line": "short", "error": 3})
        assert event == {"line": "short", "error": 3}

    def test_log_file_path(self, temp_dir) -> None:
        config = LoggingConfig(log_directory=temp_dir)
        path = log_file_path(config, datetime(2024, 3, 9))
        assert path == temp_dir.resolve() / "winimager_20240309.log"


class TestJobLogContext:
    def test_binds_job_identity_for_the_block(self) -> None:
        with JobLogContext("system backup", job_id="abc", job_kind="capture"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["job_id"] == "abc"
            assert bound["job_kind"] == "capture"
        assert "job_id" not in structlog.contextvars.get_contextvars()

    def test_unbinds_when_block_raises(self) -> None:
        try:
            with JobLogContext("system restore", job_id="xyz"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert "job_id" not in structlog.contextvars.get_contextvars()
