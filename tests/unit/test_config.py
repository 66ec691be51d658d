"""
Tests for winimager.core.config module.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from winimager.core.config import (
    EngineConfig,
    LoggingConfig,
    ProgressConfig,
    RestoreConfig,
    RetryConfig,
    WinImagerConfig,
    load_config,
)


class TestLoggingConfig:
    """Tests for LoggingConfig."""

    def test_default_values(self) -> None:
        config = LoggingConfig()
        assert config.level == "INFO"
        assert config.file_enabled is True
        assert config.console_enabled is True
        assert config.json_format is False

    def test_path_expansion(self) -> None:
        config = LoggingConfig(log_directory="~/logs")
        assert "~" not in str(config.log_directory)


class TestEngineConfig:
    """Tests for EngineConfig."""

    def test_default_values(self) -> None:
        config = EngineConfig()
        assert config.compression == "fast"
        assert config.ignore_file_read_errors is False
        assert config.engine_path.name == "wimlib-imagex.exe"
        assert config.engine_path.parent.name == "wimlib"

    def test_compression_is_case_insensitive(self) -> None:
        assert EngineConfig(compression="Maximum").compression == "maximum"
        assert EngineConfig(compression=" NONE ").compression == "none"

    def test_invalid_compression(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(compression="ultra")

    def test_resolve_threads_explicit(self) -> None:
        assert EngineConfig(threads=3).resolve_threads() == 3

    def test_resolve_threads_default_uses_cpu_count(self, mocker) -> None:
        mocker.patch("winimager.core.config.psutil.cpu_count", return_value=12)
        assert EngineConfig().resolve_threads() == 12

    def test_invalid_threads(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(threads=0)


class TestRetryAndProgressConfig:
    def test_retry_defaults(self) -> None:
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.delay_seconds == 1.0

    def test_retry_requires_an_attempt(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=0)

    def test_progress_defaults(self) -> None:
        config = ProgressConfig()
        assert config.min_sample_interval == 0.2
        assert config.idle_reset_seconds == 5.0
        assert config.label_width == 50
        assert config.sample_disk_rates is False


class TestRestoreConfig:
    def test_defaults(self) -> None:
        config = RestoreConfig()
        assert config.image_index == 1
        assert config.firmware == "ALL"
        assert config.boot_tool == "bcdboot.exe"

    def test_firmware_is_normalized(self) -> None:
        assert RestoreConfig(firmware="uefi").firmware == "UEFI"


class TestWinImagerConfig:
    """Tests for the main configuration."""

    def test_default_config(self) -> None:
        config = WinImagerConfig()
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.engine, EngineConfig)
        assert isinstance(config.retry, RetryConfig)

    def test_save_and_load(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        config = WinImagerConfig()
        config.engine.compression = "maximum"
        config.engine.ignore_file_read_errors = True
        config.retry.max_attempts = 5
        config.save(config_path)

        assert config_path.exists()
        loaded = WinImagerConfig.load(config_path)
        assert loaded.engine.compression == "maximum"
        assert loaded.engine.ignore_file_read_errors is True
        assert loaded.retry.max_attempts == 5

    def test_load_nonexistent_returns_default(self, temp_dir: Path) -> None:
        config = WinImagerConfig.load(temp_dir / "missing.json")
        assert config.engine.compression == "fast"

    def test_load_partial_file(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        config_path.write_text(json.dumps({"engine": {"compression": "None"}}))
        config = WinImagerConfig.load(config_path)
        assert config.engine.compression == "none"
        assert config.retry.max_attempts == 3

    def test_ensure_directories(self, temp_dir: Path) -> None:
        config = WinImagerConfig(session_directory=temp_dir / "sessions")
        config.logging.log_directory = temp_dir / "logs"
        config.ensure_directories()
        assert (temp_dir / "sessions").is_dir()
        assert (temp_dir / "logs").is_dir()

    def test_session_file_location(self, temp_dir: Path) -> None:
        config = WinImagerConfig(session_directory=temp_dir)
        session_file = config.get_session_file()
        assert session_file.parent == temp_dir.resolve()
        assert session_file.name.startswith("session_")
        assert session_file.suffix == ".json"

    def test_load_config_creates_directories(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"
        config_path.write_text(
            json.dumps(
                {
                    "session_directory": str(temp_dir / "s"),
                    "logging": {"log_directory": str(temp_dir / "l")},
                }
            )
        )
        load_config(config_path)
        assert (temp_dir / "s").is_dir()
        assert (temp_dir / "l").is_dir()
