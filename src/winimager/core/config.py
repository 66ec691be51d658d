"""
WinImager configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Literal

import psutil
from pydantic import BaseModel, Field, field_validator

INSTALL_DIRECTORY = Path(__file__).resolve().parent.parent


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: Path.home() / ".winimager" / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class EngineConfig(BaseModel):
    """Configuration for the imaging engine (wimlib-imagex)."""

    engine_directory: Path = Field(default_factory=lambda: INSTALL_DIRECTORY / "wimlib")
    engine_executable: str = "wimlib-imagex.exe"
    compression: Literal["none", "fast", "maximum"] = "fast"
    threads: int | None = Field(default=None, ge=1)
    ignore_file_read_errors: bool = False
    extra_exclusions: list[str] = Field(default_factory=list)
    image_name: str = "Windows System Backup"

    @field_validator("compression", mode="before")
    @classmethod
    def normalize_compression(cls, v: str) -> str:
        return str(v).strip().lower()

    @field_validator("engine_directory", mode="before")
    @classmethod
    def expand_engine_directory(cls, v: str | Path) -> Path:
        return Path(v).expanduser()

    @property
    def engine_path(self) -> Path:
        return self.engine_directory / self.engine_executable

    def resolve_threads(self) -> int:
        """Thread count passed to the engine, defaulting to the logical CPU count."""
        if self.threads:
            return self.threads
        return psutil.cpu_count(logical=True) or 1


class RetryConfig(BaseModel):
    """Configuration for per-file retries of skipped files."""

    max_attempts: int = Field(default=3, ge=1, le=20)
    delay_seconds: float = Field(default=1.0, ge=0.0)


class ProgressConfig(BaseModel):
    """Configuration for the progress line."""

    min_sample_interval: float = Field(default=0.2, gt=0.0)
    idle_reset_seconds: float = Field(default=5.0, gt=0.0)
    label_width: int = Field(default=50, ge=8)
    spinner_interval: float = Field(default=0.15, gt=0.0)
    sample_disk_rates: bool = False


class RestoreConfig(BaseModel):
    """Configuration for restore operations."""

    image_index: int = Field(default=1, ge=1)
    firmware: Literal["UEFI", "BIOS", "ALL"] = "ALL"
    boot_tool: str = "bcdboot.exe"

    @field_validator("firmware", mode="before")
    @classmethod
    def normalize_firmware(cls, v: str) -> str:
        return str(v).strip().upper()


class ProbeConfig(BaseModel):
    """Configuration for the volume dirty-bit probe."""

    enabled: bool = True
    probe_tool: str = "fsutil.exe"
    timeout_seconds: float = Field(default=10.0, gt=0.0)


class WinImagerConfig(BaseModel):
    """Main WinImager configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    progress: ProgressConfig = Field(default_factory=ProgressConfig)
    restore: RestoreConfig = Field(default_factory=RestoreConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    session_directory: Path = Field(
        default_factory=lambda: Path.home() / ".winimager" / "sessions"
    )

    @field_validator("session_directory", mode="before")
    @classmethod
    def expand_session_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> WinImagerConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = Path.home() / ".winimager" / "config.json"

        if config_path.exists():
            with open(config_path, encoding="utf-8") as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = Path.home() / ".winimager" / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)
        self.session_directory.mkdir(parents=True, exist_ok=True)

    def get_session_file(self) -> Path:
        """Get path for a new session report file."""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.session_directory / f"session_{timestamp}.json"


def get_default_config() -> WinImagerConfig:
    """Get the default configuration."""
    return WinImagerConfig()


def load_config(config_path: Path | None = None) -> WinImagerConfig:
    """Load or create configuration."""
    config = WinImagerConfig.load(config_path)
    config.ensure_directories()
    return config
