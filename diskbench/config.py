"""Benchmark engine configuration settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DISKBENCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # fio
    fio_path: str = "fio"
    ioengine: str = "libaio"
    direct_io: bool = True
    status_interval: int = Field(default=1, ge=1)  # seconds

    # Process supervision
    terminate_grace_period: float = Field(default=5.0, gt=0)  # seconds
    version_check_timeout: float = Field(default=10.0, gt=0)  # seconds
    read_chunk_size: int = Field(default=65536, ge=1)

    # Failure policy
    abort_on_launch_failure: bool = False

    # Page cache
    drop_caches_path: Path = Field(default=Path("/proc/sys/vm/drop_caches"))

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def init_settings(**kwargs) -> Settings:
    """Initialize settings with custom values."""
    global _settings
    _settings = Settings(**kwargs)
    return _settings
