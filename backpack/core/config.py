"""Unified configuration via pydantic-settings."""

from pathlib import Path
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_NAME = "github-bot"


class BackpackConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BACKPACK_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Plugins
    app_name: str = APP_NAME
    plugins_dir: Path | None = None
    script_timeout_seconds: float | None = None

    # HTTP capability
    http_timeout_seconds: float = 30.0
    http_user_agent: str = "backpack-plugin/0.1"

    # Output
    quiet: bool = False
    no_color: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    log_dir: Path | None = None
    log_max_bytes: int = 10_485_760
    log_backup_count: int = 5

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("script_timeout_seconds", "http_timeout_seconds")
    @classmethod
    def positive_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("plugins_dir")
    @classmethod
    def expand_plugins_dir(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None
