"""
Configuration management for blog replay.

This module uses pydantic-settings to manage all configuration aspects including:
- Platform credentials
- Output location and retention
- Durable storage
- HTTP behaviour (timeouts, retries, courtesy delays)
- Logging

Configuration is loaded from environment variables (prefixed ``REPLAY_``) or a
.env file.
"""
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from replay import DEFAULT_DATA_DIR, DEFAULT_FEED_DIR, PROG_NAME, __version__


class LogLevel(str, Enum):
    """Log levels supported by the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BloggerConfig(BaseModel):
    """Credentials for the Blogger v3 API."""
    api_key: Optional[SecretStr] = None


class OutputConfig(BaseModel):
    """Where and how rendered Atom feeds are written."""
    feed_url_base: str = ""
    feed_path: Path = Field(default=Path(DEFAULT_FEED_DIR))
    max_entries: Optional[int] = None

    @field_validator("feed_url_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("max_entries")
    @classmethod
    def validate_max_entries(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("max_entries must be positive")
        return v


class StorageConfig(BaseModel):
    """Configuration for the durable entry store."""
    db_path: Path = Field(default=Path(DEFAULT_DATA_DIR) / "replay.db")
    busy_timeout_ms: int = 5000


class HTTPConfig(BaseModel):
    """HTTP client, retry and rate-limit settings."""
    timeout_seconds: float = 30.0
    max_retries: int = 5
    retry_base_delay: float = 0.5  # seconds, doubled on every retry
    retry_jitter: float = 0.25  # seconds, uniform
    page_delay_seconds: float = 1.0

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_retries must be greater than zero")
        return v


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""
    level: LogLevel = LogLevel.INFO
    structured: bool = False


class Settings(BaseSettings):
    """Main settings class for blog replay."""
    # Application metadata
    app_name: str = PROG_NAME
    version: str = __version__

    # Component configurations
    blogger: BloggerConfig = Field(default_factory=BloggerConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="REPLAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    @property
    def blogger_api_key(self) -> Optional[str]:
        if self.blogger.api_key is None:
            return None
        return self.blogger.api_key.get_secret_value() or None


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Load settings from environment variables and an optional .env file."""
    if env_file is not None:
        return Settings(_env_file=env_file)
    return Settings()
