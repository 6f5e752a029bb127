"""
saverun Configuration Module.

Centralizes runtime settings using Pydantic Settings.
Requires Python 3.11+.
"""

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from saverun import __version__

# Load .env from the working directory so nested BaseSettings can read it
load_dotenv(Path.cwd() / ".env")


class WatcherSettings(BaseSettings):
    """Filesystem event source settings."""

    model_config = SettingsConfigDict(env_prefix="SAVERUN_WATCHER_")

    poll_interval_ms: int = Field(default=300, ge=50, le=5000, description="Polling interval")
    use_polling: bool = Field(default=False, description="Use the polling observer")
    recursive: bool = Field(default=True)
    ignore_hidden: bool = Field(default=True, description="Skip dot-directories and dot-files")


class DebounceSettings(BaseSettings):
    """Trigger debounce settings."""

    model_config = SettingsConfigDict(env_prefix="SAVERUN_DEBOUNCE_")

    quiet_window_ms: int = Field(default=3000, ge=0, le=60000)


class SupervisorSettings(BaseSettings):
    """Process supervisor settings."""

    model_config = SettingsConfigDict(env_prefix="SAVERUN_SUPERVISOR_")

    settle_delay_ms: int = Field(default=1000, ge=0, le=30000)
    wait_for_exit: bool = Field(default=False, description="Wait for killed process to exit")
    exit_timeout_ms: int = Field(default=5000, ge=0, le=60000)


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="SAVERUN_LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="console")  # "json" or "console"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Accept lower-case level names."""
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("format")
    @classmethod
    def normalize_format(cls, v: str) -> str:
        """Only console and json renderers exist."""
        fmt = v.strip().lower()
        if fmt not in ("console", "json"):
            raise ValueError(f"unknown log format: {v}")
        return fmt


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_prefix="SAVERUN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="saverun")
    app_version: str = Field(default=__version__)
    config_file: str = Field(default="saverun.json", description="Project file name")

    # Sub-settings
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    debounce: DebounceSettings = Field(default_factory=DebounceSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance of Settings; call
    ``get_settings.cache_clear()`` to re-read the environment.
    """
    return Settings()
