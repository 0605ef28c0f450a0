"""
Gomon Configuration Module.

Centralizes all configuration settings using Pydantic Settings.
Requires Python 3.11+.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Load .env file into os.environ at module import time
# so nested BaseSettings classes can read the values
_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def _split_csv(v: str | list[str]) -> list[str]:
    if isinstance(v, str):
        return [p.strip() for p in v.split(",") if p.strip()]
    return v


class WatcherSettings(BaseSettings):
    """File watching and debounce settings."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    debounce_threshold_ms: int = Field(default=500, ge=1, le=60000)
    relevant_extensions: Annotated[list[str], NoDecode] = Field(
        default=[".go", ".tmpl"],
        description="File extensions whose changes trigger a restart",
    )
    ignored_dirs: Annotated[list[str], NoDecode] = Field(
        default=["node_modules", "vendor"],
        description="Directory names pruned from the watch set",
    )
    hidden_prefix: str = Field(default=".", min_length=1)
    watch_new_directories: bool = Field(default=False)

    @field_validator("relevant_extensions", mode="before")
    @classmethod
    def parse_extensions(cls, v: str | list[str]) -> list[str]:
        """Parse extensions from a comma-separated string, adding the dot."""
        return [e if e.startswith(".") else f".{e}" for e in _split_csv(v)]

    @field_validator("ignored_dirs", mode="before")
    @classmethod
    def parse_ignored_dirs(cls, v: str | list[str]) -> list[str]:
        """Parse ignored directory names from comma-separated string or list."""
        return _split_csv(v)

    @property
    def debounce_threshold(self) -> float:
        """Debounce threshold in seconds."""
        return self.debounce_threshold_ms / 1000.0


class ProcessSettings(BaseSettings):
    """Child process settings."""

    model_config = SettingsConfigDict(env_prefix="PROCESS_")

    program: str = Field(default="go", min_length=1)
    kill_timeout: float = Field(default=5.0, gt=0.0, le=300.0)


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="console")  # "json" or "console"


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="gomon")
    app_version: str = Field(default="0.1.0")

    # Sub-settings
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    process: ProcessSettings = Field(default_factory=ProcessSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance of Settings. Components take explicit
    arguments and only fall back to this at construction time.
    """
    return Settings()
