"""
Application configuration management using Pydantic Settings.

This module provides a type-safe, centralized configuration system
that loads from environment variables with sensible defaults.
"""

import shlex
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All settings can be overridden via .env file or environment variables.
    Settings are validated at startup using Pydantic.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===== Storage =====
    DATA_DIR: str = Field(
        default="~/.imagegen",
        description="Data root holding the SQLite store and the images/ tree"
    )

    DB_FILENAME: str = Field(
        default="imagegen.db",
        description="SQLite database file name inside DATA_DIR"
    )

    DB_BUSY_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        ge=0.0,
        description="How long a connection waits on a lock held by another process"
    )

    # ===== Generator =====
    GENERATOR_COMMAND: str = Field(
        default="imagegen generate",
        description="Command line of the external image generator (split shell-style)"
    )

    GENERATOR_TIMEOUT_SECONDS: float = Field(
        default=480.0,
        gt=0.0,
        description="Hard limit for one generator invocation (8 minutes)"
    )

    # ===== Worker =====
    ENABLE_IMAGE_WORKER: bool = Field(
        default=True,
        description="Run the background worker inside the web process"
    )

    @field_validator("ENABLE_IMAGE_WORKER", "FAIL_ORPHANED_JOBS_ON_START", "DEBUG", mode="before")
    @classmethod
    def parse_bool_string(cls, v):
        """Parse boolean from string values (container env vars are strings)."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.strip().lower() in ("true", "1", "yes", "on")
        return bool(v)

    WORKER_POLL_INTERVAL_SECONDS: float = Field(
        default=2.0,
        gt=0.0,
        description="Seconds between claim attempts"
    )

    FAIL_ORPHANED_JOBS_ON_START: bool = Field(
        default=False,
        description="Mark jobs left running by a crashed process as failed when the worker starts"
    )

    # ===== Listing Limits =====
    JOB_LIST_LIMIT: int = Field(default=50, ge=1, le=500)
    WORK_ITEM_JOB_LIST_LIMIT: int = Field(default=10, ge=1, le=500)
    WORK_ITEM_IMAGE_LIST_LIMIT: int = Field(default=40, ge=1, le=500)

    # ===== Application Settings =====
    DEBUG: bool = Field(
        default=False,
        description="Include exception details in 500 responses"
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    LOG_BUFFER_SIZE: int = Field(
        default=1000,
        ge=10,
        description="Entries kept in the in-memory log buffer"
    )

    API_HOST: str = Field(default="0.0.0.0", description="API server host")

    API_PORT: int = Field(
        default=8080,
        ge=1024,
        le=65535,
        description="API server port"
    )

    ALLOWED_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    # ===== Computed Properties =====

    @property
    def data_root(self) -> Path:
        return Path(self.DATA_DIR).expanduser()

    @property
    def db_path(self) -> Path:
        return self.data_root / self.DB_FILENAME

    @property
    def generator_argv(self) -> list[str]:
        return shlex.split(self.GENERATOR_COMMAND)

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


# Global configuration instance
# Import this in other modules: from imagegen.config import config
config = AppConfig()


if __name__ == "__main__":
    print("Configuration loaded successfully!")
    print(f"Data root: {config.data_root}")
    print(f"Generator: {config.generator_argv} (timeout {config.GENERATOR_TIMEOUT_SECONDS}s)")
    print(f"Worker: {'enabled' if config.ENABLE_IMAGE_WORKER else 'disabled'} "
          f"(every {config.WORKER_POLL_INTERVAL_SECONDS}s)")
