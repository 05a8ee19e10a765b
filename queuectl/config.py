"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.

These are process settings. The queue tunables that administrators change at
runtime (max_retries, backoff_base) live in the config table of the job store.
"""

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from queuectl.constants import DEFAULT_BACKOFF_BASE, DEFAULT_MAX_RETRIES


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUEUECTL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./queue.db"
    database_busy_timeout_seconds: float = 5.0

    # API Configuration
    api_host: str = "127.0.0.1"
    api_port: int = 4000

    # Worker Configuration
    worker_poll_interval_seconds: float = 1.0
    worker_error_pause_seconds: float = 1.0
    worker_job_timeout_seconds: float = 30.0
    worker_stale_lock_seconds: float = 60.0
    worker_pid_file: str = "./queuectl.pid"

    # Retry policy
    backoff_max_seconds: float = 3600.0

    # Seed values for the config table
    default_max_retries: int = DEFAULT_MAX_RETRIES
    default_backoff_base: int = DEFAULT_BACKOFF_BASE

    # Observability
    metrics_port: int | None = None
    otel_exporter_otlp_endpoint: str | None = None
    otel_service_name: str = "queuectl"
    log_level: str = "INFO"
    log_format: str = "console"  # json or console

    @model_validator(mode="after")
    def check_stale_lock_window(self) -> "Settings":
        # A lock younger than the execution timeout may belong to a live worker
        if self.worker_stale_lock_seconds <= self.worker_job_timeout_seconds:
            raise ValueError(
                "worker_stale_lock_seconds must be greater than "
                "worker_job_timeout_seconds"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
