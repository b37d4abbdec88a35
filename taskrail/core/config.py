"""
Core configuration module for taskrail.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_env: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False
    app_name: str = "taskrail"
    app_version: str = "0.1.0"
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR"]] = Field(
        default=None,
        description="Root log level; defaults to DEBUG in dev and INFO otherwise"
    )
    log_json: Optional[bool] = Field(
        default=None,
        description="Render logs as JSON; defaults to true in prod"
    )
    api: str = Field(
        default="/api/v1",
        description="API prefix for the trigger endpoints"
    )

    # Database settings
    database_url: str = Field(
        default="",
        description="Async database URL used by the task log sink"
    )

    # Secondary (durable) execution log settings
    secondary_log_backend: Literal["none", "database", "supabase"] = Field(
        default="none",
        description="Where secondary execution logs are written"
    )
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_api_key: str = Field(default="", description="Supabase service API key")
    supabase_log_table: str = Field(
        default="task_logs",
        description="Table receiving execution log records"
    )
    log_sink_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single secondary log write"
    )
    log_sink_max_attempts: int = Field(
        default=3,
        description="Attempts for a database log write failing on connection errors"
    )
    log_sink_retry_delay_seconds: float = Field(
        default=0.5,
        description="First backoff delay between database log write attempts"
    )

    # Task invocation settings
    task_default_timeout_seconds: float = Field(
        default=300.0,
        description="Maximum duration of a task invocation when the task sets none"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "dev"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "prod"


# Global settings instance
settings = Settings()
