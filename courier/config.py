"""Configuration loading for the Courier delivery system.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Provider adapter configuration
    provider_backend: Literal["console", "webhook"] = Field(
        default="console",
        description="Reporting backend that newly captured errors are sent to",
    )
    webhook_url: str = Field(
        default="",
        description="Endpoint that receives JSON-encoded error records",
    )
    webhook_api_key: str = Field(
        default="",
        description="Bearer token sent with webhook deliveries",
    )
    webhook_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for a single webhook request",
    )

    # Persistence configuration
    storage_backend: Literal["memory", "sqlite"] = Field(
        default="sqlite",
        description="Key-value persistence backend type",
    )
    storage_sqlite_path: str = Field(
        default="./data/courier.db",
        description="SQLite database file path",
    )

    # Queue configuration
    queue_max_size: int = Field(
        default=100,
        description="Maximum number of pending items kept in the queue",
    )
    queue_max_age_hours: float = Field(
        default=168.0,
        description="Items older than this are pruned on every sweep (0 disables)",
    )
    max_item_bytes: int = Field(
        default=65536,
        description="Maximum encoded size of a single queued error record",
    )

    # Delivery configuration
    max_retries: int = Field(
        default=3,
        description="Retries allowed after the first failed attempt",
    )
    retry_base_delay_seconds: float = Field(
        default=1.0,
        description="Base delay for exponential retry backoff",
    )
    retry_max_delay_seconds: float = Field(
        default=300.0,
        description="Upper bound for a single backoff delay",
    )
    drain_batch_size: int = Field(
        default=20,
        description="Number of items pulled from a lane per batch",
    )
    sweep_interval_seconds: float = Field(
        default=30.0,
        description="Interval between periodic delivery sweeps",
    )
    send_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single adapter send attempt",
    )

    # Capture configuration
    max_breadcrumbs: int = Field(
        default=100,
        description="Size of the breadcrumb ring buffer",
    )
    max_extra_depth: int = Field(
        default=5,
        description="Maximum nesting depth kept for custom extra data",
    )
    environment: str = Field(
        default="production",
        description="Environment tag attached to every captured error",
    )
    release: str = Field(
        default="",
        description="Release tag attached to every captured error",
    )

    # Connectivity configuration
    connectivity_probe_url: str = Field(
        default="",
        description="URL probed to detect connectivity (empty means always online)",
    )
    connectivity_probe_interval_seconds: float = Field(
        default=15.0,
        description="Interval between connectivity probes",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    # Run mode
    run_mode: Literal["daemon", "cli"] = Field(
        default="daemon",
        description="Run mode",
    )

    # Development
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose output",
    )

    @field_validator("queue_max_size", "drain_batch_size", "max_breadcrumbs")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Ensure size limits are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Ensure retry count is non-negative."""
        if v < 0:
            raise ValueError("max_retries must be non-negative")
        return v

    @field_validator(
        "retry_base_delay_seconds",
        "retry_max_delay_seconds",
        "sweep_interval_seconds",
        "send_timeout_seconds",
        "webhook_timeout_seconds",
        "connectivity_probe_interval_seconds",
    )
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        """Ensure durations are positive."""
        if v <= 0:
            raise ValueError("duration must be positive")
        return v

    @field_validator("queue_max_age_hours")
    @classmethod
    def validate_max_age(cls, v: float) -> float:
        """Ensure max age is non-negative."""
        if v < 0:
            raise ValueError("queue_max_age_hours must be non-negative")
        return v

    @field_validator("max_item_bytes")
    @classmethod
    def validate_max_item_bytes(cls, v: int) -> int:
        """Ensure the item size cap leaves room for a minimal record."""
        if v < 1024:
            raise ValueError("max_item_bytes must be at least 1024")
        return v

    @field_validator("max_extra_depth")
    @classmethod
    def validate_extra_depth(cls, v: int) -> int:
        """Ensure depth limit is at least one level."""
        if v < 1:
            raise ValueError("max_extra_depth must be at least 1")
        return v


def load_settings(env_file: str | None = None) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
