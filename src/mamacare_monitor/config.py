"""
Configuration management for the MamaCare monitor.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation.
"""

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

_PERIOD_PATTERN = re.compile(r"^\d+[dwmy]$")


class ServerConfig(BaseModel):
    """Web server configuration settings."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")


class APIConfig(BaseModel):
    """MamaCare API client configuration settings."""

    base_url: str = Field(..., description="MamaCare API root URL")
    token: str = Field(default="", description="Bearer token")
    timeout_seconds: float = Field(default=30.0, description="HTTP client timeout")


class PollingConfig(BaseModel):
    """Polling configuration for a single data source."""

    interval_seconds: float = Field(
        default=30.0, description="Nominal polling period in seconds"
    )
    cooldown_seconds: float = Field(
        default=10.0, description="Minimum spacing between background fetches"
    )
    max_consecutive_errors: int = Field(
        default=3, description="Failures tolerated before backoff escalates"
    )
    max_backoff_seconds: float = Field(
        default=300.0, description="Upper bound for the error backoff window"
    )
    auto_refresh: bool = Field(default=True, description="Enable timer-driven polls")
    fetch_timeout_seconds: float = Field(
        default=20.0, description="Timeout wrapped around every fetch"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # MamaCare API
    api_base_url: str = Field(
        default="http://localhost:5000", description="MamaCare API URL"
    )
    api_token: str = Field(default="", description="MamaCare API bearer token")
    api_timeout_seconds: float = Field(default=30.0, description="HTTP timeout")
    fetch_timeout_seconds: float = Field(
        default=20.0, description="Per-fetch timeout for polled sources"
    )

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format")

    # Dashboard source
    dashboard_period: str = Field(default="30d", description="Dashboard period")
    dashboard_interval_seconds: float = Field(default=30.0)
    dashboard_cooldown_seconds: float = Field(default=10.0)

    # Patient activity source
    activity_period: str = Field(default="7d", description="Activity period")
    activity_limit: int = Field(default=50, description="Recent activities fetched")
    activity_interval_seconds: float = Field(default=30.0)
    activity_cooldown_seconds: float = Field(default=10.0)

    # Notification source
    notification_limit: int = Field(default=50, description="Alerts fetched")
    notification_interval_seconds: float = Field(default=600.0)
    notification_cooldown_seconds: float = Field(default=60.0)

    # Shared polling behaviour
    max_consecutive_errors: int = Field(
        default=3, description="Failures tolerated before backoff escalates"
    )
    max_backoff_seconds: float = Field(default=300.0, description="Backoff cap")
    auto_refresh: bool = Field(default=True, description="Enable auto refresh")

    # Security
    allowed_origins: str | list[str] = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)",
    )
    enable_cors: bool = Field(default=True, description="Enable CORS")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v: Any) -> list[str]:
        """Parse allowed origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        elif isinstance(v, list):
            return v
        else:
            error_msg = f"allowed_origins must be a string or list, got {type(v)}"
            raise ValueError(error_msg)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()

    @field_validator("dashboard_period", "activity_period")
    @classmethod
    def validate_period(cls, v: str) -> str:
        """Validate reporting periods such as '7d' or '12m'."""
        if not _PERIOD_PATTERN.match(v):
            raise ValueError(f"Invalid reporting period: {v}")
        return v

    @field_validator(
        "dashboard_interval_seconds",
        "dashboard_cooldown_seconds",
        "activity_interval_seconds",
        "activity_cooldown_seconds",
        "notification_interval_seconds",
        "notification_cooldown_seconds",
        "max_backoff_seconds",
        "fetch_timeout_seconds",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Durations must not be negative."""
        if v < 0:
            raise ValueError(f"Duration must be non-negative, got {v}")
        return v

    @field_validator("max_consecutive_errors")
    @classmethod
    def validate_max_consecutive_errors(cls, v: int) -> int:
        """At least one failure must be tolerated before backoff applies."""
        if v < 1:
            raise ValueError("max_consecutive_errors must be at least 1")
        return v

    @property
    def server_config(self) -> ServerConfig:
        """Get server configuration."""
        return ServerConfig(host=self.host, port=self.port, debug=self.debug)

    @property
    def api_config(self) -> APIConfig:
        """Get API client configuration."""
        return APIConfig(
            base_url=self.api_base_url,
            token=self.api_token,
            timeout_seconds=self.api_timeout_seconds,
        )

    def polling_config(self, source: str) -> PollingConfig:
        """
        Get polling configuration for a data source.

        Args:
            source: One of 'dashboard', 'activity' or 'notifications'

        Returns:
            Polling configuration for the source
        """
        intervals = {
            "dashboard": (
                self.dashboard_interval_seconds,
                self.dashboard_cooldown_seconds,
            ),
            "activity": (
                self.activity_interval_seconds,
                self.activity_cooldown_seconds,
            ),
            "notifications": (
                self.notification_interval_seconds,
                self.notification_cooldown_seconds,
            ),
        }
        if source not in intervals:
            raise ConfigurationError(
                f"Unknown polling source: {source}", context={"source": source}
            )

        interval, cooldown = intervals[source]
        return PollingConfig(
            interval_seconds=interval,
            cooldown_seconds=cooldown,
            max_consecutive_errors=self.max_consecutive_errors,
            max_backoff_seconds=self.max_backoff_seconds,
            auto_refresh=self.auto_refresh,
            fetch_timeout_seconds=self.fetch_timeout_seconds,
        )


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance


def __getattr__(name: str) -> Any:
    """Allow module-level access to settings attributes."""
    if name == "settings":
        return get_settings()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
