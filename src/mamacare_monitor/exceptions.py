"""
Custom exceptions for the MamaCare monitor.

This module defines the exception hierarchy used across the service,
including the error taxonomy that drives polling backoff and suspension.
"""

from typing import Any


class MonitorError(Exception):
    """Base exception for MamaCare monitor errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "MONITOR_ERROR"
        self.context = context or {}


class APIError(MonitorError):
    """Exception for MamaCare API related errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "API_ERROR", context)
        self.status_code = status_code


class TransientError(MonitorError):
    """Network or timeout failure that is worth retrying."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "TRANSIENT_ERROR", context)


class RateLimitedError(MonitorError):
    """The upstream API asked us to slow down."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "RATE_LIMITED", context)
        self.retry_after = retry_after


class AuthFailedError(MonitorError):
    """Credentials were rejected by the upstream API."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "AUTH_FAILED", context)


class ValidationError(MonitorError):
    """Non-retryable failure: the request or the payload is malformed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "VALIDATION_ERROR", context)
        self.field = field


class ConfigurationError(MonitorError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)
