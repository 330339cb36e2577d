"""
Error classification for polled data sources.

Classifiers map a ``FetchFailure`` to an ``ErrorKind``. The controller uses the
kind to decide between backing off, suspending its timer, or surfacing the
error without a backoff penalty.
"""

import re
from collections.abc import Callable
from enum import Enum

import pydantic

from ..exceptions import (
    AuthFailedError,
    RateLimitedError,
    TransientError,
    ValidationError,
)
from .results import FetchFailure


class ErrorKind(str, Enum):
    """Error taxonomy for fetch failures."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    VALIDATION = "validation"

    @property
    def suspends_polling(self) -> bool:
        """Whether this kind of error disarms the polling timer."""
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.AUTH_FAILED)

    @property
    def counts_towards_backoff(self) -> bool:
        """Whether this kind of error increments the consecutive error count."""
        return self is not ErrorKind.VALIDATION


Classifier = Callable[[FetchFailure], ErrorKind]

RATE_LIMIT_PATTERN = re.compile(r"rate.?limit|too many requests", re.IGNORECASE)
AUTH_FAILURE_PATTERN = re.compile(
    r"unauthori[sz]ed|authenticat|forbidden|token (expired|invalid)", re.IGNORECASE
)

RATE_LIMIT_STATUS_CODES = frozenset({429})
AUTH_FAILURE_STATUS_CODES = frozenset({401, 403})
VALIDATION_STATUS_CODES = frozenset({400, 422})


def _is_validation_error(error: BaseException | None) -> bool:
    return isinstance(error, (ValidationError, pydantic.ValidationError))


def default_classifier(failure: FetchFailure) -> ErrorKind:
    """
    Classify everything as transient, except payload validation failures.

    This is the generic controller policy: rate-limit and authentication
    signatures are not inspected.
    """
    if _is_validation_error(failure.error):
        return ErrorKind.VALIDATION
    return ErrorKind.TRANSIENT


def http_classifier(failure: FetchFailure) -> ErrorKind:
    """
    Classify failures using HTTP status codes and message signatures.

    Typed exceptions take precedence, then status codes, then the message.
    """
    error = failure.error
    if isinstance(error, RateLimitedError):
        return ErrorKind.RATE_LIMITED
    if isinstance(error, AuthFailedError):
        return ErrorKind.AUTH_FAILED
    if _is_validation_error(error):
        return ErrorKind.VALIDATION
    if isinstance(error, TransientError):
        return ErrorKind.TRANSIENT

    status = failure.status_code
    if status in RATE_LIMIT_STATUS_CODES:
        return ErrorKind.RATE_LIMITED
    if status in AUTH_FAILURE_STATUS_CODES:
        return ErrorKind.AUTH_FAILED
    if status in VALIDATION_STATUS_CODES:
        return ErrorKind.VALIDATION

    if RATE_LIMIT_PATTERN.search(failure.message):
        return ErrorKind.RATE_LIMITED
    if AUTH_FAILURE_PATTERN.search(failure.message):
        return ErrorKind.AUTH_FAILED
    return ErrorKind.TRANSIENT
