"""
Fetch results for the polling system.

A fetch function never raises to the controller; it resolves to either a
``FetchSuccess`` carrying the payload or a ``FetchFailure`` carrying a
human-readable message and, when known, an HTTP status code.
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from ..exceptions import TransientError

T = TypeVar("T")


@dataclass(frozen=True)
class FetchSuccess(Generic[T]):
    """Successful fetch."""

    payload: T

    ok = True


@dataclass(frozen=True)
class FetchFailure:
    """Failed fetch."""

    message: str
    status_code: int | None = None
    error: BaseException | None = None

    ok = False

    @classmethod
    def from_exception(cls, exc: BaseException) -> "FetchFailure":
        """Build a failure from any exception raised by a fetch."""
        status_code = getattr(exc, "status_code", None)
        message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        return cls(message=message, status_code=status_code, error=exc)


FetchResult = FetchSuccess[T] | FetchFailure
FetchFn = Callable[[], Awaitable[FetchResult[T]]]


def as_fetch_fn(func: Callable[[], Awaitable[T]]) -> FetchFn[T]:
    """
    Adapt a plain coroutine function into a fetch function.

    Return values become ``FetchSuccess``; exceptions become ``FetchFailure``.
    Cancellation still propagates.
    """

    @functools.wraps(func)
    async def wrapper() -> FetchResult[T]:
        try:
            return FetchSuccess(await func())
        except Exception as e:
            return FetchFailure.from_exception(e)

    return wrapper


def with_timeout(fetch_fn: FetchFn[T], timeout_seconds: float) -> FetchFn[T]:
    """
    Wrap a fetch function so that a slow call resolves to a failure.

    Args:
        fetch_fn: Fetch function to wrap
        timeout_seconds: Time allowed for a single call

    Returns:
        Fetch function with the timeout applied
    """

    @functools.wraps(fetch_fn)
    async def wrapper() -> FetchResult[Any]:
        try:
            return await asyncio.wait_for(fetch_fn(), timeout_seconds)
        except asyncio.TimeoutError:
            error = TransientError(
                f"Fetch timed out after {timeout_seconds:g}s",
                context={"timeout_seconds": timeout_seconds},
            )
            return FetchFailure(message=error.message, error=error)

    return wrapper
