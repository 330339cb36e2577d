"""
Polling controller for the MamaCare monitor.

This module owns the fetch cycle for a single data source: an immediate
foreground fetch, a repeating background timer gated by cooldown and error
backoff, manual refetches that bypass the gate, and stale-while-revalidate
snapshots that are never blanked by a failed refresh.
"""

import asyncio
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

import structlog

from ..exceptions import ValidationError
from .backoff import (
    DEFAULT_MAX_BACKOFF_SECONDS,
    ErrorState,
    GateDecision,
    backoff_window,
    evaluate_gate,
)
from .classification import Classifier, ErrorKind, default_classifier
from .metrics import ControllerMetrics
from .results import FetchFailure, FetchFn, FetchResult

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ControllerState(str, Enum):
    """Lifecycle states of a polling controller."""

    IDLE = "idle"
    LOADING = "loading"
    REFRESHING = "refreshing"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    """Last known-good payload plus the time it was fetched."""

    data: T | None = None
    last_update: datetime | None = None

    def __post_init__(self) -> None:
        if self.last_update is not None and self.data is None:
            raise ValueError("Snapshot with last_update must carry data")


ErrorCallback = Callable[[FetchFailure, ErrorKind], None]
UpdateCallback = Callable[["PollingController[Any]"], None]


class PollingController(Generic[T]):
    """
    Periodically invokes a fetch function and keeps the latest good result.

    ``start()`` fetches immediately and arms the timer, ``tick()`` is the
    timer path and the only one subject to cooldown and backoff, ``refetch()``
    always fetches, and ``stop()`` disarms the timer without cancelling a
    fetch that is already in flight.
    """

    def __init__(
        self,
        fetch_fn: FetchFn[T],
        interval_seconds: float = 30.0,
        auto_refresh: bool = True,
        cooldown_seconds: float = 10.0,
        max_consecutive_errors: int = 3,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
        classify_error: Classifier | None = None,
        on_error: ErrorCallback | None = None,
        name: str = "controller",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the polling controller.

        Args:
            fetch_fn: Data source call resolving to a fetch result
            interval_seconds: Nominal polling period
            auto_refresh: Arm the timer on start; otherwise only refetch() fetches
            cooldown_seconds: Minimum spacing between background attempts
            max_consecutive_errors: Failures tolerated before backoff escalates
            max_backoff_seconds: Upper bound for the backoff window
            classify_error: Maps failures to an ErrorKind; defaults to transient
            on_error: Error channel, called for every failed fetch
            name: Source name used in logs and metrics
            clock: Returns the current time in seconds
        """
        if max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be at least 1")

        self.fetch_fn = fetch_fn
        self.interval_seconds = interval_seconds
        self.auto_refresh = auto_refresh
        self.cooldown_seconds = cooldown_seconds
        self.max_consecutive_errors = max_consecutive_errors
        self.max_backoff_seconds = max_backoff_seconds
        self.classify_error = classify_error or default_classifier
        self.on_error = on_error
        self.name = name
        self._clock = clock

        self._snapshot: Snapshot[T] = Snapshot()
        self.loading = False
        self.refreshing = False
        self.consecutive_errors = 0
        self.last_fetch_time = 0.0
        self.last_error: str | None = None
        self.last_error_kind: ErrorKind | None = None
        self.suspended = False

        self.metrics = ControllerMetrics(source=name)

        self._timer_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._ticking: set[asyncio.Task[Any]] = set()
        self._active_fetches = 0
        self._listeners: list[UpdateCallback] = []

    # -- read-only views -------------------------------------------------

    @property
    def snapshot(self) -> Snapshot[T]:
        return self._snapshot

    @property
    def data(self) -> T | None:
        return self._snapshot.data

    @property
    def last_update(self) -> datetime | None:
        return self._snapshot.last_update

    @property
    def state(self) -> ControllerState:
        """Current state of the controller."""
        if self.suspended:
            return ControllerState.SUSPENDED
        if self.loading:
            return ControllerState.LOADING
        if self.refreshing:
            return ControllerState.REFRESHING
        return ControllerState.IDLE

    @property
    def is_running(self) -> bool:
        """Check if the polling timer is armed."""
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def auth_failed(self) -> bool:
        return self.suspended and self.last_error_kind is ErrorKind.AUTH_FAILED

    @property
    def rate_limited(self) -> bool:
        return self.suspended and self.last_error_kind is ErrorKind.RATE_LIMITED

    @property
    def stale(self) -> bool:
        """Data is shown while a refresh is running or after one failed."""
        return self.data is not None and (
            self.refreshing or self.last_error is not None
        )

    def error_state(self) -> ErrorState:
        """Get the current error bookkeeping, including backoff status."""
        window = backoff_window(
            self.consecutive_errors,
            self.max_consecutive_errors,
            self.cooldown_seconds,
            self.max_backoff_seconds,
        )
        elapsed = self._clock() - self.last_fetch_time
        return ErrorState(
            consecutive_errors=self.consecutive_errors,
            in_backoff=window > 0 and elapsed < window,
            backoff_seconds=window,
        )

    def subscribe(self, callback: UpdateCallback) -> Callable[[], None]:
        """
        Register a callback invoked after every completed fetch.

        Returns:
            Function that removes the callback
        """
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    # -- operations ------------------------------------------------------

    async def start(self) -> None:
        """Fetch immediately, then arm the timer when auto refresh is on."""
        self._disarm()
        self.suspended = False

        logger.info(
            "Starting polling controller",
            source=self.name,
            interval_seconds=self.interval_seconds,
            cooldown_seconds=self.cooldown_seconds,
            auto_refresh=self.auto_refresh,
        )

        await self._execute(manual=True)

        if self.auto_refresh and not self.suspended:
            self._arm()

    async def refetch(self) -> None:
        """
        Fetch immediately, bypassing cooldown and backoff.

        A controller suspended by a rate-limit or authentication failure
        resumes its timer when this fetch does not suspend it again.
        """
        was_suspended = self.suspended
        self.suspended = False

        await self._execute(manual=True)

        if (
            was_suspended
            and self.auto_refresh
            and not self.suspended
            and not self.is_running
        ):
            self._arm()

    def stop(self) -> None:
        """Disarm the timer. Safe to call repeatedly or before start()."""
        if self.is_running:
            logger.info("Stopping polling controller", source=self.name)
        self._disarm()

    async def aclose(self) -> None:
        """Stop polling and wait for in-flight fetches to settle."""
        self.stop()
        pending = [task for task in self._tasks if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def tick(self) -> bool:
        """
        Background fetch subject to the cooldown and backoff gate.

        Returns:
            True if a fetch was attempted
        """
        decision = evaluate_gate(
            now=self._clock(),
            last_fetch_time=self.last_fetch_time,
            consecutive_errors=self.consecutive_errors,
            max_consecutive_errors=self.max_consecutive_errors,
            cooldown_seconds=self.cooldown_seconds,
            max_backoff_seconds=self.max_backoff_seconds,
        )

        if decision is not GateDecision.PROCEED:
            self.metrics.record_skip(decision.value)
            logger.debug(
                "Skipping background fetch",
                source=self.name,
                reason=decision.value,
                consecutive_errors=self.consecutive_errors,
            )
            return False

        await self._execute(manual=False)
        return True

    def schedule_tick(self, delay_seconds: float) -> asyncio.Task[bool]:
        """Run a background tick after a delay without blocking the caller."""

        async def delayed() -> bool:
            await asyncio.sleep(delay_seconds)
            return await self.tick()

        return self._spawn(delayed())

    def reset_cooldown(self) -> None:
        """Forget the last attempt and the error count."""
        self.last_fetch_time = 0.0
        self.consecutive_errors = 0
        logger.debug("Cooldown and error count reset", source=self.name)

    # -- internals -------------------------------------------------------

    def _arm(self) -> None:
        self._timer_task = self._spawn(self._run_timer())

    def _disarm(self) -> None:
        task = self._timer_task
        self._timer_task = None
        # A timer in the middle of a tick is detached rather than cancelled:
        # its fetch completes and the loop exits afterwards.
        if task is not None and not task.done() and task not in self._ticking:
            task.cancel()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_timer(self) -> None:
        """Repeating timer loop; runs while it is the armed timer."""
        current = asyncio.current_task()
        while self._timer_task is current:
            await asyncio.sleep(self.interval_seconds)
            if self._timer_task is not current:
                break

            self._ticking.add(current)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error in polling tick", source=self.name, error=str(e))
            finally:
                self._ticking.discard(current)

    async def _execute(self, manual: bool) -> None:
        """Run one fetch and merge the result into the controller state."""
        started = self._clock()
        self.last_fetch_time = started

        if self._snapshot.data is None:
            self.loading = True
        else:
            self.refreshing = True
        self._active_fetches += 1
        self.metrics.record_attempt(manual)

        error_kind: ErrorKind | None = None
        try:
            try:
                result: FetchResult[T] = await self.fetch_fn()
            except Exception as e:
                result = FetchFailure.from_exception(e)

            if result.ok and result.payload is None:
                error = ValidationError("Fetch returned no data")
                result = FetchFailure(message=error.message, error=error)

            if result.ok:
                self._apply_success(result.payload)
            else:
                error_kind = self._apply_failure(result)
        finally:
            self._active_fetches -= 1
            if self._active_fetches == 0:
                self.loading = False
                self.refreshing = False

            finished = self._clock()
            self.metrics.record_result(
                manual=manual,
                start_time=datetime.fromtimestamp(started, UTC),
                duration_seconds=max(0.0, finished - started),
                error_kind=error_kind,
            )

        self._notify_listeners()

    def _apply_success(self, payload: T) -> None:
        self._snapshot = Snapshot(
            data=payload, last_update=datetime.fromtimestamp(self._clock(), UTC)
        )
        previous_errors = self.consecutive_errors
        self.consecutive_errors = 0
        self.last_error = None
        self.last_error_kind = None

        logger.info(
            "Fetch succeeded",
            source=self.name,
            recovered_after_errors=previous_errors or None,
        )

    def _apply_failure(self, failure: FetchFailure) -> ErrorKind:
        try:
            kind = self.classify_error(failure)
        except Exception as e:
            logger.error("Error classifier failed", source=self.name, error=str(e))
            kind = ErrorKind.TRANSIENT

        if kind.counts_towards_backoff:
            self.consecutive_errors += 1
        self.last_error = failure.message
        self.last_error_kind = kind

        logger.warning(
            "Fetch failed",
            source=self.name,
            error=failure.message,
            status_code=failure.status_code,
            error_kind=kind.value,
            consecutive_errors=self.consecutive_errors,
            has_stale_data=self.data is not None,
        )

        if kind.suspends_polling:
            self._suspend(kind)

        if self.on_error is not None:
            try:
                self.on_error(failure, kind)
            except Exception as e:
                logger.error("Error callback failed", source=self.name, error=str(e))

        return kind

    def _suspend(self, kind: ErrorKind) -> None:
        self.suspended = True
        self._disarm()
        self.metrics.record_suspension()
        logger.warning(
            "Polling suspended until restarted",
            source=self.name,
            reason=kind.value,
        )

    def _notify_listeners(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error("Update listener failed", source=self.name, error=str(e))
