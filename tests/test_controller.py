"""
Tests for the polling controller.

Covers the snapshot semantics, the cooldown and backoff gate on background
ticks, manual refetches, timer lifecycle and error-driven suspension.
"""

import asyncio
from datetime import UTC, datetime

import pytest
from conftest import FakeClock, ScriptedFetch, fail, ok

from mamacare_monitor.exceptions import ValidationError
from mamacare_monitor.polling.classification import ErrorKind, http_classifier
from mamacare_monitor.polling.controller import (
    ControllerState,
    PollingController,
    Snapshot,
)
from mamacare_monitor.polling.results import FetchFailure


def make_controller(fetch, clock=None, **kwargs) -> PollingController:
    options = {
        "interval_seconds": 60.0,
        "auto_refresh": False,
        "cooldown_seconds": 10.0,
        "max_consecutive_errors": 3,
    }
    options.update(kwargs)
    if clock is not None:
        options["clock"] = clock
    return PollingController(fetch, **options)


async def wait_for(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until the predicate holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


class TestSnapshot:
    def test_empty_snapshot(self):
        snapshot = Snapshot()
        assert snapshot.data is None
        assert snapshot.last_update is None

    def test_last_update_requires_data(self):
        with pytest.raises(ValueError):
            Snapshot(data=None, last_update=datetime.now(UTC))


class TestFetchExecution:
    """Snapshot merging on success and failure."""

    @pytest.mark.asyncio
    async def test_new_controller_starts_empty(self, clock: FakeClock):
        controller = make_controller(ScriptedFetch(ok(1)), clock)

        assert controller.data is None
        assert controller.last_update is None
        assert controller.consecutive_errors == 0
        assert controller.state is ControllerState.IDLE

    @pytest.mark.asyncio
    async def test_success_replaces_data_and_sets_last_update(self, clock: FakeClock):
        controller = make_controller(ScriptedFetch(ok({"patients": 3})), clock)

        await controller.refetch()

        assert controller.data == {"patients": 3}
        assert controller.last_update == datetime.fromtimestamp(clock.now, UTC)
        assert controller.last_error is None

    @pytest.mark.asyncio
    async def test_failure_keeps_stale_data(self, clock: FakeClock):
        controller = make_controller(
            ScriptedFetch(ok({"patients": 3}), fail("Server unavailable")), clock
        )
        await controller.refetch()
        before = controller.snapshot

        clock.advance(30)
        await controller.refetch()

        assert controller.snapshot == before
        assert controller.data == {"patients": 3}
        assert controller.consecutive_errors == 1
        assert controller.last_error == "Server unavailable"
        assert controller.stale is True

    @pytest.mark.asyncio
    async def test_failure_on_first_fetch_leaves_snapshot_empty(
        self, clock: FakeClock
    ):
        controller = make_controller(ScriptedFetch(fail()), clock)

        await controller.refetch()

        assert controller.data is None
        assert controller.last_update is None
        assert controller.stale is False

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_errors(self, clock: FakeClock):
        controller = make_controller(ScriptedFetch(ok("fresh")), clock)
        controller.consecutive_errors = 7

        await controller.refetch()

        assert controller.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_raised_exception_becomes_failure(self, clock: FakeClock):
        controller = make_controller(
            ScriptedFetch(RuntimeError("connection reset")), clock
        )

        await controller.refetch()

        assert controller.consecutive_errors == 1
        assert controller.last_error == "connection reset"
        assert controller.last_error_kind is ErrorKind.TRANSIENT

    @pytest.mark.asyncio
    async def test_empty_payload_is_a_validation_failure(self, clock: FakeClock):
        controller = make_controller(ScriptedFetch(ok(None)), clock)

        await controller.refetch()

        assert controller.data is None
        assert controller.last_error_kind is ErrorKind.VALIDATION
        assert controller.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_validation_failure_has_no_backoff_penalty(self, clock: FakeClock):
        failure = FetchFailure(
            message="Invalid period", error=ValidationError("Invalid period")
        )
        controller = make_controller(ScriptedFetch(failure), clock)
        controller.consecutive_errors = 2

        await controller.refetch()

        assert controller.consecutive_errors == 2
        assert controller.last_error == "Invalid period"
        assert controller.last_error_kind is ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_loading_only_for_initial_fetch(self, clock: FakeClock):
        observed = []
        controller: PollingController

        async def fetch():
            observed.append((controller.loading, controller.refreshing))
            return ok(len(observed))

        controller = make_controller(fetch, clock)

        await controller.refetch()
        await controller.refetch()

        assert observed == [(True, False), (False, True)]
        assert controller.loading is False
        assert controller.refreshing is False

    @pytest.mark.asyncio
    async def test_last_fetch_time_recorded_before_call_resolves(
        self, clock: FakeClock
    ):
        seen = []
        controller: PollingController

        async def fetch():
            seen.append(controller.last_fetch_time)
            clock.advance(5)
            return ok("slow")

        controller = make_controller(fetch, clock)
        started = clock.now

        await controller.refetch()

        assert seen == [started]
        assert controller.last_fetch_time == started

    @pytest.mark.asyncio
    async def test_error_callback_receives_failure_and_kind(self, clock: FakeClock):
        received = []
        controller = make_controller(
            ScriptedFetch(fail("Too many requests", 429)),
            clock,
            classify_error=http_classifier,
            on_error=lambda failure, kind: received.append((failure.message, kind)),
        )

        await controller.refetch()

        assert received == [("Too many requests", ErrorKind.RATE_LIMITED)]

    @pytest.mark.asyncio
    async def test_failing_error_callback_does_not_escape(self, clock: FakeClock):
        def broken(failure, kind):
            raise RuntimeError("listener bug")

        controller = make_controller(ScriptedFetch(fail()), clock, on_error=broken)

        await controller.refetch()

        assert controller.consecutive_errors == 1

    @pytest.mark.asyncio
    async def test_subscribers_notified_after_fetch(self, clock: FakeClock):
        updates = []
        controller = make_controller(ScriptedFetch(ok(1), ok(2)), clock)
        unsubscribe = controller.subscribe(lambda c: updates.append(c.data))

        await controller.refetch()
        unsubscribe()
        await controller.refetch()

        assert updates == [1]


class TestBackgroundGate:
    """Cooldown and backoff apply to tick() only."""

    @pytest.mark.asyncio
    async def test_ticks_within_cooldown_fetch_once(self, clock: FakeClock):
        fetch = ScriptedFetch(ok("data"))
        controller = make_controller(fetch, clock, cooldown_seconds=10.0)

        first = await controller.tick()
        clock.advance(5)
        second = await controller.tick()

        assert (first, second) == (True, False)
        assert fetch.calls == 1
        assert controller.metrics.skipped_cooldown == 1

    @pytest.mark.asyncio
    async def test_skipped_tick_changes_nothing(self, clock: FakeClock):
        controller = make_controller(ScriptedFetch(ok("data")), clock)
        await controller.tick()
        last_fetch_time = controller.last_fetch_time
        snapshot = controller.snapshot

        clock.advance(1)
        await controller.tick()

        assert controller.last_fetch_time == last_fetch_time
        assert controller.snapshot is snapshot

    @pytest.mark.asyncio
    async def test_backoff_after_repeated_errors(self, clock: FakeClock):
        fetch = ScriptedFetch(fail())
        controller = make_controller(
            fetch, clock, cooldown_seconds=1.0, max_consecutive_errors=3
        )
        controller.consecutive_errors = 3
        controller.last_fetch_time = clock.now

        clock.advance(1.5)
        assert await controller.tick() is False
        assert fetch.calls == 0
        assert controller.metrics.skipped_backoff == 1

        clock.advance(1.0)
        assert await controller.tick() is True
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self, clock: FakeClock):
        fetch = ScriptedFetch(fail())
        controller = make_controller(
            fetch,
            clock,
            cooldown_seconds=60.0,
            max_consecutive_errors=3,
            max_backoff_seconds=300.0,
        )
        controller.consecutive_errors = 20
        controller.last_fetch_time = clock.now

        clock.advance(299)
        assert await controller.tick() is False
        clock.advance(2)
        assert await controller.tick() is True

    @pytest.mark.asyncio
    async def test_refetch_bypasses_cooldown(self, clock: FakeClock):
        fetch = ScriptedFetch(ok("data"))
        controller = make_controller(fetch, clock, cooldown_seconds=60.0)

        await controller.refetch()
        clock.advance(0.001)
        await controller.refetch()

        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_refetch_bypasses_backoff(self, clock: FakeClock):
        fetch = ScriptedFetch(ok("data"))
        controller = make_controller(fetch, clock, cooldown_seconds=60.0)
        controller.consecutive_errors = 10
        controller.last_fetch_time = clock.now

        await controller.refetch()

        assert fetch.calls == 1
        assert controller.consecutive_errors == 0

    @pytest.mark.asyncio
    async def test_error_state_reports_backoff(self, clock: FakeClock):
        controller = make_controller(
            ScriptedFetch(fail()), clock, cooldown_seconds=1.0
        )
        controller.consecutive_errors = 3
        controller.last_fetch_time = clock.now

        clock.advance(1.5)
        state = controller.error_state()

        assert state.consecutive_errors == 3
        assert state.in_backoff is True
        assert state.backoff_seconds == 2.0

    @pytest.mark.asyncio
    async def test_reset_cooldown_allows_immediate_tick(self, clock: FakeClock):
        fetch = ScriptedFetch(ok("data"))
        controller = make_controller(fetch, clock, cooldown_seconds=60.0)
        await controller.tick()

        controller.reset_cooldown()
        await controller.tick()

        assert fetch.calls == 2


class TestTimerLifecycle:
    """start(), stop() and the repeating timer."""

    @pytest.mark.asyncio
    async def test_stop_before_start_is_safe(self):
        controller = make_controller(ScriptedFetch(ok(1)))

        controller.stop()
        controller.stop()

        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_start_fetches_immediately_without_auto_refresh(self):
        fetch = ScriptedFetch(ok(1))
        controller = make_controller(fetch, auto_refresh=False)

        await controller.start()

        assert fetch.calls == 1
        assert controller.data == 1
        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_timer_ticks_repeatedly(self):
        fetch = ScriptedFetch(ok(1))
        controller = make_controller(
            fetch, auto_refresh=True, interval_seconds=0.01, cooldown_seconds=0.0
        )

        await controller.start()
        assert controller.is_running is True
        await wait_for(lambda: fetch.calls >= 3)

        await controller.aclose()
        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_stop_prevents_further_attempts(self):
        fetch = ScriptedFetch(ok(1))
        controller = make_controller(
            fetch, auto_refresh=True, interval_seconds=0.01, cooldown_seconds=0.0
        )
        await controller.start()
        await wait_for(lambda: fetch.calls >= 2)

        controller.stop()
        calls = fetch.calls
        await asyncio.sleep(0.05)

        assert fetch.calls == calls
        await controller.aclose()

    @pytest.mark.asyncio
    async def test_stop_lets_in_flight_fetch_complete(self):
        release = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(len(calls) + 1)
            if len(calls) > 1:
                await release.wait()
            return ok(len(calls))

        controller = make_controller(
            fetch, auto_refresh=True, interval_seconds=0.01, cooldown_seconds=0.0
        )
        await controller.start()
        await wait_for(lambda: len(calls) == 2)

        controller.stop()
        release.set()
        await controller.aclose()

        assert controller.data == 2
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_during_tick_disarms_timer(self, clock: FakeClock):
        fetch = ScriptedFetch(ok("first"), fail("Too many requests", 429), ok("again"))
        controller = make_controller(
            fetch,
            clock,
            auto_refresh=True,
            interval_seconds=3600.0,
            classify_error=http_classifier,
        )

        await controller.start()
        assert controller.is_running is True

        clock.advance(30)
        await controller.tick()

        assert controller.is_running is False
        assert controller.state is ControllerState.SUSPENDED
        assert controller.rate_limited is True
        assert controller.data == "first"
        assert controller.metrics.suspensions == 1

        await controller.start()

        assert controller.is_running is True
        assert controller.state is ControllerState.IDLE
        assert controller.data == "again"
        await controller.aclose()

    @pytest.mark.asyncio
    async def test_auth_failure_suspends_with_distinct_state(self, clock: FakeClock):
        controller = make_controller(
            ScriptedFetch(fail("Unauthorized", 401)),
            clock,
            auto_refresh=True,
            interval_seconds=3600.0,
            classify_error=http_classifier,
        )

        await controller.start()

        assert controller.is_running is False
        assert controller.auth_failed is True
        assert controller.rate_limited is False
        assert controller.state is ControllerState.SUSPENDED

    @pytest.mark.asyncio
    async def test_refetch_resumes_suspended_timer(self, clock: FakeClock):
        controller = make_controller(
            ScriptedFetch(fail("rate limit exceeded"), ok("back")),
            clock,
            auto_refresh=True,
            interval_seconds=3600.0,
            classify_error=http_classifier,
        )
        await controller.start()
        assert controller.state is ControllerState.SUSPENDED

        await controller.refetch()

        assert controller.is_running is True
        assert controller.data == "back"
        await controller.aclose()

    @pytest.mark.asyncio
    async def test_refetch_after_stop_does_not_rearm(self, clock: FakeClock):
        controller = make_controller(
            ScriptedFetch(ok(1)), clock, auto_refresh=True, interval_seconds=3600.0
        )
        await controller.start()
        controller.stop()

        await controller.refetch()

        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_default_classifier_never_suspends(self, clock: FakeClock):
        controller = make_controller(
            ScriptedFetch(fail("Too many requests", 429)),
            clock,
            auto_refresh=True,
            interval_seconds=3600.0,
        )

        await controller.start()

        assert controller.is_running is True
        assert controller.state is ControllerState.IDLE
        await controller.aclose()

    @pytest.mark.asyncio
    async def test_schedule_tick_runs_in_background(self, clock: FakeClock):
        fetch = ScriptedFetch(ok(1))
        controller = make_controller(fetch, clock)

        task = controller.schedule_tick(0.0)
        assert await task is True

        assert fetch.calls == 1


def test_max_consecutive_errors_must_be_positive():
    with pytest.raises(ValueError):
        PollingController(ScriptedFetch(ok(1)), max_consecutive_errors=0)
