"""
Metrics collection and monitoring for polling controllers.

Each controller owns its own collector; there is no process-wide instance.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from .classification import ErrorKind

logger = structlog.get_logger(__name__)


@dataclass
class FetchRecord:
    """Metrics for a single fetch attempt."""

    manual: bool
    start_time: datetime
    duration_seconds: float
    success: bool
    error_kind: ErrorKind | None = None


class PerformanceTracker:
    """Tracks fetch durations over time."""

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self.durations: deque = deque(maxlen=max_history)

    def record(self, duration_seconds: float) -> None:
        self.durations.append(duration_seconds)

    def get_averages(self) -> dict[str, float]:
        """Get average fetch duration."""
        return {
            "avg_fetch_time": (
                sum(self.durations) / len(self.durations) if self.durations else 0
            ),
        }

    def get_percentiles(self) -> dict[str, float]:
        """Get fetch duration percentiles."""
        if not self.durations:
            return {}

        sorted_times = sorted(self.durations)
        n = len(sorted_times)

        return {
            "p50_fetch_time": sorted_times[n // 2],
            "p90_fetch_time": sorted_times[int(n * 0.9)],
            "p99_fetch_time": sorted_times[int(n * 0.99)],
        }


@dataclass
class ControllerMetrics:
    """
    Metrics collector for one polling controller.

    Counts attempts and outcomes, ticks skipped by the cooldown and backoff
    gates, and timer suspensions, and keeps a short history of fetches.
    """

    source: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    total_attempts: int = 0
    manual_attempts: int = 0
    total_successes: int = 0
    total_failures: int = 0
    failures_by_kind: dict[str, int] = field(default_factory=dict)
    skipped_cooldown: int = 0
    skipped_backoff: int = 0
    suspensions: int = 0
    history: list[FetchRecord] = field(default_factory=list)
    max_history: int = 50
    performance_tracker: PerformanceTracker = field(default_factory=PerformanceTracker)

    def record_attempt(self, manual: bool) -> None:
        """Record that a fetch was started."""
        self.total_attempts += 1
        if manual:
            self.manual_attempts += 1

    def record_result(
        self,
        manual: bool,
        start_time: datetime,
        duration_seconds: float,
        error_kind: ErrorKind | None = None,
    ) -> FetchRecord:
        """Record the outcome of a fetch."""
        record = FetchRecord(
            manual=manual,
            start_time=start_time,
            duration_seconds=duration_seconds,
            success=error_kind is None,
            error_kind=error_kind,
        )

        if record.success:
            self.total_successes += 1
        else:
            self.total_failures += 1
            key = error_kind.value
            self.failures_by_kind[key] = self.failures_by_kind.get(key, 0) + 1

        self.performance_tracker.record(duration_seconds)

        self.history.append(record)
        if len(self.history) > self.max_history:
            self.history.pop(0)

        return record

    def record_skip(self, reason: str) -> None:
        """Record a background tick skipped by the gate."""
        if reason == "cooldown":
            self.skipped_cooldown += 1
        elif reason == "backoff":
            self.skipped_backoff += 1

    def record_suspension(self) -> None:
        self.suspensions += 1
        logger.debug("Recorded polling suspension", source=self.source)

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of the collected metrics."""
        uptime_seconds = (datetime.now(UTC) - self.start_time).total_seconds()
        return {
            "source": self.source,
            "uptime_seconds": uptime_seconds,
            "total_attempts": self.total_attempts,
            "manual_attempts": self.manual_attempts,
            "total_successes": self.total_successes,
            "total_failures": self.total_failures,
            "failures_by_kind": dict(self.failures_by_kind),
            "skipped_cooldown": self.skipped_cooldown,
            "skipped_backoff": self.skipped_backoff,
            "suspensions": self.suspensions,
            "success_rate": (
                (self.total_successes / self.total_attempts * 100)
                if self.total_attempts > 0
                else 0
            ),
            "performance": {
                **self.performance_tracker.get_averages(),
                **self.performance_tracker.get_percentiles(),
            },
        }

    def get_health_indicators(self) -> dict[str, Any]:
        """Get health indicators for monitoring."""
        recent = self.history[-10:]
        recent_failures = sum(1 for record in recent if not record.success)

        # Health scoring (0-100)
        health_score = 100.0

        if recent:
            failure_rate = recent_failures / len(recent)
            health_score -= min(failure_rate * 60, 60)  # Max 60 point reduction

        if self.suspensions > 0:
            health_score -= min(self.suspensions * 10, 30)  # Max 30 point reduction

        if health_score >= 90:
            status = "excellent"
        elif health_score >= 75:
            status = "good"
        elif health_score >= 50:
            status = "fair"
        elif health_score >= 25:
            status = "poor"
        else:
            status = "critical"

        return {
            "status": status,
            "health_score": max(0, health_score),
            "recent_failure_count": recent_failures,
            "last_fetch_time": (
                recent[-1].start_time.isoformat() if recent else None
            ),
        }
