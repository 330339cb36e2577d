"""
Data monitors for the MamaCare dashboard.

A monitor composes a ``PollingController`` for one data source and adds the
views its consumers need. Monitors are explicit instances owned by whichever
component builds them.
"""

from typing import Any, Generic, TypeVar

import structlog

from .analytics import (
    ActivityStats,
    RecentActivitySummary,
    activity_stats,
    recent_summary,
)
from .api_client import MamaCareAPIClient
from .config import PollingConfig, Settings
from .models import DashboardStats, PatientActivity, PatientActivityData
from .polling.classification import Classifier
from .polling.controller import ControllerState, PollingController, Snapshot
from .polling.results import FetchFn
from .sources import dashboard_source, patient_activity_source

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRACKED_ACTIVITY_REFRESH_DELAY = 1.0


class SourceMonitor(Generic[T]):
    """Base class for monitors backed by a polling controller."""

    def __init__(
        self,
        name: str,
        fetch_fn: FetchFn[T],
        config: PollingConfig,
        classify_error: Classifier | None = None,
    ):
        self.name = name
        self.controller: PollingController[T] = PollingController(
            fetch_fn,
            interval_seconds=config.interval_seconds,
            auto_refresh=config.auto_refresh,
            cooldown_seconds=config.cooldown_seconds,
            max_consecutive_errors=config.max_consecutive_errors,
            max_backoff_seconds=config.max_backoff_seconds,
            classify_error=classify_error,
            name=name,
        )

    @property
    def snapshot(self) -> Snapshot[T]:
        return self.controller.snapshot

    @property
    def state(self) -> ControllerState:
        return self.controller.state

    async def start(self) -> None:
        await self.controller.start()

    async def refetch(self) -> None:
        await self.controller.refetch()

    def stop(self) -> None:
        self.controller.stop()

    async def aclose(self) -> None:
        await self.controller.aclose()

    def status(self) -> dict[str, Any]:
        """Get controller state for display alongside the data."""
        controller = self.controller
        error_state = controller.error_state()
        return {
            "state": controller.state.value,
            "loading": controller.loading,
            "refreshing": controller.refreshing,
            "stale": controller.stale,
            "polling": controller.is_running,
            "auth_failed": controller.auth_failed,
            "rate_limited": controller.rate_limited,
            "last_update": (
                controller.last_update.isoformat() if controller.last_update else None
            ),
            "last_error": controller.last_error,
            "error_kind": (
                controller.last_error_kind.value if controller.last_error_kind else None
            ),
            "consecutive_errors": error_state.consecutive_errors,
            "in_backoff": error_state.in_backoff,
        }


class DashboardMonitor(SourceMonitor[DashboardStats]):
    """Polls dashboard statistics for a reporting period."""

    def __init__(
        self,
        client: MamaCareAPIClient,
        config: PollingConfig,
        period: str = "30d",
    ):
        self.period = period
        super().__init__(
            "dashboard",
            dashboard_source(client, period, config.fetch_timeout_seconds),
            config,
        )

    @classmethod
    def from_settings(
        cls, client: MamaCareAPIClient, settings: Settings
    ) -> "DashboardMonitor":
        return cls(
            client,
            settings.polling_config("dashboard"),
            period=settings.dashboard_period,
        )


class PatientActivityMonitor(SourceMonitor[PatientActivityData]):
    """Polls patient activity analytics and the recent activity feed."""

    def __init__(
        self,
        client: MamaCareAPIClient,
        config: PollingConfig,
        period: str = "7d",
        limit: int = 50,
    ):
        self.client = client
        self.period = period
        self.limit = limit
        super().__init__(
            "activity",
            patient_activity_source(
                client, period, limit, config.fetch_timeout_seconds
            ),
            config,
        )

    @classmethod
    def from_settings(
        cls, client: MamaCareAPIClient, settings: Settings
    ) -> "PatientActivityMonitor":
        return cls(
            client,
            settings.polling_config("activity"),
            period=settings.activity_period,
            limit=settings.activity_limit,
        )

    @property
    def recent_activities(self) -> list[PatientActivity]:
        data = self.controller.data
        return list(data.recent_activities) if data else []

    def activity_stats(self) -> ActivityStats | None:
        data = self.controller.data
        return activity_stats(data.analytics if data else None)

    def recent_summary(self) -> RecentActivitySummary:
        return recent_summary(self.recent_activities)

    async def track_activity(
        self,
        activity_type: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        Record an activity and schedule a background refresh.

        Returns:
            True if the activity was recorded
        """
        try:
            await self.client.track_activity(activity_type, description, metadata)
        except Exception as e:
            logger.error(
                "Failed to track activity",
                activity_type=activity_type,
                error=str(e),
            )
            return False

        self.controller.schedule_tick(TRACKED_ACTIVITY_REFRESH_DELAY)
        return True
