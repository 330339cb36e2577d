"""
Fetch functions for the polled MamaCare data sources.

Each factory closes over the API client and its query parameters and returns
a fetch function suitable for a ``PollingController``: it resolves to a fetch
result instead of raising, and it is bounded by a timeout.
"""

import asyncio
from typing import Any

from .api_client import MamaCareAPIClient
from .models import (
    ActivityAnalytics,
    Alert,
    DashboardStats,
    Notification,
    PatientActivity,
    PatientActivityData,
)
from .polling.results import FetchFn, as_fetch_fn, with_timeout

DEFAULT_FETCH_TIMEOUT_SECONDS = 20.0

_ALERT_NOTIFICATION_TYPES = {
    "high_risk": "alert",
    "missed_appointment": "appointment",
    "overdue_visit": "appointment",
    "emergency": "alert",
}

_ALERT_TITLES = {
    "high_risk": "High Risk Patient Alert",
    "missed_appointment": "Missed Appointment",
    "overdue_visit": "Overdue Visit",
    "emergency": "Emergency Alert",
}


def alert_to_notification(alert: Alert) -> Notification:
    """Present an alert as a notification."""
    metadata: dict[str, Any] = {
        "alert_type": alert.type,
        "patient_id": alert.patient_id,
        "patient_name": alert.patient_name,
        **alert.metadata,
    }
    return Notification(
        id=alert.id,
        type=_ALERT_NOTIFICATION_TYPES.get(alert.type, "alert"),
        severity=alert.severity,
        title=_ALERT_TITLES.get(alert.type, "Alert"),
        message=alert.message,
        timestamp=alert.timestamp,
        read=alert.resolved,
        action_url=f"/patients/{alert.patient_id}" if alert.patient_id else None,
        metadata=metadata,
    )


def dashboard_source(
    client: MamaCareAPIClient,
    period: str,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
) -> FetchFn[DashboardStats]:
    """Fetch function for dashboard statistics."""

    async def fetch() -> DashboardStats:
        data = await client.get_dashboard_stats(period)
        return DashboardStats.model_validate(data)

    return with_timeout(as_fetch_fn(fetch), timeout_seconds)


def patient_activity_source(
    client: MamaCareAPIClient,
    period: str,
    limit: int = 50,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
) -> FetchFn[PatientActivityData]:
    """
    Fetch function for activity analytics plus recent activities.

    Both calls run concurrently. The analytics overview is required; a
    response without recent activities yields an empty list.
    """

    async def fetch() -> PatientActivityData:
        overview, activities = await asyncio.gather(
            client.get_analytics_overview(period),
            client.get_patient_activity(limit),
        )

        recent: list[PatientActivity] = []
        if isinstance(activities, dict) and activities.get("recentActivities"):
            recent = [
                PatientActivity.model_validate(item)
                for item in activities["recentActivities"]
            ]

        return PatientActivityData(
            analytics=ActivityAnalytics.model_validate(overview),
            recent_activities=recent,
        )

    return with_timeout(as_fetch_fn(fetch), timeout_seconds)


def notification_source(
    client: MamaCareAPIClient,
    limit: int = 50,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
) -> FetchFn[list[Notification]]:
    """Fetch function for unresolved alerts, presented as notifications."""

    async def fetch() -> list[Notification]:
        data = await client.get_alerts(resolved=False, limit=limit, page=1)
        alerts = (data or {}).get("alerts") or []
        return [alert_to_notification(Alert.model_validate(a)) for a in alerts]

    return with_timeout(as_fetch_fn(fetch), timeout_seconds)
