"""
Derived views over patient activity snapshots.

Pure functions: they read an already-fetched snapshot and never touch the
network.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from .models import ActivityAnalytics, PatientActivity, TrendPoint

EMERGENCY_TYPE = "emergency_call"
HEALTH_METRIC_TYPE = "health_metric"


@dataclass(frozen=True)
class ActivityStats:
    total_activities: int
    average_per_user: float
    most_active_type: str
    engagement_trend: int


@dataclass(frozen=True)
class RecentActivitySummary:
    total_count: int
    last_activity: datetime | None
    type_breakdown: dict[str, int] = field(default_factory=dict)
    emergency_count: int = 0
    health_metrics_count: int = 0


def most_active_type(counts: dict[str, int]) -> str:
    """
    Get the category with the highest count.

    Ties go to the category encountered first; an empty mapping gives 'none'.
    """
    best: str | None = None
    best_count = 0
    for category, count in counts.items():
        if best is None or count > best_count:
            best, best_count = category, count
    return best if best is not None else "none"


def trend_sign(series: Sequence[TrendPoint | float]) -> int:
    """
    Compare the last two points of an ordered series.

    Returns:
        1 if increasing, -1 if decreasing, 0 if equal or fewer than two points
    """
    if len(series) < 2:
        return 0

    previous, current = (
        point.value if isinstance(point, TrendPoint) else point
        for point in series[-2:]
    )
    if current > previous:
        return 1
    if current < previous:
        return -1
    return 0


def activity_stats(analytics: ActivityAnalytics | None) -> ActivityStats | None:
    """Summarise activity analytics; None when nothing has been fetched yet."""
    if analytics is None:
        return None

    average = analytics.average_activities_per_user
    if not average and analytics.active_users:
        average = analytics.total_activities / analytics.active_users

    return ActivityStats(
        total_activities=analytics.total_activities,
        average_per_user=average,
        most_active_type=most_active_type(analytics.activities_by_type),
        engagement_trend=trend_sign(analytics.engagement_trends),
    )


def recent_summary(
    activities: Iterable[PatientActivity],
    emergency_type: str = EMERGENCY_TYPE,
    metric_type: str = HEALTH_METRIC_TYPE,
) -> RecentActivitySummary:
    """
    Summarise a list of recent activities.

    Args:
        activities: Recent activities, in any order
        emergency_type: Activity type counted as emergencies
        metric_type: Activity type counted as health metrics

    Returns:
        Count, most recent timestamp, per-type counts and the two special counts
    """
    activities = list(activities)

    breakdown: dict[str, int] = {}
    for activity in activities:
        breakdown[activity.type] = breakdown.get(activity.type, 0) + 1

    return RecentActivitySummary(
        total_count=len(activities),
        last_activity=max((a.timestamp for a in activities), default=None),
        type_breakdown=breakdown,
        emergency_count=breakdown.get(emergency_type, 0),
        health_metrics_count=breakdown.get(metric_type, 0),
    )
