"""
Data models for MamaCare API payloads.

The API speaks camelCase JSON; models accept either the camelCase alias or
the snake_case field name and serialise back to snake_case.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Severity = Literal["critical", "warning", "info"]
NotificationType = Literal["alert", "appointment", "system", "message"]


class APIModel(BaseModel):
    """Base model for API payloads."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class RiskDistribution(APIModel):
    low: int = 0
    medium: int = 0
    high: int = 0


class DashboardStats(APIModel):
    """Dashboard statistics for a reporting period."""

    total_patients: int = 0
    active_patients: int = 0
    todays_appointments: int = 0
    pending_appointments: int = 0
    high_risk_patients: int = 0
    anc_completion_rate: float = 0.0
    risk_distribution: RiskDistribution = Field(default_factory=RiskDistribution)
    anc_visits_by_stage: dict[str, int] = Field(default_factory=dict)
    monthly_trends: list[dict[str, Any]] = Field(default_factory=list)
    recent_activity: list[dict[str, Any]] = Field(default_factory=list)
    upcoming_appointments: list[dict[str, Any]] = Field(default_factory=list)


class TrendPoint(APIModel):
    """One point of an ordered trend series."""

    label: str
    value: float


class ActivityAnalytics(APIModel):
    """Aggregated patient activity analytics."""

    total_activities: int = 0
    active_users: int = 0
    active_patients: int = 0
    average_activities_per_user: float = 0.0
    activities_by_type: dict[str, int] = Field(default_factory=dict)
    emergency_calls_count: int = 0
    health_metrics_count: int = 0
    symptom_logs_count: int = 0
    medication_compliance_rate: float = 0.0
    engagement_trends: list[TrendPoint] = Field(default_factory=list)

    @field_validator("engagement_trends", mode="before")
    @classmethod
    def order_engagement_trends(cls, v: Any) -> Any:
        """
        Normalise engagement trends into an ordered series.

        The API sends a mapping keyed by ISO dates; those keys sort
        chronologically. Lists are taken to be ordered already.
        """
        if v is None:
            return []
        if isinstance(v, dict):
            return [{"label": str(k), "value": v[k]} for k in sorted(v, key=str)]
        return v


class PatientActivity(APIModel):
    """A single tracked patient activity."""

    id: str
    type: str
    description: str = ""
    timestamp: datetime
    metadata: dict[str, Any] | None = None
    user: str | None = None
    patient: str | None = None


class PatientActivityData(APIModel):
    """Snapshot payload for the patient activity source."""

    analytics: ActivityAnalytics
    recent_activities: list[PatientActivity] = Field(default_factory=list)


class Alert(APIModel):
    """Clinical alert raised by the API."""

    id: str
    type: str
    severity: Severity
    message: str
    patient_id: str | None = None
    patient_name: str | None = None
    timestamp: datetime
    resolved: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class AlertStats(APIModel):
    total_unresolved: int = 0
    critical: int = 0
    warning: int = 0
    info: int = 0


class Notification(APIModel):
    """Alert presented as a user notification."""

    id: str
    type: NotificationType
    severity: Severity
    title: str
    message: str
    timestamp: datetime
    read: bool = False
    action_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class NotificationStats(APIModel):
    unread: int = 0
    critical: int = 0
    warning: int = 0
    info: int = 0
    total: int = 0

    @classmethod
    def from_notifications(
        cls, notifications: list[Notification]
    ) -> "NotificationStats":
        """Count notifications by read state and severity."""
        return cls(
            unread=sum(1 for n in notifications if not n.read),
            critical=sum(1 for n in notifications if n.severity == "critical"),
            warning=sum(1 for n in notifications if n.severity == "warning"),
            info=sum(1 for n in notifications if n.severity == "info"),
            total=len(notifications),
        )
