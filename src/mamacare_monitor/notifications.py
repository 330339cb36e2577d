"""
Notification centre for the MamaCare dashboard.

Unresolved clinical alerts are polled, presented as notifications, and can be
marked as read (which resolves the underlying alert). This source opts in to
HTTP error classification, so a rate-limit or authentication failure suspends
polling until the consumer restarts it.
"""

import asyncio
from datetime import UTC, datetime

import structlog

from .api_client import MamaCareAPIClient
from .config import PollingConfig, Settings
from .models import Notification, NotificationStats, NotificationType, Severity
from .monitors import SourceMonitor
from .polling.backoff import ErrorState
from .polling.classification import http_classifier
from .sources import notification_source

logger = structlog.get_logger(__name__)


class NotificationCenter(SourceMonitor[list[Notification]]):
    """Polls alerts and tracks their read state."""

    def __init__(
        self,
        client: MamaCareAPIClient,
        config: PollingConfig,
        limit: int = 50,
    ):
        self.client = client
        super().__init__(
            "notifications",
            notification_source(client, limit, config.fetch_timeout_seconds),
            config,
            classify_error=http_classifier,
        )

    @classmethod
    def from_settings(
        cls, client: MamaCareAPIClient, settings: Settings
    ) -> "NotificationCenter":
        return cls(
            client,
            settings.polling_config("notifications"),
            limit=settings.notification_limit,
        )

    def notifications(self) -> list[Notification]:
        """Get the current notifications without an API call."""
        return list(self.controller.data or [])

    def stats(self) -> NotificationStats:
        return NotificationStats.from_notifications(self.notifications())

    def recent(self, limit: int = 10) -> list[Notification]:
        """Get the newest notifications first."""
        return sorted(self.notifications(), key=lambda n: n.timestamp, reverse=True)[
            :limit
        ]

    def unread(self) -> list[Notification]:
        return [n for n in self.notifications() if not n.read]

    def by_type(self, notification_type: NotificationType) -> list[Notification]:
        return [n for n in self.notifications() if n.type == notification_type]

    def by_severity(self, severity: Severity) -> list[Notification]:
        return [n for n in self.notifications() if n.severity == severity]

    def _find(self, notification_id: str) -> Notification | None:
        for notification in self.controller.data or []:
            if notification.id == notification_id:
                return notification
        return None

    async def mark_as_read(self, notification_id: str) -> bool:
        """
        Mark a notification as read, resolving the alert behind it.

        Returns:
            True if the notification exists and was marked
        """
        notification = self._find(notification_id)
        if notification is None:
            return False

        try:
            if notification.type == "alert":
                await self.client.resolve_alert(
                    notification_id, "Marked as read from notification panel"
                )
        except Exception as e:
            logger.error(
                "Failed to mark notification as read",
                notification_id=notification_id,
                error=str(e),
            )
            return False

        notification.read = True
        return True

    async def mark_all_as_read(self) -> int:
        """
        Mark every notification as read.

        Alerts are resolved concurrently; an individual failure is logged and
        does not stop the others.

        Returns:
            Number of notifications newly marked as read
        """
        unread = self.unread()
        alerts = [n for n in unread if n.type == "alert"]

        results = await asyncio.gather(
            *(
                self.client.resolve_alert(n.id, "Marked as read (bulk action)")
                for n in alerts
            ),
            return_exceptions=True,
        )
        for notification, result in zip(alerts, results):
            if isinstance(result, Exception):
                logger.warning(
                    "Failed to resolve alert during bulk read",
                    notification_id=notification.id,
                    error=str(result),
                )

        for notification in unread:
            notification.read = True
        return len(unread)

    async def reset_cooldown(self) -> None:
        """Manual refresh: forget the cooldown and error count, then fetch."""
        self.controller.reset_cooldown()
        await self.controller.refetch()

    def error_state(self) -> ErrorState:
        return self.controller.error_state()


def format_time_ago(timestamp: datetime, now: datetime | None = None) -> str:
    """Format a timestamp relative to now for display."""
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    seconds = int((now - timestamp).total_seconds())

    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{seconds // 60} min ago"
    if seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if seconds < 604800:
        days = seconds // 86400
        return f"{days} day{'s' if days > 1 else ''} ago"
    return timestamp.date().isoformat()
