"""
MamaCare API client.

This module wraps the MamaCare REST API used by the admin dashboard. Every
response is an envelope of the form ``{"success": bool, "message": str,
"data": ...}``; failures are raised as typed exceptions so fetch functions can
turn them into classified fetch failures.
"""

from types import TracebackType
from typing import Any

import httpx
import structlog

from .config import APIConfig
from .exceptions import (
    APIError,
    AuthFailedError,
    RateLimitedError,
    TransientError,
)
from .models import AlertStats

logger = structlog.get_logger(__name__)


def _normalise_base_url(base_url: str) -> str:
    base_url = base_url.rstrip("/")
    return base_url if base_url.endswith("/api") else f"{base_url}/api"


class MamaCareAPIClient:
    """
    Async client for the MamaCare REST API.

    The client owns an ``httpx.AsyncClient``; close it with ``aclose()`` or
    use the client as an async context manager.
    """

    def __init__(
        self,
        config: APIConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the API client.

        Args:
            config: API configuration
            transport: Optional httpx transport, used by tests
        """
        self.config = config
        headers = {"Content-Type": "application/json"}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"

        self._client = httpx.AsyncClient(
            base_url=_normalise_base_url(config.base_url),
            headers=headers,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "MamaCareAPIClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """
        Perform a request and unwrap the response envelope.

        Returns:
            The envelope's ``data`` member

        Raises:
            RateLimitedError: HTTP 429
            AuthFailedError: HTTP 401 or 403
            APIError: other HTTP errors or an unsuccessful envelope
            TransientError: network failures and timeouts
        """
        try:
            response = await self._client.request(
                method, path, params=params, json=json
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"Request to {path} timed out") from e
        except httpx.TransportError as e:
            raise TransientError(f"Request to {path} failed: {e}") from e

        body = self._decode(response)
        message = body.get("message") if isinstance(body, dict) else None

        if response.status_code == 429:
            raise RateLimitedError(
                message or "Too many requests",
                retry_after=self._retry_after(response),
                context={"path": path},
            )
        if response.status_code in (401, 403):
            raise AuthFailedError(
                message or "Authentication failed",
                context={"path": path, "status_code": response.status_code},
            )
        if response.is_error:
            raise APIError(
                message or f"Request to {path} failed",
                status_code=response.status_code,
                context={"path": path},
            )

        if not isinstance(body, dict) or not body.get("success"):
            raise APIError(
                message or f"Unsuccessful response from {path}",
                status_code=response.status_code,
                context={"path": path},
            )

        logger.debug("API request completed", method=method, path=path)
        return body.get("data")

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _retry_after(response: httpx.Response) -> float | None:
        # Only the delta-seconds form of Retry-After is honoured.
        value = response.headers.get("Retry-After")
        try:
            return float(value) if value else None
        except ValueError:
            return None

    async def get_dashboard_stats(self, period: str | None = None) -> dict[str, Any]:
        """Get dashboard statistics for a reporting period."""
        params = {"period": period} if period else None
        return await self._request("GET", "/analytics/dashboard", params=params)

    async def get_analytics_overview(self, period: str) -> dict[str, Any]:
        """Get aggregated patient activity analytics."""
        return await self._request(
            "GET", "/dashboard/analytics/overview", params={"period": period}
        )

    async def get_patient_activity(self, limit: int = 50) -> dict[str, Any] | None:
        """Get the most recent patient activities."""
        return await self._request(
            "GET",
            "/dashboard/analytics/patient-activity",
            params={"limit": limit, "includeMetadata": "false"},
        )

    async def track_activity(
        self,
        activity_type: str,
        description: str,
        metadata: dict[str, Any] | None = None,
    ) -> Any:
        """Record a new patient activity."""
        payload: dict[str, Any] = {"type": activity_type, "description": description}
        if metadata:
            payload["metadata"] = metadata
        return await self._request("POST", "/dashboard/activity", json=payload)

    async def get_alerts(
        self, resolved: bool = False, limit: int = 50, page: int = 1
    ) -> dict[str, Any]:
        """Get alerts, unresolved ones by default."""
        params = {
            "resolved": "true" if resolved else "false",
            "limit": str(limit),
            "page": str(page),
        }
        return await self._request("GET", "/alerts", params=params)

    async def get_alert_stats(self) -> AlertStats:
        """Get counts of unresolved alerts by severity."""
        return AlertStats.model_validate(await self._request("GET", "/alerts/stats"))

    async def resolve_alert(self, alert_id: str, notes: str | None = None) -> Any:
        """Mark an alert as resolved."""
        return await self._request(
            "PATCH", f"/alerts/{alert_id}/resolve", json={"notes": notes}
        )
