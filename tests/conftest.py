"""
Pytest configuration and fixtures for MamaCare monitor tests.
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from mamacare_monitor.api_client import MamaCareAPIClient
from mamacare_monitor.config import APIConfig, PollingConfig, Settings
from mamacare_monitor.polling.results import FetchFailure, FetchSuccess


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedFetch:
    """
    Fetch function that plays back a script of results.

    Items are returned in order; the last item repeats once the script is
    exhausted. Exceptions in the script are raised instead of returned.
    """

    def __init__(self, *results: Any):
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> Any:
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


def ok(payload: Any) -> FetchSuccess:
    return FetchSuccess(payload)


def fail(message: str = "Network error", status_code: int | None = None) -> FetchFailure:
    return FetchFailure(message=message, status_code=status_code)


def envelope(data: Any, success: bool = True, message: str | None = None) -> dict:
    body: dict[str, Any] = {"success": success, "data": data}
    if message:
        body["message"] = message
    return body


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        api_base_url="http://mamacare.test",
        api_token="test-token",
        log_level="DEBUG",
        log_format="console",
        enable_cors=False,
    )


@pytest.fixture
def polling_config() -> PollingConfig:
    return PollingConfig(
        interval_seconds=60.0,
        cooldown_seconds=10.0,
        max_consecutive_errors=3,
        max_backoff_seconds=300.0,
        auto_refresh=False,
        fetch_timeout_seconds=5.0,
    )


@pytest.fixture
def make_client() -> Callable[..., MamaCareAPIClient]:
    """
    Build an API client whose requests are answered by a handler.

    The handler receives the ``httpx.Request`` and returns either an
    ``httpx.Response`` or a ``(status_code, json_body)`` tuple.
    """

    def factory(handler: Callable[[httpx.Request], Any]) -> MamaCareAPIClient:
        def respond(request: httpx.Request) -> httpx.Response:
            result = handler(request)
            if isinstance(result, httpx.Response):
                return result
            status_code, body = result
            return httpx.Response(status_code, content=json.dumps(body).encode())

        return MamaCareAPIClient(
            APIConfig(base_url="http://mamacare.test", token="test-token"),
            transport=httpx.MockTransport(respond),
        )

    return factory


@pytest.fixture
def sample_overview() -> dict[str, Any]:
    """Sample analytics overview payload."""
    return {
        "totalActivities": 120,
        "activeUsers": 12,
        "activePatients": 30,
        "averageActivitiesPerUser": 10.0,
        "activitiesByType": {"medication": 5, "reading": 5, "health_metric": 2},
        "emergencyCallsCount": 1,
        "healthMetricsCount": 2,
        "symptomLogsCount": 4,
        "medicationComplianceRate": 0.82,
        "engagementTrends": {"2024-01-02": 14, "2024-01-01": 10, "2024-01-03": 9},
    }


@pytest.fixture
def sample_activities() -> list[dict[str, Any]]:
    """Sample recent activities payload."""
    return [
        {
            "id": "a1",
            "type": "emergency_call",
            "description": "Emergency button pressed",
            "timestamp": "2024-01-03T09:00:00Z",
        },
        {
            "id": "a2",
            "type": "health_metric",
            "description": "Blood pressure logged",
            "timestamp": "2024-01-03T10:30:00Z",
        },
        {
            "id": "a3",
            "type": "health_metric",
            "description": "Weight logged",
            "timestamp": "2024-01-02T08:00:00Z",
        },
    ]


@pytest.fixture
def sample_alerts() -> list[dict[str, Any]]:
    """Sample unresolved alerts payload."""
    return [
        {
            "id": "al-1",
            "type": "high_risk",
            "severity": "critical",
            "message": "Blood pressure above threshold",
            "patientId": "p-1",
            "patientName": "Amina K.",
            "timestamp": "2024-01-03T08:00:00Z",
            "resolved": False,
        },
        {
            "id": "al-2",
            "type": "missed_appointment",
            "severity": "warning",
            "message": "ANC visit missed",
            "patientId": "p-2",
            "patientName": "Grace N.",
            "timestamp": "2024-01-03T12:00:00Z",
            "resolved": False,
        },
        {
            "id": "al-3",
            "type": "lab_result",
            "severity": "info",
            "message": "Lab results available",
            "timestamp": "2024-01-01T12:00:00Z",
            "resolved": True,
        },
    ]
