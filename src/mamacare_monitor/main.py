"""
Main application entry point for the MamaCare monitor.

This module sets up the FastAPI application, configures logging, and starts
the polling monitors for the dashboard, patient activity and notification
sources.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, cast

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from .api_client import MamaCareAPIClient
from .config import settings
from .monitors import DashboardMonitor, PatientActivityMonitor, SourceMonitor
from .notifications import NotificationCenter, format_time_ago


def setup_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level), format="%(message)s"
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    logger = structlog.get_logger()

    logger.info("Starting MamaCare monitor")
    logger.info(
        "Configuration loaded",
        api_base_url=settings.api_base_url,
        auto_refresh=settings.auto_refresh,
        debug=settings.debug,
    )

    client = MamaCareAPIClient(settings.api_config)
    monitors: dict[str, SourceMonitor[Any]] = {
        "dashboard": DashboardMonitor.from_settings(client, settings),
        "activity": PatientActivityMonitor.from_settings(client, settings),
        "notifications": NotificationCenter.from_settings(client, settings),
    }

    app.state.api_client = client
    app.state.monitors = monitors

    for name, monitor in monitors.items():
        # start() never raises for fetch failures; they land in controller state.
        await monitor.start()
        logger.info("Monitor started", source=name, state=monitor.state.value)

    yield

    logger.info("Shutting down MamaCare monitor")
    for monitor in monitors.values():
        await monitor.aclose()
    await client.aclose()


app = FastAPI(
    title="MamaCare Monitor",
    description="Polling snapshots of MamaCare dashboard data",
    version="0.1.0",
    lifespan=lifespan,
)

if settings.enable_cors:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )


def _monitors(request: Request) -> dict[str, SourceMonitor[Any]]:
    return request.app.state.monitors


def _monitor(request: Request, source: str) -> SourceMonitor[Any]:
    monitor = _monitors(request).get(source)
    if monitor is None:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source}")
    return monitor


def _dump(data: Any) -> Any:
    if data is None:
        return None
    if isinstance(data, list):
        return [item.model_dump(mode="json") for item in data]
    return data.model_dump(mode="json")


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "MamaCare Monitor", "version": "0.1.0", "status": "active"}


@app.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Health check endpoint with per-source polling health."""
    sources = {
        name: {
            "state": monitor.state.value,
            "polling": monitor.controller.is_running,
            **monitor.controller.metrics.get_health_indicators(),
        }
        for name, monitor in _monitors(request).items()
    }
    return {"status": "healthy", "sources": sources}


@app.get("/metrics")
async def metrics(request: Request) -> dict[str, Any]:
    return {
        name: monitor.controller.metrics.get_summary()
        for name, monitor in _monitors(request).items()
    }


@app.get("/dashboard")
async def dashboard(request: Request) -> dict[str, Any]:
    monitor = _monitor(request, "dashboard")
    return {"data": _dump(monitor.snapshot.data), **monitor.status()}


@app.get("/activity")
async def activity(request: Request) -> dict[str, Any]:
    monitor = cast(PatientActivityMonitor, _monitor(request, "activity"))
    stats = monitor.activity_stats()
    summary = monitor.recent_summary()
    return {
        "data": _dump(monitor.snapshot.data),
        "stats": asdict(stats) if stats else None,
        "summary": asdict(summary),
        **monitor.status(),
    }


@app.get("/notifications")
async def notifications(request: Request) -> dict[str, Any]:
    monitor = cast(NotificationCenter, _monitor(request, "notifications"))
    return {
        "data": [
            {**n.model_dump(mode="json"), "time_ago": format_time_ago(n.timestamp)}
            for n in monitor.notifications()
        ],
        "stats": monitor.stats().model_dump(),
        **monitor.status(),
    }


@app.post("/refresh/{source}")
async def refresh(source: str, request: Request) -> dict[str, Any]:
    """Manual refresh; bypasses cooldown and backoff."""
    monitor = _monitor(request, source)
    await monitor.refetch()
    return monitor.status()


@app.post("/notifications/read-all")
async def mark_all_notifications_read(request: Request) -> dict[str, int]:
    monitor = cast(NotificationCenter, _monitor(request, "notifications"))
    return {"marked": await monitor.mark_all_as_read()}


@app.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: str, request: Request
) -> dict[str, bool]:
    monitor = cast(NotificationCenter, _monitor(request, "notifications"))
    if not await monitor.mark_as_read(notification_id):
        raise HTTPException(
            status_code=404, detail=f"Notification not marked: {notification_id}"
        )
    return {"read": True}


def main() -> None:
    """Main entry point."""
    import uvicorn

    setup_logging()
    logger = structlog.get_logger()

    server = settings.server_config
    logger.info(
        "Starting server", host=server.host, port=server.port, debug=server.debug
    )

    uvicorn.run(
        "mamacare_monitor.main:app",
        host=server.host,
        port=server.port,
        reload=server.debug,
        log_config=None,  # We handle logging ourselves
    )


if __name__ == "__main__":
    main()
