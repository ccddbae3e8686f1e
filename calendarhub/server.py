"""aiohttp server wiring: service container, application factory and runner."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from dataclasses import dataclass
from typing import Optional

import httpx
from aiohttp import web

from .background import BackgroundSyncQueue, RefreshLoop
from .config_manager import HubConfig
from .event_normalizer import EventNormalizer
from .feed_builder import FeedService
from .health_tracker import HealthTracker
from .http_client import close_all_clients
from .ics_fetcher import ICSFetcher
from .monitoring_logging import log_monitoring_event
from .routes import register_api_routes, register_feed_routes
from .routes.auth import auth_middleware, error_middleware
from .store import CalendarStore, SettingsStore, open_stores
from .sync_coordinator import SyncCoordinator
from .view_projector import ViewProjector

logger = logging.getLogger(__name__)


@dataclass
class HubServices:
    """Long-lived collaborators shared by the routes and background tasks."""

    config: HubConfig
    calendar_store: CalendarStore
    settings_store: SettingsStore
    fetcher: ICSFetcher
    coordinator: SyncCoordinator
    sync_queue: BackgroundSyncQueue
    feed_service: FeedService
    health_tracker: HealthTracker
    refresh_loop: Optional[RefreshLoop] = None


def build_services(
    config: HubConfig, shared_client: Optional[httpx.AsyncClient] = None
) -> HubServices:
    """Create stores, fetcher, coordinator and background workers from config.

    Args:
        config: Runtime configuration
        shared_client: Optional HTTP client for the fetcher (tests inject a mock transport)
    """
    calendar_store, settings_store = open_stores(config.data_file)
    health_tracker = HealthTracker()
    fetcher = ICSFetcher(timeout_ms=config.fetch_timeout_ms, shared_client=shared_client)
    coordinator = SyncCoordinator(
        calendar_store,
        fetcher,
        normalizer=EventNormalizer(max_occurrences=config.max_occurrences),
        projector=ViewProjector(),
        health_tracker=health_tracker,
    )
    refresh_loop = None
    if config.refresh_interval_seconds > 0:
        refresh_loop = RefreshLoop(
            coordinator, config.refresh_interval_seconds, health_tracker=health_tracker
        )

    return HubServices(
        config=config,
        calendar_store=calendar_store,
        settings_store=settings_store,
        fetcher=fetcher,
        coordinator=coordinator,
        sync_queue=BackgroundSyncQueue(coordinator),
        feed_service=FeedService(calendar_store, settings_store, name=config.feed_name),
        health_tracker=health_tracker,
        refresh_loop=refresh_loop,
    )


def make_app(services: HubServices) -> web.Application:
    """Build the aiohttp application with routes, middlewares and lifecycle hooks."""
    if not services.config.api_token:
        logger.warning("No API token configured; management endpoints will reject every request")

    app = web.Application(middlewares=[auth_middleware(services.config.api_token), error_middleware])
    register_api_routes(app, services)
    register_feed_routes(app, services.feed_service)

    async def _on_startup(_app: web.Application) -> None:
        services.sync_queue.start()
        if services.refresh_loop is not None:
            services.refresh_loop.start()

    async def _on_cleanup(_app: web.Application) -> None:
        if services.refresh_loop is not None:
            await services.refresh_loop.stop()
        await services.sync_queue.stop()
        try:
            await close_all_clients()
            logger.debug("Shared HTTP clients cleaned up")
        except Exception as e:
            logger.warning("Error cleaning up shared HTTP clients: %s", e)

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


async def serve(config: HubConfig, external_stop_event: asyncio.Event | None = None) -> None:
    """Run the server until signalled to stop.

    Args:
        config: Runtime configuration
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are NOT registered (caller owns signal handling).
    """
    stop_event = external_stop_event or asyncio.Event()
    services = build_services(config)
    app = make_app(services)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host=config.server_bind, port=config.server_port)
    try:
        await site.start()
    except OSError as e:
        logger.exception("Failed to start server on %s:%d", config.server_bind, config.server_port)
        log_monitoring_event(
            "server",
            "server.startup.failure",
            f"Failed to start server on {config.server_bind}:{config.server_port}",
            level="CRITICAL",
            details={"host": config.server_bind, "port": config.server_port, "error": str(e)},
        )
        await runner.cleanup()
        raise

    logger.info("Server started on %s:%d", config.server_bind, config.server_port)
    log_monitoring_event(
        "server",
        "server.startup.success",
        "CalendarHub server started",
        level="DEBUG",
        details={"host": config.server_bind, "port": config.server_port, "pid": os.getpid()},
    )

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)

    await stop_event.wait()
    logger.info("Stop event received, shutting down")
    log_monitoring_event(
        "server",
        "server.shutdown.start",
        "Server shutdown initiated",
        level="DEBUG",
        details={"uptime_seconds": services.health_tracker.get_uptime_seconds()},
    )

    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(config: HubConfig) -> None:
    """Start the asyncio event loop and HTTP server; blocks until shutdown."""
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
