"""Background sync triggers: a fire-and-forget queue and the periodic refresh loop."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Optional

from .monitoring_logging import log_monitoring_event

logger = logging.getLogger(__name__)


class BackgroundSyncQueue:
    """Queue of calendar syncs processed by a single worker task.

    The web layer enqueues a sync and answers its request right away. The
    outcome is visible only in logs and telemetry.
    """

    def __init__(self, coordinator: Any) -> None:
        self.coordinator = coordinator
        self._queue: asyncio.Queue[tuple[int, str]] = asyncio.Queue()
        self._worker: Optional[asyncio.Task[None]] = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="calendarhub-sync-queue")
            logger.debug("Background sync queue started")

    async def stop(self) -> None:
        """Cancel the worker; queued but unstarted syncs are dropped."""
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        logger.debug("Background sync queue stopped (%d dropped)", self._queue.qsize())

    def enqueue(self, calendar_id: int, url: str) -> None:
        """Schedule a sync of one calendar."""
        self._queue.put_nowait((calendar_id, url))
        logger.debug("Queued background sync of calendar %s", calendar_id)

    async def join(self) -> None:
        """Wait until every queued sync has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            calendar_id, url = await self._queue.get()
            try:
                result = await self.coordinator.sync_one(calendar_id, url)
                logger.info(
                    "Background sync of calendar %s completed (%d events)",
                    calendar_id,
                    len(result.events),
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Background sync of calendar %s failed: %s", calendar_id, e)
                log_monitoring_event(
                    "sync",
                    "sync.background_failed",
                    f"Background sync of calendar {calendar_id} failed",
                    level="WARN",
                    details={"calendar_id": calendar_id, "error_type": type(e).__name__},
                )
            finally:
                self._queue.task_done()


class RefreshLoop:
    """Runs ``sync_all`` once at start and then every ``interval_seconds``."""

    def __init__(
        self,
        coordinator: Any,
        interval_seconds: int,
        health_tracker: Any = None,
        run_immediately: bool = True,
    ) -> None:
        self.coordinator = coordinator
        self.interval_seconds = interval_seconds
        self.health_tracker = health_tracker
        self.run_immediately = run_immediately
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run(), name="calendarhub-refresh-loop")

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def refresh_once(self) -> None:
        if self.health_tracker is not None:
            self.health_tracker.record_background_heartbeat()
        result = await self.coordinator.sync_all()
        logger.info(
            "Periodic refresh: %d/%d calendars synced", result.successful, result.total
        )

    async def run(self) -> None:
        """Background refresher: optional immediate refresh then periodic refreshes."""
        logger.debug("Refresh loop starting with interval %d seconds", self.interval_seconds)

        if self.run_immediately:
            try:
                await self.refresh_once()
            except Exception:
                logger.exception("Initial refresh failed")

        while not self._stop_event.is_set():
            try:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                if self._stop_event.is_set():
                    break
                await self.refresh_once()
            except Exception:
                logger.exception("Periodic refresh failed")
