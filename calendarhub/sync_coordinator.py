"""Per-calendar and batch sync orchestration.

A sync runs fetch -> parse -> project -> persist. Any failure resets the
calendar's stored ICS and event columns to empty before the error is re-raised,
so a failed sync leaves explicit emptiness rather than stale data.

At most one sync per calendar id is in flight. A second request for the same
id and URL joins the running sync; a request with a different URL waits for
it to settle and then runs. A sync whose URL no longer matches the stored
record is dropped before persisting and retried against the stored URL.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Optional

from .event_normalizer import EventNormalizer
from .exceptions import CalendarNotFoundError, SyncSupersededError
from .health_tracker import HealthTracker
from .models import (
    EMPTY_EVENTS_JSON,
    BatchSyncResult,
    CalendarSyncOutcome,
    SyncResult,
    events_to_json,
)
from .monitoring_logging import log_monitoring_event
from .view_projector import ViewProjector

logger = logging.getLogger(__name__)


class SyncStage(str, Enum):
    """Stages of a single calendar sync."""

    FETCHING = "fetching"
    PARSING = "parsing"
    PROJECTING = "projecting"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class SyncCoordinator:
    """Runs calendar syncs against a store."""

    def __init__(
        self,
        store: Any,
        fetcher: Any,
        normalizer: Optional[EventNormalizer] = None,
        projector: Optional[ViewProjector] = None,
        health_tracker: Optional[HealthTracker] = None,
    ) -> None:
        """Initialize coordinator.

        Args:
            store: Calendar store (``get_by_id``, ``get_all``, ``update``)
            fetcher: Object with ``async fetch(url) -> str``
            normalizer: Event normalizer (default settings if omitted)
            projector: View projector (default redaction policy if omitted)
            health_tracker: Optional tracker updated after every sync
        """
        self.store = store
        self.fetcher = fetcher
        self.normalizer = normalizer or EventNormalizer()
        self.projector = projector or ViewProjector()
        self.health_tracker = health_tracker or HealthTracker()
        self._in_flight: dict[int, tuple[str, asyncio.Task[SyncResult]]] = {}

    def is_syncing(self, calendar_id: int) -> bool:
        return calendar_id in self._in_flight

    async def sync_one(self, calendar_id: int, url: str) -> SyncResult:
        """Fetch, normalize, project and persist one calendar.

        Args:
            calendar_id: Id of the calendar record to update
            url: Feed URL to fetch

        Returns:
            SyncResult with the raw data, normalized events and both views

        Raises:
            CalendarFetchError, CalendarTimeoutError, ICalParseError,
            CalendarNotFoundError: after the calendar's stored data was reset
        """
        while True:
            try:
                return await self._sync_latest(calendar_id, url)
            except SyncSupersededError as e:
                logger.info(
                    "Calendar %s moved from %s to %s during sync; following the new URL",
                    calendar_id,
                    e.fetched_url,
                    e.current_url,
                )
                url = e.current_url

    async def _sync_latest(self, calendar_id: int, url: str) -> SyncResult:
        while True:
            current = self._in_flight.get(calendar_id)
            if current is None:
                break
            in_flight_url, task = current
            if in_flight_url == url:
                logger.debug("Joining in-flight sync of calendar %s", calendar_id)
                return await asyncio.shield(task)
            logger.debug("Waiting for in-flight sync of calendar %s to settle", calendar_id)
            await asyncio.wait([task])

        task = asyncio.create_task(self._run_sync(calendar_id, url))
        self._in_flight[calendar_id] = (url, task)
        task.add_done_callback(lambda done: self._release(calendar_id, done))
        return await asyncio.shield(task)

    def _release(self, calendar_id: int, task: asyncio.Task[SyncResult]) -> None:
        current = self._in_flight.get(calendar_id)
        if current is not None and current[1] is task:
            del self._in_flight[calendar_id]
        # Mark the exception retrieved; awaiting callers may all have been cancelled
        if not task.cancelled():
            task.exception()

    async def _run_sync(self, calendar_id: int, url: str) -> SyncResult:
        stage = SyncStage.FETCHING
        started = time.monotonic()
        self.health_tracker.record_sync_attempt()
        logger.info("Fetching calendar data for ID %s from %s", calendar_id, url)

        try:
            raw_data = await self.fetcher.fetch(url)

            stage = SyncStage.PARSING
            events = self.normalizer.normalize(raw_data)
            logger.info("Parsed %d events from calendar %s", len(events), calendar_id)

            calendar = await self.store.get_by_id(calendar_id)
            if calendar is None:
                raise CalendarNotFoundError(calendar_id)
            if calendar.url != url:
                raise SyncSupersededError(calendar_id, url, calendar.url)

            stage = SyncStage.PROJECTING
            views = self.projector.project(events, calendar)

            stage = SyncStage.PERSISTING
            updated = await self.store.update(
                calendar_id,
                ical_data=raw_data,
                events_processed=events_to_json(events),
                events_public=events_to_json(views.public_events),
                events_private=events_to_json(views.authenticated_events),
            )
            if updated is None:
                raise CalendarNotFoundError(calendar_id)
            stage = SyncStage.DONE
        except SyncSupersededError:
            raise
        except Exception as e:
            logger.error(
                "Sync of calendar %s failed while %s: %s", calendar_id, stage.value, e
            )
            self.health_tracker.record_sync_failure()
            log_monitoring_event(
                "sync",
                "sync.failed",
                f"Calendar {calendar_id} sync failed",
                level="ERROR",
                details={
                    "calendar_id": calendar_id,
                    "stage": stage.value,
                    "error_type": type(e).__name__,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                    "success": False,
                },
            )
            await self._reset(calendar_id)
            raise

        self.health_tracker.record_sync_success(len(events))
        log_monitoring_event(
            "sync",
            "sync.complete",
            f"Calendar {calendar_id} synced",
            details={
                "calendar_id": calendar_id,
                "events": len(events),
                "public_events": len(views.public_events),
                "authenticated_events": len(views.authenticated_events),
                "bytes": len(raw_data.encode("utf-8")),
                "duration_ms": int((time.monotonic() - started) * 1000),
                "success": True,
            },
        )
        logger.info(
            "Successfully updated calendar %s with %d events (%d public)",
            calendar_id,
            len(events),
            len(views.public_events),
        )
        return SyncResult(
            raw_data=raw_data,
            events=events,
            public_events=views.public_events,
            authenticated_events=views.authenticated_events,
        )

    async def _reset(self, calendar_id: int) -> None:
        """Clear stored ICS and events after a failed sync; never raises."""
        try:
            await self.store.update(
                calendar_id,
                ical_data=None,
                events_processed=EMPTY_EVENTS_JSON,
                events_public=EMPTY_EVENTS_JSON,
                events_private=EMPTY_EVENTS_JSON,
            )
        except Exception:
            logger.exception("Failed to reset calendar %s after failed sync", calendar_id)

    async def sync_all(self) -> BatchSyncResult:
        """Sync every stored calendar, one after another.

        A failing calendar becomes a ``success=False`` entry; the batch goes on.

        Returns:
            BatchSyncResult with counts and per-calendar outcomes
        """
        calendars = await self.store.get_all()
        logger.info("Refetching %d calendars", len(calendars))

        results: list[CalendarSyncOutcome] = []
        for calendar in calendars:
            try:
                result = await self.sync_one(calendar.id, calendar.url)
            except Exception as e:
                logger.warning("Failed to refetch calendar %s: %s", calendar.id, e)
                results.append(
                    CalendarSyncOutcome(calendar_id=calendar.id, success=False, message=str(e))
                )
            else:
                results.append(
                    CalendarSyncOutcome(calendar_id=calendar.id, success=True, result=result)
                )

        successful = sum(1 for outcome in results if outcome.success)
        failed = len(results) - successful
        logger.info("Refetch complete: %d successful, %d failed", successful, failed)
        return BatchSyncResult(
            total=len(calendars), successful=successful, failed=failed, results=results
        )
