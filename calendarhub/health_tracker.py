"""Sync health tracking for the /api/health endpoint."""

from __future__ import annotations

import os
import time
from dataclasses import asdict, dataclass
from typing import Any, Optional


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    calendar_count: int
    last_sync_event_count: int
    last_sync_success_age_seconds: Optional[int]
    consecutive_failures: int
    background_tasks: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class HealthTracker:
    """Records sync attempts and outcomes."""

    def __init__(self) -> None:
        self._start_time: float = time.time()
        self._last_sync_attempt: Optional[float] = None
        self._last_sync_success: Optional[float] = None
        self._last_event_count: int = 0
        self._consecutive_failures: int = 0
        self._background_heartbeat: Optional[float] = None

    def record_sync_attempt(self) -> None:
        self._last_sync_attempt = time.time()

    def record_sync_success(self, event_count: int) -> None:
        """Record a successful calendar sync.

        Args:
            event_count: Number of normalized events produced by the sync
        """
        self._last_sync_success = time.time()
        self._last_event_count = event_count
        self._consecutive_failures = 0

    def record_sync_failure(self) -> None:
        self._consecutive_failures += 1

    def record_background_heartbeat(self) -> None:
        self._background_heartbeat = time.time()

    def get_uptime_seconds(self) -> int:
        return int(time.time() - self._start_time)

    def get_last_sync_age_seconds(self) -> Optional[int]:
        """Seconds since the last successful sync, or None if none succeeded yet."""
        if self._last_sync_success is None:
            return None
        return int(time.time() - self._last_sync_success)

    def get_background_task_status(self, interval_seconds: Optional[int] = None) -> dict[str, Any]:
        """Describe the periodic refresh task.

        A heartbeat older than twice the refresh interval marks the task stale.
        """
        if self._background_heartbeat is None:
            return {"name": "refresh_loop", "status": "unknown", "last_heartbeat_age_s": None}

        age = int(time.time() - self._background_heartbeat)
        stale_after = 2 * interval_seconds if interval_seconds else 7200
        return {
            "name": "refresh_loop",
            "status": "running" if age < stale_after else "stale",
            "last_heartbeat_age_s": age,
        }

    def determine_overall_status(self) -> str:
        return "degraded" if self._consecutive_failures > 0 else "ok"

    def get_health_status(
        self,
        current_time_iso: str,
        calendar_count: int = 0,
        refresh_interval_seconds: Optional[int] = None,
    ) -> HealthStatus:
        return HealthStatus(
            status=self.determine_overall_status(),
            server_time_iso=current_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            calendar_count=calendar_count,
            last_sync_event_count=self._last_event_count,
            last_sync_success_age_seconds=self.get_last_sync_age_seconds(),
            consecutive_failures=self._consecutive_failures,
            background_tasks=[self.get_background_task_status(refresh_interval_seconds)],
        )
