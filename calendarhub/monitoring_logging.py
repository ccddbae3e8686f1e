"""Structured JSON telemetry for fetch and sync operations.

Every entry is one JSON line with a fixed schema::

    {"timestamp", "component", "level", "event", "message", "details", "schema_version"}

Entries are emitted on ``calendarhub.monitoring.<component>`` loggers and
reach whatever handlers the root logger has.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import defaultdict, deque
from datetime import UTC, datetime
from typing import Any, Optional

_rate_limiters: dict[str, deque] = defaultdict(lambda: deque(maxlen=100))
_rate_limit_lock = threading.Lock()

_logger_cache: dict[str, MonitoringLogger] = {}

SCHEMA_VERSION = "1.0"

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class LogEntry:
    """Structured log entry with consistent schema."""

    def __init__(
        self,
        component: str,
        level: str,
        event: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        """Initialize log entry.

        Args:
            component: Component name (fetch|sync|feed|server)
            level: Log level (DEBUG|INFO|WARN|ERROR|CRITICAL)
            event: Short event code (e.g., "fetch.complete")
            message: Human readable description
            details: Additional context data
        """
        self.timestamp = datetime.now(UTC)
        self.component = component
        self.level = level.upper()
        self.event = event
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "component": self.component,
            "level": self.level,
            "event": self.event,
            "message": self.message,
            "details": self.details,
            "schema_version": SCHEMA_VERSION,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)


class RateLimiter:
    """Rate limiting for repeated messages, e.g. a feed that fails every refresh."""

    @staticmethod
    def should_log(event_key: str, max_per_minute: int = 5) -> bool:
        """Check if event should be logged based on rate limits.

        Args:
            event_key: Unique key for the event type
            max_per_minute: Maximum events per minute

        Returns:
            True if event should be logged, False if rate limited
        """
        with _rate_limit_lock:
            now = time.time()
            events = _rate_limiters[event_key]

            while events and now - events[0] > 60:
                events.popleft()

            if len(events) < max_per_minute:
                events.append(now)
                return True

            return False

    @staticmethod
    def reset() -> None:
        with _rate_limit_lock:
            _rate_limiters.clear()


class MonitoringLogger:
    """Emits structured monitoring events for one component.

    This logger has no ``exception()`` method: log tracebacks through the
    module's standard logger and keep monitoring entries to structured data.
    """

    def __init__(self, component: str, rate_limiting: bool = True):
        self.component = component
        self.rate_limiting = rate_limiting
        self.logger = logging.getLogger(f"calendarhub.monitoring.{component}")

    def log(
        self,
        level: str,
        event: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
        rate_limit_key: Optional[str] = None,
        max_per_minute: int = 5,
    ) -> bool:
        """Log a structured monitoring event.

        Args:
            level: Log level (DEBUG|INFO|WARN|ERROR|CRITICAL)
            event: Event code (e.g., "fetch.failed")
            message: Human readable message
            details: Additional event details
            rate_limit_key: Optional rate limiting key
            max_per_minute: Rate limit threshold

        Returns:
            True if logged, False if rate limited
        """
        if (
            self.rate_limiting
            and rate_limit_key
            and not RateLimiter.should_log(rate_limit_key, max_per_minute)
        ):
            return False

        entry = LogEntry(self.component, level, event, message, details)
        self.logger.log(LOG_LEVELS.get(level.upper(), logging.INFO), entry.to_json())
        return True


def get_logger(component: str) -> MonitoringLogger:
    """Get or create the cached monitoring logger for a component."""
    if component not in _logger_cache:
        _logger_cache[component] = MonitoringLogger(component)
    return _logger_cache[component]


def log_monitoring_event(
    component: str,
    event: str,
    message: str,
    level: str = "INFO",
    details: Optional[dict[str, Any]] = None,
    **kwargs: Any,
) -> bool:
    """Log a structured event for ``component``."""
    return get_logger(component).log(level, event, message, details=details, **kwargs)
