"""Exception hierarchy for CalendarHub.

Every error raised by the ingestion pipeline derives from ``CalendarHubError``
and carries the HTTP status the web layer should answer with, so routes can
map failures without inspecting message text.
"""

from __future__ import annotations

from typing import Optional


class CalendarHubError(Exception):
    """Base exception for all CalendarHub errors.

    Attributes:
        http_status: Status code the web layer responds with for this error
        kind: Short machine-readable error kind used in JSON error bodies
    """

    http_status = 500
    kind = "internal_error"


class CalendarFetchError(CalendarHubError):
    """Remote calendar could not be retrieved.

    Raised for DNS, connection and protocol failures as well as non-2xx
    responses. ``status_code`` and ``status_text`` are set only when the
    server actually answered.
    """

    http_status = 503
    kind = "fetch_failed"

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        status_text: Optional[str] = None,
    ):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
        self.status_text = status_text


class CalendarTimeoutError(CalendarHubError):
    """Fetch deadline exceeded.

    Kept separate from ``CalendarFetchError`` so callers can retry timeouts
    on a different schedule than hard failures.
    """

    http_status = 504
    kind = "fetch_timeout"

    def __init__(self, message: str, timeout_ms: int, url: Optional[str] = None):
        super().__init__(message)
        self.timeout_ms = timeout_ms
        self.url = url


class ICalParseError(CalendarHubError):
    """The fetched document is not parseable iCalendar data."""

    http_status = 422
    kind = "invalid_calendar_data"


class CalendarNotFoundError(CalendarHubError):
    """The calendar record does not exist (or was deleted mid-sync)."""

    http_status = 404
    kind = "calendar_not_found"

    def __init__(self, calendar_id: int):
        super().__init__(f"Calendar {calendar_id} not found")
        self.calendar_id = calendar_id


class FeedNotFoundError(CalendarHubError):
    """Combined feed requested with a missing or wrong token."""

    http_status = 404
    kind = "feed_not_found"


class CalendarValidationError(CalendarHubError):
    """Request payload or import data failed validation."""

    http_status = 400
    kind = "validation_error"


class AuthenticationError(CalendarHubError):
    """Missing or invalid bearer token on a protected route."""

    http_status = 401
    kind = "unauthorized"


class SyncSupersededError(CalendarHubError):
    """The calendar's URL changed while a sync of the old URL was running."""

    http_status = 409
    kind = "sync_superseded"

    def __init__(self, calendar_id: int, fetched_url: str, current_url: str):
        super().__init__(f"Calendar {calendar_id} now points at {current_url}")
        self.calendar_id = calendar_id
        self.fetched_url = fetched_url
        self.current_url = current_url
