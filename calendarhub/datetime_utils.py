"""Date and time formatting helpers for normalized calendar events.

Three kinds of temporal values show up in iCalendar data and each keeps its
own output form:

- pure dates (all-day events) -> ``YYYY-MM-DD``
- floating datetimes (no zone) -> ``YYYY-MM-DDTHH:MM:SS``, wall-clock preserved
- zoned datetimes -> UTC instant ``YYYY-MM-DDTHH:MM:SS.mmmZ``
"""

from datetime import UTC, date, datetime, time, timedelta
from typing import Union

TemporalValue = Union[date, datetime]

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def is_pure_date(value: TemporalValue) -> bool:
    """Return True for a date without a time component."""
    return isinstance(value, date) and not isinstance(value, datetime)


def is_floating(value: TemporalValue) -> bool:
    """Return True for a datetime that carries no time zone."""
    return isinstance(value, datetime) and value.tzinfo is None


def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware.

    Args:
        dt: Datetime to make timezone-aware

    Returns:
        Timezone-aware datetime (UTC if originally naive)
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def as_datetime(value: TemporalValue) -> datetime:
    """Promote a pure date to a naive midnight datetime; datetimes pass through."""
    if is_pure_date(value):
        return datetime.combine(value, time())
    return value  # type: ignore[return-value]


def _utc_instant(dt: datetime) -> str:
    utc = dt.astimezone(UTC)
    return f"{utc.strftime('%Y-%m-%dT%H:%M:%S')}.{utc.microsecond // 1000:03d}Z"


def format_date_for_calendar(value: TemporalValue) -> str:
    """Format an event start/end value for calendar clients.

    Args:
        value: Date or datetime from a DTSTART/DTEND property or an expanded occurrence

    Returns:
        ``YYYY-MM-DD`` for dates, ``YYYY-MM-DDTHH:MM:SS`` for floating times,
        otherwise a UTC ISO-8601 instant with milliseconds and ``Z`` suffix
    """
    if is_pure_date(value):
        return value.strftime("%Y-%m-%d")
    if is_floating(value):
        return value.strftime("%Y-%m-%dT%H:%M:%S")
    return _utc_instant(value)  # type: ignore[arg-type]


def to_iso_timestamp(value: TemporalValue) -> str:
    """Format a metadata timestamp (CREATED, LAST-MODIFIED, DTSTAMP) as a UTC instant.

    Floating values and dates are read as UTC.
    """
    return _utc_instant(ensure_timezone_aware(as_datetime(value)))


def epoch_millis(value: TemporalValue) -> int:
    """Milliseconds since the Unix epoch.

    Zoned values use their real instant. Floating values and dates are read as
    UTC wall-clock so the result does not depend on the host time zone.
    """
    dt = ensure_timezone_aware(as_datetime(value))
    return (dt - _EPOCH) // timedelta(milliseconds=1)
