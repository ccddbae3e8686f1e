"""Shared fixtures for calendarhub tests."""

from collections.abc import AsyncIterator, Callable, Iterator
from typing import Any

import httpx
import pytest

from calendarhub.http_client import close_all_clients
from calendarhub.monitoring_logging import RateLimiter, _logger_cache
from calendarhub.store import CalendarStore, SettingsStore, open_stores


@pytest.fixture(autouse=True)
def reset_monitoring_state() -> Iterator[None]:
    """Clear rate limiter windows and cached monitoring loggers between tests."""
    RateLimiter.reset()
    _logger_cache.clear()
    yield
    RateLimiter.reset()
    _logger_cache.clear()


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> None:
    """Keep host CALENDARHUB_* variables from leaking into config tests."""
    for name in (
        "CALENDARHUB_DATA_FILE",
        "CALENDARHUB_API_TOKEN",
        "CALENDARHUB_FETCH_TIMEOUT_MS",
        "CALENDARHUB_MAX_OCCURRENCES",
        "CALENDARHUB_REFRESH_INTERVAL",
        "CALENDARHUB_WEB_HOST",
        "CALENDARHUB_WEB_PORT",
        "CALENDARHUB_FEED_NAME",
        "CALENDARHUB_DEBUG",
        "CALENDARHUB_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()


@pytest.fixture
def stores() -> tuple[CalendarStore, SettingsStore]:
    """In-memory calendar and settings stores sharing one document."""
    return open_stores()


@pytest.fixture
def calendar_store(stores: tuple[CalendarStore, SettingsStore]) -> CalendarStore:
    return stores[0]


@pytest.fixture
def settings_store(stores: tuple[CalendarStore, SettingsStore]) -> SettingsStore:
    return stores[1]


@pytest.fixture
async def mock_client_factory() -> AsyncIterator[Callable[[Any], httpx.AsyncClient]]:
    """Build httpx clients backed by a MockTransport handler; closed after the test."""
    clients: list[httpx.AsyncClient] = []

    def factory(handler: Any) -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()


# ==================== ICS Test Data Fixtures ====================


@pytest.fixture
def sample_ics_simple() -> str:
    """
    Return a simple ICS calendar with one timed event.

    - "Team Meeting" on 2024-01-15 10:00-11:00 UTC with organizer and two attendees
    """
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//CalendarHub Test//EN\r\n"
        "X-WR-CALNAME:Work\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:test-event-001@calendarhub.test\r\n"
        "DTSTART:20240115T100000Z\r\n"
        "DTEND:20240115T110000Z\r\n"
        "SUMMARY:Team Meeting\r\n"
        "LOCATION:Conference Room A\r\n"
        "DESCRIPTION:Weekly team sync meeting\r\n"
        "DTSTAMP:20240115T090000Z\r\n"
        "CREATED:20240101T120000Z\r\n"
        "LAST-MODIFIED:20240110T083000Z\r\n"
        "STATUS:CONFIRMED\r\n"
        "TRANSP:OPAQUE\r\n"
        "SEQUENCE:2\r\n"
        "URL:https://meet.example.com/team\r\n"
        "ORGANIZER;CN=Alice Boss:mailto:alice@example.com\r\n"
        "ATTENDEE;CN=Bob;ROLE=REQ-PARTICIPANT;PARTSTAT=ACCEPTED;CUTYPE=INDIVIDUAL:mailto:bob@example.com\r\n"
        "ATTENDEE;CN=Carol;ROLE=OPT-PARTICIPANT;PARTSTAT=TENTATIVE:MAILTO:carol@example.com\r\n"
        "END:VEVENT\r\n"
        "END:VCALENDAR\r\n"
    )


@pytest.fixture
def sample_ics_recurring() -> str:
    """
    Return an ICS string with a recurring event plus an override.

    - "Daily Standup" 09:00-09:15 UTC, RRULE:FREQ=DAILY;COUNT=5
    - EXDATE removes 2024-01-17
    - A RECURRENCE-ID override for 2024-01-18 that must not be emitted
    """
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//CalendarHub Test//EN\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:standup@calendarhub.test\r\n"
        "DTSTART:20240115T090000Z\r\n"
        "DTEND:20240115T091500Z\r\n"
        "SUMMARY:Daily Standup\r\n"
        "RRULE:FREQ=DAILY;COUNT=5\r\n"
        "EXDATE:20240117T090000Z\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:standup@calendarhub.test\r\n"
        "RECURRENCE-ID:20240118T090000Z\r\n"
        "DTSTART:20240118T100000Z\r\n"
        "DTEND:20240118T101500Z\r\n"
        "SUMMARY:Daily Standup (moved)\r\n"
        "END:VEVENT\r\n"
        "END:VCALENDAR\r\n"
    )


@pytest.fixture
def sample_ics_all_day() -> str:
    """All-day event without DTEND plus a floating local-time event."""
    return (
        "BEGIN:VCALENDAR\r\n"
        "VERSION:2.0\r\n"
        "PRODID:-//CalendarHub Test//EN\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:holiday@calendarhub.test\r\n"
        "DTSTART;VALUE=DATE:20240704\r\n"
        "SUMMARY:Holiday\r\n"
        "END:VEVENT\r\n"
        "BEGIN:VEVENT\r\n"
        "UID:floating@calendarhub.test\r\n"
        "DTSTART:20240705T083000\r\n"
        "DURATION:PT1H30M\r\n"
        "END:VEVENT\r\n"
        "END:VCALENDAR\r\n"
    )
