"""Unit tests for calendarhub.ics_fetcher using httpx.MockTransport."""

import asyncio
import json
import logging

import httpx
import pytest

from calendarhub.exceptions import CalendarFetchError, CalendarTimeoutError
from calendarhub.ics_fetcher import ICSFetcher, normalize_calendar_url

pytestmark = pytest.mark.unit

ICS_BODY = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nEND:VCALENDAR\r\n"


class TestNormalizeCalendarUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("webcal://example.com/cal.ics", "https://example.com/cal.ics"),
            ("WEBCAL://example.com/cal.ics", "https://example.com/cal.ics"),
            ("webcals://example.com/cal.ics", "https://example.com/cal.ics"),
            ("  http://example.com/cal.ics ", "http://example.com/cal.ics"),
            ("https://example.com/webcal://x", "https://example.com/webcal://x"),
        ],
    )
    def test_normalize_calendar_url(self, url, expected):
        assert normalize_calendar_url(url) == expected


class TestFetch:
    @pytest.mark.asyncio
    async def test_fetch_when_ok_then_returns_body(self, mock_client_factory, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=ICS_BODY, headers={"content-type": "text/calendar"})

        fetcher = ICSFetcher(shared_client=mock_client_factory(handler))
        with caplog.at_level(logging.INFO, logger="calendarhub.monitoring"):
            body = await fetcher.fetch("https://example.com/cal.ics")

        assert body == ICS_BODY
        entries = [json.loads(r.getMessage()) for r in caplog.records if r.name.endswith(".fetch")]
        assert entries[-1]["event"] == "fetch.complete"
        assert entries[-1]["details"]["host"] == "example.com"
        assert entries[-1]["details"]["success"] is True

    @pytest.mark.asyncio
    async def test_fetch_when_webcal_then_requests_https(self, mock_client_factory):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, text=ICS_BODY)

        fetcher = ICSFetcher(shared_client=mock_client_factory(handler))
        await fetcher.fetch("webcal://calendar.example.com/feed.ics")

        assert seen == ["https://calendar.example.com/feed.ics"]

    @pytest.mark.asyncio
    async def test_fetch_when_404_then_fetch_error_with_status(self, mock_client_factory, caplog):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="missing")

        fetcher = ICSFetcher(shared_client=mock_client_factory(handler))
        with caplog.at_level(logging.WARNING, logger="calendarhub.monitoring"):
            with pytest.raises(CalendarFetchError) as exc_info:
                await fetcher.fetch("https://example.com/missing.ics")

        assert exc_info.value.status_code == 404
        assert exc_info.value.status_text == "Not Found"
        assert str(exc_info.value) == "HTTP 404: Not Found"
        assert "fetch.failed" in caplog.text

    @pytest.mark.asyncio
    async def test_fetch_when_transport_timeout_then_timeout_error(self, mock_client_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        fetcher = ICSFetcher(timeout_ms=1500, shared_client=mock_client_factory(handler))
        with pytest.raises(CalendarTimeoutError) as exc_info:
            await fetcher.fetch("https://slow.example.com/cal.ics")

        assert exc_info.value.timeout_ms == 1500
        assert "1500ms" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_fetch_when_timeout_then_shared_client_error_recorded(
        self, mock_client_factory, monkeypatch
    ):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("connect timed out", request=request)

        client = mock_client_factory(handler)
        recorded: list[str] = []

        async def fake_get_shared_client(client_id: str) -> httpx.AsyncClient:
            return client

        async def fake_record_client_error(client_id: str) -> None:
            recorded.append(client_id)

        monkeypatch.setattr("calendarhub.ics_fetcher.get_shared_client", fake_get_shared_client)
        monkeypatch.setattr("calendarhub.ics_fetcher.record_client_error", fake_record_client_error)

        fetcher = ICSFetcher(client_id="feeds")
        for _ in range(2):
            with pytest.raises(CalendarTimeoutError):
                await fetcher.fetch("https://slow.example.com/cal.ics")

        assert recorded == ["feeds", "feeds"]

    @pytest.mark.asyncio
    async def test_fetch_when_deadline_passes_then_timeout_error(self, mock_client_factory):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(2)
            return httpx.Response(200, text=ICS_BODY)

        fetcher = ICSFetcher(timeout_ms=50, shared_client=mock_client_factory(handler))
        with pytest.raises(CalendarTimeoutError):
            await fetcher.fetch("https://slow.example.com/cal.ics")

    @pytest.mark.asyncio
    async def test_fetch_when_connection_fails_then_fetch_error(self, mock_client_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fetcher = ICSFetcher(shared_client=mock_client_factory(handler))
        with pytest.raises(CalendarFetchError) as exc_info:
            await fetcher.fetch("https://down.example.com/cal.ics")

        assert exc_info.value.status_code is None
        assert "connection refused" in str(exc_info.value)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["ftp://example.com/cal.ics", "http:///cal.ics", "not-a-url"])
    async def test_fetch_when_url_invalid_then_no_request(self, mock_client_factory, caplog, url):
        calls: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, text=ICS_BODY)

        fetcher = ICSFetcher(shared_client=mock_client_factory(handler))
        with caplog.at_level(logging.WARNING, logger="calendarhub.monitoring"):
            with pytest.raises(CalendarFetchError):
                await fetcher.fetch(url)
        assert calls == []
        entries = [json.loads(r.getMessage()) for r in caplog.records if r.name.endswith(".fetch")]
        assert [entry["event"] for entry in entries] == ["fetch.failed"]
        assert entries[0]["details"]["success"] is False

    @pytest.mark.asyncio
    async def test_fetcher_without_injected_client_uses_shared_registry(self):
        async with ICSFetcher() as fetcher:
            assert fetcher.client is not None
            assert not fetcher.client.is_closed
