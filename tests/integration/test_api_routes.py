"""Integration tests for the CalendarHub HTTP surface (aiohttp test server + mocked feeds)."""

from collections.abc import AsyncIterator
from types import SimpleNamespace

import httpx
import pytest
from aiohttp import test_utils

from calendarhub.config_manager import HubConfig
from calendarhub.server import build_services, make_app

pytestmark = pytest.mark.integration

TOKEN = "admin-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
FEED_URL = "https://a.example/cal.ics"


async def _start(config: HubConfig, feeds: dict[str, str], mock_client_factory) -> SimpleNamespace:
    def handler(request: httpx.Request) -> httpx.Response:
        body = feeds.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, text=body, headers={"content-type": "text/calendar"})

    services = build_services(config, shared_client=mock_client_factory(handler))
    client = test_utils.TestClient(test_utils.TestServer(make_app(services)))
    await client.start_server()
    return SimpleNamespace(client=client, services=services, feeds=feeds)


@pytest.fixture
async def hub(mock_client_factory, sample_ics_simple) -> AsyncIterator[SimpleNamespace]:
    config = HubConfig(api_token=TOKEN, refresh_interval_seconds=0)
    running = await _start(config, {FEED_URL: sample_ics_simple}, mock_client_factory)
    yield running
    await running.client.close()


async def _create_synced(hub, **fields) -> dict:
    payload = {"name": "Work", "url": FEED_URL, **fields}
    resp = await hub.client.post("/api/calendars", json=payload, headers=AUTH)
    assert resp.status == 201
    created = await resp.json()
    await hub.services.sync_queue.join()
    return created


class TestHealth:
    @pytest.mark.asyncio
    async def test_health_is_public(self, hub):
        resp = await hub.client.get("/api/health")

        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "ok"
        assert body["calendar_count"] == 0


class TestAuthentication:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer wrong"}, {"Authorization": TOKEN}])
    async def test_management_requires_bearer_token(self, hub, headers):
        resp = await hub.client.post(
            "/api/calendars", json={"name": "X", "url": FEED_URL}, headers=headers
        )

        assert resp.status == 401
        assert (await resp.json())["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_server_without_token_rejects_management(self, mock_client_factory):
        running = await _start(HubConfig(refresh_interval_seconds=0), {}, mock_client_factory)
        try:
            resp = await running.client.delete("/api/calendars/1", headers=AUTH)
            assert resp.status == 401
            resp = await running.client.get("/api/calendars")
            assert resp.status == 200
        finally:
            await running.client.close()


class TestCalendarLifecycle:
    @pytest.mark.asyncio
    async def test_create_triggers_background_sync_and_views(self, hub):
        created = await _create_synced(hub)

        assert created["id"] == 1
        assert created["url"] == FEED_URL

        private = await (await hub.client.get("/api/calendars", headers=AUTH)).json()
        public = await (await hub.client.get("/api/calendars")).json()

        assert private["calendars"][0]["events"][0]["title"] == "Team Meeting"
        assert public["calendars"][0]["events"][0]["title"] == "Team Meeting"
        assert "url" not in public["calendars"][0]

    @pytest.mark.asyncio
    async def test_hidden_details_redact_public_events(self, hub):
        await _create_synced(hub, show_details_to_public=False)

        public = await (await hub.client.get("/api/calendars")).json()
        event = public["calendars"][0]["events"][0]

        assert event["title"] == ""
        assert event["extendedProps"]["location"] == ""
        assert "attendeeNames" not in event["extendedProps"]

    @pytest.mark.asyncio
    async def test_hidden_calendar_is_not_listed_publicly(self, hub):
        await _create_synced(hub, visible_to_public=False)

        public = await (await hub.client.get("/api/calendars")).json()
        private = await (await hub.client.get("/api/calendars", headers=AUTH)).json()

        assert public["calendars"] == []
        assert len(private["calendars"]) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [{"name": "No url"}, {"url": FEED_URL}, {"name": "", "url": FEED_URL}, {"name": "  ", "url": FEED_URL}],
    )
    async def test_create_validates_payload(self, hub, payload):
        resp = await hub.client.post("/api/calendars", json=payload, headers=AUTH)

        assert resp.status == 400
        assert (await resp.json())["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_create_rejects_invalid_json(self, hub):
        resp = await hub.client.post(
            "/api/calendars", data="{not json", headers={**AUTH, "Content-Type": "application/json"}
        )
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_update_and_delete(self, hub):
        created = await _create_synced(hub)
        path = f"/api/calendars/{created['id']}"

        resp = await hub.client.put(path, json={"name": "Renamed", "color": "#000000"}, headers=AUTH)
        assert resp.status == 200
        assert (await resp.json())["name"] == "Renamed"

        resp = await hub.client.put(path, json={}, headers=AUTH)
        assert resp.status == 400
        assert "At least one field" in (await resp.json())["message"]

        resp = await hub.client.delete(path, headers=AUTH)
        assert resp.status == 200
        resp = await hub.client.delete(path, headers=AUTH)
        assert resp.status == 404
        assert (await resp.json())["error"] == "calendar_not_found"

    @pytest.mark.asyncio
    async def test_update_missing_calendar_is_404(self, hub):
        resp = await hub.client.put("/api/calendars/99", json={"name": "X"}, headers=AUTH)
        assert resp.status == 404


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_one_returns_counts(self, hub):
        created = await _create_synced(hub)

        resp = await hub.client.post(f"/api/calendars/{created['id']}/refresh", headers=AUTH)

        assert resp.status == 200
        assert await resp.json() == {
            "calendar_id": created["id"],
            "events": 1,
            "public_events": 1,
            "authenticated_events": 1,
        }

    @pytest.mark.asyncio
    async def test_refresh_failure_maps_to_503_and_clears_events(self, hub):
        created = await _create_synced(hub)
        hub.feeds.clear()

        resp = await hub.client.post(f"/api/calendars/{created['id']}/refresh", headers=AUTH)

        assert resp.status == 503
        body = await resp.json()
        assert body == {"error": "fetch_failed", "message": "HTTP 404: Not Found"}
        private = await (await hub.client.get("/api/calendars", headers=AUTH)).json()
        assert private["calendars"][0]["events"] == []

    @pytest.mark.asyncio
    async def test_refresh_unknown_calendar_is_404(self, hub):
        resp = await hub.client.post("/api/calendars/42/refresh", headers=AUTH)
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_refresh_all_summarizes_batch(self, hub):
        await _create_synced(hub)
        await _create_synced(hub, name="Broken", url="https://gone.example/cal.ics")

        resp = await hub.client.post("/api/calendars/refresh", headers=AUTH)
        body = await resp.json()

        assert resp.status == 200
        assert (body["total"], body["successful"], body["failed"]) == (2, 1, 1)
        failed = [r for r in body["results"] if not r["success"]]
        assert failed[0]["message"] == "HTTP 404: Not Found"


class TestTransfer:
    @pytest.mark.asyncio
    async def test_export_then_import_skips_existing(self, hub):
        await _create_synced(hub)

        exported = await (await hub.client.get("/api/calendars/export", headers=AUTH)).json()
        assert exported["version"] == "1.0"
        assert exported["calendars"][0]["url"] == FEED_URL

        resp = await hub.client.post(
            "/api/calendars/import",
            json={
                "calendars": exported["calendars"]
                + [{"name": "Other", "url": "https://b.example/cal.ics"}, {"name": "Bad"}]
            },
            headers=AUTH,
        )
        body = await resp.json()

        assert resp.status == 200
        assert (body["imported"], body["skipped"]) == (1, 1)
        assert body["errors"][0]["message"] == "Name and URL are required"

    @pytest.mark.asyncio
    async def test_import_requires_array(self, hub):
        resp = await hub.client.post("/api/calendars/import", json={"calendars": "x"}, headers=AUTH)
        assert resp.status == 400


class TestCombinedFeed:
    @pytest.mark.asyncio
    async def test_feed_serves_vevents_with_token(self, hub):
        await _create_synced(hub)
        resp = await hub.client.put(
            "/api/feed", json={"token": "family-feed", "calendar_ids": []}, headers=AUTH
        )
        assert resp.status == 200

        resp = await hub.client.get("/feed/family-feed.ics")
        body = await resp.text()

        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/calendar")
        assert "attachment" in resp.headers["Content-Disposition"]
        assert body.startswith("BEGIN:VCALENDAR\r\n")
        assert "UID:test-event-001@calendarhub.test" in body

    @pytest.mark.asyncio
    async def test_feed_with_wrong_token_is_404(self, hub):
        await hub.client.put("/api/feed", json={"token": "family-feed"}, headers=AUTH)

        resp = await hub.client.get("/feed/guess.ics")

        assert resp.status == 404
        assert (await resp.json())["error"] == "feed_not_found"

    @pytest.mark.asyncio
    async def test_feed_settings_validation_and_read_back(self, hub):
        resp = await hub.client.put("/api/feed", json={"calendar_ids": [1]}, headers=AUTH)
        assert resp.status == 400

        await hub.client.put("/api/feed", json={"token": "t", "calendar_ids": [2]}, headers=AUTH)
        settings = await (await hub.client.get("/api/feed", headers=AUTH)).json()
        assert settings == {"token": "t", "calendar_ids": [2]}
