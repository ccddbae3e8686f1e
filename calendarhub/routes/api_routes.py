"""REST API routes for calendars, refresh and feed settings."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from ..calendar_transfer import export_calendars, import_calendars
from ..exceptions import CalendarNotFoundError, CalendarValidationError
from ..feed_builder import FEED_CALENDARS_SETTING, FEED_TOKEN_SETTING
from ..models import CalendarInput, CalendarPatch
from ..view_projector import calendar_view, calendars_for_access
from .auth import is_authenticated, require_auth

logger = logging.getLogger(__name__)


async def _read_json(request: web.Request) -> Any:
    try:
        return await request.json()
    except Exception as e:
        raise CalendarValidationError("Request body must be valid JSON") from e


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))
    return "; ".join(parts)


def _calendar_id(request: web.Request) -> int:
    return int(request.match_info["calendar_id"])


def register_api_routes(app: web.Application, services: Any) -> None:
    """Register calendar API routes.

    Args:
        app: aiohttp web application
        services: HubServices container (stores, coordinator, queue, feed, health)
    """
    calendar_store = services.calendar_store

    async def health_check(_request: web.Request) -> web.Response:
        calendars = await calendar_store.get_all()
        now_iso = datetime.now(UTC).isoformat()
        status = services.health_tracker.get_health_status(
            now_iso,
            calendar_count=len(calendars),
            refresh_interval_seconds=services.config.refresh_interval_seconds,
        )
        return web.json_response(status.to_dict())

    async def list_calendars(request: web.Request) -> web.Response:
        calendars = await calendars_for_access(calendar_store, is_authenticated(request))
        return web.json_response({"calendars": calendars})

    async def create_calendar(request: web.Request) -> web.Response:
        require_auth(request)
        body = await _read_json(request)
        try:
            payload = CalendarInput.model_validate(body)
        except ValidationError as e:
            raise CalendarValidationError(_validation_message(e)) from e

        payload.name = payload.name.strip()
        if not payload.name:
            raise CalendarValidationError("name: Calendar name cannot be blank")
        record = await calendar_store.create(payload.model_dump())
        services.sync_queue.enqueue(record.id, record.url)
        return web.json_response(calendar_view(record, True), status=201)

    async def update_calendar(request: web.Request) -> web.Response:
        require_auth(request)
        calendar_id = _calendar_id(request)
        body = await _read_json(request)
        try:
            patch = CalendarPatch.model_validate(body)
        except ValidationError as e:
            raise CalendarValidationError(_validation_message(e)) from e

        fields = patch.model_dump(exclude_none=True)
        if not fields:
            raise CalendarValidationError("At least one field must be provided for update")

        record = await calendar_store.update(calendar_id, **fields)
        if record is None:
            raise CalendarNotFoundError(calendar_id)
        services.sync_queue.enqueue(record.id, record.url)
        return web.json_response(calendar_view(record, True))

    async def delete_calendar(request: web.Request) -> web.Response:
        require_auth(request)
        calendar_id = _calendar_id(request)
        if not await calendar_store.delete(calendar_id):
            raise CalendarNotFoundError(calendar_id)
        return web.json_response({"deleted": calendar_id})

    async def refresh_calendar(request: web.Request) -> web.Response:
        require_auth(request)
        calendar_id = _calendar_id(request)
        calendar = await calendar_store.get_by_id(calendar_id)
        if calendar is None:
            raise CalendarNotFoundError(calendar_id)
        result = await services.coordinator.sync_one(calendar.id, calendar.url)
        return web.json_response({"calendar_id": calendar.id, **result.summary()})

    async def refresh_all(request: web.Request) -> web.Response:
        require_auth(request)
        batch = await services.coordinator.sync_all()
        results = []
        for outcome in batch.results:
            item: dict[str, Any] = {"calendar_id": outcome.calendar_id, "success": outcome.success}
            if outcome.result is not None:
                item.update(outcome.result.summary())
            if outcome.message is not None:
                item["message"] = outcome.message
            results.append(item)
        return web.json_response(
            {
                "total": batch.total,
                "successful": batch.successful,
                "failed": batch.failed,
                "results": results,
            }
        )

    async def export_route(request: web.Request) -> web.Response:
        require_auth(request)
        return web.json_response(await export_calendars(calendar_store))

    async def import_route(request: web.Request) -> web.Response:
        require_auth(request)
        body = await _read_json(request)
        calendars_data = body.get("calendars") if isinstance(body, dict) else body
        result = await import_calendars(calendar_store, calendars_data)
        return web.json_response(result.model_dump())

    async def get_feed_settings(request: web.Request) -> web.Response:
        require_auth(request)
        settings = services.settings_store
        return web.json_response(
            {
                "token": await settings.get(FEED_TOKEN_SETTING),
                "calendar_ids": await settings.get(FEED_CALENDARS_SETTING, []),
            }
        )

    async def put_feed_settings(request: web.Request) -> web.Response:
        require_auth(request)
        body = await _read_json(request)
        if not isinstance(body, dict):
            raise CalendarValidationError("Request body must be an object")

        token = body.get("token")
        if not isinstance(token, str) or not token.strip():
            raise CalendarValidationError("token must be a non-empty string")
        calendar_ids = body.get("calendar_ids") or []
        if not isinstance(calendar_ids, list) or not all(
            isinstance(cid, int) and not isinstance(cid, bool) for cid in calendar_ids
        ):
            raise CalendarValidationError("calendar_ids must be a list of integers")

        await services.feed_service.configure(token.strip(), calendar_ids)
        logger.info("Feed settings updated (%d calendars selected)", len(calendar_ids))
        return web.json_response({"token": token.strip(), "calendar_ids": calendar_ids})

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/calendars", list_calendars)
    app.router.add_post("/api/calendars", create_calendar)
    app.router.add_get("/api/calendars/export", export_route)
    app.router.add_post("/api/calendars/import", import_route)
    app.router.add_post("/api/calendars/refresh", refresh_all)
    app.router.add_put(r"/api/calendars/{calendar_id:\d+}", update_calendar)
    app.router.add_delete(r"/api/calendars/{calendar_id:\d+}", delete_calendar)
    app.router.add_post(r"/api/calendars/{calendar_id:\d+}/refresh", refresh_calendar)
    app.router.add_get("/api/feed", get_feed_settings)
    app.router.add_put("/api/feed", put_feed_settings)
