"""Public combined-feed route."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

logger = logging.getLogger(__name__)

FEED_CONTENT_TYPE = "text/calendar"
FEED_FILENAME = "calendar.ics"


def register_feed_routes(app: web.Application, feed_service: Any) -> None:
    """Register the token-guarded ``/feed/{token}.ics`` route.

    Args:
        app: aiohttp web application
        feed_service: FeedService rendering the combined calendar
    """

    async def combined_feed(request: web.Request) -> web.Response:
        token = request.match_info["token"]
        ical = await feed_service.render(token)
        logger.debug("Serving combined feed (%d chars)", len(ical))
        return web.Response(
            text=ical,
            content_type=FEED_CONTENT_TYPE,
            charset="utf-8",
            headers={"Content-Disposition": f'attachment; filename="{FEED_FILENAME}"'},
        )

    app.router.add_get("/feed/{token}.ics", combined_feed)
