"""Bearer-token authentication gate and JSON error mapping for aiohttp."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Optional

from aiohttp import web

from ..exceptions import AuthenticationError, CalendarHubError

logger = logging.getLogger(__name__)

AUTH_KEY = "is_authenticated"

GENERIC_SERVER_ERROR = "Calendar service unavailable"


def check_bearer_token(request: Any, required_token: Optional[str]) -> bool:
    """Check if request carries the configured bearer token.

    Args:
        request: aiohttp request object
        required_token: Expected bearer token; None disables authenticated access

    Returns:
        True if the token matches, False otherwise
    """
    if not required_token:
        return False

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return False

    provided = auth_header[7:].strip()
    return hmac.compare_digest(provided.encode(), required_token.encode())


def is_authenticated(request: web.Request) -> bool:
    return bool(request.get(AUTH_KEY, False))


def require_auth(request: web.Request) -> None:
    """Raise AuthenticationError unless the request passed the bearer check."""
    if not is_authenticated(request):
        raise AuthenticationError("Authentication required")


def auth_middleware(api_token: Optional[str]) -> Any:
    """Build middleware that marks each request as authenticated or public."""

    @web.middleware
    async def middleware(request: web.Request, handler: Any) -> web.StreamResponse:
        request[AUTH_KEY] = check_bearer_token(request, api_token)
        return await handler(request)

    return middleware


@web.middleware
async def error_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Map CalendarHubError to JSON responses.

    Server-side failures (5xx kinds) keep their detail for authenticated
    callers only; everyone else gets a generic message.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except CalendarHubError as e:
        if e.http_status >= 500 and not is_authenticated(request):
            message = GENERIC_SERVER_ERROR
        else:
            message = str(e)
        if e.http_status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.path, e)
        return web.json_response({"error": e.kind, "message": message}, status=e.http_status)
    except Exception:
        logger.exception("Unhandled error for %s %s", request.method, request.path)
        return web.json_response(
            {"error": "internal_error", "message": "Internal server error"}, status=500
        )
