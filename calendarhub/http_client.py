"""Shared httpx client registry.

Feeds are fetched through long-lived ``httpx.AsyncClient`` instances keyed by
an id, so repeated syncs reuse connections. A client that keeps failing is
recreated on the next request.
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from . import __version__

logger = logging.getLogger(__name__)

_shared_clients: dict[str, httpx.AsyncClient] = {}
_client_health: dict[str, dict[str, float]] = {}
_client_lock = asyncio.Lock()

DEFAULT_LIMITS = httpx.Limits(max_connections=10, max_keepalive_connections=5)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=30.0)

DEFAULT_HEADERS: dict[str, str] = {
    "User-Agent": f"CalendarHub/{__version__}",
    "Accept": "text/calendar, application/calendar, text/plain",
}

# Recreate a client after this many consecutive errors
HEALTH_ERROR_THRESHOLD = 3


async def get_shared_client(
    client_id: str = "default",
    limits: Optional[httpx.Limits] = None,
    timeout: Optional[httpx.Timeout] = None,
) -> httpx.AsyncClient:
    """Get or create a shared HTTP client.

    Args:
        client_id: Identifier for the client
        limits: Custom connection limits
        timeout: Custom timeout configuration

    Returns:
        Shared httpx.AsyncClient with redirects enabled and identifying headers

    Raises:
        RuntimeError: If client creation fails
    """
    async with _client_lock:
        await _recreate_client_if_unhealthy(client_id)

        if client_id not in _shared_clients or _shared_clients[client_id].is_closed:
            try:
                _shared_clients[client_id] = httpx.AsyncClient(
                    limits=limits or DEFAULT_LIMITS,
                    timeout=timeout or DEFAULT_TIMEOUT,
                    follow_redirects=True,
                    headers=DEFAULT_HEADERS,
                )
                _client_health[client_id] = {"error_count": 0, "created_time": time.time()}
                logger.info("Created shared HTTP client '%s'", client_id)
            except Exception as e:
                logger.exception("Failed to create shared HTTP client '%s'", client_id)
                raise RuntimeError(f"Failed to create shared HTTP client: {e}") from e

        return _shared_clients[client_id]


async def close_all_clients() -> None:
    """Close all shared HTTP clients; call on application shutdown."""
    async with _client_lock:
        for client_id, client in _shared_clients.items():
            try:
                if not client.is_closed:
                    await client.aclose()
                    logger.debug("Closed shared HTTP client '%s'", client_id)
            except Exception as e:
                logger.warning("Error closing shared HTTP client '%s': %s", client_id, e)

        _shared_clients.clear()
        _client_health.clear()


async def record_client_error(client_id: str = "default") -> None:
    async with _client_lock:
        health = _client_health.setdefault(client_id, {"error_count": 0, "created_time": time.time()})
        health["error_count"] += 1
        logger.debug("Recorded error for client '%s' (count: %d)", client_id, health["error_count"])


async def record_client_success(client_id: str = "default") -> None:
    async with _client_lock:
        if client_id in _client_health:
            _client_health[client_id]["error_count"] = 0


async def _recreate_client_if_unhealthy(client_id: str) -> None:
    """Close a client whose consecutive error count reached the threshold.

    Must be called with ``_client_lock`` held.
    """
    health = _client_health.get(client_id)
    if not health or health["error_count"] < HEALTH_ERROR_THRESHOLD:
        return

    client = _shared_clients.pop(client_id, None)
    _client_health.pop(client_id, None)
    if client is not None and not client.is_closed:
        logger.warning(
            "Recreating shared HTTP client '%s' after %d consecutive errors",
            client_id,
            int(health["error_count"]),
        )
        try:
            await client.aclose()
        except Exception as e:
            logger.debug("Error closing unhealthy client '%s': %s", client_id, e)
