"""HTTP fetching of remote ICS feeds."""

import asyncio
import logging
import re
import time
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .exceptions import CalendarFetchError, CalendarTimeoutError
from .http_client import get_shared_client, record_client_error, record_client_success
from .monitoring_logging import log_monitoring_event

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 30_000

_WEBCAL_RE = re.compile(r"^webcals?://", re.IGNORECASE)

_EXPECTED_CONTENT_TYPES = ("calendar", "text/plain", "octet-stream")


def normalize_calendar_url(url: str) -> str:
    """Rewrite ``webcal://``/``webcals://`` subscription links to ``https://``."""
    return _WEBCAL_RE.sub("https://", url.strip())


class ICSFetcher:
    """Async downloader for ICS feeds.

    Every fetch runs under a single deadline covering connect, redirects and
    body download. Failures are raised as ``CalendarTimeoutError`` or
    ``CalendarFetchError``; one ``fetch.complete``/``fetch.failed`` telemetry
    event is emitted per call either way.
    """

    def __init__(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        shared_client: Optional[httpx.AsyncClient] = None,
        client_id: str = "ics_fetcher",
    ) -> None:
        """Initialize ICS fetcher.

        Args:
            timeout_ms: Overall request deadline in milliseconds
            shared_client: Optional client to use instead of the shared registry
            client_id: Registry key used when no client is injected
        """
        self.timeout_ms = timeout_ms
        self.client: Optional[httpx.AsyncClient] = shared_client
        self._injected_client = shared_client is not None
        self._client_id = client_id

        logger.debug(
            "ICS fetcher initialized (timeout_ms: %d, injected_client: %s)",
            timeout_ms,
            self._injected_client,
        )

    async def __aenter__(self) -> "ICSFetcher":
        await self._ensure_client()
        return self

    async def __aexit__(self, _exc_type: Any, _exc_val: Any, _exc_tb: Any) -> None:
        # Shared and injected clients are owned elsewhere
        if not self._injected_client:
            self.client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._injected_client and self.client is not None:
            return self.client
        if self.client is None or self.client.is_closed:
            self.client = await get_shared_client(self._client_id)
        return self.client

    @staticmethod
    def _validate_url(url: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            raise CalendarFetchError(f"Unsupported URL scheme for {url}", url=url)
        if not parsed.hostname:
            raise CalendarFetchError(f"URL missing hostname: {url}", url=url)

    async def fetch(self, url: str) -> str:
        """Download the raw ICS text behind ``url``.

        Args:
            url: Feed URL; ``webcal://`` is requested as ``https://``

        Returns:
            Response body decoded as text

        Raises:
            CalendarTimeoutError: The deadline expired before the body arrived
            CalendarFetchError: Non-2xx response or any other transport failure
        """
        target = normalize_calendar_url(url)
        started = time.monotonic()
        status: Optional[int] = None
        size = 0
        success = False
        try:
            self._validate_url(target)
            client = await self._ensure_client()
            logger.debug("Fetching ICS from %s", target)
            try:
                async with asyncio.timeout(self.timeout_ms / 1000):
                    response = await client.get(target)
            except (TimeoutError, httpx.TimeoutException) as e:
                await self._record_error()
                raise CalendarTimeoutError(
                    f"Request timeout after {self.timeout_ms}ms for {target}",
                    timeout_ms=self.timeout_ms,
                    url=target,
                ) from e
            except httpx.HTTPError as e:
                await self._record_error()
                raise CalendarFetchError(
                    f"Failed to fetch iCal data from {target}: {e}", url=target
                ) from e

            status = response.status_code
            size = len(response.content)
            if not response.is_success:
                raise CalendarFetchError(
                    f"HTTP {status}: {response.reason_phrase}",
                    url=target,
                    status_code=status,
                    status_text=response.reason_phrase,
                )

            self._check_content_type(response, target)
            success = True
            await self._record_success()
            return response.text
        finally:
            duration_ms = int((time.monotonic() - started) * 1000)
            host = urlparse(target).hostname or ""
            details = {
                "host": host,
                "duration_ms": duration_ms,
                "bytes": size,
                "status": status,
                "success": success,
            }
            if success:
                log_monitoring_event(
                    "fetch", "fetch.complete", f"Fetched {size} bytes from {host}", details=details
                )
            else:
                log_monitoring_event(
                    "fetch",
                    "fetch.failed",
                    f"Fetch from {host} failed",
                    level="WARN",
                    details=details,
                    rate_limit_key=f"fetch.failed:{host}",
                )

    @staticmethod
    def _check_content_type(response: httpx.Response, url: str) -> None:
        content_type = response.headers.get("content-type", "").lower()
        if content_type and not any(kind in content_type for kind in _EXPECTED_CONTENT_TYPES):
            logger.warning("Unexpected content type %r for %s", content_type, url)

    async def _record_error(self) -> None:
        if not self._injected_client:
            await record_client_error(self._client_id)

    async def _record_success(self) -> None:
        if not self._injected_client:
            await record_client_success(self._client_id)
