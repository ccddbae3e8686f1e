"""Combined outbound iCal feed.

The feed re-emits the VEVENT blocks of each calendar's last fetched ICS text
verbatim inside a single VCALENDAR. Nothing is re-parsed or rebuilt from
normalized events.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Iterable, Iterator
from typing import Any, Optional

from .exceptions import FeedNotFoundError
from .monitoring_logging import log_monitoring_event

logger = logging.getLogger(__name__)

DEFAULT_FEED_NAME = "CalendarHub"
PRODID = "-//CalendarHub//Combined Feed//EN"
CRLF = "\r\n"

FEED_TOKEN_SETTING = "feed_token"
FEED_CALENDARS_SETTING = "feed_calendars"


def extract_vevent_blocks(ical_text: str) -> Iterator[list[str]]:
    """Yield the lines of each top-level ``BEGIN:VEVENT``..``END:VEVENT`` block.

    Lines are yielded unchanged (folded continuation lines included), and
    nested components such as VALARM stay inside their event.
    """
    block: Optional[list[str]] = None
    for line in ical_text.splitlines():
        marker = line.strip().upper()
        if block is None:
            if marker == "BEGIN:VEVENT":
                block = [line]
            continue
        block.append(line)
        if marker == "END:VEVENT":
            yield block
            block = None
    if block is not None:
        logger.debug("Dropping unterminated VEVENT block (%d lines)", len(block))


def build_feed(calendars: Iterable[Any], name: str = DEFAULT_FEED_NAME) -> str:
    """Combine stored ICS texts into one VCALENDAR document.

    Args:
        calendars: Records with an ``ical_data`` attribute (None/empty skipped)
        name: Feed name written as X-WR-CALNAME

    Returns:
        CRLF-delimited iCalendar text with exactly one VCALENDAR wrapper
    """
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        f"X-WR-CALNAME:{name}",
    ]
    for calendar in calendars:
        ical_data = getattr(calendar, "ical_data", None)
        if not ical_data:
            continue
        for block in extract_vevent_blocks(ical_data):
            lines.extend(block)
    lines.append("END:VCALENDAR")
    return CRLF.join(lines) + CRLF


class FeedService:
    """Token-guarded rendering of the combined feed."""

    def __init__(
        self, calendar_store: Any, settings_store: Any, name: str = DEFAULT_FEED_NAME
    ) -> None:
        self.calendar_store = calendar_store
        self.settings_store = settings_store
        self.name = name

    async def configure(self, token: str, calendar_ids: Optional[list[int]] = None) -> None:
        """Set the feed token and the calendars it exposes (empty means all)."""
        await self.settings_store.set(FEED_TOKEN_SETTING, token)
        await self.settings_store.set(FEED_CALENDARS_SETTING, list(calendar_ids or []))

    async def render(self, token: str) -> str:
        """Render the combined feed for a token.

        Raises:
            FeedNotFoundError: If no feed token is configured or ``token`` differs
        """
        stored = await self.settings_store.get(FEED_TOKEN_SETTING)
        if not stored or not token or not hmac.compare_digest(str(stored).encode(), token.encode()):
            raise FeedNotFoundError("Feed not found")

        calendars = await self.calendar_store.get_all()
        selected = await self.settings_store.get(FEED_CALENDARS_SETTING) or []
        if selected:
            calendars = [calendar for calendar in calendars if calendar.id in selected]

        ical = build_feed(calendars, self.name)
        log_monitoring_event(
            "feed",
            "feed.accessed",
            "Combined feed rendered",
            details={
                "calendar_count": len(calendars),
                "selected_ids": selected or "all",
                "ical_bytes": len(ical.encode("utf-8")),
            },
        )
        return ical
