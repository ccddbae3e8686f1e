"""Projection of normalized events into public and authenticated display views."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any, Protocol

from .event_normalizer import UNTITLED_TITLE
from .models import CalendarRecord, DisplayEvent, NormalizedEvent, ProjectedViews

logger = logging.getLogger(__name__)

# Title shown to the public for events whose calendar hides details
REDACTED_TITLE = ""


class VisibilityFlags(Protocol):
    color: str
    visible_to_public: bool
    show_details_to_public: bool


def redact(event: NormalizedEvent, redacted_title: str = REDACTED_TITLE) -> NormalizedEvent:
    """Strip personal details from an event, keeping timing and metadata.

    Args:
        event: Event to redact (left unmodified)
        redacted_title: Title to show instead of the real one

    Returns:
        Copy with title replaced, description/location cleared and
        organizer/attendees/url removed
    """
    return event.model_copy(
        update={
            "title": redacted_title,
            "description": "",
            "location": "",
            "organizer": None,
            "attendees": None,
            "url": None,
        }
    )


def build_extended_props(event: NormalizedEvent, show_details: bool) -> dict[str, Any]:
    """Flatten event metadata into the string-valued ``extendedProps`` map."""
    props: dict[str, Any] = {
        "description": event.description or "",
        "location": event.location or "",
        "uid": event.uid or "",
        "duration": event.duration or "",
        "status": event.status or "",
        "transparency": event.transparency or "",
        "sequence": str(event.sequence) if event.sequence else "0",
    }

    if event.dt_stamp:
        props["dtStamp"] = event.dt_stamp
    if event.created:
        props["created"] = event.created
    if event.last_modified:
        props["lastModified"] = event.last_modified

    if event.organizer is not None:
        if event.organizer.name:
            props["organizerName"] = event.organizer.name
        if event.organizer.email:
            props["organizerEmail"] = event.organizer.email

    if event.attendees:
        names = [attendee.name for attendee in event.attendees if attendee.name]
        emails = [attendee.email for attendee in event.attendees if attendee.email]
        if names:
            props["attendeeNames"] = ", ".join(names)
        if emails:
            props["attendeeEmails"] = ", ".join(emails)
        props["attendeeCount"] = str(len(event.attendees))

    props["show_details_to_public"] = show_details
    return props


class ViewProjector:
    """Builds the public and authenticated display views for one calendar."""

    def __init__(self, redacted_title: str = REDACTED_TITLE):
        self.redacted_title = redacted_title

    def to_display_event(
        self, event: NormalizedEvent, show_details: bool, color: str
    ) -> DisplayEvent:
        if show_details:
            title = event.title or UNTITLED_TITLE
        else:
            title = event.title or self.redacted_title

        return DisplayEvent(
            title=title,
            start=event.start,
            end=event.end or None,
            all_day=event.all_day,
            url=event.url or None,
            background_color=color,
            border_color=color,
            extended_props=build_extended_props(event, show_details),
        )

    def project(
        self, events: Iterable[NormalizedEvent], calendar: VisibilityFlags
    ) -> ProjectedViews:
        """Project events into both views.

        The authenticated view always carries full detail. The public view is
        empty for hidden calendars and redacted when details are hidden;
        redaction removes fields, never events.

        Args:
            events: Normalized events from the latest sync
            calendar: Calendar providing color and visibility flags

        Returns:
            ProjectedViews with public and authenticated display events
        """
        events = list(events)
        valid = [event for event in events if event.start or event.title]
        dropped = len(events) - len(valid)
        if dropped:
            logger.debug("Dropped %d events without start or title", dropped)

        color = calendar.color
        authenticated = [self.to_display_event(event, True, color) for event in valid]

        if not calendar.visible_to_public:
            public: list[DisplayEvent] = []
        elif not calendar.show_details_to_public:
            public = [
                self.to_display_event(redact(event, self.redacted_title), False, color)
                for event in valid
            ]
        else:
            public = [self.to_display_event(event, True, color) for event in valid]

        return ProjectedViews(public_events=public, authenticated_events=authenticated)


def _load_events(raw: str | None, calendar_id: int) -> list[Any]:
    if not raw:
        return []
    try:
        events = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Stored events for calendar %s are not valid JSON", calendar_id)
        return []
    return events if isinstance(events, list) else []


def calendar_view(calendar: CalendarRecord, is_authenticated: bool) -> dict[str, Any]:
    """Serialize one calendar for the given access level."""
    view: dict[str, Any] = {
        "id": calendar.id,
        "name": calendar.name,
        "color": calendar.color,
        "created_at": calendar.created_at,
        "updated_at": calendar.updated_at,
    }
    if is_authenticated:
        view["url"] = calendar.url
        view["visible_to_public"] = calendar.visible_to_public
        view["show_details_to_public"] = calendar.show_details_to_public
        view["events"] = _load_events(calendar.events_private, calendar.id)
    else:
        view["events"] = _load_events(calendar.events_public, calendar.id)
    return view


async def calendars_for_access(store: Any, is_authenticated: bool) -> list[dict[str, Any]]:
    """Return stored calendars with the event view matching the caller's access.

    Args:
        store: Calendar store exposing ``get_all()``
        is_authenticated: Whether the caller passed the authentication gate

    Returns:
        Calendar dicts; public callers only see calendars visible to the public
    """
    calendars = await store.get_all()
    return [
        calendar_view(calendar, is_authenticated)
        for calendar in calendars
        if is_authenticated or calendar.visible_to_public
    ]
