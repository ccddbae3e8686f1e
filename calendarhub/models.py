"""Data models for calendar ingestion and projection."""

import json
from collections.abc import Iterable
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CALENDAR_COLOR = "#447dfc"
EMPTY_EVENTS_JSON = "[]"


class CalendarRecord(BaseModel):
    """A stored calendar subscription and its last synced payloads."""

    id: int
    name: str
    url: str = Field(..., description="Source feed URL, may use webcal://")
    color: str = DEFAULT_CALENDAR_COLOR
    visible_to_public: bool = True
    show_details_to_public: bool = True

    # Written only by the sync coordinator
    ical_data: Optional[str] = None
    events_processed: str = EMPTY_EVENTS_JSON
    events_public: str = EMPTY_EVENTS_JSON
    events_private: str = EMPTY_EVENTS_JSON

    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CalendarInput(BaseModel):
    """Payload accepted when creating a calendar."""

    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    color: str = DEFAULT_CALENDAR_COLOR
    visible_to_public: bool = True
    show_details_to_public: bool = True


class CalendarPatch(BaseModel):
    """Payload accepted when updating a calendar; unset fields are left alone."""

    name: Optional[str] = Field(default=None, min_length=1)
    url: Optional[str] = Field(default=None, min_length=1)
    color: Optional[str] = None
    visible_to_public: Optional[bool] = None
    show_details_to_public: Optional[bool] = None


class Organizer(BaseModel):
    """Event organizer."""

    name: str = ""
    email: str = ""


class Attendee(BaseModel):
    """Event attendee."""

    name: str = ""
    email: str = ""
    role: str = ""
    status: str = ""
    type: str = ""


class NormalizedEvent(BaseModel):
    """Canonical event record produced from one VEVENT (or one occurrence of it).

    Serialized with camelCase keys; ``None`` fields are dropped by ``to_json_dict``.
    """

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    title: str = ""
    description: str = ""
    location: str = ""
    start: Optional[str] = None
    end: Optional[str] = None
    all_day: bool = Field(default=False, alias="allDay")
    organizer: Optional[Organizer] = None
    attendees: Optional[list[Attendee]] = None
    created: Optional[str] = None
    last_modified: Optional[str] = Field(default=None, alias="lastModified")
    dt_stamp: Optional[str] = Field(default=None, alias="dtStamp")
    status: Optional[str] = None
    transparency: Optional[str] = None
    sequence: Optional[int] = None
    url: Optional[str] = None
    duration: Optional[str] = None

    def to_json_dict(self) -> dict[str, Any]:
        """Return the persisted representation."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DisplayEvent(BaseModel):
    """Client-renderable event; public and authenticated variants share this shape."""

    model_config = ConfigDict(populate_by_name=True)

    title: str
    start: Optional[str] = None
    end: Optional[str] = None
    all_day: bool = Field(default=False, alias="allDay")
    url: Optional[str] = None
    background_color: str = Field(default=DEFAULT_CALENDAR_COLOR, alias="backgroundColor")
    border_color: str = Field(default=DEFAULT_CALENDAR_COLOR, alias="borderColor")
    text_color: str = Field(default="white", alias="textColor")
    extended_props: dict[str, Any] = Field(default_factory=dict, alias="extendedProps")

    def to_json_dict(self) -> dict[str, Any]:
        """Return the persisted representation (``end``/``url`` omitted when unset)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ProjectedViews(BaseModel):
    """Output of the view projector."""

    public_events: list[DisplayEvent] = Field(default_factory=list)
    authenticated_events: list[DisplayEvent] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Payload produced by one successful calendar sync."""

    raw_data: str
    events: list[NormalizedEvent] = Field(default_factory=list)
    public_events: list[DisplayEvent] = Field(default_factory=list)
    authenticated_events: list[DisplayEvent] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        """Return event counts, suitable for API responses."""
        return {
            "events": len(self.events),
            "public_events": len(self.public_events),
            "authenticated_events": len(self.authenticated_events),
        }


class CalendarSyncOutcome(BaseModel):
    """Per-calendar entry of a batch sync."""

    calendar_id: int
    success: bool
    message: Optional[str] = None
    result: Optional[SyncResult] = None


class BatchSyncResult(BaseModel):
    """Aggregate result of syncing every stored calendar."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    results: list[CalendarSyncOutcome] = Field(default_factory=list)


class ImportFailure(BaseModel):
    """One calendar definition that could not be imported."""

    calendar: Any = None
    message: str


class ImportResult(BaseModel):
    """Outcome of importing calendar definitions."""

    imported: int = 0
    skipped: int = 0
    errors: list[ImportFailure] = Field(default_factory=list)


def events_to_json(events: Iterable[Any]) -> str:
    """Serialize normalized or display events to the stored JSON array form."""
    return json.dumps([event.to_json_dict() for event in events], ensure_ascii=False)
