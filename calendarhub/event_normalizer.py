"""Turns raw ICS text into NormalizedEvent records.

Parsing is error tolerant at event granularity: a VEVENT that cannot be
normalized is logged, counted in ``last_skipped_count`` and skipped. Only a
document that cannot be parsed at all raises (``ICalParseError``).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from .attendee_parser import AttendeeParser
from .datetime_utils import epoch_millis, format_date_for_calendar, is_pure_date, to_iso_timestamp
from .ics_adapter import EventComponent, parse_calendar
from .models import NormalizedEvent
from .rrule_expander import DEFAULT_MAX_OCCURRENCES, RecurrenceExpander

logger = logging.getLogger(__name__)

UNTITLED_TITLE = "Untitled Event"


class EventNormalizationError(ValueError):
    """A single VEVENT could not be normalized."""


class EventNormalizer:
    """Converts VEVENT components into NormalizedEvent records."""

    def __init__(self, max_occurrences: int = DEFAULT_MAX_OCCURRENCES):
        """Initialize normalizer.

        Args:
            max_occurrences: Cap on generated occurrences per recurring event
        """
        self.expander = RecurrenceExpander(max_occurrences)
        self.attendee_parser = AttendeeParser()
        self.last_skipped_count = 0

    @property
    def max_occurrences(self) -> int:
        return self.expander.max_occurrences

    def normalize(self, ical_text: str) -> list[NormalizedEvent]:
        """Parse ICS text and normalize every event in it.

        Recurrence exceptions (components with RECURRENCE-ID) are not emitted;
        occurrences come only from expanding the master series.

        Args:
            ical_text: Raw iCalendar document

        Returns:
            Normalized events, recurring masters expanded into occurrences

        Raises:
            ICalParseError: If the document itself is unparseable
        """
        calendar = parse_calendar(ical_text)

        events: list[NormalizedEvent] = []
        skipped = 0
        exceptions_ignored = 0

        for component in calendar.events():
            if component.is_recurrence_exception:
                exceptions_ignored += 1
                continue
            try:
                if component.is_recurring:
                    events.extend(self._expand_recurring(component))
                else:
                    events.append(self._build_event(component))
            except Exception as e:
                skipped += 1
                logger.warning("Skipping event %r: %s", component.uid or "<no uid>", e)

        self.last_skipped_count = skipped
        logger.debug(
            "Normalized %d events (%d skipped, %d recurrence exceptions ignored)",
            len(events),
            skipped,
            exceptions_ignored,
        )
        return events

    def _resolve_times(self, component: EventComponent) -> tuple[date, Optional[date]]:
        """Return (start, end) following DTEND, then DURATION, then the all-day default."""
        start = component.temporal("DTSTART")
        if start is None:
            raise EventNormalizationError("Event missing valid DTSTART")

        end = component.temporal("DTEND")
        if end is None:
            duration = component.duration()
            if duration is not None:
                end = start + duration
            elif is_pure_date(start):
                end = start + timedelta(days=1)
            else:
                end = start
        return start, end

    def _expand_recurring(self, component: EventComponent) -> list[NormalizedEvent]:
        start, end = self._resolve_times(component)
        base_uid = component.uid
        occurrences = self.expander.expand(
            start,
            end,
            component.recurrence_rules(),
            rdates=component.recurrence_dates(),
            exdates=component.exclusion_dates(),
        )
        return [
            self._build_event(
                component,
                start=occurrence.start,
                end=occurrence.end,
                uid=f"{base_uid}_{epoch_millis(occurrence.start)}",
            )
            for occurrence in occurrences
        ]

    def _build_event(
        self,
        component: EventComponent,
        start: Optional[date] = None,
        end: Optional[date] = None,
        uid: Optional[str] = None,
    ) -> NormalizedEvent:
        if start is None:
            start, end = self._resolve_times(component)

        return NormalizedEvent(
            uid=uid or component.uid,
            title=component.text("SUMMARY") or UNTITLED_TITLE,
            description=component.text("DESCRIPTION"),
            location=component.text("LOCATION"),
            start=format_date_for_calendar(start),
            end=format_date_for_calendar(end) if end is not None else None,
            all_day=is_pure_date(start),
            organizer=self.attendee_parser.parse_organizer(component),
            attendees=self.attendee_parser.parse_attendees(component),
            created=self._timestamp(component, "CREATED"),
            last_modified=self._timestamp(component, "LAST-MODIFIED"),
            dt_stamp=self._timestamp(component, "DTSTAMP"),
            status=component.optional_text("STATUS"),
            transparency=component.optional_text("TRANSP"),
            sequence=component.integer("SEQUENCE"),
            url=component.optional_text("URL"),
            duration=component.duration_text(),
        )

    @staticmethod
    def _timestamp(component: EventComponent, name: str) -> Optional[str]:
        value = component.temporal(name)
        return to_iso_timestamp(value) if value is not None else None
