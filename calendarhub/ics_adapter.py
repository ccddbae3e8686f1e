"""Adapter over the icalendar library.

Everything downstream of this module works with ``ParsedCalendar``,
``EventComponent`` and ``PropertyValue``; the concrete icalendar property
types (vText, vCalAddress, vDDDTypes, vDDDLists, vRecur...) are unwrapped
here once.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, timedelta
from typing import Any, Optional

from icalendar import Calendar, Component

from .exceptions import ICalParseError

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> list[Any]:
    """icalendar returns a single object or a list when a property repeats."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class PropertyValue:
    """Uniform read access to a calendar property and its parameters."""

    def __init__(self, prop: Any):
        self._prop = prop
        self._params = getattr(prop, "params", None) or {}

    def has_parameter(self, name: str) -> bool:
        return name.upper() in self._params

    def parameter(self, name: str, default: str = "") -> str:
        """Return a parameter value as a string (first item for multi-valued params)."""
        value = self._params.get(name.upper())
        if value is None:
            return default
        if isinstance(value, (list, tuple)):
            value = value[0] if value else default
        return str(value)

    def first_value(self) -> str:
        """Return the property value as text with any ``mailto:`` prefix removed."""
        text = str(self._prop).strip()
        if text.lower().startswith("mailto:"):
            text = text[len("mailto:") :]
        return text


class EventComponent:
    """Read-only view of one VEVENT component."""

    def __init__(self, component: Component):
        self._component = component

    @property
    def uid(self) -> str:
        return self.text("UID")

    @property
    def is_recurrence_exception(self) -> bool:
        return "RECURRENCE-ID" in self._component

    @property
    def is_recurring(self) -> bool:
        return "RRULE" in self._component or "RDATE" in self._component

    def invalid_properties(self) -> set[str]:
        """Names of properties icalendar could not parse for this component."""
        errors = getattr(self._component, "errors", None) or []
        return {str(name).upper() for name, _ in errors}

    def text(self, name: str, default: str = "") -> str:
        """Return a text property (first occurrence) or ``default``."""
        values = _as_list(self._component.get(name))
        if not values:
            return default
        return str(values[0])

    def optional_text(self, name: str) -> Optional[str]:
        if name not in self._component:
            return None
        return self.text(name)

    def integer(self, name: str) -> Optional[int]:
        values = _as_list(self._component.get(name))
        if not values:
            return None
        try:
            return int(values[0])
        except (TypeError, ValueError):
            logger.debug("Ignoring non-integer %s=%r", name, values[0])
            return None

    def temporal(self, name: str) -> Optional[date]:
        """Return a DATE or DATE-TIME property as ``date``/``datetime``.

        Returns None when the property is absent, failed to parse, or holds
        some other value type (a PERIOD, say).
        """
        if name.upper() in self.invalid_properties():
            return None
        values = _as_list(self._component.get(name))
        if not values:
            return None
        value = getattr(values[0], "dt", None)
        if isinstance(value, date):
            return value
        return None

    def duration(self) -> Optional[timedelta]:
        values = _as_list(self._component.get("DURATION"))
        if not values:
            return None
        value = getattr(values[0], "dt", None)
        return value if isinstance(value, timedelta) else None

    def duration_text(self) -> Optional[str]:
        """Return DURATION in its iCalendar text form, e.g. ``PT1H30M``."""
        values = _as_list(self._component.get("DURATION"))
        if not values:
            return None
        prop = values[0]
        if hasattr(prop, "to_ical"):
            raw = prop.to_ical()
            return raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
        return str(prop)

    def first_property(self, name: str) -> Optional[PropertyValue]:
        values = self.property_values(name)
        return values[0] if values else None

    def property_values(self, name: str) -> list[PropertyValue]:
        return [PropertyValue(prop) for prop in _as_list(self._component.get(name))]

    def recurrence_rules(self) -> list[str]:
        """Return each RRULE as an ``FREQ=...;...`` string."""
        rules = []
        for prop in _as_list(self._component.get("RRULE")):
            raw = prop.to_ical()
            rules.append(raw.decode("utf-8") if isinstance(raw, bytes) else str(raw))
        return rules

    def recurrence_dates(self) -> list[date]:
        return self._date_list("RDATE")

    def exclusion_dates(self) -> list[date]:
        return self._date_list("EXDATE")

    def _date_list(self, name: str) -> list[date]:
        dates: list[date] = []
        for prop in _as_list(self._component.get(name)):
            for entry in getattr(prop, "dts", []):
                value = entry.dt
                # RDATE;VALUE=PERIOD yields (start, end-or-duration)
                if isinstance(value, tuple):
                    value = value[0]
                if isinstance(value, date):
                    dates.append(value)
        return dates


class ParsedCalendar:
    """A parsed VCALENDAR document."""

    def __init__(self, calendar: Component):
        self._calendar = calendar

    def events(self) -> Iterator[EventComponent]:
        for component in self._calendar.walk("VEVENT"):
            yield EventComponent(component)


def parse_calendar(ical_text: str) -> ParsedCalendar:
    """Parse raw ICS text.

    Args:
        ical_text: Full iCalendar document

    Returns:
        ParsedCalendar wrapping the VCALENDAR root

    Raises:
        ICalParseError: If the text is empty, unparseable or not a VCALENDAR
    """
    if not ical_text or not ical_text.strip():
        raise ICalParseError("Empty iCalendar data")

    try:
        calendar = Calendar.from_ical(ical_text)
    except Exception as e:
        raise ICalParseError(f"Unable to parse iCalendar data: {e}") from e

    if getattr(calendar, "name", None) != "VCALENDAR":
        raise ICalParseError("iCalendar data has no VCALENDAR root")

    return ParsedCalendar(calendar)
