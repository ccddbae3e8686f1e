"""Organizer and attendee extraction for normalized events."""

import logging
from typing import Optional

from .ics_adapter import EventComponent, PropertyValue
from .models import Attendee, Organizer

logger = logging.getLogger(__name__)


class AttendeeParser:
    """Builds Organizer/Attendee models from ORGANIZER and ATTENDEE properties."""

    def parse_attendee(self, prop: PropertyValue) -> Attendee:
        """Parse one ATTENDEE property.

        Args:
            prop: Adapted ATTENDEE property

        Returns:
            Attendee with name from CN and email without ``mailto:``; parameters
            that are absent become empty strings
        """
        return Attendee(
            name=prop.parameter("CN"),
            email=prop.first_value(),
            role=prop.parameter("ROLE"),
            status=prop.parameter("PARTSTAT"),
            type=prop.parameter("CUTYPE"),
        )

    def parse_attendees(self, event: EventComponent) -> Optional[list[Attendee]]:
        """Parse all attendees of an event.

        Returns:
            List of attendees, or None when the event has no ATTENDEE property
        """
        props = event.property_values("ATTENDEE")
        if not props:
            return None

        attendees = []
        for prop in props:
            try:
                attendees.append(self.parse_attendee(prop))
            except Exception as e:
                logger.debug("Failed to parse attendee: %s", e)
        return attendees

    def parse_organizer(self, event: EventComponent) -> Optional[Organizer]:
        """Parse the ORGANIZER property, or return None if the event has none."""
        prop = event.first_property("ORGANIZER")
        if prop is None:
            return None
        return Organizer(name=prop.parameter("CN"), email=prop.first_value())
