"""RRULE/RDATE/EXDATE expansion using python-dateutil."""

import logging
import re
from datetime import UTC, date, datetime, time
from itertools import islice
from typing import NamedTuple, Optional

from dateutil.rrule import rruleset, rrulestr

from .datetime_utils import as_datetime, is_pure_date

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 365

_UNTIL_RE = re.compile(r"UNTIL=([0-9T]+Z?)", re.IGNORECASE)


class RecurrenceExpansionError(Exception):
    """A recurrence rule could not be expanded."""


class Occurrence(NamedTuple):
    start: date
    end: Optional[date]


class RecurrenceExpander:
    """Expands a recurring event into concrete occurrences.

    Expansion starts at the declared DTSTART (which is itself the first
    occurrence unless excluded) and stops after ``max_occurrences`` instances,
    whatever the rule's frequency or COUNT/UNTIL.
    """

    def __init__(self, max_occurrences: int = DEFAULT_MAX_OCCURRENCES):
        if max_occurrences < 1:
            raise ValueError("max_occurrences must be positive")
        self.max_occurrences = max_occurrences

    def expand(
        self,
        start: date,
        end: Optional[date],
        rrules: list[str],
        rdates: Optional[list[date]] = None,
        exdates: Optional[list[date]] = None,
    ) -> list[Occurrence]:
        """Expand a master event.

        Args:
            start: Master DTSTART (date, floating or zoned datetime)
            end: Master end, used to give every occurrence the same duration
            rrules: RRULE value strings, e.g. ``FREQ=WEEKLY;COUNT=3``
            rdates: Extra occurrence dates
            exdates: Excluded occurrence dates

        Returns:
            Occurrences in chronological order, values typed like ``start``

        Raises:
            RecurrenceExpansionError: If a rule cannot be parsed
        """
        all_day = is_pure_date(start)
        dtstart = as_datetime(start)
        duration = (as_datetime(end) - dtstart) if end is not None else None

        rule_set = rruleset()
        for rule in rrules:
            try:
                parsed = rrulestr(
                    self._align_until(rule, dtstart),
                    dtstart=dtstart,
                    ignoretz=dtstart.tzinfo is None,
                )
            except (ValueError, TypeError) as e:
                raise RecurrenceExpansionError(f"Invalid RRULE {rule!r}: {e}") from e
            rule_set.rrule(parsed)

        rule_set.rdate(dtstart)
        for value in rdates or []:
            rule_set.rdate(self._align(value, dtstart))
        for value in exdates or []:
            rule_set.exdate(self._align(value, dtstart))

        occurrences = []
        try:
            for occurrence in islice(rule_set, self.max_occurrences):
                occurrence_end = occurrence + duration if duration is not None else None
                if all_day:
                    occurrences.append(
                        Occurrence(
                            occurrence.date(),
                            occurrence_end.date() if occurrence_end is not None else None,
                        )
                    )
                else:
                    occurrences.append(Occurrence(occurrence, occurrence_end))
        except (ValueError, TypeError) as e:
            raise RecurrenceExpansionError(f"Recurrence expansion failed: {e}") from e

        if len(occurrences) == self.max_occurrences:
            logger.debug("Recurrence expansion capped at %d occurrences", self.max_occurrences)
        return occurrences

    @staticmethod
    def _align(value: date, dtstart: datetime) -> datetime:
        """Give an RDATE/EXDATE the same time-zone awareness as DTSTART."""
        if is_pure_date(value):
            return datetime.combine(value, dtstart.timetz())
        if dtstart.tzinfo is None:
            return value.replace(tzinfo=None)
        if value.tzinfo is None:
            return value.replace(tzinfo=dtstart.tzinfo)
        return value

    @staticmethod
    def _align_until(rule: str, dtstart: datetime) -> str:
        """Rewrite UNTIL so dateutil accepts it for this DTSTART.

        dateutil refuses rules whose UNTIL awareness differs from DTSTART's, so a
        non-UTC UNTIL becomes UTC when DTSTART is zoned. A date-only UNTIL covers
        that whole day, in DTSTART's zone or floating.
        """
        match = _UNTIL_RE.search(rule)
        if match is None:
            return rule

        raw = match.group(1).upper()
        if dtstart.tzinfo is None:
            if "T" in raw:
                return rule
            until = datetime.combine(datetime.strptime(raw, "%Y%m%d").date(), time(23, 59, 59))
            return rule[: match.start(1)] + until.strftime("%Y%m%dT%H%M%S") + rule[match.end(1) :]
        if raw.endswith("Z"):
            return rule

        if "T" in raw:
            local = datetime.strptime(raw, "%Y%m%dT%H%M%S")
        else:
            local = datetime.combine(datetime.strptime(raw, "%Y%m%d").date(), time(23, 59, 59))
        until = local.replace(tzinfo=dtstart.tzinfo).astimezone(UTC)
        return rule[: match.start(1)] + until.strftime("%Y%m%dT%H%M%SZ") + rule[match.end(1) :]

