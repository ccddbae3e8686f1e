"""Export and import of calendar subscriptions (definitions only, no event data)."""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from .exceptions import CalendarValidationError
from .models import ImportFailure, ImportResult

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

CALENDAR_COLORS = (
    "#447dfc",
    "#e74c3c",
    "#2ecc71",
    "#f39c12",
    "#9b59b6",
    "#1abc9c",
    "#34495e",
    "#e67e22",
    "#95a5a6",
    "#16a085",
    "#27ae60",
    "#2980b9",
)

_TAG_RE = re.compile(r"<[^>]*>")


def sanitize_name(value: str) -> str:
    """Trim whitespace and strip HTML tags."""
    return _TAG_RE.sub("", value).strip()


def random_color() -> str:
    return random.choice(CALENDAR_COLORS)  # nosec B311 - display color, not security relevant


async def export_calendars(store: Any) -> dict[str, Any]:
    """Return every calendar's definition in a portable document.

    Returns:
        ``{"calendars": [...], "exportedAt": iso, "version": "1.0"}``
    """
    calendars = await store.get_all()
    exported = [
        {
            "name": calendar.name,
            "url": calendar.url,
            "color": calendar.color,
            "visible_to_public": calendar.visible_to_public,
            "show_details_to_public": calendar.show_details_to_public,
        }
        for calendar in calendars
    ]
    logger.info("Exported %d calendars", len(exported))
    now = datetime.now(UTC)
    return {
        "calendars": exported,
        "exportedAt": f"{now.strftime('%Y-%m-%dT%H:%M:%S')}.{now.microsecond // 1000:03d}Z",
        "version": EXPORT_VERSION,
    }


async def import_calendars(
    store: Any,
    calendars_data: Any,
    color_picker: Callable[[], str] = random_color,
) -> ImportResult:
    """Create calendars from exported definitions.

    Entries whose URL already exists are skipped. Entries without a name or
    URL, or whose name is empty once sanitized, are reported as errors and the
    import continues.

    Args:
        store: Calendar store (``get_by_url``, ``create``)
        calendars_data: List of calendar definition dicts
        color_picker: Color source for entries without a color

    Returns:
        ImportResult with counts and per-entry errors

    Raises:
        CalendarValidationError: If ``calendars_data`` is not a list
    """
    if not isinstance(calendars_data, list):
        raise CalendarValidationError("Calendars must be an array")

    result = ImportResult()
    for entry in calendars_data:
        if not isinstance(entry, dict) or not entry.get("name") or not entry.get("url"):
            result.errors.append(ImportFailure(calendar=entry, message="Name and URL are required"))
            continue

        try:
            if await store.get_by_url(entry["url"]) is not None:
                result.skipped += 1
                continue

            name = sanitize_name(str(entry["name"]))
            if not name:
                result.errors.append(
                    ImportFailure(
                        calendar=entry,
                        message="Calendar name cannot be empty after sanitization",
                    )
                )
                continue

            await store.create(
                {
                    "name": name,
                    "url": str(entry["url"]),
                    "color": entry.get("color") or color_picker(),
                    "visible_to_public": bool(entry.get("visible_to_public", True)),
                    "show_details_to_public": bool(entry.get("show_details_to_public", True)),
                }
            )
            result.imported += 1
        except Exception as e:
            logger.warning("Failed to import calendar %r: %s", entry.get("name"), e)
            result.errors.append(ImportFailure(calendar=entry, message=str(e)))

    logger.info(
        "Calendar import completed: %d imported, %d skipped, %d errors",
        result.imported,
        result.skipped,
        len(result.errors),
    )
    return result
