"""Calendar and settings stores.

Both stores share one ``JsonDocument``: an in-memory dict that, when given a
path, is loaded from and atomically written back to a JSON file after every
change. Without a path the data lives in memory only.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from .models import CalendarRecord

logger = logging.getLogger(__name__)

_CALENDAR_FIELDS = frozenset(CalendarRecord.model_fields) - {"id", "created_at", "updated_at"}


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class JsonDocument:
    """Thread-safe JSON document with optional atomic file persistence.

    The on-disk format is ``{"next_id": int, "calendars": [...], "settings": {...}}``.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self.lock = threading.Lock()
        self.data: dict[str, Any] = {"next_id": 1, "calendars": [], "settings": {}}

        if self._path is not None:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
            except OSError:
                logger.debug("Could not ensure directory for store: %s", self._path.parent)
            self.load()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def load(self) -> None:
        """Load the document from disk; a missing or unreadable file starts empty."""
        if self._path is None:
            return
        with self.lock:
            if not self._path.exists():
                logger.debug("Store file not found; starting empty: %s", self._path)
                return
            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    raw = json.load(fh)
                if not isinstance(raw, dict):
                    raise ValueError("store JSON root must be an object")  # noqa: TRY004
            except Exception as exc:
                logger.warning("Failed to read store %s: %s", self._path, exc)
                return

            calendars = []
            for entry in raw.get("calendars", []):
                try:
                    calendars.append(CalendarRecord.model_validate(entry).model_dump())
                except ValidationError as exc:
                    logger.warning("Skipping malformed calendar entry in %s: %s", self._path, exc)

            next_id = max([c["id"] for c in calendars], default=0) + 1
            self.data = {
                "next_id": max(int(raw.get("next_id", 1)), next_id),
                "calendars": calendars,
                "settings": dict(raw.get("settings") or {}),
            }
            logger.debug("Loaded store %s (%d calendars)", self._path, len(calendars))

    def persist(self) -> None:
        """Write the document atomically. Callers must hold ``lock``.

        Raises:
            OSError: If the file cannot be written
        """
        if self._path is None:
            return

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(self.data, tf, ensure_ascii=False)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except Exception:
            logger.warning("Failed to persist store to %s", self._path)
            if tmp_path is not None and tmp_path.exists():
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise


class CalendarStore:
    """Calendar records with get/create/update/delete by id."""

    def __init__(self, document: Optional[JsonDocument] = None) -> None:
        self._doc = document or JsonDocument()

    def _find(self, calendar_id: int) -> Optional[dict[str, Any]]:
        for entry in self._doc.data["calendars"]:
            if entry["id"] == calendar_id:
                return entry
        return None

    async def get_all(self) -> list[CalendarRecord]:
        with self._doc.lock:
            return [CalendarRecord.model_validate(entry) for entry in self._doc.data["calendars"]]

    async def get_by_id(self, calendar_id: int) -> Optional[CalendarRecord]:
        with self._doc.lock:
            entry = self._find(calendar_id)
            return CalendarRecord.model_validate(entry) if entry is not None else None

    async def get_by_url(self, url: str) -> Optional[CalendarRecord]:
        with self._doc.lock:
            for entry in self._doc.data["calendars"]:
                if entry["url"] == url:
                    return CalendarRecord.model_validate(entry)
            return None

    async def create(self, fields: dict[str, Any]) -> CalendarRecord:
        """Create a calendar and assign it the next id.

        Raises:
            ValueError: If ``fields`` contains unknown keys
            pydantic.ValidationError: If required fields are missing or invalid
        """
        unknown = set(fields) - _CALENDAR_FIELDS
        if unknown:
            raise ValueError(f"Unknown calendar fields: {sorted(unknown)}")

        with self._doc.lock:
            now = _now_iso()
            record = CalendarRecord(
                id=self._doc.data["next_id"], created_at=now, updated_at=now, **fields
            )
            self._doc.data["calendars"].append(record.model_dump())
            self._doc.data["next_id"] += 1
            try:
                self._doc.persist()
            except Exception:
                self._doc.data["calendars"].pop()
                self._doc.data["next_id"] -= 1
                raise

        logger.info("Created calendar %d (%s)", record.id, record.name)
        return record

    async def update(self, calendar_id: int, **fields: Any) -> Optional[CalendarRecord]:
        """Replace the given fields of one calendar in a single write.

        Returns:
            The updated record, or None if the calendar does not exist

        Raises:
            ValueError: If ``fields`` contains unknown keys
        """
        unknown = set(fields) - _CALENDAR_FIELDS
        if unknown:
            raise ValueError(f"Unknown calendar fields: {sorted(unknown)}")

        with self._doc.lock:
            entry = self._find(calendar_id)
            if entry is None:
                return None
            previous = dict(entry)
            candidate = CalendarRecord.model_validate({**entry, **fields, "updated_at": _now_iso()})
            entry.update(candidate.model_dump())
            try:
                self._doc.persist()
            except Exception:
                entry.clear()
                entry.update(previous)
                raise
            return candidate

    async def delete(self, calendar_id: int) -> bool:
        with self._doc.lock:
            entry = self._find(calendar_id)
            if entry is None:
                return False
            self._doc.data["calendars"].remove(entry)
            self._doc.persist()
        logger.info("Deleted calendar %d", calendar_id)
        return True


class SettingsStore:
    """Key/value settings; values are stored JSON-serialized."""

    def __init__(self, document: Optional[JsonDocument] = None) -> None:
        self._doc = document or JsonDocument()

    async def get(self, key: str, default: Any = None) -> Any:
        with self._doc.lock:
            raw = self._doc.data["settings"].get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Setting %r is not valid JSON; returning default", key)
            return default

    async def set(self, key: str, value: Any) -> None:
        encoded = json.dumps(value)
        with self._doc.lock:
            previous = self._doc.data["settings"].get(key)
            self._doc.data["settings"][key] = encoded
            try:
                self._doc.persist()
            except Exception:
                if previous is None:
                    self._doc.data["settings"].pop(key, None)
                else:
                    self._doc.data["settings"][key] = previous
                raise


def open_stores(path: str | Path | None = None) -> tuple[CalendarStore, SettingsStore]:
    """Create calendar and settings stores sharing one document (file-backed if ``path``)."""
    document = JsonDocument(path)
    return CalendarStore(document), SettingsStore(document)
