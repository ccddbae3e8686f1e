"""Configuration management for the CalendarHub server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

from .feed_builder import DEFAULT_FEED_NAME
from .ics_fetcher import DEFAULT_TIMEOUT_MS
from .rrule_expander import DEFAULT_MAX_OCCURRENCES

logger = logging.getLogger(__name__)

ENV_PREFIX = "CALENDARHUB_"


@dataclass(frozen=True)
class HubConfig:
    """Runtime configuration; every field has a working default."""

    data_file: Optional[str] = None
    api_token: Optional[str] = None
    fetch_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES
    refresh_interval_seconds: int = 3600
    server_bind: str = "0.0.0.0"  # nosec B104 - server listens on all interfaces by default
    server_port: int = 8080
    feed_name: str = DEFAULT_FEED_NAME
    debug: bool = False

    def with_overrides(self, **overrides: Any) -> HubConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


class ConfigManager:
    """Builds HubConfig from environment variables and an optional .env file."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file into the environment without overriding existing variables.

        Returns:
            Keys that were set from the file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug("Failed to read .env file (continuing): %s", self.env_file_path, exc_info=True)
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    @staticmethod
    def _int_env(name: str, default: int) -> int:
        raw = os.environ.get(ENV_PREFIX + name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Invalid %s%s=%r; using default %d", ENV_PREFIX, name, raw, default)
            return default

    def build_config_from_env(self) -> HubConfig:
        """Build configuration from ``CALENDARHUB_*`` environment variables.

        Recognizes DATA_FILE, API_TOKEN, FETCH_TIMEOUT_MS, MAX_OCCURRENCES,
        REFRESH_INTERVAL, WEB_HOST, WEB_PORT, FEED_NAME and DEBUG.
        """
        defaults = HubConfig()
        max_occurrences = self._int_env("MAX_OCCURRENCES", defaults.max_occurrences)
        if max_occurrences < 1:
            logger.warning("%sMAX_OCCURRENCES must be positive; using default", ENV_PREFIX)
            max_occurrences = defaults.max_occurrences

        return HubConfig(
            data_file=os.environ.get(ENV_PREFIX + "DATA_FILE") or None,
            api_token=os.environ.get(ENV_PREFIX + "API_TOKEN") or None,
            fetch_timeout_ms=self._int_env("FETCH_TIMEOUT_MS", defaults.fetch_timeout_ms),
            max_occurrences=max_occurrences,
            refresh_interval_seconds=self._int_env(
                "REFRESH_INTERVAL", defaults.refresh_interval_seconds
            ),
            server_bind=os.environ.get(ENV_PREFIX + "WEB_HOST") or defaults.server_bind,
            server_port=self._int_env("WEB_PORT", defaults.server_port),
            feed_name=os.environ.get(ENV_PREFIX + "FEED_NAME") or defaults.feed_name,
            debug=os.environ.get(ENV_PREFIX + "DEBUG", "").strip().lower() in ("1", "true", "yes"),
        )

    def load_full_config(self) -> HubConfig:
        """Load the .env file, then build configuration from the environment."""
        self.load_env_file()
        return self.build_config_from_env()
