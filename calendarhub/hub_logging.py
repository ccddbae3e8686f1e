"""
Central logging configuration for calendarhub.

Installs a colorized console handler and quiets noisy third-party loggers
while keeping calendarhub's own INFO/DEBUG diagnostics.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

CONSOLE_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

THIRD_PARTY_LEVELS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "icalendar": logging.INFO,
}


def _env_debug() -> bool:
    return os.getenv("CALENDARHUB_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")


def build_console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S", log_colors=LOG_COLORS))
    return handler


def configure_hub_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> int:
    """
    Configure root, calendarhub and third-party logger levels.

    Args:
        debug_mode: Whether to enable debug logging for calendarhub modules
        force_debug: Override debug mode setting (None to use env var detection)

    Returns:
        The root log level that was applied

    Environment Variables:
        CALENDARHUB_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDARHUB_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    if force_debug is not None:
        final_debug = force_debug
    else:
        final_debug = debug_mode or _env_debug()

    root_level = logging.DEBUG if final_debug else logging.INFO
    env_log_level = os.getenv("CALENDARHUB_LOG_LEVEL", "").strip().upper()
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    # Keep handlers installed by the host (pytest, systemd wrappers)
    if not root_logger.handlers:
        root_logger.addHandler(build_console_handler(root_level))

    for logger_name, level in THIRD_PARTY_LEVELS.items():
        logging.getLogger(logger_name).setLevel(level)
    logging.getLogger("calendarhub").setLevel(logging.DEBUG if final_debug else logging.INFO)

    if final_debug:
        root_logger.info("Debug logging enabled for calendarhub modules")
    return root_level
