"""calendarhub - self-hosted iCal aggregator.

Subscribes to remote ICS feeds, normalizes and expands their events, serves
public and authenticated views over a JSON API and republishes selected
calendars as one combined feed. Imports stay light here so the package can be
inspected without pulling in the server stack.
"""

__version__ = "0.1.0"

from typing import Any, Optional


def run_server(args: Optional[Any] = None) -> None:
    """Start the CalendarHub server.

    Configuration comes from the environment (and an optional ``.env`` file);
    command-line values on ``args`` (``host``, ``port``, ``data_file``,
    ``debug``) override it.
    """
    from .config_manager import ConfigManager
    from .hub_logging import configure_hub_logging
    from .server import start_server

    config = ConfigManager().load_full_config()
    if args is not None:
        config = config.with_overrides(
            server_bind=getattr(args, "host", None),
            server_port=getattr(args, "port", None),
            data_file=getattr(args, "data_file", None),
            debug=True if getattr(args, "debug", False) else None,
        )

    configure_hub_logging(debug_mode=config.debug)
    start_server(config)
