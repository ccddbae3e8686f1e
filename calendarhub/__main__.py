"""Command-line entry for calendarhub."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the calendarhub CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="calendarhub",
        description="CalendarHub - self-hosted iCal aggregator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calendarhub                          # Serve on 0.0.0.0:8080
  python -m calendarhub --port 3000              # Serve on port 3000
  python -m calendarhub --data-file hub.json     # Persist calendars to hub.json
        """,
    )

    parser.add_argument(
        "--host",
        metavar="HOST",
        help="Address to bind (default: 0.0.0.0, or from CALENDARHUB_WEB_HOST env var)",
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from CALENDARHUB_WEB_PORT env var)",
    )
    parser.add_argument(
        "--data-file",
        dest="data_file",
        metavar="PATH",
        help="JSON file holding calendars and settings (default: in-memory only)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def main() -> NoReturn:
    """Run the calendarhub CLI."""
    parser = _create_parser()
    args = parser.parse_args()
    run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
