"""Command-line entry for celcat_feed."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the celcat_feed CLI."""
    parser = argparse.ArgumentParser(
        prog="celcat_feed",
        description="CELCAT calendar feed server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m celcat_feed                 # Start server on default port (8080)
  python -m celcat_feed --port 3000     # Start server on port 3000
  python -m celcat_feed --debug         # Verbose logging
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from CELCAT_FEED_WEB_PORT env var)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging for celcat_feed modules",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    parser = _create_parser()
    args = parser.parse_args(argv)
    run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
