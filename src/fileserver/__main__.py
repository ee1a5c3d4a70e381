"""
=============================================================================
FILE SERVER CLI ENTRY POINT
=============================================================================

    # Serve the current directory on 127.0.0.1:8000
    python -m fileserver

    # Another directory (absolute path), all interfaces, custom port
    python -m fileserver -b 0.0.0.0 -p 9000 -d /srv/site

    # Print request and response headers for every exchange
    python -m fileserver -o verbose

    # No access output at all
    python -m fileserver -o none

Unknown options or bad values are rejected before anything listens: argparse
exits with status 2, configuration problems (relative or missing directory,
port out of range) exit with status 1.

=============================================================================
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_LEVELS, ConfigurationError, OutputLevel, ServerConfig
from .server import create_file_server, setup_logging


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fileserver",
        description="Serve a directory tree over HTTP (GET and HEAD only).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fileserver                          # current directory, port 8000
  python -m fileserver -p 9000 -d /srv/site     # another directory and port
  python -m fileserver -b 0.0.0.0 -o verbose    # all interfaces, print headers
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--bind", "-b",
        default="127.0.0.1",
        metavar="ADDRESS",
        help="Address to bind to (default: 127.0.0.1, use 0.0.0.0 for all interfaces)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--directory", "-d",
        default=os.getcwd(),
        metavar="DIR",
        help="Absolute path of the directory to serve (default: current directory)",
    )

    parser.add_argument(
        "--output", "-o",
        choices=[level.value for level in OutputLevel],
        default=OutputLevel.DEFAULT.value,
        help="Access output: none, default (one line per request) or verbose (default: default)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE / DIAGNOSTICS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=16,
        help="Maximum number of worker threads (default: 16)",
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        type=str.upper,
        default="INFO",
        help="Diagnostic logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"fileserver {__version__}",
    )

    return parser


def parse_config(argv: Optional[List[str]] = None) -> ServerConfig:
    """
    Translate command-line arguments into a validated ServerConfig.

    Raises:
        SystemExit: On argparse errors (status 2).
        ConfigurationError: On invalid values.
    """
    args = build_parser().parse_args(argv)
    if args.workers < 1:
        raise ConfigurationError(f"--workers must be >= 1, got {args.workers}")

    config = ServerConfig(
        host=args.bind,
        port=args.port,
        root=args.directory,
        output_level=OutputLevel.parse(args.output),
        min_workers=min(4, args.workers),
        max_workers=args.workers,
        log_level=args.log_level,
    )
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = parse_config(argv)
    except ConfigurationError as e:
        print(f"fileserver: error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.log_level)

    try:
        server = create_file_server(config)
        host, port = server.bind()
        print(f"Serving {config.root} and subdirectories on {host} port {port}", flush=True)
        server.run()
    except ConfigurationError as e:
        print(f"fileserver: error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        logger.error(f"Connection failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
