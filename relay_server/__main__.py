"""
Command line entry point for the radio relay.

Usage:
    python -m relay_server
    python -m relay_server --port 8080 --stations data/stations.json
    radio-relay --log-level debug
"""

import argparse
import logging
from typing import List, Optional

import uvicorn

from logging_module import LoggingConfig, setup_logging
from relay_server.app import create_app
from relay_server.config import RelaySettings

logger = logging.getLogger(__name__)

LOG_LEVELS = ["debug", "info", "warning", "error", "critical"]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Options left unset fall back to ``RELAY_*`` environment variables.
    """
    parser = argparse.ArgumentParser(
        prog="radio-relay",
        description="Relay radio stations as MP3 through FFmpeg",
    )
    parser.add_argument("--host", default=None, help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Listen port (default: 3000)")
    parser.add_argument(
        "--stations",
        default=None,
        help="Station snapshot JSON file (default: stations.json)",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: LOG_LEVEL or info)",
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> RelaySettings:
    """Relay settings with command line overrides applied."""
    overrides = {}
    if args.host is not None:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.stations is not None:
        overrides["stations_path"] = args.stations
    return RelaySettings(**overrides)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the relay server."""
    args = build_parser().parse_args(argv)

    logging_config = LoggingConfig.from_env()
    if args.log_level:
        logging_config.log_level = args.log_level.upper()
    setup_logging(logging_config)

    settings = settings_from_args(args)
    logger.info(f"Starting radio relay on {settings.host}:{settings.port}")

    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=logging_config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
