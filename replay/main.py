#!/usr/bin/env python3
"""
Blog Replay - Entry Point

This module serves as the command line entry point. ``scrape`` archives a blog
into the store, ``generate`` replays one stored entry into each Atom feed and
``list`` shows what is stored. ``generate`` is meant to be run periodically,
e.g. from cron.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from replay import PROG_NAME, __version__
from replay.config import LogLevel, Settings, load_settings
from replay.context import AppContext
from replay.errors import FeedGenerationError, ReplayError
from replay.tasks import generate_feeds, list_feeds, scrape_blog

# Set up structured logger
logger = structlog.get_logger()


def setup_logging(settings: Settings) -> None:
    """Set up structured logging based on configuration."""
    log_level = settings.logging.level.value

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if settings.logging.structured
            else structlog.dev.ConsoleRenderer()
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Route structlog through the stdlib root logger; logs go to stderr so
    # command output on stdout stays clean.
    logging.basicConfig(format="%(message)s", stream=sys.stderr)
    numeric_level = getattr(logging, log_level, logging.INFO)
    logging.getLogger().setLevel(numeric_level)

    logger.debug("Logging initialized", level=log_level)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Blog Replay - Replay a blog's archive into an Atom feed, one post at a time",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        help="Path to a .env file with REPLAY_ settings",
        default=None
    )

    parser.add_argument(
        "--log-level",
        choices=[level.value for level in LogLevel],
        default=None,
        help="Set the log level"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Scrape a blog's archive into the store")
    scrape.add_argument("url", help="URL of the blog")

    generate = subparsers.add_parser("generate", help="Replay one entry into each feed")
    generate.add_argument(
        "--feed",
        help="Generate only the specified feed (by key)",
        default=None
    )

    subparsers.add_parser("list", help="List stored feeds and their pending entries")

    return parser.parse_args(argv)


def print_generated(results) -> None:
    for feed_key, entry in results.items():
        print(f"{feed_key}\t{entry.title if entry else '(nothing pending)'}")


def run_command(args: argparse.Namespace, settings: Settings) -> None:
    """Run the selected subcommand."""
    with AppContext(settings) as app_context:
        if args.command == "scrape":
            identity, queued = scrape_blog(app_context, args.url)
            print(f"{identity.key}\t{queued} entries queued")

        elif args.command == "generate":
            try:
                results = generate_feeds(app_context, args.feed)
            except FeedGenerationError as e:
                print_generated(e.results)
                raise
            print_generated(results)

        elif args.command == "list":
            for identity, pending in list_feeds(app_context):
                print(f"{identity.key}\t{pending} pending\t{identity.title}\t{identity.url}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    try:
        # Parse command line arguments
        args = parse_args(argv)

        # Load settings
        settings = load_settings(args.env_file)

        # Override settings with command line arguments
        if args.log_level:
            settings.logging.level = LogLevel(args.log_level)

        # Set up logging
        setup_logging(settings)

        logger.debug(
            "Blog Replay starting up",
            version=settings.version,
            command=args.command,
            python_version=sys.version
        )

        run_command(args, settings)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except ReplayError as e:
        logger.error("Command failed", error=str(e), error_type=type(e).__name__)
        return 1

    except Exception as e:
        logger.exception("Unhandled exception", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
