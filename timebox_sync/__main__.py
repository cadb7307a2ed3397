"""Command-line entry for timebox_sync.

A small diagnostic CLI: decode the schedule of a block stored in a text file,
or fetch and expand iCalendar feeds the way the event store would.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import NoReturn, Optional

from . import _init_logging
from .core.config_manager import ConfigError, ConfigManager
from .core.http_client import close_all_clients
from .core.logging_config import configure_logging
from .feeds.feed_cache import FeedCollector
from .schedule.annotation import decode_schedule


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for timebox_sync CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="timebox_sync",
        description="Timebox Sync - scheduled task / calendar feed diagnostics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m timebox_sync decode block.txt                 # Decode a block's schedule
  python -m timebox_sync feeds https://example.com/a.ics  # Expand a feed in the window
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--settings",
        type=Path,
        metavar="FILE",
        help="YAML settings file (TIMEBOX_* environment variables still apply)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    decode = subparsers.add_parser("decode", help="Decode the schedule of a block")
    decode.add_argument("file", type=Path, help="File holding the block text ('-' for stdin)")

    feeds = subparsers.add_parser("feeds", help="Fetch and expand iCalendar feeds")
    feeds.add_argument("urls", nargs="*", help="Feed URLs (defaults to configured feeds)")

    return parser


def _run_decode(path: Path) -> int:
    content = sys.stdin.read() if str(path) == "-" else path.read_text(encoding="utf-8")
    schedule = decode_schedule(content)
    payload = None
    if schedule is not None:
        payload = schedule.model_dump(mode="json")
        payload["end"] = schedule.end.isoformat() if schedule.end else None
    print(json.dumps(payload, indent=2))
    return 0 if schedule is not None else 1


async def _collect_feeds(settings, urls: list[str]) -> list[dict]:
    try:
        occurrences = await FeedCollector(settings).collect_all(urls)
    finally:
        await close_all_clients()
    return [occurrence.model_dump(mode="json") for occurrence in occurrences]


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the timebox_sync CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    _init_logging("DEBUG" if args.debug else "WARNING")
    configure_logging(debug_mode=args.debug)

    if args.command == "decode":
        try:
            sys.exit(_run_decode(args.file))
        except OSError as exc:
            print(f"Cannot read {args.file}: {exc}", file=sys.stderr)
            sys.exit(2)

    try:
        settings = ConfigManager(settings_file_path=args.settings).load_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)

    urls = args.urls or settings.feed_urls
    if not urls:
        print("No feed URLs given or configured (TIMEBOX_EXTERNAL_ICS_URLS)", file=sys.stderr)
        sys.exit(2)

    print(json.dumps(asyncio.run(_collect_feeds(settings, urls)), indent=2))
    sys.exit(0)


if __name__ == "__main__":
    main()
