"""Command-line entry point for Stream Sentinel.

Usage::

    stream-sentinel run [--log-level DEBUG]
    stream-sentinel add NAME [--site SITE] [--temporary]
    stream-sentinel remove NAME [--site SITE]
    stream-sentinel list [--site SITE]
    stream-sentinel sites

``add`` and ``remove`` only queue the request in ``<site>_updates.yml``; a
running coordinator applies it at the start of its next cycle.  ``--site``
defaults to the first entry of the ``sites`` setting.

Exit codes:
    0: Success.
    1: Unknown site or invalid arguments.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional

import structlog

from stream_sentinel.config.settings import Settings, get_settings
from stream_sentinel.core.logging_config import configure_logging
from stream_sentinel.core.watchlist import UpdateRequestFile, WatchList
from stream_sentinel.sources.registry import autodiscover, get_source, list_sources
from stream_sentinel.workers.coordinator import CaptureCoordinator

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stream-sentinel",
        description="Watch live-streaming sites and record streamers when they go live.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Start polling and capturing.")
    run.add_argument(
        "--log-level",
        default=None,
        help="Override the log_level setting (DEBUG, INFO, WARNING, ...).",
    )

    add = subparsers.add_parser("add", help="Queue a streamer to be added.")
    add.add_argument("name", help="Streamer name as used on the site.")
    add.add_argument("--site", default=None, help="Site name (default: first configured site).")
    add.add_argument(
        "--temporary",
        action="store_true",
        default=False,
        help="Track for this session only; never written to the watch list.",
    )

    remove = subparsers.add_parser("remove", help="Queue a streamer to be removed.")
    remove.add_argument("name", help="Streamer name as used on the site.")
    remove.add_argument("--site", default=None, help="Site name (default: first configured site).")

    show = subparsers.add_parser("list", help="Print a site's persisted watch list.")
    show.add_argument("--site", default=None, help="Site name (default: first configured site).")

    subparsers.add_parser("sites", help="Print the registered source adapters.")
    return parser


def _resolve_site(settings: Settings, site: Optional[str]) -> str:
    """Return *site* (or the default site) after checking it is registered.

    Raises:
        SystemExit: With code 1 if no adapter is registered for the site.
    """
    name = site or (settings.sites[0] if settings.sites else "")
    autodiscover()
    try:
        get_source(name)
    except KeyError as exc:
        print(f"[stream-sentinel] ERROR: {exc.args[0]}", file=sys.stderr)
        raise SystemExit(1) from None
    return name


async def _queue(settings: Settings, site: str, key: str, name: str) -> None:
    update_file = UpdateRequestFile(settings.config_dir / f"{site}_updates.yml")
    await update_file.append(key, name)
    print(f"[stream-sentinel] queued {key}: {name} ({site})")


async def _list(settings: Settings, site: str) -> None:
    watchlist = WatchList(settings.config_dir / f"{site}.yml")
    streamers = await watchlist.load()
    if not streamers:
        print(f"[stream-sentinel] no streamers in {watchlist.path}")
        return
    for streamer_id in streamers:
        print(streamer_id)


def _print_sites() -> None:
    autodiscover()
    for entry in list_sources():
        print(f"{entry['platform_name']:<10} {entry['description']}")


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the ``stream-sentinel`` console script."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    if args.command == "run":
        configure_logging(args.log_level or settings.log_level)
        coordinator = CaptureCoordinator(settings)
        try:
            asyncio.run(coordinator.run())
        except KeyboardInterrupt:
            logger.warning("interrupted")
            return 130
        return 0

    configure_logging(settings.log_level)
    if args.command == "sites":
        _print_sites()
    elif args.command == "list":
        asyncio.run(_list(settings, _resolve_site(settings, args.site)))
    elif args.command == "add":
        key = "temporary" if args.temporary else "include"
        asyncio.run(_queue(settings, _resolve_site(settings, args.site), key, args.name))
    elif args.command == "remove":
        asyncio.run(_queue(settings, _resolve_site(settings, args.site), "exclude", args.name))
    return 0


if __name__ == "__main__":
    sys.exit(main())
