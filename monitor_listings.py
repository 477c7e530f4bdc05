"""CLI entrypoint for the listing change monitor."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from listingwatcher.client import SparkApiClient
from listingwatcher.config import DEFAULT_DATABASE_URL, Settings
from listingwatcher.db import Database, resolve_sqlite_path
from listingwatcher.errors import ConfigError
from listingwatcher.notifications import build_dispatch
from listingwatcher.runner import PollLoop
from listingwatcher.web import create_app

logger = logging.getLogger(__name__)

POLL_JOB_ID = "listing_poll"


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # APScheduler logs every job execution at INFO.
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Listing status/price/open-house monitor")
    parser.add_argument("--init", action="store_true", help="initialize storage and exit")
    parser.add_argument(
        "--watch",
        action="store_true",
        help="poll on the configured interval until interrupted",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="poll in the background and expose /force-poll and /polling-status",
    )
    parser.add_argument(
        "--export",
        metavar="PATH",
        help="write the change event log to an .xlsx file and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="detect and log changes without notifying or persisting the cursor and events",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "3000")))
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def build_poll_loop(settings: Settings, dry_run: bool) -> PollLoop:
    client = SparkApiClient(
        base_url=settings.base_url,
        api_token=settings.api_token,
        listing_filter=settings.listing_filter,
        page_limit=settings.page_limit,
        timeout=settings.request_timeout,
    )
    database = Database(path=resolve_sqlite_path(settings.database_url))
    return PollLoop(
        client=client,
        dispatch=build_dispatch(settings),
        database=database,
        dry_run=dry_run,
    )


def schedule_polling(scheduler, poll_loop: PollLoop, interval_seconds: int) -> None:
    scheduler.add_job(
        func=poll_loop.run_cycle,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id=POLL_JOB_ID,
        name="Listing poll",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=interval_seconds,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.init or args.export:
        database_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        database = Database(path=resolve_sqlite_path(database_url))
        database.initialize()
        if args.export:
            count = database.export_events_to_xlsx(Path(args.export))
            logger.info("Exported %d event(s) to %s", count, args.export)
        return 0

    if not (args.watch or args.serve):
        parser.print_help()
        return 1

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 2

    poll_loop = build_poll_loop(settings, dry_run=args.dry_run)
    poll_loop.init()
    poll_loop.prime()

    if args.watch:
        scheduler = BlockingScheduler()
        schedule_polling(scheduler, poll_loop, settings.interval_seconds)
        logger.info("Polling every %d seconds", settings.interval_seconds)
        try:
            poll_loop.run_cycle(trigger="startup")
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutting down")
        finally:
            poll_loop.request_stop()
            if scheduler.running:
                scheduler.shutdown(wait=True)
        return 0

    scheduler = BackgroundScheduler()
    if settings.polling_enabled:
        schedule_polling(scheduler, poll_loop, settings.interval_seconds)
        scheduler.start()
        scheduler.add_job(poll_loop.run_cycle, kwargs={"trigger": "startup"})
        logger.info("Polling every %d seconds", settings.interval_seconds)
    else:
        logger.info("Polling disabled; use /force-poll to trigger cycles")

    app = create_app(
        poll_loop,
        polling_enabled=settings.polling_enabled,
        interval_seconds=settings.interval_seconds,
    )
    try:
        app.run(host=args.host, port=args.port)
    finally:
        poll_loop.request_stop()
        if scheduler.running:
            scheduler.shutdown(wait=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
