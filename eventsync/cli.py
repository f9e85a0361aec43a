#!/usr/bin/env python3
"""Command-line interface for eventsync.

Commands:
  - eventsync init-db       : Create database tables
  - eventsync load-sources  : Upsert scraper sources from sources.yaml
  - eventsync sweep         : Queue every due source/calendar and wait for the runs
  - eventsync run-source    : Scrape one source now
  - eventsync run-calendar  : Import one calendar now
  - eventsync dedup         : Run the cross-source duplicate sweep
  - eventsync list-scrapers : Show registered custom scrapers

Typical usage:
  eventsync init-db
  eventsync load-sources --config eventsync/configs/sources.yaml
  eventsync sweep --json-logs
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timedelta, timezone

from eventsync import __version__
from eventsync.configs.settings import get_settings
from eventsync.ingestion.errors import IngestionError


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="eventsync", description="Event ingestion and deduplication")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    p.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    p.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = p.add_subparsers(dest="cmd")

    sub.add_parser("init-db", help="Create database tables")

    pl = sub.add_parser("load-sources", help="Upsert scraper sources from YAML")
    pl.add_argument("--config", "-c", default=None, help="Path to sources YAML (default: SOURCES_CONFIG_PATH)")

    ps = sub.add_parser("sweep", help="Queue due sources and calendars")
    ps.add_argument(
        "--no-wait",
        action="store_true",
        help="Dispatch jobs without stagger and return while they run (no retries)",
    )

    prs = sub.add_parser("run-source", help="Scrape one source")
    prs.add_argument("source_id", type=int, help="ScraperSource id")

    prc = sub.add_parser("run-calendar", help="Import one calendar")
    prc.add_argument("calendar_id", type=int, help="Calendar id")

    pd = sub.add_parser("dedup", help="Run the cross-source duplicate sweep")
    pd.add_argument("--days", type=int, default=1, help="Look back this many days (default: 1)")

    sub.add_parser("list-scrapers", help="List registered custom scrapers")

    return p.parse_args(argv)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def main(argv: list[str] | None = None) -> int:
    """Run the CLI with the given arguments."""
    try:
        return _main_impl(argv)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except IngestionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _main_impl(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.version:
        print(f"eventsync version {__version__}")
        return 0

    if not args.cmd:
        print("Error: Command required. Use --help for usage info.", file=sys.stderr)
        return 1

    from eventsync.monitoring.logging import LoggingOptions, setup_logging

    settings = get_settings()
    setup_logging(
        LoggingOptions(
            level=args.log_level or settings.LOG_LEVEL,
            json_logs=args.json_logs or settings.JSON_LOGS,
        )
    )

    if args.cmd == "list-scrapers":
        from eventsync.ingestion.adapters import list_scrapers

        for name in list_scrapers():
            print(name)
        return 0

    from eventsync.storage.database import get_engine, get_session_factory, init_db

    if args.cmd == "init-db":
        init_db(get_engine())
        print("Database initialized.")
        return 0

    if args.cmd == "load-sources":
        from eventsync.ingestion.sources import load_sources_from_yaml

        session = get_session_factory()()
        try:
            sources = load_sources_from_yaml(session, args.config, settings=settings)
            print(f"{'SLUG':<28} {'ADAPTER':<16} {'ENABLED'}")
            print("-" * 56)
            for s in sources:
                adapter = s.scraper_class or "configurable"
                print(f"{s.slug:<28} {adapter:<16} {s.enabled}")
        finally:
            session.close()
        return 0

    if args.cmd == "sweep":
        from eventsync.ingestion.scheduler import scheduled_sync

        jobs = scheduled_sync(settings, wait=not args.no_wait)
        print(f"Queued {len(jobs)} jobs.")
        return 0

    if args.cmd in ("run-source", "run-calendar"):
        from eventsync.ingestion.orchestrator import IngestionCoordinator

        coordinator = IngestionCoordinator(get_session_factory(), settings)
        if args.cmd == "run-source":
            result = coordinator.run_source(args.source_id)
        else:
            result = coordinator.run_calendar(args.calendar_id)
        _print_json(result.to_dict())
        return 0 if result.success else 1

    if args.cmd == "dedup":
        from eventsync.ingestion.scheduler import DedupSweepJob

        since = datetime.now(timezone.utc) - timedelta(days=args.days)
        result = DedupSweepJob(get_session_factory(), settings).run(since=since)
        _print_json(
            {
                "days_checked": result.days_checked,
                "pairs_compared": result.pairs_compared,
                "removed": result.removed_count,
                "removed_ids": result.removed_ids,
            }
        )
        return 0

    print(f"Error: Unknown command: {args.cmd}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
