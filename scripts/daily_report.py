#!/usr/bin/env python3
"""
daily_report.py
---------------

Operator CLI for query performance telemetry.

USAGE:
  python scripts/daily_report.py report [--date YYYY-MM-DD] [--json]
  python scripts/daily_report.py range --start YYYY-MM-DD --end YYYY-MM-DD [--json]
  python scripts/daily_report.py clear --date YYYY-MM-DD

Connects to Redis using the REDIS_* environment settings. `clear` is
refused when ENVIRONMENT=production. Logging defaults to WARNING unless
LOG_LEVEL is set.

Exit codes: 0 success, 1 no data, 2 error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional, Sequence

# Report output goes to stdout; keep INFO lifecycle logs out of it
os.environ.setdefault("LOG_LEVEL", "WARNING")

from quotawatch.core.config import Config
from quotawatch.core.infra import AccountingContext
from quotawatch.core.logging.logger import LogContext, get_logger, shutdown_logging
from quotawatch.core.redis.store import AccountingStore
from quotawatch.modules.performance import DailyReport, format_report

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_NO_DATA = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="quotawatch performance reports")
    sub = parser.add_subparsers(dest="command", required=True)

    report = sub.add_parser("report", help="Report for one day (default: today, UTC)")
    report.add_argument("--date", default=None, help="YYYY-MM-DD")
    report.add_argument("--json", action="store_true", help="Print JSON instead of text")

    span = sub.add_parser("range", help="Reports for every day in an inclusive range")
    span.add_argument("--start", required=True, help="YYYY-MM-DD")
    span.add_argument("--end", required=True, help="YYYY-MM-DD")
    span.add_argument("--json", action="store_true", help="Print JSON instead of text")

    clear = sub.add_parser("clear", help="Delete one day's aggregate and ledgers")
    clear.add_argument("--date", required=True, help="YYYY-MM-DD")

    return parser


def _render(reports: List[DailyReport], as_json: bool) -> str:
    if as_json:
        return json.dumps([report.to_dict() for report in reports], indent=2)
    return "\n\n".join(format_report(report) for report in reports)


async def run(args: argparse.Namespace, store: Optional[AccountingStore] = None) -> int:
    """Execute one CLI command. Returns the process exit code."""
    if args.command == "clear" and Config.is_production():
        print("Refusing to clear metrics in production", file=sys.stderr)
        return EXIT_ERROR

    async with LogContext(command=args.command, report_date=getattr(args, "date", None)), \
            AccountingContext(store=store) as context:
        aggregator = context.aggregator

        if args.command == "report":
            report = await aggregator.generate_daily_report(args.date)
            if report is None:
                print(f"No performance data for {args.date or 'today'}")
                return EXIT_NO_DATA
            print(_render([report], args.json))
            return EXIT_OK

        if args.command == "range":
            reports = await aggregator.get_metrics_for_range(args.start, args.end)
            if not reports:
                print(f"No performance data between {args.start} and {args.end}")
                return EXIT_NO_DATA
            print(_render(reports, args.json))
            return EXIT_OK

        cleared = await aggregator.clear_metrics(args.date)
        print(f"Cleared metrics for {args.date}" if cleared else f"Failed to clear metrics for {args.date}")
        return EXIT_OK if cleared else EXIT_ERROR


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except ValueError as exc:
        print(f"Invalid argument: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except RuntimeError as exc:
        logger.critical(
            "Report command failed",
            extra={"command": args.command, "error": str(exc), "error_type": type(exc).__name__},
        )
        return EXIT_ERROR
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
