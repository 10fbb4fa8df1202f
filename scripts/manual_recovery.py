"""
Manual recovery - replay orders whose live webhook was missed or failed.

Reads order display names from the first column of a CSV or Excel file
(header row discarded) and runs each through the fulfillment pipeline.
Orders that already carry the marker tag are skipped.

Usage:
    python scripts/manual_recovery.py orders.csv
    python scripts/manual_recovery.py orders.xlsx --dry-run
    python scripts/manual_recovery.py --orders "#1001" "#1002"
"""

import argparse
import logging
import os
import sys

# Allow imports from the project root when running as a script
_root_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..")
sys.path.insert(0, _root_dir)

from dotenv import load_dotenv
load_dotenv(os.path.join(_root_dir, ".env"))

import structlog

from config import StorageConnectionError, settings
from exceptions import AppError
from integrations.telegram import TelegramError, format_replay_summary, send_message
from parsers.order_list_parser import parse_order_list
from services.reconciliation_service import get_reconciliation_service

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production
            else structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Replay custom design fulfillment for a list of orders"
    )
    parser.add_argument(
        "file",
        nargs="?",
        default="orders.csv",
        help="CSV or Excel file, order names in the first column (default: orders.csv)"
    )
    parser.add_argument(
        "--orders",
        nargs="+",
        help="Order names to replay instead of reading a file"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the orders that would be replayed and exit"
    )
    parser.add_argument(
        "--no-telegram",
        action="store_true",
        help="Do not send the run summary to Telegram"
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.orders:
        order_names = args.orders
    else:
        try:
            order_names = parse_order_list(args.file).order_names
        except AppError as e:
            print(f"ERROR: {e.message}")
            return 1

    print(f"Orders to replay: {len(order_names)}")
    if not order_names:
        return 0

    if args.dry_run:
        for name in order_names:
            print(f"  {name}")
        return 0

    try:
        service = get_reconciliation_service()
    except AppError as e:
        print(f"ERROR: {e.message}")
        return 1
    except StorageConnectionError as e:
        print(f"ERROR: {e}")
        return 1

    report = service.replay(order_names)

    print()
    print("=" * 60)
    print("MANUAL RECOVERY SUMMARY")
    print("=" * 60)
    for entry in report.entries:
        line = f"  {entry.order_name:<16} {entry.status.value}"
        if entry.report is not None:
            line += f" ({entry.report.status.value}, {len(entry.report.links)} link(s))"
        if entry.error_message:
            line += f": {entry.error_message}"
        print(line)
    print("-" * 60)
    for status, count in report.summary.items():
        print(f"  {status}: {count}")

    if not args.no_telegram:
        try:
            send_message(format_replay_summary(report))
        except TelegramError as e:
            logger.warning("replay_summary_not_sent", error=str(e))

    failed = any(
        entry.report is not None and entry.report.needs_attention
        for entry in report.entries
    )
    return 2 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
