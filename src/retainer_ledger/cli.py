"""Command-line entry point: one reconciliation run, or ledger setup."""

import argparse
import json
import sys
from datetime import date
from pathlib import Path

from retainer_ledger.config import configure_logging, get_logger, get_settings
from retainer_ledger.engine import RetainerEngine
from retainer_ledger.errors import OpenMonthError, StructuralError
from retainer_ledger.ledger import CsvLedgerStore
from retainer_ledger.models import month_key
from retainer_ledger.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
)

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_STRUCTURAL = 2


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}") from exc


def _parse_month(value: str) -> str:
    try:
        month = month_key(date.fromisoformat(f"{value}-01"))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM month: {value!r}") from exc
    if month != value:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM month: {value!r}")
    return month


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="retainer-ledger",
        description="Retainer ledger reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s init --ledger-dir=./ledger          # Create empty ledger files
  %(prog)s run                                 # Reconcile as of today
  %(prog)s run --date=2024-04-01               # Reconcile as of a given date
  %(prog)s run --invoice-month=2024-03         # Force invoicing for March 2024
  %(prog)s run --dry-run --json                # Show what would happen
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--ledger-dir",
        type=Path,
        default=None,
        help="Directory holding the ledger CSV files (default: RETAINER_LEDGER_DIR)",
    )
    common.add_argument(
        "--log-format",
        choices=["console", "json"],
        default=None,
        help="Log output format (default: LOG_FORMAT)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "init", parents=[common], help="Create any missing ledger files with headers"
    )

    run = subparsers.add_parser("run", parents=[common], help="Run one reconciliation pass")
    run.add_argument("--date", type=_parse_date, default=None, help="Run date (YYYY-MM-DD)")
    run.add_argument(
        "--invoice-month",
        type=_parse_month,
        default=None,
        help="Generate invoices for this past month only (YYYY-MM)",
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute and print the digest without writing or sending anything",
    )
    run.add_argument("--json", action="store_true", help="Print the digest as JSON")
    return parser


def _build_sink() -> NotificationSink:
    settings = get_settings()
    if settings.notify_webhook_url:
        return WebhookNotificationSink()
    return LoggingNotificationSink()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(format=args.log_format)

    settings = get_settings()
    store = CsvLedgerStore(args.ledger_dir or settings.ledger_dir)

    if args.command == "init":
        created = store.initialize()
        print(f"Created {len(created)} ledger file(s) in {store.directory}")
        return EXIT_OK

    sink = _build_sink()
    engine = RetainerEngine(store, sink=sink, settings=settings)
    try:
        result = engine.run(
            today=args.date,
            invoice_month=args.invoice_month,
            dry_run=args.dry_run,
        )
    except StructuralError as exc:
        logger.error(
            "run_failed_structural",
            error=str(exc),
            table=exc.table,
            row=exc.row,
            column=exc.column,
        )
        return EXIT_STRUCTURAL
    except OpenMonthError as exc:
        logger.error("run_refused_open_month", error=str(exc), month=exc.month)
        return EXIT_USAGE
    finally:
        if isinstance(sink, WebhookNotificationSink):
            sink.close()

    if result.skipped:
        print("Another reconciliation run is in progress; skipped.")
        return EXIT_OK

    digest = result.digest
    if digest is not None:
        if args.json:
            print(json.dumps(digest.to_dict(), indent=2))
        else:
            print(digest.to_text())
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
