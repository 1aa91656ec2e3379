"""
Command line entry point.

    budget-ledger process-recurring [--dry-run] [--user ID] [--date YYYY-MM-DD]
    budget-ledger verify-balances --user ID

Both commands exit with 1 when something needs attention (a failed
template, a balance discrepancy) so a scheduler can alert on it.
"""

import argparse
import sys
import time
from datetime import date
from typing import Optional, Sequence

import structlog

from src.audit import configure_logging
from src.config import get_settings
from src.orchestrator import RecurringFlow, TransactionFlow, create_app_components
from src.services.storage import StorageError, create_database


logger = structlog.get_logger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="budget-ledger",
        description="Budget ledger maintenance commands",
    )
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy database URL (default: LEDGER_DATABASE_URL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    recurring = subparsers.add_parser(
        "process-recurring",
        help="Create transactions for due recurring templates",
    )
    recurring.add_argument(
        "--dry-run",
        action="store_true",
        help="List due templates without creating transactions",
    )
    recurring.add_argument(
        "--user",
        type=int,
        default=None,
        help="Process only templates of this owner id",
    )
    recurring.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Run as if today were this date (default: today)",
    )

    verify = subparsers.add_parser(
        "verify-balances",
        help="Recompute account balances from transactions and report differences",
    )
    verify.add_argument(
        "--user",
        type=int,
        required=True,
        help="Owner id whose accounts are checked",
    )
    return parser


def process_recurring(flow: RecurringFlow, args: argparse.Namespace) -> int:
    print("Starting to process recurring transactions...")
    started = time.monotonic()

    if args.dry_run:
        print("Running in DRY-RUN mode. No transactions will be created.")

    report = flow.process_due(owner_id=args.user, dry_run=args.dry_run, today=args.date)

    if args.dry_run:
        print(f"Found {len(report.due)} recurring transactions due for processing:")
        for template in report.due:
            print(
                f"  - [ID: {template.id}] {template.name}: {template.type.value} "
                f"{template.amount:.2f} ({template.frequency.value}) - "
                f"Next: {template.next_occurrence.isoformat()}"
            )
        return 0

    duration = time.monotonic() - started
    print(f"Processing completed in {duration:.1f} seconds.")
    print(f"Successfully processed: {report.processed_count} transactions")

    if report.has_errors:
        print(f"Errors encountered: {len(report.errors)}")
        for error in report.errors:
            print(f"  - Recurring ID {error.template_id}: {error.error}")
        return 1
    return 0


def verify_balances(flow: TransactionFlow, args: argparse.Namespace) -> int:
    discrepancies = flow.verify_balances(args.user)
    if not discrepancies:
        print("All account balances match their transactions.")
        return 0

    print(f"Found {len(discrepancies)} account(s) with a balance discrepancy:")
    for d in discrepancies:
        print(
            f"  - Account {d.account_id}: stored {d.stored_balance:.2f}, "
            f"expected {d.expected_balance:.2f} (difference {d.difference:.2f})"
        )
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    app_settings = get_settings().app
    configure_logging(app_settings.log_level, json=not app_settings.debug_mode)

    try:
        database = create_database(args.database_url)
        transaction_flow, recurring_flow, database = create_app_components(database)
        try:
            if args.command == "process-recurring":
                return process_recurring(recurring_flow, args)
            return verify_balances(transaction_flow, args)
        finally:
            database.dispose()
    except StorageError as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.error("cli_failed", command=args.command, error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
