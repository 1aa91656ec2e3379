"""Tests for the budget-ledger command line."""

from datetime import date
from decimal import Decimal

import pytest

from conftest import OWNER
from src.cli import build_parser, main
from src.services.storage.tables import AccountRow, RecurringTransactionRow


@pytest.fixture
def database_url(database):
    return database.url


def add_template(database, account_id, category_id, amount="100"):
    with database.transaction() as session:
        session.add(
            RecurringTransactionRow(
                owner_id=OWNER,
                account_id=account_id,
                category_id=category_id,
                name="Rent",
                amount=Decimal(amount),
                type="expense",
                frequency="monthly",
                interval=1,
                start_date=date(2025, 1, 1),
                next_occurrence=date(2025, 1, 1),
            )
        )


class TestParser:
    """Tests for argument parsing."""

    def test_process_recurring_options(self):
        args = build_parser().parse_args(
            ["process-recurring", "--dry-run", "--user", "3", "--date", "2025-01-02"]
        )
        assert args.dry_run is True
        assert args.user == 3
        assert args.date == date(2025, 1, 2)

    def test_bad_date(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["process-recurring", "--date", "02/01/2025"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestProcessRecurring:
    """Tests for `budget-ledger process-recurring`."""

    def test_dry_run_lists_due(self, database, database_url, make_account, category, capsys):
        account = make_account(balance="1000")
        add_template(database, account.id, category.id)

        code = main(["--database-url", database_url, "process-recurring", "--dry-run", "--date", "2025-01-02"])

        out = capsys.readouterr().out
        assert code == 0
        assert "DRY-RUN" in out
        assert "Found 1 recurring transactions due" in out
        assert "Rent: expense 100.00 (monthly) - Next: 2025-01-01" in out

    def test_run_success(self, database, database_url, engine, make_account, category, capsys):
        account = make_account(balance="1000")
        add_template(database, account.id, category.id)

        code = main(["--database-url", database_url, "process-recurring", "--date", "2025-01-02"])

        assert code == 0
        assert "Successfully processed: 1 transactions" in capsys.readouterr().out
        assert engine.get_account(OWNER, account.id).balance == Decimal("900")

    def test_run_with_failure_exits_1(self, database, database_url, make_account, category, capsys):
        account = make_account(balance="10")
        add_template(database, account.id, category.id)

        code = main(["--database-url", database_url, "process-recurring", "--date", "2025-01-02"])

        out = capsys.readouterr().out
        assert code == 1
        assert "Errors encountered: 1" in out
        assert "Recurring ID" in out


class TestVerifyBalances:
    """Tests for `budget-ledger verify-balances`."""

    def test_clean(self, database_url, make_account, capsys):
        make_account(balance="10")
        assert main(["--database-url", database_url, "verify-balances", "--user", str(OWNER)]) == 0
        assert "All account balances match" in capsys.readouterr().out

    def test_discrepancy(self, database, database_url, make_account, capsys):
        account = make_account(balance="10")
        with database.transaction() as session:
            session.get(AccountRow, account.id).balance = Decimal("12")

        assert main(["--database-url", database_url, "verify-balances", "--user", str(OWNER)]) == 1
        assert "stored 12.00, expected 10.00" in capsys.readouterr().out


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
