"""Tests for the recurring transaction materializer."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from conftest import OTHER_OWNER, OWNER
from src.models.ledger import (
    CategoryCreate,
    CategoryType,
    RecurringFrequency,
    RecurringTemplateCreate,
    TransactionType,
)
from src.recurring import RecurringMaterializer
from src.services.storage.tables import AccountRow, RecurringTransactionRow


@pytest.fixture
def materializer(engine):
    return RecurringMaterializer(engine)


@pytest.fixture
def make_template(database, category):
    """Insert a template row directly so any state can be set up."""

    def _make(account_id, amount="100", owner_id=OWNER, category_id=None, **fields):
        fields.setdefault("type", TransactionType.EXPENSE.value)
        fields.setdefault("frequency", RecurringFrequency.MONTHLY.value)
        fields.setdefault("interval", 1)
        fields.setdefault("start_date", date(2024, 11, 1))
        fields.setdefault("next_occurrence", date(2025, 1, 1))
        fields.setdefault("occurrences_count", 0)
        with database.transaction() as session:
            row = RecurringTransactionRow(
                owner_id=owner_id,
                account_id=account_id,
                category_id=category_id or category.id,
                name="Rent",
                description="Monthly rent",
                amount=Decimal(amount),
                **fields,
            )
            session.add(row)
            session.flush()
            return row.id

    return _make


class TestFindDue:
    """Tests for selecting due templates."""

    def test_due_and_not_due(self, materializer, make_account, make_template):
        account = make_account(balance="1000")
        due_id = make_template(account.id, next_occurrence=date(2025, 1, 1))
        make_template(account.id, next_occurrence=date(2025, 1, 3))

        due = materializer.find_due(today=date(2025, 1, 2))
        assert [t.id for t in due] == [due_id]

    def test_excludes_inactive_and_exhausted(self, materializer, make_account, make_template):
        account = make_account(balance="1000")
        make_template(account.id, is_active=False)
        make_template(account.id, max_occurrences=3, occurrences_count=3)
        make_template(account.id, end_date=date(2024, 12, 31))
        make_template(account.id, deleted_at=datetime(2024, 12, 1))

        assert materializer.find_due(today=date(2025, 1, 2)) == []

    def test_owner_filter(self, materializer, engine, make_account, make_template):
        mine = make_account(balance="1000")
        theirs = make_account(balance="1000", owner_id=OTHER_OWNER)
        their_category = engine.create_category(
            OTHER_OWNER, CategoryCreate(name="Rent", type=CategoryType.EXPENSE)
        )
        my_id = make_template(mine.id)
        make_template(theirs.id, owner_id=OTHER_OWNER, category_id=their_category.id)

        due = materializer.find_due(owner_id=OWNER, today=date(2025, 1, 2))
        assert [t.id for t in due] == [my_id]
        assert len(materializer.find_due(today=date(2025, 1, 2))) == 2


class TestRun:
    """Tests for a materializer run."""

    def test_last_occurrence_deactivates(self, materializer, engine, make_account, make_template, balance_of):
        account = make_account(balance="1000")
        template_id = make_template(
            account.id,
            next_occurrence=date(2025, 1, 1),
            max_occurrences=3,
            occurrences_count=2,
        )

        report = materializer.run(today=date(2025, 1, 2))

        assert report.processed_count == 1
        assert report.errors == []
        tx = engine.get_transaction(OWNER, report.created_transaction_ids[0])
        assert tx.date == date(2025, 1, 1)
        assert tx.is_cleared is False
        assert tx.recurring_transaction_id == template_id
        assert tx.description == "Monthly rent"

        template = engine.get_template(OWNER, template_id)
        assert template.occurrences_count == 3
        assert template.is_active is False
        assert template.next_occurrence == date(2025, 2, 1)
        assert balance_of(account.id) == Decimal("900")

    def test_one_occurrence_per_run(self, materializer, engine, make_account, make_template):
        account = make_account(balance="1000")
        template_id = make_template(account.id, next_occurrence=date(2025, 1, 1))

        report = materializer.run(today=date(2025, 3, 15))

        assert report.processed_count == 1
        template = engine.get_template(OWNER, template_id)
        assert template.next_occurrence == date(2025, 2, 1)
        assert template.is_active is True

    def test_second_run_same_day_is_noop(self, materializer, make_account, make_template):
        account = make_account(balance="1000")
        make_template(account.id, next_occurrence=date(2025, 1, 1))

        assert materializer.run(today=date(2025, 1, 1)).processed_count == 1
        assert materializer.run(today=date(2025, 1, 1)).processed_count == 0

    def test_end_date_deactivates(self, materializer, engine, make_account, make_template):
        account = make_account(balance="1000")
        template_id = make_template(
            account.id,
            next_occurrence=date(2025, 1, 1),
            end_date=date(2025, 1, 15),
        )

        materializer.run(today=date(2025, 1, 1))
        assert engine.get_template(OWNER, template_id).is_active is False

    def test_month_end_clamps(self, materializer, engine, make_account, make_template):
        account = make_account(balance="1000")
        template_id = make_template(account.id, next_occurrence=date(2025, 1, 31))

        materializer.run(today=date(2025, 1, 31))
        assert engine.get_template(OWNER, template_id).next_occurrence == date(2025, 2, 28)

    def test_dry_run_writes_nothing(self, materializer, engine, make_account, make_template, balance_of):
        account = make_account(balance="1000")
        template_id = make_template(account.id)

        report = materializer.run(dry_run=True, today=date(2025, 1, 2))

        assert report.dry_run is True
        assert report.processed_count == 0
        assert [t.id for t in report.due] == [template_id]
        assert engine.get_template(OWNER, template_id).occurrences_count == 0
        assert engine.list_transactions(OWNER) == []
        assert balance_of(account.id) == Decimal("1000")

    def test_failures_do_not_stop_the_run(self, materializer, database, make_account, make_template, balance_of):
        gone = make_account(balance="1000")
        poor = make_account(balance="10")
        fine = make_account(balance="1000")
        gone_id = make_template(gone.id)
        poor_id = make_template(poor.id)
        make_template(fine.id)
        with database.transaction() as session:
            session.get(AccountRow, gone.id).deleted_at = datetime(2024, 12, 31)

        report = materializer.run(today=date(2025, 1, 2))

        assert report.processed_count == 1
        assert report.has_errors
        failures = {e.template_id: e.error_code for e in report.errors}
        assert failures == {gone_id: "not_found", poor_id: "insufficient_funds"}
        assert balance_of(poor.id) == Decimal("10")
        assert balance_of(fine.id) == Decimal("900")

    def test_summary_shape(self, materializer, make_account, make_template):
        poor = make_account(balance="10")
        poor_id = make_template(poor.id)

        summary = materializer.run(today=date(2025, 1, 2)).to_summary()

        assert summary["processed_count"] == 0
        assert summary["errors"][0]["template_id"] == poor_id
        assert "Insufficient balance" in summary["errors"][0]["error"]

    def test_keeps_invariant(self, materializer, engine, make_account, make_template):
        account = make_account(balance="1000")
        make_template(account.id, type=TransactionType.INCOME.value)
        make_template(account.id, amount="45.50")

        materializer.run(today=date(2025, 1, 2))
        assert engine.verify_balances(OWNER) == []


class TestCreateTemplate:
    """Tests for user-created templates."""

    def test_first_occurrence_is_start_date(self, engine, make_account, category):
        account = make_account(balance="1000")
        template = engine.create_template(
            OWNER,
            RecurringTemplateCreate(
                account_id=account.id,
                category_id=category.id,
                name="Gym",
                amount=Decimal("30"),
                type=TransactionType.EXPENSE,
                frequency=RecurringFrequency.WEEKLY,
                start_date=date(2025, 1, 1),
                end_date=date(2025, 1, 29),
            ),
        )
        assert template.next_occurrence == date(2025, 1, 1)
        assert template.occurrences_count == 0
        assert template.max_occurrences == 5

    def test_transfer_templates_rejected(self, category):
        with pytest.raises(ValueError):
            RecurringTemplateCreate(
                account_id=1,
                category_id=category.id,
                name="Savings",
                amount=Decimal("30"),
                type=TransactionType.TRANSFER,
                frequency=RecurringFrequency.MONTHLY,
                start_date=date(2025, 1, 1),
            )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
