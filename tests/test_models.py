"""
Tests for Budget Ledger models

Test strategy:
1. Unit tests for request models and read views (no database)
2. Integration tests for the engine and flows against SQLite
3. No network access in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from src.models.ledger import (
    AccountCreate,
    AccountType,
    AccountView,
    BalanceDiscrepancy,
    BulkFailure,
    BulkResult,
    MaterializerReport,
    RecurringFrequency,
    TemplateFailure,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    TransactionView,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestCommandModels:
    """Tests for request-side Pydantic models."""

    def test_transaction_create(self):
        """Test TransactionCreate model creation."""
        tx = TransactionCreate(
            account_id=1,
            category_id=2,
            amount=Decimal("99.95"),
            type=TransactionType.EXPENSE,
            date=date(2025, 1, 1),
            description="  Groceries  ",
        )
        assert tx.description == "Groceries"
        assert tx.is_cleared is True
        assert tx.tags == []

    def test_amount_must_be_positive(self):
        """Test that zero and negative amounts are rejected."""
        for amount in ("0", "-10"):
            with pytest.raises(ValueError):
                TransactionCreate(
                    account_id=1,
                    category_id=2,
                    amount=Decimal(amount),
                    type=TransactionType.EXPENSE,
                    date=date(2025, 1, 1),
                )

    def test_amount_two_decimal_places(self):
        """Test that sub-cent amounts are rejected."""
        with pytest.raises(ValueError):
            TransactionCreate(
                account_id=1,
                category_id=2,
                amount=Decimal("1.005"),
                type=TransactionType.EXPENSE,
                date=date(2025, 1, 1),
            )

    def test_recurring_requires_frequency(self):
        """Test recurring transactions need a recurring_type."""
        with pytest.raises(ValueError, match="recurring_type"):
            TransactionCreate(
                account_id=1,
                category_id=2,
                amount=Decimal("10"),
                type=TransactionType.EXPENSE,
                date=date(2025, 1, 1),
                is_recurring=True,
            )

    def test_recurring_end_date_validation(self):
        """Test that the end date cannot precede the transaction date."""
        with pytest.raises(ValueError, match="Recurring end date cannot be before"):
            TransactionCreate(
                account_id=1,
                category_id=2,
                amount=Decimal("10"),
                type=TransactionType.EXPENSE,
                date=date(2025, 1, 10),
                is_recurring=True,
                recurring_type=RecurringFrequency.MONTHLY,
                recurring_end_date=date(2025, 1, 1),
            )

    def test_update_tracks_sent_fields(self):
        """Test that explicit None differs from an omitted field."""
        update = TransactionUpdate(transfer_account_id=None, notes="x")
        assert update.model_fields_set == {"transfer_account_id", "notes"}

    def test_account_currency_uppercased(self):
        account = AccountCreate(name="Wallet", type=AccountType.CASH, currency="usd")
        assert account.currency == "USD"


class TestViews:
    """Tests for read views and reports."""

    def test_available_credit(self):
        view = AccountView(
            id=1,
            owner_id=1,
            name="Card",
            type=AccountType.CREDIT_CARD,
            balance=Decimal("-200"),
            initial_balance=Decimal("0"),
            credit_limit=Decimal("500"),
            currency="PHP",
            is_active=True,
            include_in_net_worth=True,
        )
        assert view.available_credit == Decimal("300")

    def test_available_credit_only_for_cards(self):
        view = AccountView(
            id=1,
            owner_id=1,
            name="Bank",
            type=AccountType.BANK,
            balance=Decimal("200"),
            initial_balance=Decimal("0"),
            currency="PHP",
            is_active=True,
            include_in_net_worth=True,
        )
        assert view.available_credit is None

    def test_transaction_view_null_tags(self):
        view = TransactionView(
            id=1,
            owner_id=1,
            account_id=1,
            category_id=1,
            description="",
            amount=Decimal("1"),
            type=TransactionType.INCOME,
            date=date(2025, 1, 1),
            tags=None,
            is_cleared=True,
        )
        assert view.tags == []

    def test_bulk_result_counts(self):
        result = BulkResult(
            succeeded=[1, 2],
            failed=[BulkFailure(transaction_id=3, index=2, error_code="not_found", error="gone")],
        )
        assert result.success_count == 2
        assert result.failure_count == 1

    def test_materializer_report_summary(self):
        report = MaterializerReport(
            run_date=date(2025, 1, 2),
            processed_count=4,
            errors=[TemplateFailure(template_id=7, error="Account 3 not found")],
        )
        assert report.has_errors is True
        assert report.to_summary() == {
            "processed_count": 4,
            "errors": [{"template_id": 7, "error": "Account 3 not found"}],
        }

    def test_discrepancy_difference(self):
        d = BalanceDiscrepancy(
            account_id=1,
            stored_balance=Decimal("100"),
            expected_balance=Decimal("90.50"),
        )
        assert d.difference == Decimal("9.50")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Test transaction created",
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            description="Transfer completed",
            details={"amount": "100.00"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transfer_completed"
        assert log_dict["details"]["amount"] == "100.00"

    def test_audit_event_builder_transaction_created(self):
        """Test AuditEventBuilder.transaction_created."""
        correlation_id = uuid4()

        event = AuditEventBuilder.transaction_created(
            owner_id=1,
            transaction_id=42,
            tx_type="expense",
            amount="50.00",
            account_id=3,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == 42
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_mutation_rejected(self):
        """Test AuditEventBuilder.mutation_rejected."""
        event = AuditEventBuilder.mutation_rejected(
            owner_id=1,
            operation="update",
            error_code="immutable_transaction",
            error_message="Cannot modify amount",
            entity_id=9,
        )

        assert event.event_type == AuditEventType.MUTATION_REJECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "immutable_transaction"

    def test_recurring_run_severity(self):
        """Test that a run with failures is a warning."""
        ok = AuditEventBuilder.recurring_run_completed(3, 0, False, 0.5)
        failed = AuditEventBuilder.recurring_run_completed(3, 1, False, 0.5)
        assert ok.severity == AuditSeverity.INFO
        assert failed.severity == AuditSeverity.WARNING


class TestEnums:
    """Tests for ledger enums."""

    def test_account_types(self):
        """Test that expected account types exist."""
        for value in ["cash", "bank", "credit_card", "investment", "ewallet"]:
            assert AccountType(value) is not None

    def test_frequency_values(self):
        assert RecurringFrequency.QUARTERLY.value == "quarterly"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
