"""Tests for balance effect arithmetic (no database involved)."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import pytest

from src.ledger.effects import (
    Leg,
    apply_legs,
    available_credit,
    check_leg,
    legs_for,
    net_deltas,
    reverse,
)
from src.ledger.errors import CreditLimitExceeded, InsufficientFunds
from src.models.ledger import AccountType, TransactionType


@dataclass
class FakeAccount:
    id: int
    type: str
    balance: Decimal
    credit_limit: Optional[Decimal] = None


def bank(account_id=1, balance="0"):
    return FakeAccount(account_id, AccountType.BANK.value, Decimal(balance))


def card(account_id=2, balance="0", limit="500"):
    return FakeAccount(
        account_id,
        AccountType.CREDIT_CARD.value,
        Decimal(balance),
        Decimal(limit) if limit is not None else None,
    )


class TestLegs:
    """Tests for legs_for and reverse."""

    def test_income_is_one_positive_leg(self):
        assert legs_for(TransactionType.INCOME, 1, Decimal("10")) == [Leg(1, Decimal("10"))]

    def test_expense_is_one_negative_leg(self):
        assert legs_for("expense", 1, Decimal("10")) == [Leg(1, Decimal("-10"))]

    def test_transfer_has_two_legs(self):
        legs = legs_for(TransactionType.TRANSFER, 1, Decimal("25"), 2)
        assert legs == [
            Leg(1, Decimal("-25")),
            Leg(2, Decimal("25"), inbound_transfer=True),
        ]

    def test_reverse_negates_every_leg(self):
        legs = legs_for(TransactionType.TRANSFER, 1, Decimal("25"), 2)
        assert net_deltas(legs + reverse(legs)) == {1: Decimal("0"), 2: Decimal("0")}

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            legs_for("refund", 1, Decimal("10"))


class TestLimitChecks:
    """Tests for check_leg."""

    def test_bank_cannot_go_negative(self):
        with pytest.raises(InsufficientFunds):
            check_leg(bank(balance="50"), Leg(1, Decimal("-100")))

    def test_bank_can_reach_exactly_zero(self):
        check_leg(bank(balance="50"), Leg(1, Decimal("-50")))

    def test_positive_leg_never_checked_on_bank(self):
        check_leg(bank(balance="-10"), Leg(1, Decimal("5")))

    def test_card_expense_within_limit(self):
        check_leg(card(balance="-400"), Leg(2, Decimal("-100")))

    def test_card_expense_beyond_limit(self):
        with pytest.raises(CreditLimitExceeded) as exc:
            check_leg(card(balance="-400"), Leg(2, Decimal("-100.01")))
        assert exc.value.code == "credit_limit_exceeded"

    def test_card_without_limit_never_checked(self):
        check_leg(card(limit=None), Leg(2, Decimal("-1000000")))

    def test_inbound_transfer_checked_against_available_credit(self):
        account = card(balance="-450")
        assert available_credit(account) == Decimal("50")
        with pytest.raises(CreditLimitExceeded):
            check_leg(account, Leg(2, Decimal("100"), inbound_transfer=True))

    def test_inbound_transfer_within_available_credit(self):
        check_leg(card(balance="-200"), Leg(2, Decimal("100"), inbound_transfer=True))

    def test_plain_income_on_card_not_checked(self):
        check_leg(card(balance="-450"), Leg(2, Decimal("100")))


class TestApplyLegs:
    """Tests for apply_legs."""

    def test_applies_in_order(self):
        accounts = {1: bank(1, "1000"), 2: card(2, "-200")}
        apply_legs(accounts, legs_for(TransactionType.TRANSFER, 1, Decimal("100"), 2))
        assert accounts[1].balance == Decimal("900")
        assert accounts[2].balance == Decimal("-100")

    def test_reversal_skips_checks(self):
        accounts = {1: bank(1, "0")}
        apply_legs(accounts, [Leg(1, Decimal("-80"))], enforce_limits=False)
        assert accounts[1].balance == Decimal("-80")

    def test_check_failure_raises(self):
        accounts = {1: bank(1, "50")}
        with pytest.raises(InsufficientFunds):
            apply_legs(accounts, legs_for(TransactionType.EXPENSE, 1, Decimal("100")))
        assert accounts[1].balance == Decimal("50")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
