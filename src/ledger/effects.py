"""
Balance effect arithmetic.

A transaction's effect is a list of legs, one per account it touches.
Reversal is the same legs negated. Keeping this pure (no session, no
I/O) means create, update, delete and the materializer all share one
definition of what a transaction does to a balance.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

from src.ledger.errors import CreditLimitExceeded, InsufficientFunds
from src.models.ledger import AccountType, TransactionType


class BalanceHolder(Protocol):
    id: int
    type: str
    balance: Decimal
    credit_limit: Optional[Decimal]


@dataclass(frozen=True)
class Leg:
    account_id: int
    delta: Decimal
    inbound_transfer: bool = False

    def reversed(self) -> "Leg":
        return Leg(self.account_id, -self.delta, self.inbound_transfer)


def legs_for(
    tx_type,
    account_id: int,
    amount: Decimal,
    transfer_account_id: Optional[int] = None,
) -> list[Leg]:
    """
    Signed legs for a transaction.

    income: +amount on the account.
    expense: -amount on the account.
    transfer: -amount on the account, +amount on the transfer account.
    """
    tx_type = TransactionType(tx_type)
    amount = Decimal(amount)

    if tx_type == TransactionType.INCOME:
        return [Leg(account_id, amount)]
    if tx_type == TransactionType.EXPENSE:
        return [Leg(account_id, -amount)]

    legs = [Leg(account_id, -amount)]
    if transfer_account_id is not None:
        legs.append(Leg(transfer_account_id, amount, inbound_transfer=True))
    return legs


def reverse(legs: list[Leg]) -> list[Leg]:
    return [leg.reversed() for leg in legs]


def available_credit(account: BalanceHolder) -> Optional[Decimal]:
    """Credit limit minus |balance|, or None when the card has no limit."""
    if account.credit_limit is None:
        return None
    return Decimal(account.credit_limit) - abs(Decimal(account.balance))


def check_leg(account: BalanceHolder, leg: Leg) -> None:
    """
    Raise if applying `leg` to `account` breaks a balance rule.

    Must be called with the balance as it stands right before the leg
    is applied (i.e. after any reversal in the same unit).
    """
    balance = Decimal(account.balance)

    if AccountType(account.type) == AccountType.CREDIT_CARD:
        if account.credit_limit is None:
            return
        limit = Decimal(account.credit_limit)
        if leg.delta < 0:
            new_balance = balance + leg.delta
            if new_balance < 0 and abs(new_balance) > limit:
                raise CreditLimitExceeded(
                    account.id, available_credit(account), -leg.delta
                )
        elif leg.inbound_transfer and leg.delta > available_credit(account):
            raise CreditLimitExceeded(
                account.id, available_credit(account), leg.delta
            )
        return

    if leg.delta < 0 and balance + leg.delta < 0:
        raise InsufficientFunds(account.id, balance, -leg.delta)


def apply_legs(accounts: dict, legs: list[Leg], enforce_limits: bool = True) -> None:
    """
    Mutate balances of `accounts` (id -> row) by `legs`, in order.

    Callers run this inside a ledger unit; a raised error leaves the
    in-memory rows half-applied, which the unit's rollback discards.
    """
    for leg in legs:
        account = accounts[leg.account_id]
        if enforce_limits:
            check_leg(account, leg)
        account.balance = Decimal(account.balance) + leg.delta


def net_deltas(legs: list[Leg]) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = {}
    for leg in legs:
        totals[leg.account_id] = totals.get(leg.account_id, Decimal("0")) + leg.delta
    return totals
