"""
Ledger Error Taxonomy

Every way a ledger operation can be refused has its own exception type.
Each carries a stable machine code (for callers and the audit trail) and
a message a person can read.

Only ConcurrencyConflict is worth retrying automatically; everything
else is a terminal answer for that operation.
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base exception for refused ledger operations."""

    code = "ledger_error"
    retryable = False

    def __init__(self, message: str, **context):
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            **{k: str(v) for k, v in self.context.items()},
        }


class InsufficientFunds(LedgerError):
    """A non-credit account would go below zero."""

    code = "insufficient_funds"

    def __init__(self, account_id: int, available: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient balance in account {account_id}. "
            f"Available: {available:,.2f}, requested: {requested:,.2f}",
            account_id=account_id,
            available=available,
            requested=requested,
        )


class CreditLimitExceeded(LedgerError):
    """A credit card would owe more than its credit limit."""

    code = "credit_limit_exceeded"

    def __init__(self, account_id: int, available_credit: Decimal, requested: Decimal):
        super().__init__(
            f"Transaction exceeds available credit on account {account_id}. "
            f"Available: {available_credit:,.2f}, requested: {requested:,.2f}",
            account_id=account_id,
            available_credit=available_credit,
            requested=requested,
        )


class InvalidTransfer(LedgerError):
    """Transfer account missing, inactive, self-referential or misplaced."""

    code = "invalid_transfer"


class ImmutableTransaction(LedgerError):
    """Protected fields of an old cleared transaction cannot change."""

    code = "immutable_transaction"

    def __init__(self, transaction_id: int, fields: list[str], days: int):
        super().__init__(
            f"Cannot modify {', '.join(fields)} of cleared transaction "
            f"{transaction_id}: it is older than {days} days",
            transaction_id=transaction_id,
            fields=",".join(fields),
        )


class NotFound(LedgerError):
    """Referenced row is absent, deleted, inactive or not owned by the caller."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Optional[int], reason: str = "not found"):
        super().__init__(
            f"{entity.capitalize()} {entity_id} {reason}",
            entity=entity,
            entity_id=entity_id,
        )


class ConcurrencyConflict(LedgerError):
    """Lock or serialization failure on an account row."""

    code = "concurrency_conflict"
    retryable = True


class BatchTooLarge(LedgerError):
    """A bulk request exceeded the configured batch bound."""

    code = "batch_too_large"

    def __init__(self, size: int, limit: int):
        super().__init__(
            f"Batch of {size} items exceeds the limit of {limit}",
            size=size,
            limit=limit,
        )
