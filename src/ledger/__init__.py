"""
Ledger Package

The mutation engine, its balance effect arithmetic and its error types.
"""

from src.ledger.engine import LedgerEngine, LedgerUnit
from src.ledger.errors import (
    BatchTooLarge,
    ConcurrencyConflict,
    CreditLimitExceeded,
    ImmutableTransaction,
    InsufficientFunds,
    InvalidTransfer,
    LedgerError,
    NotFound,
)

__all__ = [
    "LedgerEngine",
    "LedgerUnit",
    # Errors
    "BatchTooLarge",
    "ConcurrencyConflict",
    "CreditLimitExceeded",
    "ImmutableTransaction",
    "InsufficientFunds",
    "InvalidTransfer",
    "LedgerError",
    "NotFound",
]
