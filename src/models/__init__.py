"""
Data Models Package

This package contains all Pydantic models used in the Budget Ledger system.
Everything crossing the ledger engine boundary conforms to these schemas.
"""

from src.models.ledger import (
    AccountCreate,
    AccountType,
    AccountView,
    BalanceChangeType,
    BalanceDiscrepancy,
    BulkFailure,
    BulkResult,
    CategoryCreate,
    CategoryType,
    CategoryView,
    MaterializerReport,
    MutationResult,
    RecurringFrequency,
    RecurringTemplateCreate,
    RecurringTemplateView,
    TemplateFailure,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    TransactionView,
    TransferRequest,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "AccountCreate",
    "AccountType",
    "AccountView",
    "BalanceChangeType",
    "BalanceDiscrepancy",
    "BulkFailure",
    "BulkResult",
    "CategoryCreate",
    "CategoryType",
    "CategoryView",
    "MaterializerReport",
    "MutationResult",
    "RecurringFrequency",
    "RecurringTemplateCreate",
    "RecurringTemplateView",
    "TemplateFailure",
    "TransactionCreate",
    "TransactionType",
    "TransactionUpdate",
    "TransactionView",
    "TransferRequest",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
