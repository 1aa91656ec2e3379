"""
Core Data Models for Budget Ledger

These models define the schemas for everything that crosses the ledger
engine boundary: the commands a caller sends in, the read views handed
back after a committed unit, and the reports produced by bulk operations
and the recurring materializer.

DESIGN DECISION: Amounts are Decimal with two places everywhere.
Balances are compared for equality in tests and in the invariant check,
so binary floating point is never allowed near them.
"""

import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


Money = Annotated[Decimal, Field(max_digits=15, decimal_places=2)]
PositiveMoney = Annotated[Decimal, Field(gt=0, max_digits=15, decimal_places=2)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """
    Kinds of money containers.

    Only CREDIT_CARD changes ledger behaviour: it may go negative up to
    its credit limit instead of being bounded at zero.
    """
    CASH = "cash"
    BANK = "bank"
    CREDIT_CARD = "credit_card"
    INVESTMENT = "investment"
    EWALLET = "ewallet"


class TransactionType(str, Enum):
    """Transaction type; decides the sign of the effect on balances."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class RecurringFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class BalanceChangeType(str, Enum):
    """Why a balance history row was written."""
    INITIAL = "initial"
    TRANSACTION = "transaction"
    REVERSAL = "reversal"
    ADJUSTMENT = "adjustment"


# =============================================================================
# COMMANDS - what callers ask the engine to do
# =============================================================================

class AccountCreate(BaseModel):
    """Opening a new account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    type: AccountType
    initial_balance: Money = Decimal("0.00")
    credit_limit: Optional[Annotated[Decimal, Field(ge=0, max_digits=15, decimal_places=2)]] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    is_active: bool = True
    include_in_net_worth: bool = True

    @field_validator("currency")
    @classmethod
    def uppercase_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class CategoryCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    type: CategoryType


class TransactionCreate(BaseModel):
    """
    A new transaction as received from the (external) request validator.

    Ownership, transfer consistency and balance sufficiency are NOT
    checked here - the engine owns those pre-conditions.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: int
    category_id: int
    amount: PositiveMoney
    type: TransactionType
    date: date
    transfer_account_id: Optional[int] = None
    description: str = Field(default="", max_length=255)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: list[str] = Field(default_factory=list)
    reference_number: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=255)
    attachments: list[dict[str, Any]] = Field(default_factory=list)
    is_cleared: bool = True

    # Recurring metadata
    is_recurring: bool = False
    recurring_type: Optional[RecurringFrequency] = None
    recurring_interval: Optional[int] = Field(default=None, ge=1, le=365)
    recurring_end_date: Optional[date] = None

    @model_validator(mode="after")
    def validate_recurring(self) -> "TransactionCreate":
        """Recurring transactions need a frequency, a sane end date and no transfer."""
        if self.is_recurring and self.recurring_type is None:
            raise ValueError("Recurring transactions require a recurring_type")
        if self.is_recurring and self.type == TransactionType.TRANSFER:
            raise ValueError("Recurring templates support income and expense only")
        if self.recurring_end_date and self.recurring_end_date < self.date:
            raise ValueError("Recurring end date cannot be before transaction date")
        return self


class TransactionUpdate(BaseModel):
    """
    Partial update of a transaction.

    Only fields present in model_fields_set are applied; everything
    else falls back to the stored value. Setting transfer_account_id
    explicitly to None is distinct from leaving it out.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: Optional[int] = None
    category_id: Optional[int] = None
    transfer_account_id: Optional[int] = None
    amount: Optional[PositiveMoney] = None
    type: Optional[TransactionType] = None
    date: Optional[dt.date] = None
    description: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=1000)
    tags: Optional[list[str]] = None
    reference_number: Optional[str] = Field(default=None, max_length=100)
    location: Optional[str] = Field(default=None, max_length=255)
    is_cleared: Optional[bool] = None


class TransferRequest(BaseModel):
    """Move money between two of the caller's accounts."""
    model_config = ConfigDict(str_strip_whitespace=True)

    from_account_id: int
    to_account_id: int
    amount: PositiveMoney
    description: str = Field(default="Transfer", max_length=255)
    date: date
    notes: Optional[str] = Field(default=None, max_length=1000)


class RecurringTemplateCreate(BaseModel):
    """A recurring template created directly by the user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: int
    category_id: int
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=255)
    amount: PositiveMoney
    type: TransactionType
    frequency: RecurringFrequency
    interval: int = Field(default=1, ge=1, le=365)
    start_date: date
    end_date: Optional[date] = None
    max_occurrences: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_template(self) -> "RecurringTemplateCreate":
        if self.type == TransactionType.TRANSFER:
            raise ValueError("Recurring templates support income and expense only")
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


# =============================================================================
# READ VIEWS - post-commit snapshots handed back to callers
# =============================================================================

class AccountView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    name: str
    type: AccountType
    balance: Decimal
    initial_balance: Decimal
    credit_limit: Optional[Decimal] = None
    currency: str
    is_active: bool
    include_in_net_worth: bool

    @property
    def available_credit(self) -> Optional[Decimal]:
        """Credit limit minus the absolute balance (credit cards only)."""
        if self.type != AccountType.CREDIT_CARD or self.credit_limit is None:
            return None
        return self.credit_limit - abs(self.balance)


class CategoryView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    name: str
    type: CategoryType


class TransactionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    account_id: int
    category_id: int
    transfer_account_id: Optional[int] = None
    recurring_transaction_id: Optional[int] = None
    description: str
    amount: Decimal
    type: TransactionType
    date: date
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    reference_number: Optional[str] = None
    location: Optional[str] = None
    is_recurring: bool = False
    recurring_type: Optional[RecurringFrequency] = None
    recurring_interval: Optional[int] = None
    recurring_end_date: Optional[date] = None
    is_cleared: bool
    cleared_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def none_tags_to_list(cls, v):
        return v or []


class RecurringTemplateView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    account_id: int
    category_id: int
    name: str
    description: str
    amount: Decimal
    type: TransactionType
    frequency: RecurringFrequency
    interval: int
    start_date: date
    end_date: Optional[date] = None
    next_occurrence: date
    is_active: bool
    occurrences_count: int
    max_occurrences: Optional[int] = None


# =============================================================================
# RESULTS - outcomes reported back across the engine boundary
# =============================================================================

class MutationResult(BaseModel):
    """
    Outcome of one ledger operation as seen by a caller.

    Exactly one of (transaction, error_code) is meaningful.
    On failure nothing was persisted.
    """

    success: bool
    transaction: Optional[TransactionView] = None
    accounts: list[AccountView] = Field(
        default_factory=list,
        description="Post-commit state of every account the operation touched"
    )
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = False


class BulkFailure(BaseModel):
    transaction_id: Optional[int] = Field(
        default=None,
        description="Id that failed (None for a failed bulk create item)"
    )
    index: int = Field(..., ge=0, description="Position in the submitted batch")
    error_code: str
    error: str


class BulkResult(BaseModel):
    """Partial-success report of a bulk operation."""

    succeeded: list[int] = Field(default_factory=list)
    failed: list[BulkFailure] = Field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


class TemplateFailure(BaseModel):
    template_id: int
    error: str
    error_code: str = "error"


class MaterializerReport(BaseModel):
    """Result of one materializer run."""

    run_date: date
    dry_run: bool = False
    processed_count: int = Field(default=0, ge=0)
    created_transaction_ids: list[int] = Field(default_factory=list)
    errors: list[TemplateFailure] = Field(default_factory=list)
    due: list[RecurringTemplateView] = Field(
        default_factory=list,
        description="Templates that were due when the run started"
    )

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def to_summary(self) -> dict:
        """The {processed_count, errors} shape the scheduler expects."""
        return {
            "processed_count": self.processed_count,
            "errors": [
                {"template_id": e.template_id, "error": e.error}
                for e in self.errors
            ],
        }


class BalanceDiscrepancy(BaseModel):
    account_id: int
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance
