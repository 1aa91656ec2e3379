"""
Relational schema for the ledger.

Enum-valued columns are stored as plain strings holding the enum
value; the pydantic views convert them back on the way out.
Soft-deleted rows keep their deleted_at timestamp and are filtered
out by every engine lookup.
"""

import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


MONEY = Numeric(15, 2, asdecimal=True)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class AccountRow(TimestampMixin, Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    initial_balance: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    credit_limit: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    include_in_net_worth: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    history: Mapped[list["BalanceHistoryRow"]] = relationship(
        back_populates="account", order_by="BalanceHistoryRow.date"
    )

    def __repr__(self) -> str:
        return f"<AccountRow {self.id} {self.type} balance={self.balance}>"


class CategoryRow(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class TransactionRow(TimestampMixin, Base):
    __tablename__ = "transactions"

    __table_args__ = (
        Index("idx_transactions_owner_date", "owner_id", "date"),
        Index("idx_transactions_account_date", "account_id", "date"),
        Index("idx_transactions_type_date", "type", "date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    transfer_account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    recurring_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recurring_transactions.id")
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[Optional[list[str]]] = mapped_column(JSON)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100))
    location: Mapped[Optional[str]] = mapped_column(String(255))
    attachments: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_type: Mapped[Optional[str]] = mapped_column(String(20))
    recurring_interval: Mapped[Optional[int]] = mapped_column(Integer)
    recurring_end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    is_cleared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    cleared_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<TransactionRow {self.id} {self.type} {self.amount}>"


class RecurringTransactionRow(TimestampMixin, Base):
    __tablename__ = "recurring_transactions"

    __table_args__ = (
        Index("idx_recurring_due", "is_active", "next_occurrence"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    owner_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    next_occurrence: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    occurrences_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_occurrences: Mapped[Optional[int]] = mapped_column(Integer)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)


class BalanceHistoryRow(Base):
    """One row per account per day holding the end-of-change balance."""

    __tablename__ = "account_balance_histories"

    __table_args__ = (
        UniqueConstraint("account_id", "date", name="uq_balance_history_account_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    change_type: Mapped[Optional[str]] = mapped_column(String(20))
    change_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    account: Mapped[AccountRow] = relationship(back_populates="history")


class AuditEventRow(Base):
    """Append-only audit trail."""

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_correlation", "correlation_id"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    owner_id: Mapped[Optional[int]] = mapped_column(Integer)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50))
    entity_id: Mapped[Optional[int]] = mapped_column(Integer)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(36))
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON)
    error_code: Mapped[Optional[str]] = mapped_column(String(50))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    is_user_action: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
