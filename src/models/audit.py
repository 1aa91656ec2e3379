"""
Audit Models for Budget Ledger

Each change to a balance, and each refused change, becomes an event.
The trail gives:
1. Complete traceability of every balance change
2. Debugging information when a mutation is refused
3. A record of what each materializer run did

DESIGN DECISION: Events are immutable once written; nothing edits or prunes them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AuditEventType(str, Enum):
    """
    What happened: one value per kind of ledger action.
    """
    # Ledger mutations
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    BULK_DELETE_COMPLETED = "bulk_delete_completed"
    BULK_CREATE_COMPLETED = "bulk_create_completed"
    TRANSFER_COMPLETED = "transfer_completed"
    BALANCE_RECONCILED = "balance_reconciled"
    MUTATION_REJECTED = "mutation_rejected"

    # Accounts
    ACCOUNT_OPENED = "account_opened"
    BALANCE_DISCREPANCY = "balance_discrepancy"

    # Recurring materializer
    RECURRING_TEMPLATE_CREATED = "recurring_template_created"
    RECURRING_PROCESSED = "recurring_processed"
    RECURRING_FAILED = "recurring_failed"
    RECURRING_RUN_COMPLETED = "recurring_run_completed"

    # Infrastructure
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """How loudly an event is logged."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    One entry in the ledger audit trail.

    Owner and entity ids point at the rows the event concerns.
    """

    # Who and when
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # What
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - whose data, and which entity is this about?
    owner_id: Optional[int] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'recurring')"
    )
    entity_id: Optional[int] = None

    # Ties the events of one flow call or run together
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one run)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Set for refusals and failures
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Flatten to keyword arguments for a structlog call.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Factory methods, one per ledger event kind.

    Example:
        event = AuditEventBuilder.transaction_created(owner_id, tx_id, ...)
        event = AuditEventBuilder.mutation_rejected(owner_id, "create", e.code, e.message)
    """

    @staticmethod
    def transaction_created(
        owner_id: int,
        transaction_id: int,
        tx_type: str,
        amount: str,
        account_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {tx_type} {amount}",
            details={
                "type": tx_type,
                "amount": amount,
                "account_id": account_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        owner_id: int,
        transaction_id: int,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        owner_id: int,
        transaction_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {transaction_id} deleted",
            is_user_action=True,
        )

    @staticmethod
    def bulk_completed(
        owner_id: int,
        operation: str,
        succeeded: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.BULK_DELETE_COMPLETED
            if operation == "delete"
            else AuditEventType.BULK_CREATE_COMPLETED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            owner_id=owner_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Bulk {operation}: {succeeded} succeeded, {failed} failed",
            details={"succeeded": succeeded, "failed": failed},
            is_user_action=True,
        )

    @staticmethod
    def transfer_completed(
        owner_id: int,
        transaction_id: int,
        from_account_id: int,
        to_account_id: int,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} from account {from_account_id} to {to_account_id}",
            details={
                "from_account_id": from_account_id,
                "to_account_id": to_account_id,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def balance_reconciled(
        owner_id: int,
        account_id: int,
        adjustment: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_RECONCILED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance of account {account_id} adjusted by {adjustment}",
            details={"adjustment": adjustment, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def mutation_rejected(
        owner_id: int,
        operation: str,
        error_code: str,
        error_message: str,
        entity_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{operation.capitalize()} rejected: {error_code}",
            details={"operation": operation},
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def account_opened(
        owner_id: int,
        account_id: int,
        account_type: str,
        initial_balance: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_OPENED,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account opened: {account_type} with {initial_balance}",
            details={"type": account_type, "initial_balance": initial_balance},
            is_user_action=True,
        )

    @staticmethod
    def balance_discrepancy(
        owner_id: int,
        account_id: int,
        stored: str,
        expected: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_DISCREPANCY,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account {account_id} balance {stored} differs from ledger {expected}",
            details={"stored_balance": stored, "expected_balance": expected},
        )

    @staticmethod
    def recurring_template_created(
        owner_id: int,
        template_id: int,
        frequency: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_TEMPLATE_CREATED,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=template_id,
            description=f"Recurring template created: {frequency} {amount}",
            details={"frequency": frequency, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def recurring_processed(
        owner_id: int,
        template_id: int,
        transaction_id: int,
        occurrence_date: str,
        deactivated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_PROCESSED,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring template {template_id} produced transaction {transaction_id}",
            details={
                "transaction_id": transaction_id,
                "occurrence_date": occurrence_date,
                "deactivated": deactivated,
            },
        )

    @staticmethod
    def recurring_failed(
        owner_id: Optional[int],
        template_id: int,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="recurring",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring template {template_id} failed: {error_code}",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def recurring_run_completed(
        processed: int,
        failed: int,
        dry_run: bool,
        duration_seconds: float,
        owner_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RUN_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=(
                f"Recurring run{' (dry run)' if dry_run else ''}: "
                f"{processed} processed, {failed} failed"
            ),
            details={
                "processed_count": processed,
                "error_count": failed,
                "dry_run": dry_run,
                "duration_seconds": round(duration_seconds, 3),
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
