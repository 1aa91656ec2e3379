"""
Audit Logger

DESIGN DECISION: Every balance mutation leaves a trail, whether it was
applied or refused. The trail answers three questions:
1. Who changed which transaction, and to what
2. Why a mutation was refused (error code and message)
3. What each recurring run did, tied together by one correlation ID

Audit writes happen after the ledger unit has committed. A broken audit
store is logged and reported as False; it never undoes or blocks a
mutation.
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder
from src.services.storage import AuditStorageInterface


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """
    Route structlog through the stdlib root logger at `level`.

    `json=False` switches to the console renderer for local debugging.
    Calling it again replaces the previous configuration.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Writes ledger audit events.

    Each event goes to the "audit" structlog logger at a level matching
    its severity, then to the storage backend if one was given.

    Args:
        storage: Where events are persisted; None keeps them log-only
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def log(self, event: AuditEvent) -> bool:
        """
        Record one event.

        Returns False only when a configured storage failed to persist it.
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage is None:
            return True

        try:
            return self._storage.append_event(event)
        except Exception as e:
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
                event_type=event.event_type.value,
            )
            return False

    def log_transaction_created(
        self,
        owner_id: int,
        transaction_id: int,
        tx_type: str,
        amount: str,
        account_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_created(
            owner_id=owner_id,
            transaction_id=transaction_id,
            tx_type=tx_type,
            amount=amount,
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    def log_transaction_updated(
        self,
        owner_id: int,
        transaction_id: int,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_updated(
            owner_id=owner_id,
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    def log_transaction_deleted(
        self,
        owner_id: int,
        transaction_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_deleted(
            owner_id=owner_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    def log_transfer(
        self,
        owner_id: int,
        transaction_id: int,
        from_account_id: int,
        to_account_id: int,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transfer_completed(
            owner_id=owner_id,
            transaction_id=transaction_id,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    def log_reconciled(
        self,
        owner_id: int,
        account_id: int,
        adjustment: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.balance_reconciled(
            owner_id=owner_id,
            account_id=account_id,
            adjustment=adjustment,
            reason=reason,
            correlation_id=correlation_id,
        ))

    def log_bulk_completed(
        self,
        owner_id: int,
        operation: str,
        succeeded: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.bulk_completed(
            owner_id=owner_id,
            operation=operation,
            succeeded=succeeded,
            failed=failed,
            correlation_id=correlation_id,
        ))

    def log_mutation_rejected(
        self,
        owner_id: int,
        operation: str,
        error_code: str,
        error_message: str,
        entity_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a mutation the engine refused; nothing was persisted."""
        self.log(AuditEventBuilder.mutation_rejected(
            owner_id=owner_id,
            operation=operation,
            error_code=error_code,
            error_message=error_message,
            entity_id=entity_id,
            correlation_id=correlation_id,
        ))

    def log_account_opened(
        self,
        owner_id: int,
        account_id: int,
        account_type: str,
        initial_balance: str,
    ) -> None:
        self.log(AuditEventBuilder.account_opened(
            owner_id=owner_id,
            account_id=account_id,
            account_type=account_type,
            initial_balance=initial_balance,
        ))

    def log_balance_discrepancy(
        self,
        owner_id: int,
        account_id: int,
        stored: str,
        expected: str,
    ) -> None:
        self.log(AuditEventBuilder.balance_discrepancy(
            owner_id=owner_id,
            account_id=account_id,
            stored=stored,
            expected=expected,
        ))

    def log_template_created(
        self,
        owner_id: int,
        template_id: int,
        frequency: str,
        amount: str,
    ) -> None:
        self.log(AuditEventBuilder.recurring_template_created(
            owner_id=owner_id,
            template_id=template_id,
            frequency=frequency,
            amount=amount,
        ))

    def log_recurring_processed(
        self,
        owner_id: int,
        template_id: int,
        transaction_id: int,
        occurrence_date: str,
        deactivated: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.recurring_processed(
            owner_id=owner_id,
            template_id=template_id,
            transaction_id=transaction_id,
            occurrence_date=occurrence_date,
            deactivated=deactivated,
            correlation_id=correlation_id,
        ))

    def log_recurring_failed(
        self,
        owner_id: Optional[int],
        template_id: int,
        error_code: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.recurring_failed(
            owner_id=owner_id,
            template_id=template_id,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_run_completed(
        self,
        processed: int,
        failed: int,
        dry_run: bool,
        duration_seconds: float,
        owner_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the summary of one materializer run."""
        self.log(AuditEventBuilder.recurring_run_completed(
            processed=processed,
            failed=failed,
            dry_run=dry_run,
            duration_seconds=duration_seconds,
            owner_id=owner_id,
            correlation_id=correlation_id,
        ))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    New ID tying related audit events together.

    One is minted per flow call or materializer run and passed to
    every event that call produces.
    """
    return uuid4()
