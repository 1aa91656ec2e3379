"""
Main Orchestrator for Budget Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Transaction mutations (create / update / delete / bulk / transfer / reconcile)
2. Recurring processing (find due → materialize → report)

DESIGN DECISION: The orchestrator is the error boundary.
- The engine raises a typed LedgerError for every refused operation
- The flows here turn those into MutationResult values
- Every mutation, accepted or refused, is audited

Callers of a flow never see a ledger exception; they check
`result.success` and, for a refused one, `result.retryable`.
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog

from src.audit import AuditLogger, create_correlation_id
from src.config import get_settings
from src.ledger import BatchTooLarge, LedgerEngine, LedgerError, NotFound
from src.models.ledger import (
    AccountCreate,
    AccountView,
    BalanceDiscrepancy,
    BulkFailure,
    BulkResult,
    MaterializerReport,
    MutationResult,
    RecurringTemplateCreate,
    RecurringTemplateView,
    TransactionCreate,
    TransactionUpdate,
    TransactionView,
    TransferRequest,
)
from src.recurring import RecurringMaterializer
from src.services.storage import Database, SqlAuditStorage, StorageError, create_database


logger = structlog.get_logger(__name__)


class TransactionFlow:
    """
    Orchestrates ledger mutations for one caller at a time.

    Flow for every mutation:
    1. Engine applies it as one ledger unit (or refuses it)
    2. Refusal → MutationResult(success=False, error_code, retryable)
    3. Success → MutationResult with post-commit transaction and accounts
    4. Audit → accepted or rejected event, never blocking the result
    """

    def __init__(
        self,
        engine: LedgerEngine,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._audit_logger = audit_logger

    @property
    def engine(self) -> LedgerEngine:
        return self._engine

    def create(
        self,
        owner_id: int,
        data: TransactionCreate,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        correlation_id = correlation_id or create_correlation_id()
        result = self._execute(
            "create",
            owner_id,
            lambda: self._engine.create(owner_id, data),
            account_ids=[data.account_id, data.transfer_account_id],
            correlation_id=correlation_id,
        )

        if result.success:
            tx = result.transaction
            if self._audit_logger:
                self._audit_logger.log_transaction_created(
                    owner_id=owner_id,
                    transaction_id=tx.id,
                    tx_type=tx.type.value,
                    amount=str(tx.amount),
                    account_id=tx.account_id,
                    correlation_id=correlation_id,
                )
        return result

    def update(
        self,
        owner_id: int,
        transaction_id: int,
        changes: TransactionUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Update a transaction.

        The result lists both the old and the new accounts when the
        update moved the transaction between accounts.
        """
        correlation_id = correlation_id or create_correlation_id()
        before = self._peek(owner_id, transaction_id)
        account_ids = [before.account_id, before.transfer_account_id] if before else []
        account_ids += [changes.account_id, changes.transfer_account_id]

        result = self._execute(
            "update",
            owner_id,
            lambda: self._engine.update(owner_id, transaction_id, changes),
            account_ids=account_ids,
            entity_id=transaction_id,
            correlation_id=correlation_id,
        )

        if result.success:
            changed = sorted(
                field for field in changes.model_fields_set
                if before is None or getattr(before, field) != getattr(result.transaction, field)
            )
            if self._audit_logger:
                self._audit_logger.log_transaction_updated(
                    owner_id=owner_id,
                    transaction_id=transaction_id,
                    changed_fields=changed,
                    correlation_id=correlation_id,
                )
        return result

    def delete(
        self,
        owner_id: int,
        transaction_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        correlation_id = correlation_id or create_correlation_id()
        before = self._peek(owner_id, transaction_id)

        result = self._execute(
            "delete",
            owner_id,
            lambda: self._engine.delete(owner_id, transaction_id),
            account_ids=[before.account_id, before.transfer_account_id] if before else [],
            entity_id=transaction_id,
            correlation_id=correlation_id,
        )

        if result.success:
            if self._audit_logger:
                self._audit_logger.log_transaction_deleted(
                    owner_id=owner_id,
                    transaction_id=transaction_id,
                    correlation_id=correlation_id,
                )
        return result

    def transfer(
        self,
        owner_id: int,
        request: TransferRequest,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        correlation_id = correlation_id or create_correlation_id()
        result = self._execute(
            "transfer",
            owner_id,
            lambda: self._engine.transfer(owner_id, request),
            account_ids=[request.from_account_id, request.to_account_id],
            correlation_id=correlation_id,
        )

        if result.success:
            if self._audit_logger:
                self._audit_logger.log_transfer(
                    owner_id=owner_id,
                    transaction_id=result.transaction.id,
                    from_account_id=request.from_account_id,
                    to_account_id=request.to_account_id,
                    amount=str(request.amount),
                    correlation_id=correlation_id,
                )
        return result

    def reconcile(
        self,
        owner_id: int,
        account_id: int,
        actual_balance: Decimal,
        reason: str = "Manual sync",
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Sync an account to a known real-world balance.

        A successful result without a transaction means the balance was
        already in sync.
        """
        correlation_id = correlation_id or create_correlation_id()
        result = self._execute(
            "reconcile",
            owner_id,
            lambda: self._engine.reconcile(owner_id, account_id, actual_balance, reason),
            account_ids=[account_id],
            correlation_id=correlation_id,
        )

        if result.success and result.transaction is not None:
            tx = result.transaction
            adjustment = tx.amount if tx.type.value == "income" else -tx.amount
            if self._audit_logger:
                self._audit_logger.log_reconciled(
                    owner_id=owner_id,
                    account_id=account_id,
                    adjustment=str(adjustment),
                    reason=reason,
                    correlation_id=correlation_id,
                )
        return result

    def bulk_delete(
        self,
        owner_id: int,
        transaction_ids: list[int],
        correlation_id: Optional[UUID] = None,
    ) -> BulkResult:
        """
        Delete many transactions; partial success is reported per id.

        An oversized batch is refused as a whole: every id is reported
        failed with batch_too_large and nothing is deleted.
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            result = self._engine.bulk_delete(owner_id, transaction_ids)
        except BatchTooLarge as e:
            self._reject("bulk_delete", owner_id, e, correlation_id=correlation_id)
            return _refuse_batch(e, transaction_ids)

        if self._audit_logger:
            self._audit_logger.log_bulk_completed(
                owner_id=owner_id,
                operation="delete",
                succeeded=result.success_count,
                failed=result.failure_count,
                correlation_id=correlation_id,
            )
        return result

    def bulk_create(
        self,
        owner_id: int,
        items: list[TransactionCreate],
        correlation_id: Optional[UUID] = None,
    ) -> BulkResult:
        correlation_id = correlation_id or create_correlation_id()
        try:
            result = self._engine.bulk_create(owner_id, items)
        except BatchTooLarge as e:
            self._reject("bulk_create", owner_id, e, correlation_id=correlation_id)
            return _refuse_batch(e, [None] * len(items))

        if self._audit_logger:
            self._audit_logger.log_bulk_completed(
                owner_id=owner_id,
                operation="create",
                succeeded=result.success_count,
                failed=result.failure_count,
                correlation_id=correlation_id,
            )
        return result

    def open_account(self, owner_id: int, data: AccountCreate) -> AccountView:
        account = self._engine.open_account(owner_id, data)
        if self._audit_logger:
            self._audit_logger.log_account_opened(
                owner_id=owner_id,
                account_id=account.id,
                account_type=account.type.value,
                initial_balance=str(account.initial_balance),
            )
        return account

    def verify_balances(self, owner_id: int) -> list[BalanceDiscrepancy]:
        """Check the balance invariant and audit every discrepancy found."""
        discrepancies = self._engine.verify_balances(owner_id)
        for d in discrepancies:
            if self._audit_logger:
                self._audit_logger.log_balance_discrepancy(
                    owner_id=owner_id,
                    account_id=d.account_id,
                    stored=str(d.stored_balance),
                    expected=str(d.expected_balance),
                )
        return discrepancies

    # -------------------------------------------------------------------------
    # Boundary helpers
    # -------------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        owner_id: int,
        action: Callable[[], Optional[TransactionView]],
        account_ids: Iterable[Optional[int]] = (),
        entity_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """Run one engine call and convert its outcome into a MutationResult."""
        try:
            transaction = action()
        except LedgerError as e:
            self._reject(operation, owner_id, e, entity_id, correlation_id)
            return MutationResult(
                success=False,
                error_code=e.code,
                error_message=e.message,
                retryable=e.retryable,
            )
        except StorageError as e:
            logger.error("ledger_storage_failed", operation=operation, owner_id=owner_id, error=str(e))
            if self._audit_logger:
                self._audit_logger.log_error(
                    error_type="storage_error",
                    error_message=str(e),
                    details={"operation": operation, "owner_id": owner_id},
                    correlation_id=correlation_id,
                )
            return MutationResult(
                success=False,
                error_code="storage_error",
                error_message=str(e),
            )

        touched = set(i for i in account_ids if i is not None)
        if transaction is not None:
            touched.update(
                i for i in (transaction.account_id, transaction.transfer_account_id) if i is not None
            )
        return MutationResult(
            success=True,
            transaction=transaction,
            accounts=self._accounts(owner_id, touched),
        )

    def _reject(
        self,
        operation: str,
        owner_id: int,
        error: LedgerError,
        entity_id: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        logger.warning(
            "mutation_rejected",
            operation=operation,
            owner_id=owner_id,
            code=error.code,
            error=error.message,
        )
        if self._audit_logger:
            self._audit_logger.log_mutation_rejected(
                owner_id=owner_id,
                operation=operation,
                error_code=error.code,
                error_message=error.message,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )

    def _peek(self, owner_id: int, transaction_id: int) -> Optional[TransactionView]:
        try:
            return self._engine.get_transaction(owner_id, transaction_id)
        except NotFound:
            return None

    def _accounts(self, owner_id: int, account_ids: Iterable[int]) -> list[AccountView]:
        accounts = []
        for account_id in sorted(account_ids):
            try:
                accounts.append(self._engine.get_account(owner_id, account_id))
            except NotFound:
                continue
        return accounts


class RecurringFlow:
    """
    Orchestrates recurring templates and the daily materializer run.

    The run itself never raises for a single failing template; the
    failures come back in the report for the scheduler to act on.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._audit_logger = audit_logger
        self._materializer = RecurringMaterializer(engine, audit_logger)

    @property
    def materializer(self) -> RecurringMaterializer:
        return self._materializer

    def create_template(
        self,
        owner_id: int,
        data: RecurringTemplateCreate,
    ) -> RecurringTemplateView:
        template = self._engine.create_template(owner_id, data)
        if self._audit_logger:
            self._audit_logger.log_template_created(
                owner_id=owner_id,
                template_id=template.id,
                frequency=template.frequency.value,
                amount=str(template.amount),
            )
        return template

    def process_due(
        self,
        owner_id: Optional[int] = None,
        dry_run: bool = False,
        today: Optional[date] = None,
    ) -> MaterializerReport:
        return self._materializer.run(owner_id=owner_id, dry_run=dry_run, today=today)


def _refuse_batch(error: BatchTooLarge, ids: list) -> BulkResult:
    return BulkResult(
        failed=[
            BulkFailure(
                transaction_id=transaction_id,
                index=index,
                error_code=error.code,
                error=error.message,
            )
            for index, transaction_id in enumerate(ids)
        ]
    )


def create_app_components(
    database: Optional[Database] = None,
    use_audit_storage: bool = True,
) -> tuple[TransactionFlow, RecurringFlow, Database]:
    """
    Factory function to create all application components.

    Args:
        database: An already connected Database. When None one is
                 created from settings and its schema initialised.
        use_audit_storage: Whether audit events are persisted to the
                 database. Set to False to only log them locally.

    Returns:
        (transaction_flow, recurring_flow, database)
    """
    database = database or create_database()
    audit_logger = AuditLogger(SqlAuditStorage(database) if use_audit_storage else None)
    engine = LedgerEngine(database, settings=get_settings().ledger)

    transaction_flow = TransactionFlow(engine, audit_logger=audit_logger)
    recurring_flow = RecurringFlow(engine, audit_logger=audit_logger)

    return transaction_flow, recurring_flow, database
