"""
Recurring Transaction Materializer

Turns due recurring templates into concrete transactions. Meant to be
run once a day by an external scheduler (see `budget-ledger
process-recurring`).

DESIGN DECISION: Each template is processed in its own ledger unit.
A template that fails (account gone, insufficient funds, ...) is
reported and skipped; the rest of the run carries on. A run produces
at most one occurrence per template, so a scheduler that missed a
few days catches up one occurrence per run.
"""

import time
from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy import or_, select

from src.audit import AuditLogger, create_correlation_id
from src.ledger.engine import LedgerEngine
from src.ledger.errors import LedgerError
from src.ledger.schedule import advance
from src.models.ledger import (
    MaterializerReport,
    RecurringTemplateView,
    TemplateFailure,
    TransactionCreate,
    TransactionType,
    TransactionView,
)
from src.services.storage import StorageError
from src.services.storage.tables import RecurringTransactionRow


logger = structlog.get_logger(__name__)


def _due_conditions(today: date) -> list:
    template = RecurringTransactionRow
    return [
        template.is_active.is_(True),
        template.deleted_at.is_(None),
        template.next_occurrence <= today,
        or_(template.end_date.is_(None), template.next_occurrence <= template.end_date),
        or_(
            template.max_occurrences.is_(None),
            template.occurrences_count < template.max_occurrences,
        ),
    ]


class RecurringMaterializer:
    """
    Processes due recurring templates through the ledger engine.

    Usage:
        materializer = RecurringMaterializer(engine)
        report = materializer.run()
        if report.has_errors:
            ...
    """

    def __init__(
        self,
        engine: LedgerEngine,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._audit_logger = audit_logger

    def find_due(
        self,
        owner_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[RecurringTemplateView]:
        """Templates due on `today`, optionally for one owner only."""
        today = today or self._engine.today()
        stmt = select(RecurringTransactionRow).where(*_due_conditions(today))
        if owner_id is not None:
            stmt = stmt.where(RecurringTransactionRow.owner_id == owner_id)
        stmt = stmt.order_by(
            RecurringTransactionRow.next_occurrence, RecurringTransactionRow.id
        )

        with self._engine.database.session() as session:
            return [RecurringTemplateView.model_validate(row) for row in session.scalars(stmt)]

    def run(
        self,
        owner_id: Optional[int] = None,
        dry_run: bool = False,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MaterializerReport:
        """
        Materialize every due template once.

        In dry-run mode the due templates are listed in the report and
        nothing is written.
        """
        today = today or self._engine.today()
        correlation_id = correlation_id or create_correlation_id()
        started = time.monotonic()

        due = self.find_due(owner_id, today)
        report = MaterializerReport(run_date=today, dry_run=dry_run, due=due)
        logger.info(
            "recurring_run_started",
            run_date=str(today),
            owner_id=owner_id,
            due_count=len(due),
            dry_run=dry_run,
        )

        if not dry_run:
            for template in due:
                self._process(template, today, report, correlation_id)

        duration = time.monotonic() - started
        logger.info(
            "recurring_run_completed",
            processed_count=report.processed_count,
            error_count=len(report.errors),
            duration_seconds=round(duration, 3),
            dry_run=dry_run,
        )
        if self._audit_logger:
            self._audit_logger.log_run_completed(
                processed=report.processed_count,
                failed=len(report.errors),
                dry_run=dry_run,
                duration_seconds=duration,
                owner_id=owner_id,
                correlation_id=correlation_id,
            )
        return report

    def _process(
        self,
        template: RecurringTemplateView,
        today: date,
        report: MaterializerReport,
        correlation_id: UUID,
    ) -> None:
        try:
            transaction = self.materialize(
                template.id, template.owner_id, today, correlation_id=correlation_id
            )
        except (LedgerError, StorageError, ValidationError) as e:
            code = getattr(e, "code", "invalid_template")
            message = getattr(e, "message", str(e))
            report.errors.append(
                TemplateFailure(template_id=template.id, error=message, error_code=code)
            )
            logger.error(
                "recurring_template_failed",
                template_id=template.id,
                owner_id=template.owner_id,
                code=code,
                error=message,
            )
            if self._audit_logger:
                self._audit_logger.log_recurring_failed(
                    owner_id=template.owner_id,
                    template_id=template.id,
                    error_code=code,
                    error_message=message,
                    correlation_id=correlation_id,
                )
            return

        if transaction is None:
            # another run got to it first
            logger.info("recurring_template_skipped", template_id=template.id)
            return

        report.processed_count += 1
        report.created_transaction_ids.append(transaction.id)

    def materialize(
        self,
        template_id: int,
        owner_id: int,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[TransactionView]:
        """
        Produce the next occurrence of one template in its own unit.

        Returns None when the template is no longer due once locked.
        """
        today = today or self._engine.today()

        with self._engine.unit(owner_id, today=today) as unit:
            template = unit.session.scalars(
                select(RecurringTransactionRow)
                .where(
                    RecurringTransactionRow.id == template_id,
                    RecurringTransactionRow.owner_id == owner_id,
                    *_due_conditions(today),
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).first()
            if template is None:
                return None

            occurrence = template.next_occurrence
            row = self._engine.post(
                unit,
                TransactionCreate(
                    account_id=template.account_id,
                    category_id=template.category_id,
                    amount=template.amount,
                    type=TransactionType(template.type),
                    date=occurrence,
                    description=template.description or template.name,
                    is_cleared=False,
                ),
                recurring_transaction_id=template.id,
            )

            template.next_occurrence = advance(occurrence, template.frequency, template.interval)
            template.occurrences_count += 1
            deactivated = (
                template.max_occurrences is not None
                and template.occurrences_count >= template.max_occurrences
            ) or (
                template.end_date is not None
                and template.next_occurrence > template.end_date
            )
            if deactivated:
                template.is_active = False

        logger.info(
            "recurring_template_processed",
            template_id=template_id,
            transaction_id=row.id,
            occurrence_date=str(occurrence),
            deactivated=deactivated,
        )
        if self._audit_logger:
            self._audit_logger.log_recurring_processed(
                owner_id=owner_id,
                template_id=template_id,
                transaction_id=row.id,
                occurrence_date=str(occurrence),
                deactivated=deactivated,
                correlation_id=correlation_id,
            )
        return TransactionView.model_validate(row)
