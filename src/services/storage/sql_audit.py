"""
SQL implementation of the audit trail.

Audit events are written in their own short transaction, after the
ledger unit they describe has committed, so a failed audit write can
never roll back a balance change.
"""

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.services.storage.database import Database
from src.services.storage.interface import AuditStorageInterface, StorageError
from src.services.storage.tables import AuditEventRow


logger = structlog.get_logger(__name__)


class SqlAuditStorage(AuditStorageInterface):
    """Audit events as rows of the audit_events table."""

    def __init__(self, database: Database):
        self._database = database

    def _event_to_row(self, event: AuditEvent) -> AuditEventRow:
        return AuditEventRow(
            event_id=str(event.event_id),
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            owner_id=event.owner_id,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            correlation_id=str(event.correlation_id) if event.correlation_id else None,
            description=event.description,
            details=event.details or None,
            error_code=event.error_code,
            error_message=event.error_message,
            is_user_action=event.is_user_action,
        )

    def _row_to_event(self, row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            event_type=AuditEventType(row.event_type),
            severity=AuditSeverity(row.severity),
            owner_id=row.owner_id,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            correlation_id=UUID(row.correlation_id) if row.correlation_id else None,
            description=row.description,
            details=row.details or {},
            error_code=row.error_code,
            error_message=row.error_message,
            is_user_action=row.is_user_action,
        )

    def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._database.transaction() as session:
                session.add(self._event_to_row(event))
            return True
        except SQLAlchemyError as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _query(self, stmt) -> list[AuditEvent]:
        try:
            with self._database.session() as session:
                return [self._row_to_event(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}") from e

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == str(correlation_id))
            .order_by(AuditEventRow.timestamp, AuditEventRow.id)
        )
        return self._query(stmt)

    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(
                AuditEventRow.entity_type == entity_type,
                AuditEventRow.entity_id == entity_id,
            )
            .order_by(AuditEventRow.timestamp, AuditEventRow.id)
        )
        return self._query(stmt)

    def get_recent_events(
        self,
        limit: int = 100,
        owner_id: Optional[int] = None,
    ) -> list[AuditEvent]:
        stmt = select(AuditEventRow)
        if owner_id is not None:
            stmt = stmt.where(AuditEventRow.owner_id == owner_id)
        stmt = stmt.order_by(
            AuditEventRow.timestamp.desc(), AuditEventRow.id.desc()
        ).limit(limit)
        return self._query(stmt)
