"""
Storage Contracts

DESIGN DECISION: Balance mutations talk to SQLAlchemy sessions directly,
because they need the session's transaction and row locks. Everything
that is NOT part of a ledger unit (the audit trail) goes through a small
abstract interface so it can be swapped or faked independently.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from src.models.audit import AuditEvent


class AuditStorageInterface(ABC):
    """
    Where audit events are kept.

    The trail only grows: implementations never update or remove an
    event once it has been appended.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Persist one event.

        Returns:
            False if the backend could not store it
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation ID (one flow call or run), oldest first."""
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        """
        History of a single transaction, account or template.

        Args:
            entity_type: 'transaction', 'account' or 'recurring'
            entity_id: Row id of the entity
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
        owner_id: Optional[int] = None,
    ) -> list[AuditEvent]:
        """Latest `limit` events, newest first, optionally for one owner."""
        pass


class StorageError(Exception):
    """The database refused or failed an operation."""
    pass


class ConnectionError(StorageError):
    """The database could not be reached after retrying."""
    pass
