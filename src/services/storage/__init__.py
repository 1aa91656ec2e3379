"""
Storage Services Package

Provides the relational database used by ledger units and the
audit storage interface with its SQL implementation.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    StorageError,
)
from src.services.storage.database import Database, create_database
from src.services.storage.sql_audit import SqlAuditStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # SQL implementation
    "Database",
    "SqlAuditStorage",
    "create_database",
]
