"""Services package."""

from src.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    Database,
    SqlAuditStorage,
    StorageError,
    create_database,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "Database",
    "SqlAuditStorage",
    "StorageError",
    "create_database",
]
