"""
Storage Services Package

Provides the abstract ledger data-source interface and its implementations.
Google Sheets is the hosted backend; the in-memory backend serves tests
and local use. Both are interchangeable behind LedgerDataSource.
"""

from homeledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerDataSource,
    NotFoundError,
    PartialWriteError,
    StorageError,
)
from homeledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerDataSource,
)
from homeledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerDataSource,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerDataSource",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "PartialWriteError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerDataSource",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerDataSource",
]
