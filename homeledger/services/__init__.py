"""Services package."""

from homeledger.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerDataSource,
    InMemoryAuditStorage,
    InMemoryLedgerDataSource,
    LedgerDataSource,
    NotFoundError,
    PartialWriteError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerDataSource",
    "InMemoryAuditStorage",
    "InMemoryLedgerDataSource",
    "LedgerDataSource",
    "NotFoundError",
    "PartialWriteError",
    "StorageError",
]
