"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the ledger's data
source. This allows us to:
1. Keep Google Sheets, an in-memory store, or a hosted database behind
   the same calls
2. Use in-memory storage for testing
3. Keep the ledger store and balance engine decoupled from the transport

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs. Every backend failure is raised as
a StorageError (or subclass) so the mutation boundary has exactly one
exception family to handle.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from homeledger.models.ledger import Category, Member, Split, Transaction
from homeledger.models.audit import AuditEvent


class LedgerDataSource(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # -- Members -------------------------------------------------------------

    @abstractmethod
    async def fetch_members(self) -> list[Member]:
        """All members, oldest first (created_at ascending)."""
        pass

    @abstractmethod
    async def insert_member(self, member: Member) -> Member:
        """
        Insert a member.

        Returns:
            The stored member as confirmed by the backend

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_member(self, member_id: str, name: str) -> None:
        """
        Rename a member.

        Raises:
            NotFoundError: If the member doesn't exist
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def delete_member(self, member_id: str) -> None:
        """
        Delete a member.

        Transactions and splits referencing the member are kept.
        """
        pass

    # -- Categories ----------------------------------------------------------

    @abstractmethod
    async def fetch_categories(self) -> list[Category]:
        """All categories ordered by name."""
        pass

    @abstractmethod
    async def insert_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    async def insert_categories(self, categories: list[Category]) -> list[Category]:
        """Insert several categories in one write."""
        pass

    @abstractmethod
    async def update_category(
        self,
        category_id: str,
        name: str,
        icon: Optional[str],
    ) -> None:
        pass

    @abstractmethod
    async def delete_category(self, category_id: str) -> None:
        pass

    # -- Transactions --------------------------------------------------------

    @abstractmethod
    async def fetch_transactions(self) -> list[Transaction]:
        """
        All transactions with embedded splits.

        Display fields (payer_name, receiver_name, category_name,
        category_icon) are filled from the current members and categories.

        Returns:
            Transactions ordered by date descending, then created_at
            descending
        """
        pass

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert the base record of a transaction (splits are ignored).

        Returns:
            The stored transaction, without splits

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def insert_splits(self, transaction_id: str, splits: list[Split]) -> None:
        """
        Insert splits for an existing transaction.

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: str,
        fields: dict[str, Any],
    ) -> None:
        """
        Update the base record of a transaction.

        Args:
            transaction_id: The transaction to update
            fields: Base fields (type, amount, payer_id, receiver_id,
                    category_id, title, date, notes)

        Raises:
            NotFoundError: If the transaction doesn't exist
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def replace_splits(self, transaction_id: str, splits: list[Split]) -> None:
        """Delete all splits of a transaction and insert the given ones."""
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> None:
        """Delete a transaction together with its splits."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events of one operation in chronological order.
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class PartialWriteError(StorageError):
    """
    A multi-step write failed after its first step succeeded.

    compensated tells whether the already-written part was undone. When it
    is False the backend holds an orphaned or stale record.
    """

    def __init__(self, message: str, *, transaction_id: str, compensated: bool):
        super().__init__(message)
        self.transaction_id = transaction_id
        self.compensated = compensated
