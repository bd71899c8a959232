"""
In-Memory Storage Implementation

A complete LedgerDataSource kept in process memory. Used by the test
suite and for running the ledger without a configured backend.

Failures can be injected per operation name (e.g. "insert_splits"),
either permanently or for the next call only, to exercise the rollback
and compensation paths.
"""

from typing import Any, Iterable, Optional
from uuid import UUID

from homeledger.models.ledger import Category, Member, Split, Transaction
from homeledger.models.audit import AuditEvent
from homeledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerDataSource,
    NotFoundError,
    StorageError,
)


class InMemoryLedgerDataSource(LedgerDataSource):
    """
    Dictionary-backed ledger storage.

    Every value handed out is a deep copy so callers can never mutate
    the stored rows behind the data source's back.
    """

    def __init__(
        self,
        members: Iterable[Member] = (),
        categories: Iterable[Category] = (),
        transactions: Iterable[Transaction] = (),
        fail_on: Iterable[str] = (),
        fail_once: Iterable[str] = (),
        fail_with: type[StorageError] = StorageError,
    ):
        self._members: dict[str, Member] = {m.id: m.model_copy(deep=True) for m in members}
        self._categories: dict[str, Category] = {
            c.id: c.model_copy(deep=True) for c in categories
        }
        self._transactions: dict[str, Transaction] = {}
        self._splits: dict[str, list[Split]] = {}
        for t in transactions:
            self._transactions[t.id] = t.model_copy(update={"splits": []}, deep=True)
            self._splits[t.id] = [s.model_copy() for s in t.splits]

        self.fail_on: set[str] = set(fail_on)
        self.fail_once: set[str] = set(fail_once)
        self.fail_with = fail_with
        self.calls: list[str] = []

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.fail_once:
            self.fail_once.discard(operation)
            raise self.fail_with(f"Injected failure in {operation}")
        if operation in self.fail_on:
            raise self.fail_with(f"Injected failure in {operation}")

    # -- Members -------------------------------------------------------------

    async def fetch_members(self) -> list[Member]:
        self._enter("fetch_members")
        members = sorted(self._members.values(), key=lambda m: m.created_at)
        return [m.model_copy(deep=True) for m in members]

    async def insert_member(self, member: Member) -> Member:
        self._enter("insert_member")
        if member.id in self._members:
            raise DuplicateError(f"Member already exists: {member.id}")
        self._members[member.id] = member.model_copy(deep=True)
        return member.model_copy(deep=True)

    async def update_member(self, member_id: str, name: str) -> None:
        self._enter("update_member")
        if member_id not in self._members:
            raise NotFoundError(f"Member not found: {member_id}")
        self._members[member_id] = self._members[member_id].model_copy(update={"name": name})

    async def delete_member(self, member_id: str) -> None:
        self._enter("delete_member")
        self._members.pop(member_id, None)

    # -- Categories ----------------------------------------------------------

    async def fetch_categories(self) -> list[Category]:
        self._enter("fetch_categories")
        categories = sorted(self._categories.values(), key=lambda c: c.name)
        return [c.model_copy(deep=True) for c in categories]

    async def insert_category(self, category: Category) -> Category:
        self._enter("insert_category")
        if category.id in self._categories:
            raise DuplicateError(f"Category already exists: {category.id}")
        self._categories[category.id] = category.model_copy(deep=True)
        return category.model_copy(deep=True)

    async def insert_categories(self, categories: list[Category]) -> list[Category]:
        self._enter("insert_categories")
        for category in categories:
            if category.id in self._categories:
                raise DuplicateError(f"Category already exists: {category.id}")
        for category in categories:
            self._categories[category.id] = category.model_copy(deep=True)
        return [c.model_copy(deep=True) for c in categories]

    async def update_category(
        self,
        category_id: str,
        name: str,
        icon: Optional[str],
    ) -> None:
        self._enter("update_category")
        if category_id not in self._categories:
            raise NotFoundError(f"Category not found: {category_id}")
        self._categories[category_id] = self._categories[category_id].model_copy(
            update={"name": name, "icon": icon}
        )

    async def delete_category(self, category_id: str) -> None:
        self._enter("delete_category")
        self._categories.pop(category_id, None)

    # -- Transactions --------------------------------------------------------

    def _joined(self, transaction: Transaction) -> Transaction:
        payer = self._members.get(transaction.payer_id)
        receiver = self._members.get(transaction.receiver_id) if transaction.receiver_id else None
        category = self._categories.get(transaction.category_id) if transaction.category_id else None
        return transaction.model_copy(
            update={
                "splits": [s.model_copy() for s in self._splits.get(transaction.id, [])],
                "payer_name": payer.name if payer else None,
                "receiver_name": receiver.name if receiver else None,
                "category_name": category.name if category else None,
                "category_icon": category.icon if category else None,
            },
            deep=True,
        )

    async def fetch_transactions(self) -> list[Transaction]:
        self._enter("fetch_transactions")
        transactions = sorted(
            self._transactions.values(),
            key=lambda t: (t.date, t.created_at),
            reverse=True,
        )
        return [self._joined(t) for t in transactions]

    async def insert_transaction(self, transaction: Transaction) -> Transaction:
        self._enter("insert_transaction")
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        stored = transaction.model_copy(update={"splits": []}, deep=True)
        self._transactions[stored.id] = stored
        self._splits[stored.id] = []
        return stored.model_copy(deep=True)

    async def insert_splits(self, transaction_id: str, splits: list[Split]) -> None:
        self._enter("insert_splits")
        if transaction_id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        self._splits[transaction_id].extend(s.model_copy() for s in splits)

    async def update_transaction(
        self,
        transaction_id: str,
        fields: dict[str, Any],
    ) -> None:
        self._enter("update_transaction")
        if transaction_id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        current = self._transactions[transaction_id]
        # Re-validate so a bad payload fails like a backend constraint would
        data = current.model_dump()
        data.update(fields)
        try:
            self._transactions[transaction_id] = Transaction(**data)
        except ValueError as e:
            raise StorageError(f"Invalid transaction update: {e}")

    async def replace_splits(self, transaction_id: str, splits: list[Split]) -> None:
        self._enter("replace_splits")
        if transaction_id not in self._transactions:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        self._splits[transaction_id] = [s.model_copy() for s in splits]

    async def delete_transaction(self, transaction_id: str) -> None:
        self._enter("delete_transaction")
        self._transactions.pop(transaction_id, None)
        self._splits.pop(transaction_id, None)

    def stored_transaction_ids(self) -> set[str]:
        """Ids currently persisted; used to assert on orphans."""
        return set(self._transactions)

    def stored_splits(self, transaction_id: str) -> list[Split]:
        return [s.model_copy() for s in self._splits.get(transaction_id, [])]


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit storage."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
