"""
Ledger Store

The in-memory cache of members, categories and transactions that the
finance service keeps consistent with the data source.

DESIGN DECISION: The store is an ordinary object, constructed once per
session and handed to whoever needs it. Nothing lives at module scope,
so tests (or two households) can run isolated stores side by side.

Entities held by the store are never mutated in place. Every change
swaps in a new list containing new model instances, which is what makes
snapshots cheap: a snapshot is just the current tuples.

Balances are derived, not stored. Every change bumps the store version
and notifies subscribers; the balance list is recomputed lazily the next
time it is read after a change.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from homeledger.ledger.balances import compute_balances
from homeledger.models.ledger import Category, Member, MemberBalance, Transaction


MEMBERS = "members"
CATEGORIES = "categories"
TRANSACTIONS = "transactions"
COLLECTIONS = (MEMBERS, CATEGORIES, TRANSACTIONS)


Listener = Callable[["LedgerStore"], None]


@dataclass(frozen=True)
class LedgerSnapshot:
    """Point-in-time copy of the store's collections."""
    members: tuple[Member, ...]
    categories: tuple[Category, ...]
    transactions: tuple[Transaction, ...]


def _transaction_sort_key(transaction: Transaction):
    return (transaction.date, transaction.created_at)


class LedgerStore:
    """
    Owns the ledger collections for one session.

    Read access returns tuples; writes go through the methods below so
    that every change is versioned and announced.
    """

    def __init__(self):
        self._members: list[Member] = []
        self._categories: list[Category] = []
        self._transactions: list[Transaction] = []
        self._listeners: list[Listener] = []
        self._version = 0
        self._balances: Optional[tuple[int, list[MemberBalance]]] = None
        self.loading = False

    # -- Read access ---------------------------------------------------------

    @property
    def members(self) -> tuple[Member, ...]:
        return tuple(self._members)

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._categories)

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        return tuple(self._transactions)

    @property
    def version(self) -> int:
        """Incremented on every change."""
        return self._version

    def get_member(self, member_id: str) -> Optional[Member]:
        return next((m for m in self._members if m.id == member_id), None)

    def get_category(self, category_id: str) -> Optional[Category]:
        return next((c for c in self._categories if c.id == category_id), None)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    @property
    def balances(self) -> list[MemberBalance]:
        """
        Net balance per member, recomputed only after a change.

        Returns a fresh list each time; the cached models are shared.
        """
        if self._balances is None or self._balances[0] != self._version:
            self._balances = (
                self._version,
                compute_balances(self._members, self._transactions),
            )
        return list(self._balances[1])

    # -- Change notification -------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call listener(store) after every change.

        Returns a function that removes the subscription.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            listener(self)

    # -- Whole-collection writes ---------------------------------------------

    def set_members(self, members: Iterable[Member]) -> None:
        self._members = list(members)
        self._changed()

    def set_categories(self, categories: Iterable[Category]) -> None:
        self._categories = list(categories)
        self._changed()

    def set_transactions(self, transactions: Iterable[Transaction]) -> None:
        self._transactions = sorted(transactions, key=_transaction_sort_key, reverse=True)
        self._changed()

    # -- Members -------------------------------------------------------------

    def add_member(self, member: Member) -> None:
        self._members = [*self._members, member]
        self._changed()

    def replace_member(self, member_id: str, member: Member) -> bool:
        """Swap the member with member_id for member. False if not present."""
        if self.get_member(member_id) is None:
            return False
        self._members = [member if m.id == member_id else m for m in self._members]
        self._changed()
        return True

    def remove_member(self, member_id: str) -> Optional[Member]:
        removed = self.get_member(member_id)
        if removed is not None:
            self._members = [m for m in self._members if m.id != member_id]
            self._changed()
        return removed

    # -- Categories ----------------------------------------------------------

    def add_category(self, category: Category) -> None:
        self._categories = [*self._categories, category]
        self._changed()

    def replace_category(self, category_id: str, category: Category) -> bool:
        if self.get_category(category_id) is None:
            return False
        self._categories = [
            category if c.id == category_id else c for c in self._categories
        ]
        self._changed()
        return True

    def remove_category(self, category_id: str) -> Optional[Category]:
        removed = self.get_category(category_id)
        if removed is not None:
            self._categories = [c for c in self._categories if c.id != category_id]
            self._changed()
        return removed

    # -- Transactions --------------------------------------------------------

    def add_transaction(self, transaction: Transaction) -> None:
        self._transactions = sorted(
            [*self._transactions, transaction],
            key=_transaction_sort_key,
            reverse=True,
        )
        self._changed()

    def replace_transaction(self, transaction_id: str, transaction: Transaction) -> bool:
        if self.get_transaction(transaction_id) is None:
            return False
        self._transactions = sorted(
            (transaction if t.id == transaction_id else t for t in self._transactions),
            key=_transaction_sort_key,
            reverse=True,
        )
        self._changed()
        return True

    def remove_transaction(self, transaction_id: str) -> Optional[Transaction]:
        removed = self.get_transaction(transaction_id)
        if removed is not None:
            self._transactions = [t for t in self._transactions if t.id != transaction_id]
            self._changed()
        return removed

    # -- Snapshots -----------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            members=tuple(self._members),
            categories=tuple(self._categories),
            transactions=tuple(self._transactions),
        )

    def restore(
        self,
        snapshot: LedgerSnapshot,
        collections: Iterable[str] = COLLECTIONS,
    ) -> None:
        """
        Put the named collections back to their snapshot state.

        Collections not named keep their current contents, so a rollback
        of one transaction write does not undo a member rename that
        happened meanwhile.
        """
        collections = set(collections)
        unknown = collections - set(COLLECTIONS)
        if unknown:
            raise ValueError(f"Unknown collections: {sorted(unknown)}")

        if MEMBERS in collections:
            self._members = list(snapshot.members)
        if CATEGORIES in collections:
            self._categories = list(snapshot.categories)
        if TRANSACTIONS in collections:
            self._transactions = list(snapshot.transactions)
        self._changed()

    # -- Display helpers -----------------------------------------------------

    def member_label(self, member_id: Optional[str], placeholder: str) -> str:
        """Name of the member, or placeholder for a deleted/unknown one."""
        member = self.get_member(member_id) if member_id else None
        return member.name if member else placeholder

    def category_label(self, category_id: Optional[str], placeholder: str) -> str:
        category = self.get_category(category_id) if category_id else None
        return category.name if category else placeholder
