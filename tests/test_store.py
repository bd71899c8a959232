"""
Tests for the Ledger Store and the optimistic mutation helper
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from homeledger.audit import AuditLogger
from homeledger.ledger import LedgerStore, OptimisticMutation
from homeledger.models.audit import AuditEventType
from homeledger.models.ledger import Transaction, TransactionType
from homeledger.services.storage import StorageError


def make_payment(transaction_id, day, hour=12):
    return Transaction(
        id=transaction_id,
        type=TransactionType.PAYMENT,
        amount=Decimal("5"),
        payer_id="alice",
        receiver_id="bob",
        date=date(2024, 5, day),
        created_at=datetime(2024, 5, day, hour, tzinfo=timezone.utc),
    )


class TestLedgerStore:
    """Tests for collection handling in LedgerStore."""

    def test_starts_empty(self):
        store = LedgerStore()
        assert store.members == ()
        assert store.transactions == ()
        assert store.balances == []
        assert store.loading is False

    def test_stores_are_isolated(self, alice):
        first, second = LedgerStore(), LedgerStore()
        first.add_member(alice)
        assert second.members == ()

    def test_transactions_newest_first(self):
        store = LedgerStore()
        store.set_transactions([make_payment("t1", 1), make_payment("t3", 3)])
        store.add_transaction(make_payment("t2", 2))
        store.add_transaction(make_payment("t3b", 3, hour=15))
        assert [t.id for t in store.transactions] == ["t3b", "t3", "t2", "t1"]

    def test_replace_missing_returns_false(self, alice):
        store = LedgerStore()
        assert store.replace_member("nobody", alice) is False
        assert store.version == 0

    def test_remove_returns_removed(self, alice):
        store = LedgerStore()
        store.add_member(alice)
        assert store.remove_member(alice.id) == alice
        assert store.remove_member(alice.id) is None

    def test_labels_fall_back_to_placeholder(self, alice, groceries):
        store = LedgerStore()
        store.add_member(alice)
        store.add_category(groceries)
        assert store.member_label("alice", "Unbekannt") == "Alice"
        assert store.member_label("gone", "Unbekannt") == "Unbekannt"
        assert store.member_label(None, "Unbekannt") == "Unbekannt"
        assert store.category_label("food", "-") == "Lebensmittel"
        assert store.category_label("gone", "-") == "-"


class TestVersioning:
    """Tests for change notification and memoized balances."""

    def test_every_change_bumps_version(self, alice, bob):
        store = LedgerStore()
        store.add_member(alice)
        store.add_member(bob)
        store.remove_member(bob.id)
        assert store.version == 3

    def test_balances_recomputed_after_change(self, alice, bob, dinner):
        store = LedgerStore()
        store.set_members([alice, bob])
        store.set_transactions([dinner])
        assert {b.id: b.balance for b in store.balances} == {
            "alice": Decimal("10"),
            "bob": Decimal("-10"),
        }

        store.remove_transaction(dinner.id)
        assert all(b.balance == Decimal("0") for b in store.balances)

    def test_balances_cached_between_changes(self, alice, dinner):
        store = LedgerStore()
        store.set_members([alice])
        store.set_transactions([dinner])
        first = store.balances
        second = store.balances
        assert first == second
        assert first is not second
        assert first[0] is second[0]

    def test_subscribe_and_unsubscribe(self, alice, bob):
        store = LedgerStore()
        seen = []
        unsubscribe = store.subscribe(lambda s: seen.append(s.version))

        store.add_member(alice)
        unsubscribe()
        store.add_member(bob)
        unsubscribe()

        assert seen == [1]


class TestSnapshots:
    """Tests for snapshot and restore."""

    def test_restore_all(self, alice, bob):
        store = LedgerStore()
        store.add_member(alice)
        snapshot = store.snapshot()
        store.add_member(bob)

        store.restore(snapshot)
        assert store.members == (alice,)

    def test_restore_only_named_collection(self, alice, groceries):
        store = LedgerStore()
        snapshot = store.snapshot()
        store.add_member(alice)
        store.add_category(groceries)

        store.restore(snapshot, ["categories"])
        assert store.members == (alice,)
        assert store.categories == ()

    def test_restore_unknown_collection(self):
        store = LedgerStore()
        with pytest.raises(ValueError):
            store.restore(store.snapshot(), ["budgets"])


class TestOptimisticMutation:
    """Tests for apply, write, confirm and rollback."""

    async def test_success_confirms_value(self, alice):
        store = LedgerStore()
        confirmed = alice.model_copy(update={"name": "Alice (saved)"})

        async def write():
            assert store.members == (alice,)  # already applied
            return confirmed

        mutation = OptimisticMutation(
            store, operation="add_member", entity_type="member", collections=["members"]
        )
        result = await mutation.run(
            apply=lambda s: s.add_member(alice),
            write=write,
            confirm=lambda s, saved: s.replace_member(alice.id, saved),
            entity_id=alice.id,
            warnings=["note"],
        )

        assert result.success is True
        assert result.value == confirmed
        assert result.warnings == ["note"]
        assert store.members == (confirmed,)

    async def test_storage_error_rolls_back(self, alice, bob, audit_storage):
        store = LedgerStore()
        store.add_member(alice)

        async def write():
            raise StorageError("offline")

        mutation = OptimisticMutation(
            store,
            operation="add_member",
            entity_type="member",
            collections=["members"],
            audit_logger=AuditLogger(audit_storage),
        )
        result = await mutation.run(
            apply=lambda s: s.add_member(bob),
            write=write,
            entity_id=bob.id,
        )

        assert result.success is False
        assert result.rolled_back is True
        assert result.error_message == "offline"
        assert store.members == (alice,)
        assert audit_storage.events[-1].event_type == AuditEventType.MUTATION_ROLLED_BACK
        assert audit_storage.events[-1].correlation_id == result.correlation_id

    async def test_other_errors_propagate(self, alice):
        store = LedgerStore()

        async def write():
            raise RuntimeError("bug")

        mutation = OptimisticMutation(
            store, operation="add_member", entity_type="member", collections=["members"]
        )
        with pytest.raises(RuntimeError):
            await mutation.run(apply=lambda s: s.add_member(alice), write=write)

    async def test_rollback_keeps_untouched_collections(self, alice, groceries):
        store = LedgerStore()

        async def write():
            # A concurrent change to another collection lands meanwhile
            store.add_category(groceries)
            raise StorageError("offline")

        mutation = OptimisticMutation(
            store, operation="add_member", entity_type="member", collections=["members"]
        )
        await mutation.run(apply=lambda s: s.add_member(alice), write=write)

        assert store.members == ()
        assert store.categories == (groceries,)
