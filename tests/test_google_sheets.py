"""
Tests for the Google Sheets backend

Worksheets are replaced by in-process fakes; no API calls are made.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from homeledger.models.audit import AuditEventBuilder, AuditEventType
from homeledger.models.ledger import Category, Split, Transaction, TransactionType
from homeledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsLedgerDataSource,
    NotFoundError,
    StorageError,
)
from homeledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    CATEGORY_COLUMNS,
    MEMBER_COLUMNS,
    SPLIT_COLUMNS,
    TRANSACTION_COLUMNS,
)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage layer."""

    def __init__(self, columns, rows=(), broken=False):
        self.rows = [list(columns)] + [list(r) for r in rows]
        self.broken = broken

    def _check(self):
        if self.broken:
            raise RuntimeError("API quota exceeded")

    def get_all_values(self):
        return [list(r) for r in self.rows]

    def append_row(self, row, value_input_option=None):
        self._check()
        self.rows.append(list(row))

    def append_rows(self, rows, value_input_option=None):
        self._check()
        self.rows.extend(list(r) for r in rows)

    def update(self, range_name, values):
        self._check()
        idx = int(range_name[1:])
        self.rows[idx - 1] = list(values[0])

    def delete_rows(self, idx):
        self._check()
        del self.rows[idx - 1]


class FakeClient:
    def __init__(self):
        self.members = FakeWorksheet(MEMBER_COLUMNS)
        self.categories = FakeWorksheet(CATEGORY_COLUMNS)
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.splits = FakeWorksheet(SPLIT_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_members_sheet(self):
        return self.members

    def get_categories_sheet(self):
        return self.categories

    def get_transactions_sheet(self):
        return self.transactions

    def get_splits_sheet(self):
        return self.splits

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def sheets(client):
    return GoogleSheetsLedgerDataSource(client)


def expense(transaction_id="t-1", amount="20.00", day=1):
    return Transaction(
        id=transaction_id,
        type=TransactionType.EXPENSE,
        title="Einkauf",
        amount=amount,
        payer_id="alice",
        category_id="food",
        date=date(2024, 5, day),
        created_at=datetime(2024, 5, day, 9, tzinfo=timezone.utc),
    )


class TestMembersSheet:
    """Tests for member rows."""

    async def test_insert_and_fetch(self, sheets, client, alice, bob):
        await sheets.insert_member(bob)
        await sheets.insert_member(alice)

        members = await sheets.fetch_members()

        assert [m.id for m in members] == ["alice", "bob"]
        assert client.members.rows[1] == ["bob", "Bob", bob.created_at.isoformat()]

    async def test_update_member(self, sheets, client, alice, bob):
        await sheets.insert_member(alice)
        await sheets.insert_member(bob)

        await sheets.update_member("bob", "Robert")

        assert client.members.rows[2][:2] == ["bob", "Robert"]
        assert client.members.rows[2][2] == bob.created_at.isoformat()

    async def test_update_missing_member(self, sheets):
        with pytest.raises(NotFoundError):
            await sheets.update_member("ghost", "Casper")

    async def test_delete_member(self, sheets, client, alice, bob):
        await sheets.insert_member(alice)
        await sheets.insert_member(bob)

        await sheets.delete_member("alice")

        assert [r[0] for r in client.members.rows[1:]] == ["bob"]

    async def test_write_failure_is_storage_error(self, sheets, client, alice):
        client.members.broken = True
        with pytest.raises(StorageError):
            await sheets.insert_member(alice)

    async def test_naive_timestamps_read_as_utc(self, sheets, client):
        client.members.rows.append(["m-1", "Dana", "2024-03-01T10:00:00"])
        member = (await sheets.fetch_members())[0]
        assert member.created_at == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)


class TestCategoriesSheet:
    """Tests for category rows."""

    async def test_insert_many_sorted_by_name(self, sheets):
        await sheets.insert_categories([
            Category(name="Wohnen", icon="🏠"),
            Category(name="Lebensmittel", icon="🍎"),
        ])
        categories = await sheets.fetch_categories()
        assert [(c.name, c.icon) for c in categories] == [
            ("Lebensmittel", "🍎"),
            ("Wohnen", "🏠"),
        ]

    async def test_update_clears_icon(self, sheets, groceries):
        await sheets.insert_category(groceries)
        await sheets.update_category("food", "Essen", None)
        category = (await sheets.fetch_categories())[0]
        assert category.name == "Essen"
        assert category.icon is None

    async def test_delete_category(self, sheets, groceries):
        await sheets.insert_category(groceries)
        await sheets.delete_category("food")
        assert await sheets.fetch_categories() == []


class TestTransactionsSheet:
    """Tests for transaction and split rows."""

    async def test_fetch_joins_splits_and_names(self, sheets, alice, bob, groceries):
        await sheets.insert_member(alice)
        await sheets.insert_member(bob)
        await sheets.insert_category(groceries)
        saved = await sheets.insert_transaction(expense())
        await sheets.insert_splits(saved.id, [
            Split(member_id="alice", split_amount="10.00", split_percentage="50"),
            Split(member_id="bob", split_amount="10.00", split_percentage="50"),
        ])

        transaction = (await sheets.fetch_transactions())[0]

        assert transaction.amount == Decimal("20.00")
        assert transaction.payer_name == "Alice"
        assert transaction.category_name == "Lebensmittel"
        assert transaction.category_icon == "🍎"
        assert [s.member_id for s in transaction.splits] == ["alice", "bob"]
        assert transaction.splits[0].split_percentage == Decimal("50")

    async def test_dangling_references_have_no_names(self, sheets):
        await sheets.insert_transaction(expense())
        transaction = (await sheets.fetch_transactions())[0]
        assert transaction.payer_name is None
        assert transaction.category_name is None

    async def test_newest_first(self, sheets):
        await sheets.insert_transaction(expense("t-1", day=1))
        await sheets.insert_transaction(expense("t-3", day=3))
        await sheets.insert_transaction(expense("t-2", day=2))
        assert [t.id for t in await sheets.fetch_transactions()] == ["t-3", "t-2", "t-1"]

    async def test_malformed_rows_are_skipped(self, sheets, client):
        await sheets.insert_transaction(expense())
        client.transactions.rows.append(
            ["t-bad", "expense", "", "zwanzig", "alice", "", "", "2024-05-01", "", ""]
        )
        client.transactions.rows.append([""])
        assert [t.id for t in await sheets.fetch_transactions()] == ["t-1"]

    async def test_amounts_stored_as_plain_strings(self, sheets, client):
        await sheets.insert_transaction(expense(amount="0.10"))
        assert client.transactions.rows[1][3] == "0.10"

    async def test_update_transaction_fields(self, sheets, client):
        await sheets.insert_transaction(expense())

        await sheets.update_transaction(
            "t-1", {"type": TransactionType.PAYMENT, "receiver_id": "bob", "amount": Decimal("5")}
        )

        row = client.transactions.rows[1]
        assert row[1] == "payment"
        assert row[3] == "5"
        assert row[5] == "bob"

    async def test_invalid_update_is_storage_error(self, sheets):
        await sheets.insert_transaction(expense())
        with pytest.raises(StorageError):
            await sheets.update_transaction("t-1", {"type": TransactionType.PAYMENT})

    async def test_replace_splits(self, sheets, client):
        await sheets.insert_transaction(expense("t-1"))
        await sheets.insert_transaction(expense("t-2"))
        await sheets.insert_splits("t-1", [Split(member_id="alice", split_amount=20)])
        await sheets.insert_splits("t-2", [Split(member_id="bob", split_amount=20)])

        await sheets.replace_splits("t-1", [
            Split(member_id="alice", split_amount=5),
            Split(member_id="bob", split_amount=15),
        ])

        remaining = [(r[0], r[1]) for r in client.splits.rows[1:]]
        assert remaining == [("t-2", "bob"), ("t-1", "alice"), ("t-1", "bob")]

    async def test_delete_cascades_to_splits(self, sheets, client):
        await sheets.insert_transaction(expense())
        await sheets.insert_splits("t-1", [
            Split(member_id="alice", split_amount=10),
            Split(member_id="bob", split_amount=10),
        ])

        await sheets.delete_transaction("t-1")

        assert client.transactions.rows[1:] == []
        assert client.splits.rows[1:] == []

    async def test_empty_split_list_is_noop(self, sheets, client):
        client.splits.broken = True
        await sheets.insert_splits("t-1", [])
        assert client.splits.rows[1:] == []


class TestAuditSheet:
    """Tests for the audit log worksheet."""

    async def test_append_and_read_back(self, client):
        storage = GoogleSheetsAuditStorage(client)
        correlation_id = uuid4()
        await storage.append_event(
            AuditEventBuilder.entity_added("member", "m-1", "Alice", correlation_id)
        )
        await storage.append_event(
            AuditEventBuilder.entity_deleted("member", "m-2", uuid4())
        )

        linked = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in linked] == [AuditEventType.MEMBER_ADDED]
        assert linked[0].is_user_action is True

        by_entity = await storage.get_events_by_entity("member", "m-2")
        assert by_entity[0].event_type == AuditEventType.MEMBER_DELETED
        assert len(await storage.get_recent_events(limit=1)) == 1

    async def test_details_survive_round_trip(self, client):
        storage = GoogleSheetsAuditStorage(client)
        await storage.append_event(
            AuditEventBuilder.categories_seeded(["Wohnen", "Urlaub"], uuid4())
        )
        event = (await storage.get_recent_events())[0]
        assert event.details == {"names": ["Wohnen", "Urlaub"]}

    async def test_append_failure_returns_false(self, client):
        client.audit.broken = True
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.entity_deleted("member", "m-1", uuid4())
        assert await storage.append_event(event) is False

    async def test_malformed_details_row_is_skipped(self, client):
        storage = GoogleSheetsAuditStorage(client)
        await storage.append_event(
            AuditEventBuilder.entity_deleted("member", "m-1", uuid4())
        )
        bad = list(client.audit.rows[1])
        bad[0] = str(uuid4())
        bad[8] = "{not json"
        client.audit.rows.append(bad)

        events = await storage.get_recent_events()

        assert len(events) == 1
        assert events[0].entity_id == "m-1"
