"""Shared fixtures for the ledger tests."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from homeledger.audit import AuditLogger
from homeledger.config import AppSettings
from homeledger.finance import FinanceService
from homeledger.ledger import LedgerStore
from homeledger.models.ledger import Category, Member, Split, Transaction, TransactionType
from homeledger.services.storage import InMemoryAuditStorage, InMemoryLedgerDataSource


@pytest.fixture
def app_settings():
    return AppSettings(
        app_environment="development",
        debug_mode=False,
        currency_code="EUR",
        unknown_member_label="Unbekannt",
        unknown_category_label="Keine Kategorie",
        split_tolerance=Decimal("0.01"),
        max_transaction_amount=Decimal("100000"),
        future_date_tolerance_days=7,
    )


@pytest.fixture
def alice():
    return Member(id="alice", name="Alice", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def bob():
    return Member(id="bob", name="Bob", created_at=datetime(2024, 1, 2, tzinfo=timezone.utc))


@pytest.fixture
def groceries():
    return Category(id="food", name="Lebensmittel", icon="🍎")


@pytest.fixture
def dinner(alice, bob):
    """Alice paid 20, split evenly with Bob."""
    return Transaction(
        id="t-dinner",
        type=TransactionType.EXPENSE,
        title="Dinner",
        amount=Decimal("20"),
        payer_id=alice.id,
        date=date(2024, 5, 1),
        created_at=datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc),
        splits=[
            Split(member_id=alice.id, split_amount=Decimal("10")),
            Split(member_id=bob.id, split_amount=Decimal("10")),
        ],
    )


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def data_source(alice, bob, groceries):
    return InMemoryLedgerDataSource(members=[alice, bob], categories=[groceries])


@pytest.fixture
def service(data_source, audit_storage, app_settings):
    return FinanceService(
        data_source=data_source,
        store=LedgerStore(),
        audit_logger=AuditLogger(audit_storage),
        settings=app_settings,
    )


@pytest.fixture
async def loaded_service(service):
    await service.refresh_all()
    return service
