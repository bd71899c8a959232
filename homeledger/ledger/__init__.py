"""Ledger core: balance engine, store and optimistic mutations."""

from homeledger.ledger.balances import coerce_amount, compute_balances, total_balance
from homeledger.ledger.store import LedgerSnapshot, LedgerStore
from homeledger.ledger.optimistic import OptimisticMutation

__all__ = [
    "LedgerSnapshot",
    "LedgerStore",
    "OptimisticMutation",
    "coerce_amount",
    "compute_balances",
    "total_balance",
]
