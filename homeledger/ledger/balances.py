"""
Balance Engine

Derives one signed net balance per member from the transaction ledger:

    positive -> the group owes the member money
    negative -> the member owes the group

Expenses credit the payer with the full amount and debit every split
member with their share. Payments credit the payer and debit the
receiver by the paid amount, moving both towards zero.

The engine is a pure function. It never raises: references to members
that are not in the member list are skipped (their share is dropped, not
redistributed) and amounts that cannot be read as numbers contribute
zero. It accepts both model instances and plain mappings, so raw rows
from a data source can be fed in directly.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from homeledger.models.ledger import MemberBalance, TransactionType, parse_amount


ZERO = Decimal("0")


def coerce_amount(value: Any) -> Decimal:
    """Read value as a Decimal amount, or zero if it is not numeric."""
    try:
        return parse_amount(value)
    except ValueError:
        return ZERO


def _field(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def _splits(record: Any) -> Iterable[Any]:
    splits = _field(record, "splits")
    if isinstance(splits, (str, bytes, Mapping)) or not isinstance(splits, Iterable):
        return ()
    return splits


def _post(
    raw: dict[Any, Decimal],
    member_id: Any,
    amount: Decimal,
    debit: bool = False,
) -> None:
    """Credit (or debit) a known member; a failed posting changes nothing."""
    try:
        if member_id in raw:
            if debit:
                raw[member_id] -= amount
            else:
                raw[member_id] += amount
    except (ArithmeticError, TypeError):
        # Out-of-range amount or unhashable id
        pass


def compute_balances(
    members: Iterable[Any],
    transactions: Iterable[Any],
) -> list[MemberBalance]:
    """
    Compute the net balance of every member.

    Args:
        members: Members (or mappings with id/name) in display order
        transactions: Transactions (or mappings) with embedded splits

    Returns:
        Exactly one MemberBalance per member, in the order of members.
        Members without transactions have a balance of exactly 0.
    """
    members = list(members)
    raw: dict[Any, Decimal] = {_field(m, "id"): ZERO for m in members}

    for t in transactions:
        kind = _field(t, "type")
        amount = coerce_amount(_field(t, "amount"))
        payer_id = _field(t, "payer_id")

        if kind == TransactionType.EXPENSE.value:
            # Payer fronted the cost
            _post(raw, payer_id, amount)
            # Consumers owe their share
            for split in _splits(t):
                _post(
                    raw,
                    _field(split, "member_id"),
                    coerce_amount(_field(split, "split_amount")),
                    debit=True,
                )

        elif kind == TransactionType.PAYMENT.value:
            # Splits and category are meaningless for payments
            _post(raw, payer_id, amount)
            receiver_id = _field(t, "receiver_id")
            if receiver_id:
                _post(raw, receiver_id, amount, debit=True)

    balances = []
    for m in members:
        member_id = _field(m, "id")
        created_at = _field(m, "created_at")
        balances.append(MemberBalance(
            id=str(member_id),
            name=str(_field(m, "name") or ""),
            created_at=created_at if isinstance(created_at, datetime) else None,
            balance=raw.get(member_id) or ZERO,
        ))
    return balances


def total_balance(balances: Iterable[MemberBalance]) -> Decimal:
    """
    Sum of all balances.

    Zero for a closed ledger. Anything else is money that entered via an
    expense whose splits do not add up, or via a dangling reference.
    """
    return sum((b.balance for b in balances), ZERO)
