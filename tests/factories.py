"""Builders for transaction drafts used across the tests."""

from datetime import date

from homeledger.models.ledger import Split, TransactionDraft, TransactionType


def expense_draft(payer_id, amount, shares, **extra):
    """Build an expense draft; shares maps member id to split amount."""
    return TransactionDraft(
        type=TransactionType.EXPENSE,
        amount=amount,
        payer_id=payer_id,
        date=extra.pop("date", date(2024, 5, 2)),
        splits=[Split(member_id=m, split_amount=a) for m, a in shares.items()],
        **extra,
    )


def payment_draft(payer_id, receiver_id, amount, **extra):
    return TransactionDraft(
        type=TransactionType.PAYMENT,
        amount=amount,
        payer_id=payer_id,
        receiver_id=receiver_id,
        date=extra.pop("date", date(2024, 5, 3)),
        **extra,
    )
