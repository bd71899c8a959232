"""
Tests for the Balance Engine

The engine must never raise, always return one record per member, and
leave members without transactions at exactly zero.
"""

from datetime import date
from decimal import Decimal

from homeledger.ledger import compute_balances, total_balance
from homeledger.models.ledger import Member, Split, Transaction, TransactionType


MEMBERS = [{"id": "a", "name": "Alice"}, {"id": "b", "name": "Bob"}]

EXPENSE_A = {
    "type": "expense",
    "amount": 20,
    "payer_id": "a",
    "splits": [
        {"member_id": "a", "split_amount": 10},
        {"member_id": "b", "split_amount": 10},
    ],
}

PAYMENT_B = {"type": "payment", "amount": 10, "payer_id": "b", "receiver_id": "a"}


def by_id(balances):
    return {b.id: b.balance for b in balances}


class TestWorkedExamples:
    """Worked examples of the balance rules."""

    def test_even_split_expense(self):
        """Alice pays 20 split evenly: Alice +10, Bob -10."""
        balances = by_id(compute_balances(MEMBERS, [EXPENSE_A]))
        assert balances == {"a": Decimal("10"), "b": Decimal("-10")}

    def test_payment_settles_expense(self):
        """Bob pays Alice back 10: both end at zero."""
        balances = by_id(compute_balances(MEMBERS, [EXPENSE_A, PAYMENT_B]))
        assert balances == {"a": Decimal("0"), "b": Decimal("0")}

    def test_removed_member_share_is_dropped(self):
        """Bob's share is not redistributed when he is no longer a member."""
        balances = compute_balances(MEMBERS[:1], [EXPENSE_A])
        assert len(balances) == 1
        assert balances[0].id == "a"
        assert balances[0].balance == Decimal("10")

    def test_mismatched_splits_leak_into_total(self):
        """An expense of 30 with splits of 20 leaves 10 unaccounted for."""
        expense = {
            "type": "expense",
            "amount": 30,
            "payer_id": "a",
            "splits": [
                {"member_id": "a", "split_amount": 10},
                {"member_id": "b", "split_amount": 10},
            ],
        }
        balances = compute_balances(MEMBERS, [expense])
        assert by_id(balances) == {"a": Decimal("20"), "b": Decimal("-10")}
        assert total_balance(balances) == Decimal("10")


class TestProperties:
    """General guarantees of the engine."""

    def test_one_record_per_member_in_order(self):
        members = [{"id": str(i), "name": f"M{i}"} for i in range(5)]
        balances = compute_balances(members, [EXPENSE_A, PAYMENT_B])
        assert [b.id for b in balances] == ["0", "1", "2", "3", "4"]

    def test_closed_ledger_sums_to_zero(self):
        expenses = [
            EXPENSE_A,
            {
                "type": "expense",
                "amount": "33.33",
                "payer_id": "b",
                "splits": [
                    {"member_id": "a", "split_amount": "11.11"},
                    {"member_id": "b", "split_amount": "22.22"},
                ],
            },
        ]
        assert total_balance(compute_balances(MEMBERS, expenses)) == Decimal("0")

    def test_payment_does_not_change_total(self):
        before = total_balance(compute_balances(MEMBERS, [EXPENSE_A]))
        after = total_balance(compute_balances(MEMBERS, [EXPENSE_A, PAYMENT_B]))
        assert before == after

    def test_unknown_split_member_does_not_raise(self):
        """Only the payer-side credit remains for a dangling split."""
        expense = {
            "type": "expense",
            "amount": 15,
            "payer_id": "a",
            "splits": [{"member_id": "ghost", "split_amount": 15}],
        }
        balances = compute_balances(MEMBERS, [expense])
        assert by_id(balances) == {"a": Decimal("15"), "b": Decimal("0")}
        assert total_balance(balances) == Decimal("15")

    def test_repeated_calls_are_identical(self):
        members = MEMBERS + [{"id": "c", "name": "Carol"}]
        first = compute_balances(members, [EXPENSE_A])
        second = compute_balances(members, [EXPENSE_A])
        assert first == second
        assert by_id(first)["c"] == Decimal("0")

    def test_no_transactions(self):
        balances = compute_balances(MEMBERS, [])
        assert all(b.balance == Decimal("0") for b in balances)

    def test_no_members(self):
        assert compute_balances([], [EXPENSE_A]) == []


class TestInputHandling:
    """Amounts and records in the shapes the transport layer delivers."""

    def test_string_amounts_are_parsed(self):
        """String amounts are added, not concatenated."""
        expense = {
            "type": "expense",
            "amount": "20.00",
            "payer_id": "a",
            "splits": [
                {"member_id": "a", "split_amount": "10.00"},
                {"member_id": "b", "split_amount": "10.00"},
            ],
        }
        balances = by_id(compute_balances(MEMBERS, [expense, expense]))
        assert balances == {"a": Decimal("20"), "b": Decimal("-20")}

    def test_non_numeric_amount_counts_as_zero(self):
        expense = {
            "type": "expense",
            "amount": "abc",
            "payer_id": "a",
            "splits": [{"member_id": "b", "split_amount": None}],
        }
        balances = by_id(compute_balances(MEMBERS, [expense]))
        assert balances == {"a": Decimal("0"), "b": Decimal("0")}

    def test_out_of_range_amount_counts_as_zero(self):
        """A finite amount too large for the decimal context posts nothing."""
        huge = {
            "type": "expense",
            "amount": "1e999999999",
            "payer_id": "a",
            "splits": [{"member_id": "b", "split_amount": "1e999999999"}],
        }
        transfer = {"type": "payment", "amount": "1e999999999", "payer_id": "b", "receiver_id": "a"}
        balances = by_id(compute_balances(MEMBERS, [huge, transfer, EXPENSE_A]))
        assert balances == {"a": Decimal("10"), "b": Decimal("-10")}

    def test_non_iterable_splits_are_ignored(self):
        """Only the payer credit remains when splits is not a list."""
        for splits in (7, "ab", {"member_id": "b", "split_amount": 5}):
            expense = {"type": "expense", "amount": "5", "payer_id": "a", "splits": splits}
            balances = by_id(compute_balances(MEMBERS, [expense]))
            assert balances == {"a": Decimal("5"), "b": Decimal("0")}

    def test_payment_ignores_splits(self):
        payment = dict(PAYMENT_B, splits=[{"member_id": "b", "split_amount": 10}])
        balances = by_id(compute_balances(MEMBERS, [payment]))
        assert balances == {"a": Decimal("-10"), "b": Decimal("10")}

    def test_payment_without_receiver_credits_payer_only(self):
        payment = {"type": "payment", "amount": 5, "payer_id": "a", "receiver_id": None}
        assert by_id(compute_balances(MEMBERS, [payment]))["a"] == Decimal("5")

    def test_unknown_type_is_ignored(self):
        refund = {"type": "refund", "amount": 5, "payer_id": "a"}
        assert by_id(compute_balances(MEMBERS, [refund]))["a"] == Decimal("0")

    def test_accepts_models(self):
        members = [Member(id="a", name="Alice"), Member(id="b", name="Bob")]
        transaction = Transaction(
            type=TransactionType.EXPENSE,
            amount=Decimal("20"),
            payer_id="a",
            date=date(2024, 5, 1),
            splits=[
                Split(member_id="a", split_amount=10),
                Split(member_id="b", split_amount=10),
            ],
        )
        balances = compute_balances(members, [transaction])
        assert by_id(balances) == {"a": Decimal("10"), "b": Decimal("-10")}
        assert balances[0].name == "Alice"
        assert balances[0].created_at == members[0].created_at
