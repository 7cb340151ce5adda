"""
Tests for the balance calculator.

All functions under test are pure, so no fixtures or storage are needed.
"""

import pytest
from datetime import date
from decimal import Decimal

from family_ledger.models.expense import AccountMember, Expense, ExpenseStatus
from family_ledger.models.settlement import BalanceView, SettlementState
from family_ledger.settlement.calculator import (
    compute_balances,
    compute_status_balances,
    expense_contributions,
    net_transfer,
    pairwise_debts,
    settle_two_members,
)


DANA = AccountMember(user_id="a", user_name="דנה")
AVI = AccountMember(user_id="b", user_name="אבי")
NOA = AccountMember(user_id="c", user_name="נועה")
PAIR = [DANA, AVI]


def make_expense(amount, paid_by, split=False, status=ExpenseStatus.APPROVED,
                 day=date(2024, 3, 10)):
    return Expense(
        amount=Decimal(amount),
        date=day,
        paid_by_id=paid_by,
        split_equally=split,
        status=status,
    )


class TestExpenseContributions:
    """Tests for the per-expense split rules."""

    def test_receivable_split(self):
        """Payer is owed the other member's share."""
        contributions = expense_contributions(
            make_expense("100", "a", split=True), PAIR, BalanceView.RECEIVABLE
        )
        assert contributions == {"a": Decimal("-50"), "b": Decimal("50")}

    def test_receivable_not_split(self):
        contributions = expense_contributions(
            make_expense("200", "a"), PAIR, BalanceView.RECEIVABLE
        )
        assert contributions == {"a": Decimal("-200"), "b": Decimal("0")}

    def test_payable_split(self):
        """Payer owes the other members' shares."""
        contributions = expense_contributions(
            make_expense("100", "a", split=True), PAIR, BalanceView.PAYABLE
        )
        assert contributions == {"a": Decimal("50"), "b": Decimal("0")}

    def test_payable_not_split(self):
        contributions = expense_contributions(
            make_expense("200", "a"), PAIR, BalanceView.PAYABLE
        )
        assert contributions == {"a": Decimal("200"), "b": Decimal("0")}

    def test_three_member_split(self):
        contributions = expense_contributions(
            make_expense("90", "a", split=True),
            [DANA, AVI, NOA],
            BalanceView.RECEIVABLE,
        )
        assert contributions == {
            "a": Decimal("-60"),
            "b": Decimal("30"),
            "c": Decimal("30"),
        }

    def test_split_conserves_money(self):
        """Receivable split contributions sum to zero even for uneven shares."""
        contributions = expense_contributions(
            make_expense("100", "a", split=True),
            [DANA, AVI, NOA],
            BalanceView.RECEIVABLE,
        )
        assert abs(sum(contributions.values())) < Decimal("1e-20")

    def test_single_member_split_is_neutral(self):
        for view in BalanceView:
            contributions = expense_contributions(
                make_expense("100", "a", split=True), [DANA], view
            )
            assert contributions == {"a": Decimal("0")}

    def test_payer_off_roster_still_gets_a_key(self):
        contributions = expense_contributions(
            make_expense("100", "z"), PAIR, BalanceView.RECEIVABLE
        )
        assert contributions["z"] == Decimal("-100")
        assert contributions["a"] == Decimal("0")


class TestComputeBalances:
    """Tests for per-member balance breakdowns."""

    def test_balances_in_roster_order(self):
        breakdown = compute_balances(
            [make_expense("100", "b", split=True)], PAIR, BalanceView.RECEIVABLE
        )
        assert [b.user_id for b in breakdown.balances] == ["a", "b"]
        assert breakdown.balance_for("a").balance == Decimal("50")
        assert breakdown.balance_for("b").balance == Decimal("-50")
        assert breakdown.total_amount == Decimal("100")
        assert breakdown.expense_count == 1

    def test_empty_roster(self):
        breakdown = compute_balances(
            [make_expense("100", "a")], [], BalanceView.RECEIVABLE
        )
        assert breakdown.is_empty

    def test_no_expenses(self):
        breakdown = compute_balances([], PAIR, BalanceView.PAYABLE)
        assert all(b.balance == 0 for b in breakdown.balances)
        assert breakdown.expense_count == 0

    def test_status_filter(self):
        expenses = [
            make_expense("100", "a", split=True),
            make_expense("40", "a", split=True, status=ExpenseStatus.PENDING),
        ]
        breakdown = compute_balances(
            expenses, PAIR, BalanceView.RECEIVABLE, status=ExpenseStatus.PENDING
        )
        assert breakdown.balance_for("b").balance == Decimal("20")
        assert breakdown.status == ExpenseStatus.PENDING

    def test_raw_rows_are_accepted(self):
        rows = [{
            "amount": "100",
            "date": "2024-03-01",
            "paid_by_id": "a",
            "split_equally": True,
            "status": "approved",
        }]
        breakdown = compute_balances(rows, PAIR, BalanceView.RECEIVABLE)
        assert breakdown.balance_for("b").balance == Decimal("50")
        assert breakdown.skipped_count == 0

    def test_malformed_rows_are_skipped(self):
        """One broken row never hides the rest."""
        rows = [
            {"id": "broken-1", "amount": "100", "date": "2024-03-01"},
            {"amount": "-5", "date": "2024-03-01", "paid_by_id": "a"},
            {"amount": "abc", "date": "2024-03-01", "paid_by_id": "a"},
            make_expense("60", "a", split=True),
        ]
        breakdown = compute_balances(rows, PAIR, BalanceView.RECEIVABLE)
        assert breakdown.skipped_count == 3
        assert breakdown.expense_count == 1
        assert breakdown.balance_for("b").balance == Decimal("30")

    def test_inputs_not_mutated(self):
        expenses = [make_expense("100", "a", split=True)]
        snapshot = [e.model_copy() for e in expenses]
        compute_balances(expenses, PAIR, BalanceView.RECEIVABLE)
        assert expenses == snapshot

    def test_deterministic(self):
        expenses = [
            make_expense("33.33", "a", split=True),
            make_expense("12.10", "b"),
            make_expense("7", "b", split=True),
        ]
        first = compute_balances(expenses, PAIR, BalanceView.PAYABLE)
        second = compute_balances(list(reversed(expenses)), PAIR, BalanceView.PAYABLE)
        assert first == second

    def test_status_buckets_are_independent(self):
        expenses = [
            make_expense("100", "a", split=True),
            make_expense("40", "a", split=True, status=ExpenseStatus.PENDING),
            make_expense("10", "a", split=True, status=ExpenseStatus.PAID),
        ]
        buckets = compute_status_balances(expenses, PAIR, BalanceView.RECEIVABLE)
        assert buckets.approved.balance_for("b").balance == Decimal("50")
        assert buckets.pending.balance_for("b").balance == Decimal("20")
        assert buckets.for_status(ExpenseStatus.PAID).balance_for("b").balance == Decimal("5")

    def test_rejected_left_out_without_status(self):
        """Without a bucket every status but rejected counts."""
        expenses = [
            make_expense("100", "a", split=True, status=ExpenseStatus.REJECTED),
            make_expense("40", "a", split=True, status=ExpenseStatus.PENDING),
        ]
        breakdown = compute_balances(expenses, PAIR, BalanceView.RECEIVABLE)
        assert breakdown.balance_for("b").balance == Decimal("20")
        assert breakdown.total_amount == Decimal("40")
        assert breakdown.expense_count == 1

    def test_no_bucket_for_rejected(self):
        buckets = compute_status_balances([], PAIR, BalanceView.RECEIVABLE)
        with pytest.raises(ValueError):
            buckets.for_status(ExpenseStatus.REJECTED)


class TestNetTransfer:
    """Tests for pairwise debts and net transfer."""

    def test_receivable_split_debt(self):
        expenses = [make_expense("100", "a", split=True)]
        assert pairwise_debts(expenses, PAIR, BalanceView.RECEIVABLE, "b", "a") == Decimal("50")
        assert pairwise_debts(expenses, PAIR, BalanceView.RECEIVABLE, "a", "b") == Decimal("0")

    def test_self_debt_is_zero(self):
        expenses = [make_expense("100", "a", split=True)]
        assert pairwise_debts(expenses, PAIR, BalanceView.RECEIVABLE, "a", "a") == Decimal("0")

    def test_symmetry(self):
        """net(a, b) == -net(b, a)."""
        expenses = [
            make_expense("100", "a", split=True),
            make_expense("35", "b"),
            make_expense("12.5", "b", split=True),
        ]
        for view in BalanceView:
            forward = net_transfer(expenses, PAIR, view, "a", "b")
            backward = net_transfer(expenses, PAIR, view, "b", "a")
            assert forward == -backward

    def test_rejected_creates_no_debt(self):
        expenses = [make_expense("100", "a", split=True, status=ExpenseStatus.REJECTED)]
        assert pairwise_debts(expenses, PAIR, BalanceView.RECEIVABLE, "b", "a") == Decimal("0")
        assert net_transfer(expenses, PAIR, BalanceView.RECEIVABLE, "a", "b") == Decimal("0")

    def test_payable_net_matches_balance_difference(self):
        expenses = [
            make_expense("100", "a", split=True),
            make_expense("35", "b"),
            make_expense("80", "a"),
        ]
        breakdown = compute_balances(expenses, PAIR, BalanceView.PAYABLE)
        difference = (
            breakdown.balance_for("a").balance - breakdown.balance_for("b").balance
        )
        assert net_transfer(expenses, PAIR, BalanceView.PAYABLE, "a", "b") == difference


class TestSettleTwoMembers:
    """Tests for the two-member transfer recommendation."""

    def test_receivable_split(self):
        """Dana paid 100 split equally: Avi transfers 50 to Dana."""
        result = settle_two_members(
            [make_expense("100", "a", split=True)], PAIR, BalanceView.RECEIVABLE
        )
        assert result.state == SettlementState.TRANSFER
        assert result.from_user_id == "b"
        assert result.to_user_id == "a"
        assert result.to_user_name == "דנה"
        assert result.amount == Decimal("50")

    def test_receivable_not_split(self):
        result = settle_two_members(
            [make_expense("200", "a")], PAIR, BalanceView.RECEIVABLE
        )
        assert result.from_user_id == "b"
        assert result.amount == Decimal("200")

    def test_payable_not_split(self):
        """Under the payable view the payer owes the full amount."""
        result = settle_two_members(
            [make_expense("200", "a")], PAIR, BalanceView.PAYABLE
        )
        assert result.from_user_id == "a"
        assert result.to_user_id == "b"
        assert result.amount == Decimal("200")

    def test_debts_offset(self):
        expenses = [
            make_expense("100", "a", split=True),
            make_expense("60", "b", split=True),
        ]
        result = settle_two_members(expenses, PAIR, BalanceView.RECEIVABLE)
        assert result.from_user_id == "b"
        assert result.amount == Decimal("20")

    def test_below_threshold_is_settled(self):
        result = settle_two_members(
            [make_expense("1.5", "a", split=True)], PAIR, BalanceView.RECEIVABLE
        )
        assert result.state == SettlementState.SETTLED
        assert result.is_settled
        assert result.amount == Decimal("0")

    def test_custom_threshold(self):
        result = settle_two_members(
            [make_expense("1.5", "a", split=True)],
            PAIR,
            BalanceView.RECEIVABLE,
            threshold=Decimal("0.5"),
        )
        assert result.state == SettlementState.TRANSFER
        assert result.amount == Decimal("0.75")

    def test_no_expenses_is_settled(self):
        result = settle_two_members([], PAIR, BalanceView.RECEIVABLE)
        assert result.is_settled

    @pytest.mark.parametrize("members", [[DANA], [DANA, AVI, NOA], []])
    def test_insufficient_members(self, members):
        result = settle_two_members(
            [make_expense("100", "a", split=True)], members, BalanceView.RECEIVABLE
        )
        assert result.state == SettlementState.INSUFFICIENT_MEMBERS
        assert result.from_user_id is None

    def test_rejected_never_drives_a_transfer(self):
        result = settle_two_members(
            [make_expense("100", "a", split=True, status=ExpenseStatus.REJECTED)],
            PAIR,
            BalanceView.RECEIVABLE,
        )
        assert result.state == SettlementState.SETTLED
        assert result.net == Decimal("0")

    def test_status_filter(self):
        expenses = [
            make_expense("100", "a", split=True),
            make_expense("500", "a", split=True, status=ExpenseStatus.PENDING),
        ]
        result = settle_two_members(
            expenses, PAIR, BalanceView.RECEIVABLE, status=ExpenseStatus.APPROVED
        )
        assert result.amount == Decimal("50")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
