"""
Balance Calculator

Turns a list of expenses and the account roster into per-member balances
and, for two-member accounts, a single transfer recommendation.

DESIGN DECISION: Everything here is a pure function.
- No I/O, no clock, no ambient account context
- Inputs are never mutated
- Same inputs always give the same Decimal results
- No rounding; presentation decides how to round

Two readings of paid_by_id coexist in the product (see BalanceView).
They are computed separately and never merged:

RECEIVABLE (paid_by_id already paid):
    split:      payer -(A - A/N), every other member +A/N
    not split:  payer -A, nobody else is touched

PAYABLE (paid_by_id is responsible to pay):
    split:      payer +(A - A/N), i.e. the other members' shares
    not split:  payer +A

N is the roster size, never less than 1.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from family_ledger.models.expense import AccountMember, Expense, ExpenseStatus
from family_ledger.models.settlement import (
    BalanceBreakdown,
    BalanceView,
    MemberBalance,
    SettlementResult,
    SettlementState,
    StatusBalances,
)


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
DEFAULT_SETTLED_THRESHOLD = Decimal("1")

ExpenseLike = Union[Expense, Mapping[str, Any]]


# =============================================================================
# INPUT HANDLING
# =============================================================================

def coerce_expenses(rows: Iterable[ExpenseLike]) -> tuple[list[Expense], int]:
    """
    Validate raw rows into Expense models.

    Rows that fail validation (missing payer, non-numeric or non-positive
    amount, ...) are skipped with a warning so one bad row cannot hide
    the balances of all the others.

    Returns: (valid_expenses, skipped_count)
    """
    valid: list[Expense] = []
    skipped = 0

    for row in rows:
        if isinstance(row, Expense):
            valid.append(row)
            continue

        try:
            valid.append(Expense.model_validate(row))
        except ValidationError as e:
            skipped += 1
            row_id = row.get("id") if isinstance(row, Mapping) else None
            logger.warning(
                "malformed_expense_skipped",
                expense_id=row_id,
                error_count=e.error_count(),
                fields=sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]}),
            )

    return valid, skipped


def _select_status(
    expenses: list[Expense],
    status: Optional[ExpenseStatus],
) -> list[Expense]:
    # Rejected expenses never move money, whatever bucket is asked for.
    if status is None:
        return [e for e in expenses if e.status != ExpenseStatus.REJECTED]
    return [e for e in expenses if e.status == status]


def _roster_size(members: Sequence[AccountMember]) -> int:
    # Guards the division; an expense always has at least its payer.
    return max(len(members), 1)


def _others_count(expense: Expense, members: Sequence[AccountMember]) -> int:
    return sum(1 for m in members if m.user_id != expense.paid_by_id)


# =============================================================================
# PER-EXPENSE CONTRIBUTIONS
# =============================================================================

def expense_contributions(
    expense: Expense,
    members: Sequence[AccountMember],
    view: BalanceView,
) -> dict[str, Decimal]:
    """
    Contribution of a single expense to each member's balance.

    Every roster member gets a key (0 when untouched). The payer always
    gets a key, even if they are no longer on the roster.
    """
    contributions = {m.user_id: ZERO for m in members}
    payer = expense.paid_by_id
    contributions.setdefault(payer, ZERO)

    amount = expense.amount

    if expense.split_equally:
        share = amount / _roster_size(members)
        others_share = share * _others_count(expense, members)

        if view == BalanceView.RECEIVABLE:
            for member in members:
                if member.user_id != payer:
                    contributions[member.user_id] += share
            contributions[payer] -= others_share
        else:
            contributions[payer] += others_share
    else:
        if view == BalanceView.RECEIVABLE:
            contributions[payer] -= amount
        else:
            contributions[payer] += amount

    return contributions


# =============================================================================
# BALANCES
# =============================================================================

def _breakdown(
    expenses: list[Expense],
    members: Sequence[AccountMember],
    view: BalanceView,
    status: Optional[ExpenseStatus],
    skipped: int,
) -> BalanceBreakdown:
    expenses = _select_status(expenses, status)

    totals = {m.user_id: ZERO for m in members}
    counts = {m.user_id: 0 for m in members}
    total_amount = ZERO

    for expense in expenses:
        total_amount += expense.amount
        for user_id, amount in expense_contributions(expense, members, view).items():
            if user_id not in totals:
                # Payer left the account; history stays as recorded.
                continue
            totals[user_id] += amount
            if amount != ZERO or user_id == expense.paid_by_id:
                counts[user_id] += 1

    return BalanceBreakdown(
        view=view,
        status=status,
        balances=[
            MemberBalance(
                user_id=m.user_id,
                user_name=m.user_name,
                balance=totals[m.user_id],
                expense_count=counts[m.user_id],
            )
            for m in members
        ],
        total_amount=total_amount,
        expense_count=len(expenses),
        skipped_count=skipped,
    )


def compute_balances(
    expenses: Iterable[ExpenseLike],
    members: Sequence[AccountMember],
    view: BalanceView,
    status: Optional[ExpenseStatus] = None,
) -> BalanceBreakdown:
    """
    Net balance per roster member.

    Args:
        expenses: Expenses (models or raw rows), in any order
        members: Account roster; an empty roster gives an empty breakdown
        view: Which reading of paid_by_id to apply
        status: Restrict to one status bucket; when omitted every bucket
            except rejected is used

    Returns:
        BalanceBreakdown in roster order
    """
    valid, skipped = coerce_expenses(expenses)
    return _breakdown(valid, members, view, status, skipped)


def compute_status_balances(
    expenses: Iterable[ExpenseLike],
    members: Sequence[AccountMember],
    view: BalanceView,
) -> StatusBalances:
    """Separate breakdowns for the pending, approved and paid buckets."""
    valid, skipped = coerce_expenses(expenses)

    return StatusBalances(
        view=view,
        pending=_breakdown(valid, members, view, ExpenseStatus.PENDING, skipped),
        approved=_breakdown(valid, members, view, ExpenseStatus.APPROVED, skipped),
        paid=_breakdown(valid, members, view, ExpenseStatus.PAID, skipped),
    )


# =============================================================================
# TWO-MEMBER SETTLEMENT
# =============================================================================

def _pairwise_debt(
    expenses: list[Expense],
    members: Sequence[AccountMember],
    view: BalanceView,
    debtor_id: str,
    creditor_id: str,
) -> Decimal:
    if debtor_id == creditor_id:
        return ZERO

    roster_ids = {m.user_id for m in members}
    n = _roster_size(members)
    owed = ZERO

    for expense in expenses:
        payer = expense.paid_by_id

        if view == BalanceView.RECEIVABLE:
            # The other members owe the payer.
            if payer != creditor_id or debtor_id not in roster_ids:
                continue
        else:
            # The payer owes the other members.
            if payer != debtor_id or creditor_id not in roster_ids:
                continue

        if expense.split_equally:
            owed += expense.amount / n
        elif len(members) == 2:
            # A full-amount debt only has a counterparty in a pair.
            owed += expense.amount

    return owed


def pairwise_debts(
    expenses: Iterable[ExpenseLike],
    members: Sequence[AccountMember],
    view: BalanceView,
    debtor_id: str,
    creditor_id: str,
) -> Decimal:
    """Total amount debtor_id owes creditor_id across the expenses."""
    valid, _ = coerce_expenses(expenses)
    valid = _select_status(valid, None)
    return _pairwise_debt(valid, members, view, debtor_id, creditor_id)


def _net(
    expenses: list[Expense],
    members: Sequence[AccountMember],
    view: BalanceView,
    a_id: str,
    b_id: str,
) -> Decimal:
    return (
        _pairwise_debt(expenses, members, view, a_id, b_id)
        - _pairwise_debt(expenses, members, view, b_id, a_id)
    )


def net_transfer(
    expenses: Iterable[ExpenseLike],
    members: Sequence[AccountMember],
    view: BalanceView,
    a_id: str,
    b_id: str,
) -> Decimal:
    """
    Signed amount a_id must transfer to b_id.

    Positive: a pays b. Negative: b pays a.
    net_transfer(a, b) == -net_transfer(b, a) always holds.
    """
    valid, _ = coerce_expenses(expenses)
    valid = _select_status(valid, None)
    return _net(valid, members, view, a_id, b_id)


def settle_two_members(
    expenses: Iterable[ExpenseLike],
    members: Sequence[AccountMember],
    view: BalanceView,
    status: Optional[ExpenseStatus] = None,
    threshold: Union[Decimal, int, str] = DEFAULT_SETTLED_THRESHOLD,
) -> SettlementResult:
    """
    Recommend the single transfer that settles a two-member account.

    Accounts with any other number of members get no recommendation,
    only per-member balances. A net difference below the threshold
    counts as settled.
    """
    if len(members) != 2:
        return SettlementResult(
            view=view,
            state=SettlementState.INSUFFICIENT_MEMBERS,
        )

    valid, _ = coerce_expenses(expenses)
    valid = _select_status(valid, status)

    first, second = members[0], members[1]
    net = _net(valid, members, view, first.user_id, second.user_id)

    if abs(net) < Decimal(str(threshold)):
        return SettlementResult(
            view=view,
            state=SettlementState.SETTLED,
            net=net,
        )

    payer, payee = (first, second) if net > 0 else (second, first)

    return SettlementResult(
        view=view,
        state=SettlementState.TRANSFER,
        net=net,
        amount=abs(net),
        from_user_id=payer.user_id,
        from_user_name=payer.user_name,
        to_user_id=payee.user_id,
        to_user_name=payee.user_name,
    )
