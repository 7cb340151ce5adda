"""
Report Aggregations

Deterministic aggregations over expenses for the dashboard and reports.
Callers filter by period first (see settlement.periods); these
functions only group and sum.

Rejected expenses never count toward spending.
"""

import datetime as dt
from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Optional

from family_ledger.models.expense import AccountMember, Budget, Expense, ExpenseStatus
from family_ledger.models.period import PeriodSpec
from family_ledger.models.report import (
    BudgetAlert,
    BudgetCheckResult,
    BudgetCheckStatus,
    BudgetDeviation,
    CategoryTotal,
    ChildTotal,
    MonthPoint,
    PayerTotal,
    StatusSummary,
    StatusTotal,
)
from family_ledger.settlement.periods import (
    current_month_period,
    expenses_before_month,
    filter_expenses_by_period,
    month_label,
    trailing_months,
)


ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_WARNING_RATIO = Decimal("0.9")

UNCATEGORIZED_LABEL = "אחר"
GENERAL_CHILD_LABEL = "כללי"

SPENT_STATUSES = (ExpenseStatus.APPROVED, ExpenseStatus.PAID)


def _not_rejected(expenses: Iterable[Expense]) -> list[Expense]:
    return [e for e in expenses if e.status != ExpenseStatus.REJECTED]


def _sum(expenses: Iterable[Expense]) -> Decimal:
    return sum((e.amount for e in expenses), ZERO)


# =============================================================================
# DASHBOARD
# =============================================================================

def status_summary(expenses: Iterable[Expense]) -> StatusSummary:
    """Total and count per status bucket (pending, approved, paid)."""
    buckets = {
        ExpenseStatus.PENDING: StatusTotal(),
        ExpenseStatus.APPROVED: StatusTotal(),
        ExpenseStatus.PAID: StatusTotal(),
    }

    for expense in expenses:
        bucket = buckets.get(expense.status)
        if bucket is None:
            continue
        bucket.total += expense.amount
        bucket.count += 1

    return StatusSummary(
        pending=buckets[ExpenseStatus.PENDING],
        approved=buckets[ExpenseStatus.APPROVED],
        paid=buckets[ExpenseStatus.PAID],
    )


def monthly_balance(expenses: Iterable[Expense], today: dt.date) -> Decimal:
    """Approved expenses of the current month that count toward the balance."""
    current = filter_expenses_by_period(expenses, current_month_period(today))
    return _sum(
        e for e in current
        if e.status == ExpenseStatus.APPROVED and e.include_in_monthly_balance
    )


def previous_months_by_payer(
    expenses: Iterable[Expense],
    members: Sequence[AccountMember],
    year: int,
    month: int,
) -> list[PayerTotal]:
    """
    Approved expenses still open from before the given month, per payer.

    Members with nothing outstanding are left out.
    """
    approved = [e for e in expenses if e.status == ExpenseStatus.APPROVED]
    earlier = expenses_before_month(approved, year, month)

    totals = {
        m.user_id: PayerTotal(user_id=m.user_id, user_name=m.user_name, amount=ZERO, count=0)
        for m in members
    }
    for expense in earlier:
        total = totals.get(expense.paid_by_id)
        if total is None:
            continue
        total.amount += expense.amount
        total.count += 1

    return [t for t in totals.values() if t.amount > 0]


# =============================================================================
# REPORTS
# =============================================================================

def category_totals(expenses: Iterable[Expense]) -> list[CategoryTotal]:
    """Spending per category, largest first."""
    groups: dict[str, list[Expense]] = {}
    for expense in _not_rejected(expenses):
        key = expense.category or UNCATEGORIZED_LABEL
        groups.setdefault(key, []).append(expense)

    overall = sum((_sum(items) for items in groups.values()), ZERO)

    result = [
        CategoryTotal(
            name=name,
            amount=_sum(items),
            count=len(items),
            share=(_sum(items) / overall) if overall > 0 else ZERO,
        )
        for name, items in groups.items()
    ]
    result.sort(key=lambda c: (-c.amount, c.name))
    return result


def child_totals(expenses: Iterable[Expense]) -> list[ChildTotal]:
    """Spending per child; expenses with no child go under a general row."""
    groups: dict[str, ChildTotal] = {}
    for expense in _not_rejected(expenses):
        name = expense.child_name or GENERAL_CHILD_LABEL
        if name not in groups:
            groups[name] = ChildTotal(
                name=name,
                child_id=expense.child_id,
                amount=ZERO,
                count=0,
            )
        groups[name].amount += expense.amount
        groups[name].count += 1

    return sorted(groups.values(), key=lambda c: (-c.amount, c.name))


def _budget_label(categories: list[str]) -> str:
    if len(categories) == 1:
        return categories[0]
    label = " + ".join(categories[:2])
    if len(categories) > 2:
        label += "..."
    return label


def budget_deviation(
    budgets: Iterable[Budget],
    expenses: Iterable[Expense],
) -> list[BudgetDeviation]:
    """
    Budget versus actual spending, most consumed budget first.

    Budgets without any category are ignored.
    """
    by_category: dict[str, Decimal] = {}
    for expense in _not_rejected(expenses):
        key = expense.category or UNCATEGORIZED_LABEL
        by_category[key] = by_category.get(key, ZERO) + expense.amount

    points = []
    for budget in budgets:
        categories = budget.category_list
        if not categories:
            continue

        actual = sum((by_category.get(c, ZERO) for c in categories), ZERO)
        amount = budget.monthly_amount
        percent = (actual / amount * HUNDRED) if amount > 0 else ZERO

        points.append(BudgetDeviation(
            label=_budget_label(categories),
            categories=categories,
            budget=amount,
            actual=actual,
            deviation=amount - actual,
            percent=percent,
        ))

    points.sort(key=lambda p: (-p.percent, p.label))
    return points


def _classify(spent: Decimal, budget: Decimal, warning_ratio: Decimal) -> BudgetCheckStatus:
    if spent > budget:
        return BudgetCheckStatus.EXCEEDED
    if spent >= budget * warning_ratio:
        return BudgetCheckStatus.WARNING_90
    return BudgetCheckStatus.OK


def _spent_in_month(
    expenses: Iterable[Expense],
    categories: list[str],
    year: int,
    month: int,
) -> Decimal:
    in_month = filter_expenses_by_period(expenses, PeriodSpec.for_month(year, month))
    return _sum(
        e for e in in_month
        if e.status in SPENT_STATUSES and e.category in categories
    )


def budget_alerts(
    budgets: Iterable[Budget],
    expenses: Iterable[Expense],
    year: int,
    month: int,
    warning_ratio: Decimal = DEFAULT_WARNING_RATIO,
) -> list[BudgetAlert]:
    """
    Budgets of the month that are nearly used up or already exceeded.

    Only approved and paid expenses count. Budgets covering the same
    group of categories are reported once.
    """
    expenses = list(expenses)
    alerts = []
    seen_groups = set()

    for budget in budgets:
        categories = budget.category_list
        if not categories or not budget.is_active_for(month, year):
            continue

        group_key = "|".join(sorted(categories))
        if group_key in seen_groups:
            continue
        seen_groups.add(group_key)

        if budget.monthly_amount <= 0:
            continue

        spent = _spent_in_month(expenses, categories, year, month)
        status = _classify(spent, budget.monthly_amount, warning_ratio)
        if status == BudgetCheckStatus.OK:
            continue

        alerts.append(BudgetAlert(
            status=status,
            label=", ".join(categories),
            budget=budget.monthly_amount,
            spent=spent,
            categories=categories,
        ))

    return alerts


def check_budget_before_expense(
    budgets: Iterable[Budget],
    expenses: Iterable[Expense],
    category: str,
    amount: Decimal,
    day: dt.date,
    warning_ratio: Decimal = DEFAULT_WARNING_RATIO,
) -> BudgetCheckResult:
    """
    Where the category's budget would stand after adding a new expense.

    All budgets active in the expense's month that cover the category
    are added together.
    """
    applicable = [
        b for b in budgets
        if b.is_active_for(day.month, day.year) and b.applies_to(category)
    ]
    budget = sum((b.monthly_amount for b in applicable), ZERO)

    if budget <= 0:
        return BudgetCheckResult(
            status=BudgetCheckStatus.OK,
            budget=ZERO,
            spent=ZERO,
            new_spent=amount,
        )

    spent = _spent_in_month(expenses, [category], day.year, day.month)
    new_spent = spent + amount

    return BudgetCheckResult(
        status=_classify(new_spent, budget, warning_ratio),
        budget=budget,
        spent=spent,
        new_spent=new_spent,
    )


def monthly_trend(
    expenses: Iterable[Expense],
    today: dt.date,
    months: int = 6,
) -> list[MonthPoint]:
    """Spending per month for the trailing months, oldest first."""
    valid = _not_rejected(expenses)
    points = []

    for year, month in trailing_months(today, months):
        in_month = filter_expenses_by_period(valid, PeriodSpec.for_month(year, month))
        points.append(MonthPoint(
            year=year,
            month=month,
            label=month_label(year, month),
            amount=_sum(in_month),
            count=len(in_month),
        ))

    return points


def trend_percent(points: Sequence[MonthPoint]) -> Optional[Decimal]:
    """Change of the last month against the one before, in percent."""
    if len(points) < 2:
        return None

    previous, latest = points[-2], points[-1]
    if previous.amount <= 0:
        return None

    return (latest.amount - previous.amount) / previous.amount * HUNDRED
