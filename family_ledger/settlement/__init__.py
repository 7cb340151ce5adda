"""Balance calculation and period filtering."""

from family_ledger.settlement.calculator import (
    coerce_expenses,
    compute_balances,
    compute_status_balances,
    expense_contributions,
    net_transfer,
    pairwise_debts,
    settle_two_members,
)
from family_ledger.settlement.periods import (
    expenses_before_month,
    filter_expenses_by_period,
    get_period_label,
    month_label,
    period_bounds,
    period_contains,
    quarter_of,
    trailing_months,
)

__all__ = [
    # Calculator
    "coerce_expenses",
    "compute_balances",
    "compute_status_balances",
    "expense_contributions",
    "net_transfer",
    "pairwise_debts",
    "settle_two_members",
    # Periods
    "expenses_before_month",
    "filter_expenses_by_period",
    "get_period_label",
    "month_label",
    "period_bounds",
    "period_contains",
    "quarter_of",
    "trailing_months",
]
