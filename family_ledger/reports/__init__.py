"""Reporting views: aggregates, display formatting and CSV export."""

from family_ledger.reports.aggregates import (
    budget_alerts,
    budget_deviation,
    category_totals,
    check_budget_before_expense,
    child_totals,
    monthly_balance,
    monthly_trend,
    previous_months_by_payer,
    status_summary,
    trend_percent,
)
from family_ledger.reports.export import export_expenses_csv
from family_ledger.reports.formatting import describe_settlement, format_currency

__all__ = [
    "budget_alerts",
    "budget_deviation",
    "category_totals",
    "check_budget_before_expense",
    "child_totals",
    "describe_settlement",
    "export_expenses_csv",
    "format_currency",
    "monthly_balance",
    "monthly_trend",
    "previous_months_by_payer",
    "status_summary",
    "trend_percent",
]
