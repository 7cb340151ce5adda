"""
CSV export of expenses.

The file opens cleanly in spreadsheet software: UTF-8 with a BOM,
Hebrew headers, every cell quoted.
"""

import csv
import io
from collections.abc import Iterable

from family_ledger.models.expense import Expense, ExpenseStatus


BOM = "\ufeff"

HEADERS = [
    "תאריך",
    "סכום (₪)",
    "תיאור",
    "קטגוריה",
    "ילד",
    "משלם",
    "סטטוס",
    "משותף",
]

STATUS_LABELS = {
    ExpenseStatus.PENDING: "ממתין",
    ExpenseStatus.APPROVED: "מאושר",
    ExpenseStatus.REJECTED: "נדחה",
    ExpenseStatus.PAID: "שולם",
}


def _row(expense: Expense) -> list[str]:
    return [
        expense.date.isoformat(),
        str(expense.amount),
        expense.description,
        expense.category,
        expense.child_name or "",
        expense.paid_by_name or "",
        STATUS_LABELS[expense.status],
        "כן" if expense.split_equally else "לא",
    ]


def export_expenses_csv(expenses: Iterable[Expense]) -> str:
    """Render expenses as CSV text, in the order given."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")

    writer.writerow(HEADERS)
    for expense in expenses:
        writer.writerow(_row(expense))

    return BOM + buffer.getvalue()
