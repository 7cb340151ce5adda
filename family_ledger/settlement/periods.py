"""
Period Filter

Selects the expenses whose date falls inside a reporting period and
produces the labels the reports show for a period.

All months are 1-indexed. Quarter q covers months 3q-2, 3q-1 and 3q.
The filter never mutates the list it is given.
"""

import datetime as dt
from collections.abc import Iterable, Iterator, Mapping
from typing import Optional, TypeVar

import structlog

from family_ledger.models.period import InvalidPeriodError, PeriodSpec, PeriodType


logger = structlog.get_logger(__name__)

T = TypeVar("T")

HEBREW_MONTHS = [
    "ינואר",
    "פברואר",
    "מרץ",
    "אפריל",
    "מאי",
    "יוני",
    "יולי",
    "אוגוסט",
    "ספטמבר",
    "אוקטובר",
    "נובמבר",
    "דצמבר",
]


def quarter_of(day: dt.date) -> int:
    """Calendar quarter (1-4) of a date."""
    return (day.month - 1) // 3 + 1


def _month_end(year: int, month: int) -> dt.date:
    if month == 12:
        return dt.date(year, 12, 31)
    return dt.date(year, month + 1, 1) - dt.timedelta(days=1)


def period_bounds(period: PeriodSpec) -> Optional[tuple[dt.date, dt.date]]:
    """
    Inclusive (start, end) dates of a period.

    Returns None for the all-time period.
    """
    if period.type == PeriodType.ALL:
        return None

    if period.type == PeriodType.MONTH:
        return dt.date(period.year, period.month, 1), _month_end(period.year, period.month)

    if period.type == PeriodType.QUARTER:
        first_month = 3 * period.quarter - 2
        last_month = 3 * period.quarter
        return dt.date(period.year, first_month, 1), _month_end(period.year, last_month)

    if period.type == PeriodType.YEAR:
        return dt.date(period.year, 1, 1), dt.date(period.year, 12, 31)

    return period.start_date, period.end_date


def _expense_date(expense) -> dt.date:
    value = expense["date"] if isinstance(expense, Mapping) else expense.date
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str):
        return dt.date.fromisoformat(value[:10])
    if not isinstance(value, dt.date):
        raise TypeError(f"Expected a date, got {type(value).__name__}")
    return value


def _dated(expenses: Iterable[T]) -> Iterator[tuple[T, dt.date]]:
    """Pair each expense with its date, leaving out rows without a usable one."""
    for expense in expenses:
        try:
            day = _expense_date(expense)
        except (KeyError, ValueError, TypeError) as e:
            row_id = expense.get("id") if isinstance(expense, Mapping) else None
            logger.warning("malformed_expense_skipped", expense_id=row_id, error=str(e))
            continue
        yield expense, day


def period_contains(period: PeriodSpec, day: dt.date) -> bool:
    """Does the period include this day?"""
    bounds = period_bounds(period)
    if bounds is None:
        return True
    start, end = bounds
    return start <= day <= end


def filter_expenses_by_period(expenses: Iterable[T], period: PeriodSpec) -> list[T]:
    """
    Expenses whose date falls inside the period, in input order.

    Works with Expense models and with raw rows that carry a "date" key.
    Always returns a new list; for the all-time period it holds
    exactly the input elements. Otherwise rows without a readable date
    are left out with a warning.

    Raises:
        InvalidPeriodError: If period is not a PeriodSpec
    """
    if not isinstance(period, PeriodSpec):
        raise InvalidPeriodError(
            f"Expected a PeriodSpec, got {type(period).__name__}"
        )

    if period.type == PeriodType.ALL:
        return list(expenses)

    return [e for e, day in _dated(expenses) if period_contains(period, day)]


def expenses_before_month(expenses: Iterable[T], year: int, month: int) -> list[T]:
    """Expenses dated strictly before the first day of the given month."""
    first_day = dt.date(year, month, 1)
    return [e for e, day in _dated(expenses) if day < first_day]


def trailing_months(today: dt.date, count: int) -> list[tuple[int, int]]:
    """
    The last `count` calendar months as (year, month), oldest first.

    The current month is the last element.
    """
    months = []
    year, month = today.year, today.month
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return list(reversed(months))


def month_label(year: int, month: int) -> str:
    return f"{HEBREW_MONTHS[month - 1]} {year}"


def get_period_label(period: PeriodSpec) -> str:
    """Human-readable (Hebrew) label for a period."""
    if period.type == PeriodType.ALL:
        return "כל התקופה"
    if period.type == PeriodType.MONTH:
        return month_label(period.year, period.month)
    if period.type == PeriodType.QUARTER:
        return f"רבעון {period.quarter} {period.year}"
    if period.type == PeriodType.YEAR:
        return f"שנת {period.year}"
    return f"{period.start_date.isoformat()} - {period.end_date.isoformat()}"


def current_month_period(today: dt.date) -> PeriodSpec:
    return PeriodSpec.for_month(today.year, today.month)
