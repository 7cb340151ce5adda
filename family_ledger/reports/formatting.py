"""
Display formatting for amounts and settlement results.

This is the only place amounts get rounded.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from family_ledger.models.settlement import SettlementResult, SettlementState


WHOLE = Decimal("1")
CENTS = Decimal("0.01")

SETTLED_MESSAGE = "החשבון מאוזן!"
INSUFFICIENT_MEMBERS_MESSAGE = "יש להוסיף חבר נוסף לחשבון כדי לחשב העברה"


def format_currency(
    amount: Union[Decimal, int, str],
    symbol: str = "₪",
    whole_units: bool = True,
) -> str:
    """
    Format an amount for display, e.g. ₪1,235.

    Rounds half up to whole units, or to two decimals when
    whole_units is False.
    """
    value = Decimal(str(amount))
    exponent = WHOLE if whole_units else CENTS
    rounded = value.quantize(exponent, rounding=ROUND_HALF_UP)

    sign = "-" if rounded < 0 else ""
    pattern = ",.0f" if whole_units else ",.2f"
    return f"{sign}{symbol}{format(abs(rounded), pattern)}"


def describe_settlement(result: SettlementResult, symbol: str = "₪") -> str:
    """One-line Hebrew summary of a settlement recommendation."""
    if result.state == SettlementState.SETTLED:
        return SETTLED_MESSAGE

    if result.state == SettlementState.INSUFFICIENT_MEMBERS:
        return INSUFFICIENT_MEMBERS_MESSAGE

    amount = format_currency(result.amount, symbol=symbol)
    return f"{result.from_user_name} צריך להעביר {amount} ל{result.to_user_name}"
