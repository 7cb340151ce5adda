"""
Report Models

Aggregates shown on the dashboard and reports screens.
They are derived from expenses on demand and never stored.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class StatusTotal(BaseModel):
    """Sum and count of one status bucket."""

    total: Decimal = Decimal("0")
    count: int = Field(default=0, ge=0)


class StatusSummary(BaseModel):
    pending: StatusTotal = Field(default_factory=StatusTotal)
    approved: StatusTotal = Field(default_factory=StatusTotal)
    paid: StatusTotal = Field(default_factory=StatusTotal)


class CategoryTotal(BaseModel):
    name: str
    amount: Decimal
    count: int
    share: Decimal = Field(
        default=Decimal("0"),
        description="Fraction of the overall total (0-1)"
    )


class ChildTotal(BaseModel):
    name: str
    child_id: Optional[str] = None
    amount: Decimal
    count: int


class BudgetDeviation(BaseModel):
    """How actual spending compares to one budget."""

    label: str
    categories: list[str]
    budget: Decimal
    actual: Decimal
    deviation: Decimal = Field(
        description="Budget minus actual; negative when over budget"
    )
    percent: Decimal = Field(
        description="Actual as a percentage of the budget"
    )

    @property
    def is_over(self) -> bool:
        return self.actual > self.budget


class BudgetCheckStatus(str, Enum):
    OK = "ok"
    WARNING_90 = "warning_90"
    EXCEEDED = "exceeded"


class BudgetAlert(BaseModel):
    status: BudgetCheckStatus
    label: str
    budget: Decimal
    spent: Decimal
    categories: list[str]


class BudgetCheckResult(BaseModel):
    """Budget position if a new expense were added."""

    status: BudgetCheckStatus
    budget: Decimal
    spent: Decimal
    new_spent: Decimal


class MonthPoint(BaseModel):
    year: int
    month: int
    label: str
    amount: Decimal
    count: int


class PayerTotal(BaseModel):
    user_id: str
    user_name: str
    amount: Decimal
    count: int
