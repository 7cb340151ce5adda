"""
Core Data Models for Family Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Money is always Decimal. The product this replaces
kept amounts as floats and accumulated rounding error in its balances;
here rounding only happens when an amount is rendered.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseStatus(str, Enum):
    """
    Expense approval status.

    pending -> approved | rejected, approved -> paid.
    rejected and paid are terminal.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class ExpenseFrequency(str, Enum):
    """Frequency of a recurring expense template."""
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    YEARLY = "yearly"


class MemberRole(str, Enum):
    """Role of a member inside a shared account."""
    ADMIN = "admin"
    MEMBER = "member"


class SubscriptionStatus(str, Enum):
    """Billing state of an account."""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELED = "canceled"


class BudgetType(str, Enum):
    """
    How a budget is scoped in time.

    MONTHLY budgets belong to one calendar month.
    RECURRING budgets apply to every month in their date range.
    """
    MONTHLY = "monthly"
    RECURRING = "recurring"


def _new_id() -> str:
    return uuid4().hex


# =============================================================================
# ACCOUNT MODELS
# =============================================================================

class AccountMember(BaseModel):
    """A member of a shared account (family)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(
        ...,
        min_length=1,
        description="Stable identifier of the user"
    )
    user_name: str = Field(
        default="",
        max_length=200,
        description="Display name"
    )
    role: MemberRole = Field(
        default=MemberRole.MEMBER,
        description="Role inside the account"
    )
    joined_at: Optional[dt.datetime] = None


class Account(BaseModel):
    """
    A billing/tenant unit holding one or more members.

    In practice this is a single person or a co-parent pair.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    owner_id: str
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL
    trial_ends_at: Optional[dt.datetime] = None
    plan_slug: Optional[str] = None
    members: list[AccountMember] = Field(default_factory=list)

    @property
    def is_personal(self) -> bool:
        """A personal account has nobody else to approve expenses."""
        return len(self.members) == 1


class Child(BaseModel):
    """A child that expenses can be attributed to."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1, max_length=100)
    birth_date: Optional[dt.date] = None


# =============================================================================
# EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    A single recorded expense.

    Only paid_by_id and split_equally take part in balance math.
    Everything else is for reporting and the approval workflow.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=_new_id,
        description="Opaque unique identifier"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount in the account currency"
    )
    description: str = Field(
        default="",
        max_length=500,
    )
    date: dt.date = Field(
        ...,
        description="Day the expense happened"
    )
    category: str = Field(
        default="",
        max_length=100,
        description="Free-form category label"
    )

    # Reporting attribution
    child_id: Optional[str] = None
    child_name: Optional[str] = None

    # Who recorded it and who pays
    created_by: Optional[str] = None
    paid_by_id: str = Field(
        ...,
        min_length=1,
        description="Member recorded as responsible for the payment"
    )
    paid_by_name: Optional[str] = None
    split_equally: bool = Field(
        default=False,
        description="Share the cost evenly across all account members"
    )

    # Workflow
    status: ExpenseStatus = Field(default=ExpenseStatus.PENDING)
    approved_by: Optional[str] = None
    approved_at: Optional[dt.datetime] = None
    receipt_url: Optional[str] = None
    include_in_monthly_balance: bool = True

    # Recurring template metadata (instances are generated elsewhere)
    is_recurring: bool = False
    frequency: Optional[ExpenseFrequency] = None
    has_end_date: bool = False
    end_date: Optional[dt.date] = None
    recurring_parent_id: Optional[str] = None

    @model_validator(mode='after')
    def validate_recurrence(self) -> 'Expense':
        """Validate recurring metadata."""
        if self.has_end_date and self.end_date is None:
            raise ValueError("End date is required when has_end_date is set")

        if self.end_date and self.end_date < self.date:
            raise ValueError("End date cannot be before expense date")

        return self


# =============================================================================
# BUDGET MODEL
# =============================================================================

class Budget(BaseModel):
    """
    A monthly spending limit for one or more categories.

    Budgets feed the reports and alerts; they never affect balances.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    category: Optional[str] = None
    categories: list[str] = Field(default_factory=list)
    monthly_amount: Decimal = Field(..., ge=0)
    budget_type: BudgetType = BudgetType.MONTHLY

    # MONTHLY budgets
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None

    # RECURRING budgets
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    @property
    def category_list(self) -> list[str]:
        """Categories covered by this budget."""
        if self.categories:
            return list(self.categories)
        return [self.category] if self.category else []

    def applies_to(self, category: str) -> bool:
        return category in self.category_list

    def is_active_for(self, month: int, year: int) -> bool:
        """Does this budget cover the given calendar month?"""
        if self.budget_type == BudgetType.MONTHLY:
            return self.month == month and self.year == year

        if self.start_date is None:
            return False

        month_start = dt.date(year, month, 1)
        if month == 12:
            month_end = dt.date(year, 12, 31)
        else:
            month_end = dt.date(year, month + 1, 1) - dt.timedelta(days=1)

        end = self.end_date or dt.date.max
        return self.start_date <= month_end and end >= month_start
