"""
Settlement Models

Results produced by the balance calculator. These are informational only:
no money is moved and nothing here is a ledger entry.

Sign convention for every balance in this module:
    positive -> the member owes money
    negative -> money is owed to the member
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from family_ledger.models.expense import ExpenseStatus


class BalanceView(str, Enum):
    """
    The two ways the product reads paid_by_id.

    RECEIVABLE: paid_by_id already paid; the others owe them their share.
    PAYABLE:    paid_by_id is responsible to pay; they owe the other side.

    Both are used by different screens and are kept apart on purpose.
    """
    RECEIVABLE = "receivable"
    PAYABLE = "payable"


class BalanceDirection(str, Enum):
    OWES = "owes"
    OWED = "owed"
    EVEN = "even"


class SettlementState(str, Enum):
    SETTLED = "settled"
    TRANSFER = "transfer"
    INSUFFICIENT_MEMBERS = "insufficient_members"


class MemberBalance(BaseModel):
    """Net balance of one member inside a breakdown."""

    user_id: str
    user_name: str = ""
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Positive = owes, negative = is owed (full precision)"
    )
    expense_count: int = Field(
        default=0,
        ge=0,
        description="Expenses that touched this member's balance"
    )

    @property
    def direction(self) -> BalanceDirection:
        if self.balance > 0:
            return BalanceDirection.OWES
        if self.balance < 0:
            return BalanceDirection.OWED
        return BalanceDirection.EVEN


class BalanceBreakdown(BaseModel):
    """Per-member balances for one view over one set of expenses."""

    view: BalanceView
    status: Optional[ExpenseStatus] = Field(
        default=None,
        description="Status bucket the breakdown was computed for, if any"
    )
    balances: list[MemberBalance] = Field(
        default_factory=list,
        description="One entry per roster member, in roster order"
    )
    total_amount: Decimal = Decimal("0")
    expense_count: int = 0
    skipped_count: int = Field(
        default=0,
        description="Malformed rows left out of the computation"
    )

    def balance_for(self, user_id: str) -> Optional[MemberBalance]:
        for member_balance in self.balances:
            if member_balance.user_id == user_id:
                return member_balance
        return None

    @property
    def is_empty(self) -> bool:
        return not self.balances


class StatusBalances(BaseModel):
    """
    Independent breakdowns per status bucket.

    The buckets are never added together into a lifetime balance.
    """

    view: BalanceView
    pending: BalanceBreakdown
    approved: BalanceBreakdown
    paid: BalanceBreakdown

    def for_status(self, status: ExpenseStatus) -> BalanceBreakdown:
        if status == ExpenseStatus.PENDING:
            return self.pending
        if status == ExpenseStatus.APPROVED:
            return self.approved
        if status == ExpenseStatus.PAID:
            return self.paid
        raise ValueError(f"No balance bucket for status: {status.value}")


class SettlementResult(BaseModel):
    """Single-transfer recommendation between the two members of an account."""

    view: BalanceView
    state: SettlementState
    net: Decimal = Field(
        default=Decimal("0"),
        description="Signed amount the first member owes the second"
    )
    amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Transfer amount, full precision"
    )
    from_user_id: Optional[str] = None
    from_user_name: Optional[str] = None
    to_user_id: Optional[str] = None
    to_user_name: Optional[str] = None

    @property
    def is_settled(self) -> bool:
        return self.state == SettlementState.SETTLED
