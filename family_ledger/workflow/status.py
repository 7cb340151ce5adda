"""
Expense Status State Machine

    pending  -> approved | rejected
    approved -> paid
    rejected, paid: terminal

Transitions are applied to a copy of the expense; the caller persists
the copy in a single update, so a failed write leaves the stored
expense in its prior state.

Who may perform a transition is decided by the storage layer's access
policy. The only rule enforced here is the product's self-approval
guard: on a shared account, the member who created an expense cannot
approve or reject it themselves.
"""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Optional

from family_ledger.models.expense import Expense, ExpenseStatus


ALLOWED_TRANSITIONS: dict[ExpenseStatus, frozenset[ExpenseStatus]] = {
    ExpenseStatus.PENDING: frozenset({ExpenseStatus.APPROVED, ExpenseStatus.REJECTED}),
    ExpenseStatus.APPROVED: frozenset({ExpenseStatus.PAID}),
    ExpenseStatus.REJECTED: frozenset(),
    ExpenseStatus.PAID: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


class ExpenseTransitionError(Exception):
    """Base exception for refused status changes."""
    pass


class InvalidTransitionError(ExpenseTransitionError):
    """The state machine does not allow this transition."""

    def __init__(self, current: ExpenseStatus, requested: ExpenseStatus):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move expense from {current.value} to {requested.value}"
        )


class SelfApprovalError(ExpenseTransitionError):
    """A member tried to approve or reject their own expense."""
    pass


def can_transition(current: ExpenseStatus, requested: ExpenseStatus) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


def initial_status(paid_by_id: str, created_by: Optional[str]) -> ExpenseStatus:
    """
    Status a newly created expense starts in.

    An expense the creator pays for themselves needs nobody else's
    approval, so it starts approved. Everything else waits for review.
    """
    if created_by is not None and paid_by_id == created_by:
        return ExpenseStatus.APPROVED
    return ExpenseStatus.PENDING


def transition(
    expense: Expense,
    requested: ExpenseStatus,
    actor_id: str,
    now: Optional[datetime] = None,
    personal_account: bool = False,
) -> Expense:
    """
    Apply a status change and return the updated copy.

    Args:
        expense: Current expense (not modified)
        requested: Target status
        actor_id: Member performing the change
        now: Timestamp for approval bookkeeping (defaults to utcnow)
        personal_account: Single-member accounts may review their own expenses

    Raises:
        InvalidTransitionError: Transition not in the state machine
        SelfApprovalError: Creator reviewing their own expense on a shared account
    """
    if not can_transition(expense.status, requested):
        raise InvalidTransitionError(expense.status, requested)

    is_review = requested in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED)
    if is_review and not personal_account and expense.created_by == actor_id:
        raise SelfApprovalError(
            "An expense cannot be approved or rejected by the member who added it"
        )

    changes: dict = {"status": requested}

    if requested == ExpenseStatus.APPROVED:
        changes["approved_by"] = actor_id
        changes["approved_at"] = now or datetime.utcnow()
    elif requested == ExpenseStatus.REJECTED:
        # Rejected expenses never count toward the monthly balance.
        changes["include_in_monthly_balance"] = False

    return expense.model_copy(update=changes)


# =============================================================================
# STATUS BUCKETS
# =============================================================================

def by_status(expenses: Iterable[Expense], status: ExpenseStatus) -> list[Expense]:
    return [e for e in expenses if e.status == status]


def total_for_status(expenses: Iterable[Expense], status: ExpenseStatus) -> Decimal:
    return sum((e.amount for e in by_status(expenses, status)), Decimal("0"))
