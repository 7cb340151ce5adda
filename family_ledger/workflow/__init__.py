"""Expense approval workflow."""

from family_ledger.workflow.status import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    ExpenseTransitionError,
    InvalidTransitionError,
    SelfApprovalError,
    by_status,
    can_transition,
    initial_status,
    total_for_status,
    transition,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "ExpenseTransitionError",
    "InvalidTransitionError",
    "SelfApprovalError",
    "by_status",
    "can_transition",
    "initial_status",
    "total_for_status",
    "transition",
]
