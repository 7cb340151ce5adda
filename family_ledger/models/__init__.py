"""
Data Models Package

This package contains all Pydantic models used in the Family Ledger system.
All data flowing through the system must conform to these schemas.
"""

from family_ledger.models.expense import (
    Account,
    AccountMember,
    Budget,
    BudgetType,
    Child,
    Expense,
    ExpenseFrequency,
    ExpenseStatus,
    MemberRole,
    SubscriptionStatus,
)
from family_ledger.models.period import InvalidPeriodError, PeriodSpec, PeriodType
from family_ledger.models.settlement import (
    BalanceBreakdown,
    BalanceDirection,
    BalanceView,
    MemberBalance,
    SettlementResult,
    SettlementState,
    StatusBalances,
)
from family_ledger.models.report import (
    BudgetAlert,
    BudgetCheckResult,
    BudgetCheckStatus,
    BudgetDeviation,
    CategoryTotal,
    ChildTotal,
    MonthPoint,
    PayerTotal,
    StatusSummary,
    StatusTotal,
)
from family_ledger.models.receipt import (
    ReceiptScanResult,
    ScannedItem,
    ValidationIssue,
    ValidationResult,
)
from family_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "Account",
    "AccountMember",
    "Budget",
    "BudgetType",
    "Child",
    "Expense",
    "ExpenseFrequency",
    "ExpenseStatus",
    "MemberRole",
    "SubscriptionStatus",
    # Periods
    "InvalidPeriodError",
    "PeriodSpec",
    "PeriodType",
    # Settlement models
    "BalanceBreakdown",
    "BalanceDirection",
    "BalanceView",
    "MemberBalance",
    "SettlementResult",
    "SettlementState",
    "StatusBalances",
    # Report models
    "BudgetAlert",
    "BudgetCheckResult",
    "BudgetCheckStatus",
    "BudgetDeviation",
    "CategoryTotal",
    "ChildTotal",
    "MonthPoint",
    "PayerTotal",
    "StatusSummary",
    "StatusTotal",
    # Receipt models
    "ReceiptScanResult",
    "ScannedItem",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
