"""
In-Memory Storage Implementation

Implements every storage interface over plain dicts. Used by the test
suite and for local runs without Google credentials.

Data lives only as long as the process.
"""

import asyncio
from datetime import date
from typing import Optional
from uuid import UUID

from family_ledger.models.audit import AuditEvent
from family_ledger.models.expense import AccountMember, Budget, Expense, ExpenseStatus
from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    MemberStorageInterface,
    NotFoundError,
)
from family_ledger.workflow.status import transition


class InMemoryStorage(
    ExpenseStorageInterface,
    MemberStorageInterface,
    BudgetStorageInterface,
    AuditStorageInterface,
):
    """Dict-backed storage for expenses, rosters, budgets and audit events."""

    def __init__(self):
        # expense_id -> (account_id, expense)
        self._expenses: dict[str, tuple[str, Expense]] = {}
        self._members: dict[str, list[AccountMember]] = {}
        self._budgets: dict[str, list[Budget]] = {}
        self._events: list[AuditEvent] = []
        self._lock = asyncio.Lock()

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def list_expenses(
        self,
        account_id: str,
        status: Optional[ExpenseStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        expenses = []
        for owner, expense in self._expenses.values():
            if owner != account_id:
                continue
            if status and expense.status != status:
                continue
            if date_from and expense.date < date_from:
                continue
            if date_to and expense.date > date_to:
                continue
            expenses.append(expense)

        # Newest first
        expenses.sort(key=lambda e: e.date, reverse=True)
        return expenses

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        entry = self._expenses.get(expense_id)
        return entry[1] if entry else None

    async def get_expense_account(self, expense_id: str) -> Optional[str]:
        entry = self._expenses.get(expense_id)
        return entry[0] if entry else None

    async def save_expense(self, account_id: str, expense: Expense) -> bool:
        async with self._lock:
            if expense.id in self._expenses:
                raise DuplicateError(f"Expense already exists: {expense.id}")
            self._expenses[expense.id] = (account_id, expense)
        return True

    async def set_expense_status(
        self,
        expense_id: str,
        new_status: ExpenseStatus,
        actor_id: str,
        personal_account: bool = False,
    ) -> Expense:
        async with self._lock:
            entry = self._expenses.get(expense_id)
            if entry is None:
                raise NotFoundError(f"Expense not found: {expense_id}")

            account_id, current = entry
            updated = transition(
                current,
                new_status,
                actor_id,
                personal_account=personal_account,
            )
            self._expenses[expense_id] = (account_id, updated)
            return updated

    async def delete_expense(self, expense_id: str) -> bool:
        async with self._lock:
            return self._expenses.pop(expense_id, None) is not None

    # =========================================================================
    # MEMBERS AND BUDGETS
    # =========================================================================

    async def list_members(self, account_id: str) -> list[AccountMember]:
        return list(self._members.get(account_id, []))

    async def add_member(self, account_id: str, member: AccountMember) -> bool:
        roster = self._members.setdefault(account_id, [])
        if any(m.user_id == member.user_id for m in roster):
            raise DuplicateError(
                f"User {member.user_id} is already a member of {account_id}"
            )
        roster.append(member)
        return True

    async def list_budgets(self, account_id: str) -> list[Budget]:
        return list(self._budgets.get(account_id, []))

    async def save_budget(self, account_id: str, budget: Budget) -> bool:
        self._budgets.setdefault(account_id, []).append(budget)
        return True

    # =========================================================================
    # AUDIT
    # =========================================================================

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
