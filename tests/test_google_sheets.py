"""
Tests for the spreadsheet storage backend.

A fake worksheet stands in for gspread so row conversion and lookups run
without network access.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from family_ledger.models.audit import AuditEventBuilder
from family_ledger.models.expense import AccountMember, Budget, Expense, ExpenseStatus
from family_ledger.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsExpenseStorage,
    NotFoundError,
)
from family_ledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    EXPENSE_COLUMNS,
    MEMBER_COLUMNS,
)
from family_ledger.workflow.status import SelfApprovalError


class FakeWorksheet:
    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name, values, value_input_option=None):
        idx = int(range_name[1:]) - 1
        self.rows[idx] = [str(v) for v in values[0]]

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeClient:
    def __init__(self):
        self.expenses = FakeWorksheet(EXPENSE_COLUMNS)
        self.members = FakeWorksheet(MEMBER_COLUMNS)
        self.budgets = FakeWorksheet(BUDGET_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_expenses_sheet(self):
        return self.expenses

    def get_members_sheet(self):
        return self.members

    def get_budgets_sheet(self):
        return self.budgets

    def get_audit_sheet(self):
        return self.audit


def make_expense(day=date(2024, 3, 10), **overrides):
    values = dict(
        amount=Decimal("120.50"),
        date=day,
        paid_by_id="a",
        created_by="a",
        split_equally=True,
    )
    values.update(overrides)
    return Expense(**values)


class TestExpenseRows:
    """Tests for expense persistence."""

    def test_saved_expense_reads_back(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            expense = make_expense(description="", category="")
            await storage.save_expense("acc", expense)
            return expense, await storage.get_expense(expense.id)

        saved, loaded = asyncio.run(scenario())
        assert loaded == saved
        assert loaded.amount == Decimal("120.50")
        assert loaded.split_equally is True

    def test_list_scoped_and_ordered(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            await storage.save_expense("acc", make_expense(day=date(2024, 3, 1)))
            await storage.save_expense("acc", make_expense(day=date(2024, 3, 20)))
            await storage.save_expense("other", make_expense())
            return await storage.list_expenses("acc")

        expenses = asyncio.run(scenario())
        assert [e.date for e in expenses] == [date(2024, 3, 20), date(2024, 3, 1)]

    def test_malformed_row_is_skipped(self):
        async def scenario():
            client = FakeClient()
            storage = GoogleSheetsExpenseStorage(client=client)
            await storage.save_expense("acc", make_expense())
            client.expenses.append_row(["broken", "acc", "not-a-number"])
            return await storage.list_expenses("acc")

        assert len(asyncio.run(scenario())) == 1

    def test_duplicate_save(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            expense = make_expense()
            await storage.save_expense("acc", expense)
            await storage.save_expense("acc", expense)

        with pytest.raises(DuplicateError):
            asyncio.run(scenario())

    def test_status_change_rewrites_row(self):
        async def scenario():
            client = FakeClient()
            storage = GoogleSheetsExpenseStorage(client=client)
            expense = make_expense()
            await storage.save_expense("acc", expense)
            updated = await storage.set_expense_status(expense.id, ExpenseStatus.APPROVED, "b")
            return client, updated, await storage.get_expense(expense.id)

        client, updated, loaded = asyncio.run(scenario())
        assert len(client.expenses.rows) == 2
        assert loaded.status == ExpenseStatus.APPROVED
        assert loaded.approved_by == "b"
        assert loaded.approved_at == updated.approved_at

    def test_refused_change_writes_nothing(self):
        async def scenario():
            client = FakeClient()
            storage = GoogleSheetsExpenseStorage(client=client)
            expense = make_expense()
            await storage.save_expense("acc", expense)
            before = client.expenses.get_all_values()
            try:
                await storage.set_expense_status(expense.id, ExpenseStatus.APPROVED, "a")
            finally:
                assert client.expenses.get_all_values() == before

        with pytest.raises(SelfApprovalError):
            asyncio.run(scenario())

    def test_missing_expense(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            assert await storage.get_expense("nope") is None
            assert await storage.get_expense_account("nope") is None
            assert await storage.delete_expense("nope") is False
            await storage.set_expense_status("nope", ExpenseStatus.APPROVED, "b")

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())

    def test_delete_removes_row(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            expense = make_expense()
            await storage.save_expense("acc", expense)
            account = await storage.get_expense_account(expense.id)
            deleted = await storage.delete_expense(expense.id)
            return account, deleted, await storage.list_expenses("acc")

        account, deleted, remaining = asyncio.run(scenario())
        assert account == "acc"
        assert deleted is True
        assert remaining == []


class TestMemberAndBudgetRows:
    """Tests for rosters and budgets."""

    def test_members(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            await storage.add_member("acc", AccountMember(user_id="a", user_name="דנה"))
            await storage.add_member("acc", AccountMember(user_id="b", user_name="אבי"))
            return await storage.list_members("acc")

        roster = asyncio.run(scenario())
        assert [(m.user_id, m.user_name) for m in roster] == [("a", "דנה"), ("b", "אבי")]

    def test_duplicate_member(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            await storage.add_member("acc", AccountMember(user_id="a", user_name="דנה"))
            await storage.add_member("acc", AccountMember(user_id="a", user_name="דנה"))

        with pytest.raises(DuplicateError):
            asyncio.run(scenario())

    def test_budget_categories_survive(self):
        async def scenario():
            storage = GoogleSheetsExpenseStorage(client=FakeClient())
            await storage.save_budget("acc", Budget(
                categories=["מזון", "חינוך"],
                monthly_amount=Decimal("1500"),
                month=3,
                year=2024,
            ))
            return await storage.list_budgets("acc")

        budgets = asyncio.run(scenario())
        assert len(budgets) == 1
        assert budgets[0].categories == ["מזון", "חינוך"]
        assert budgets[0].monthly_amount == Decimal("1500")
        assert budgets[0].is_active_for(3, 2024)


class TestAuditRows:
    """Tests for the audit worksheet."""

    def test_events_read_back(self):
        async def scenario():
            storage = GoogleSheetsAuditStorage(client=FakeClient())
            correlation_id = uuid4()
            await storage.append_event(AuditEventBuilder.receipt_rejected(
                reason="blurry", correlation_id=correlation_id
            ))
            await storage.append_event(AuditEventBuilder.status_changed(
                expense_id="exp-1", previous="pending", new="approved", actor_id="b"
            ))
            return (
                await storage.get_events_by_correlation_id(correlation_id),
                await storage.get_events_by_entity("expense", "exp-1"),
                await storage.get_recent_events(limit=5),
            )

        by_correlation, by_entity, recent = asyncio.run(scenario())
        assert len(by_correlation) == 1
        assert by_entity[0].actor_id == "b"
        assert by_entity[0].details
        assert len(recent) == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
