"""
Integration tests for the expense, settlement and receipt flows.

Everything runs on InMemoryStorage; the receipt scanner is replaced by
a fake so no API is called.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from family_ledger.audit import AuditLogger
from family_ledger.config import AppSettings
from family_ledger.models.audit import AuditEventType
from family_ledger.models.expense import AccountMember, Budget, ExpenseStatus
from family_ledger.models.period import PeriodSpec
from family_ledger.models.receipt import ReceiptScanResult
from family_ledger.models.report import BudgetCheckStatus
from family_ledger.models.settlement import BalanceView, SettlementState
from family_ledger.orchestrator import (
    ExpenseFlow,
    ReceiptFlow,
    SettlementFlow,
    create_app_components,
)
from family_ledger.services.receipts import ReceiptScanError, ReceiptUnreadableError
from family_ledger.services.storage import InMemoryStorage, NotFoundError, StorageError
from family_ledger.validation import ReceiptValidator
from family_ledger.workflow import InvalidTransitionError, SelfApprovalError


ACCOUNT = "family-1"


class FakeScanner:
    """Stands in for GeminiReceiptScanner."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def scan_receipt(self, image_url=None, image_bytes=None):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


async def make_ledger(members=(("a", "דנה"), ("b", "אבי"))):
    storage = InMemoryStorage()
    for user_id, user_name in members:
        await storage.add_member(ACCOUNT, AccountMember(user_id=user_id, user_name=user_name))

    settings = AppSettings()
    audit_logger = AuditLogger(storage)
    expenses = ExpenseFlow(storage, audit_logger, settings)
    settlement = SettlementFlow(storage, audit_logger, settings)
    return storage, expenses, settlement


def draft(amount, paid_by, split=True, day=date(2024, 3, 10), **kwargs):
    return {
        "amount": Decimal(amount),
        "date": day,
        "paid_by_id": paid_by,
        "split_equally": split,
        **kwargs,
    }


def event_types(events):
    return [e.event_type for e in events]


class RawRowStorage(InMemoryStorage):
    """Hands back extra rows exactly as a spreadsheet might hold them."""

    def __init__(self, raw_rows):
        super().__init__()
        self.raw_rows = raw_rows

    async def list_expenses(self, account_id, **filters):
        return await super().list_expenses(account_id, **filters) + list(self.raw_rows)


class UnreachableStorage(InMemoryStorage):
    async def list_expenses(self, account_id, **filters):
        raise StorageError("Failed to list expenses: quota exceeded")


async def ledger_on(storage):
    await storage.add_member(ACCOUNT, AccountMember(user_id="a", user_name="דנה"))
    await storage.add_member(ACCOUNT, AccountMember(user_id="b", user_name="אבי"))
    return SettlementFlow(storage, AuditLogger(storage), AppSettings())


class TestExpenseFlow:
    """Tests for adding and reviewing expenses."""

    def test_self_paid_expense_is_auto_approved(self):
        async def scenario():
            storage, expenses, _ = await make_ledger()
            expense = await expenses.add_expense(ACCOUNT, "a", draft("100", "a"))
            events = await storage.get_events_by_entity("expense", expense.id)
            return expense, events

        expense, events = asyncio.run(scenario())
        assert expense.status == ExpenseStatus.APPROVED
        assert expense.approved_by == "a"
        assert expense.created_by == "a"
        assert expense.paid_by_name == "דנה"
        assert event_types(events) == [
            AuditEventType.EXPENSE_CREATED,
            AuditEventType.EXPENSE_AUTO_APPROVED,
        ]

    def test_expense_for_other_payer_waits(self):
        async def scenario():
            _, expenses, _ = await make_ledger()
            return await expenses.add_expense(ACCOUNT, "a", draft("100", "b"))

        expense = asyncio.run(scenario())
        assert expense.status == ExpenseStatus.PENDING
        assert expense.approved_by is None

    def test_draft_cannot_force_status(self):
        async def scenario():
            _, expenses, _ = await make_ledger()
            return await expenses.add_expense(
                ACCOUNT, "a", draft("100", "b", status="paid", approved_by="a")
            )

        expense = asyncio.run(scenario())
        assert expense.status == ExpenseStatus.PENDING
        assert expense.approved_by is None

    def test_invalid_draft(self):
        async def scenario():
            _, expenses, _ = await make_ledger()
            await expenses.add_expense(ACCOUNT, "a", draft("-1", "a"))

        with pytest.raises(ValueError):
            asyncio.run(scenario())

    def test_review_by_other_member(self):
        async def scenario():
            storage, expenses, _ = await make_ledger()
            expense = await expenses.add_expense(ACCOUNT, "a", draft("100", "b"))
            approved = await expenses.approve_expense(expense.id, "b")
            paid = await expenses.mark_as_paid(expense.id, "a")
            events = await storage.get_events_by_entity("expense", expense.id)
            return approved, paid, events

        approved, paid, events = asyncio.run(scenario())
        assert approved.approved_by == "b"
        assert paid.status == ExpenseStatus.PAID
        assert event_types(events).count(AuditEventType.EXPENSE_STATUS_CHANGED) == 2

    def test_self_approval_refused_and_audited(self):
        async def scenario():
            storage, expenses, _ = await make_ledger()
            expense = await expenses.add_expense(ACCOUNT, "a", draft("100", "b"))
            with pytest.raises(SelfApprovalError):
                await expenses.approve_expense(expense.id, "a")
            stored = await storage.get_expense(expense.id)
            events = await storage.get_events_by_entity("expense", expense.id)
            return stored, events

        stored, events = asyncio.run(scenario())
        assert stored.status == ExpenseStatus.PENDING
        assert AuditEventType.EXPENSE_STATUS_CHANGE_REFUSED in event_types(events)

    def test_personal_account_may_self_review(self):
        async def scenario():
            storage, expenses, _ = await make_ledger(members=(("a", "דנה"),))
            expense = await expenses.add_expense(ACCOUNT, "a", draft("100", "ghost"))
            return await expenses.reject_expense(expense.id, "a")

        rejected = asyncio.run(scenario())
        assert rejected.status == ExpenseStatus.REJECTED
        assert rejected.include_in_monthly_balance is False

    def test_rejected_expense_cannot_be_paid(self):
        async def scenario():
            _, expenses, _ = await make_ledger()
            expense = await expenses.add_expense(ACCOUNT, "a", draft("100", "b"))
            await expenses.reject_expense(expense.id, "b")
            await expenses.mark_as_paid(expense.id, "b")

        with pytest.raises(InvalidTransitionError):
            asyncio.run(scenario())

    def test_unknown_expense(self):
        async def scenario():
            _, expenses, _ = await make_ledger()
            await expenses.approve_expense("missing", "b")

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())

    def test_budget_check_warns(self):
        async def scenario():
            storage, expenses, _ = await make_ledger()
            await storage.save_budget(ACCOUNT, Budget(
                category="מזון", monthly_amount=Decimal("1000"), month=3, year=2024
            ))
            await expenses.add_expense(ACCOUNT, "a", draft("800", "a", category="מזון"))
            result = await expenses.check_budget(
                ACCOUNT, "מזון", Decimal("150"), date(2024, 3, 20)
            )
            events = await storage.get_events_by_entity("account", ACCOUNT)
            return result, events

        result, events = asyncio.run(scenario())
        assert result.status == BudgetCheckStatus.WARNING_90
        assert AuditEventType.BUDGET_THRESHOLD_REACHED in event_types(events)


class TestSettlementFlow:
    """Tests for balances and transfer recommendations."""

    def test_settlement_counts_approved_only(self):
        async def scenario():
            _, expenses, settlement = await make_ledger()
            await expenses.add_expense(ACCOUNT, "a", draft("100", "a"))
            await expenses.add_expense(ACCOUNT, "b", draft("40", "b"))
            await expenses.add_expense(ACCOUNT, "a", draft("500", "b"))  # pending
            return await settlement.get_settlement(
                ACCOUNT, PeriodSpec.all_time(), BalanceView.RECEIVABLE
            )

        result = asyncio.run(scenario())
        assert result.state == SettlementState.TRANSFER
        assert result.from_user_name == "אבי"
        assert result.to_user_name == "דנה"
        assert result.amount == Decimal("30")

    def test_period_filter(self):
        async def scenario():
            _, expenses, settlement = await make_ledger()
            await expenses.add_expense(ACCOUNT, "a", draft("100", "a"))
            await expenses.add_expense(
                ACCOUNT, "a", draft("60", "a", day=date(2024, 4, 2))
            )
            march = await settlement.get_balances(
                ACCOUNT, PeriodSpec.for_month(2024, 3), BalanceView.RECEIVABLE
            )
            april = await settlement.get_settlement(
                ACCOUNT, PeriodSpec.for_month(2024, 4), BalanceView.RECEIVABLE
            )
            return march, april

        march, april = asyncio.run(scenario())
        assert march.balance_for("b").balance == Decimal("50")
        assert april.amount == Decimal("30")

    def test_status_balances(self):
        async def scenario():
            _, expenses, settlement = await make_ledger()
            await expenses.add_expense(ACCOUNT, "a", draft("100", "a"))
            await expenses.add_expense(ACCOUNT, "a", draft("40", "b"))
            return await settlement.get_status_balances(
                ACCOUNT, PeriodSpec.all_time(), BalanceView.RECEIVABLE
            )

        buckets = asyncio.run(scenario())
        assert buckets.approved.balance_for("b").balance == Decimal("50")
        assert buckets.pending.balance_for("a").balance == Decimal("20")

    def test_single_member_account(self):
        async def scenario():
            _, expenses, settlement = await make_ledger(members=(("a", "דנה"),))
            await expenses.add_expense(ACCOUNT, "a", draft("100", "a"))
            return await settlement.get_settlement(
                ACCOUNT, PeriodSpec.all_time(), BalanceView.RECEIVABLE
            )

        assert asyncio.run(scenario()).state == SettlementState.INSUFFICIENT_MEMBERS

    def test_rejected_expense_moves_no_money(self):
        async def scenario():
            _, expenses, settlement = await make_ledger()
            expense = await expenses.add_expense(ACCOUNT, "b", draft("100", "a"))
            await expenses.reject_expense(expense.id, "a")
            balances = await settlement.get_balances(
                ACCOUNT, PeriodSpec.all_time(), BalanceView.RECEIVABLE
            )
            result = await settlement.get_settlement(
                ACCOUNT, PeriodSpec.all_time(), BalanceView.RECEIVABLE, status=None
            )
            return balances, result

        balances, result = asyncio.run(scenario())
        assert [b.balance for b in balances.balances] == [Decimal("0"), Decimal("0")]
        assert result.state == SettlementState.SETTLED

    def test_skipped_rows_are_audited_in_status_view(self):
        broken = {"id": "broken", "amount": "abc", "date": "2024-03-10", "paid_by_id": "a"}

        async def scenario():
            storage = RawRowStorage([broken])
            settlement = await ledger_on(storage)
            buckets = await settlement.get_status_balances(
                ACCOUNT, PeriodSpec.for_month(2024, 3), BalanceView.RECEIVABLE
            )
            return buckets, await storage.get_events_by_entity("account", ACCOUNT)

        buckets, events = asyncio.run(scenario())
        assert buckets.approved.skipped_count == 1
        assert event_types(events) == [AuditEventType.MALFORMED_EXPENSE_SKIPPED]
        assert events[0].details == {"skipped_count": 1}

    def test_read_failure_is_audited(self):
        async def scenario():
            storage = UnreachableStorage()
            settlement = await ledger_on(storage)
            with pytest.raises(StorageError):
                await settlement.get_balances(
                    ACCOUNT, PeriodSpec.all_time(), BalanceView.RECEIVABLE
                )
            return await storage.get_recent_events()

        events = asyncio.run(scenario())
        assert event_types(events) == [AuditEventType.SYSTEM_ERROR]
        assert events[0].details["account_id"] == ACCOUNT
        assert "quota exceeded" in events[0].error_message

    def test_settlement_is_audited(self):
        async def scenario():
            storage, _, settlement = await make_ledger()
            await settlement.get_settlement(
                ACCOUNT, PeriodSpec.all_time(), BalanceView.PAYABLE
            )
            return await storage.get_events_by_entity("account", ACCOUNT)

        events = asyncio.run(scenario())
        assert event_types(events) == [AuditEventType.SETTLEMENT_COMPUTED]


class TestReceiptFlow:
    """Tests for scan, review and confirm."""

    def _flow(self, storage, expenses, scanner):
        return ReceiptFlow(
            scanner=scanner,
            validator=ReceiptValidator(storage, settings=AppSettings()),
            expense_flow=expenses,
            audit_logger=AuditLogger(storage),
        )

    def test_scan_then_confirm(self):
        scan_result = ReceiptScanResult(
            date=date.today(),
            vendor="שופרסל",
            total=Decimal("84.90"),
            confidence_score=0.95,
        )

        async def scenario():
            storage, expenses, _ = await make_ledger()
            flow = self._flow(storage, expenses, FakeScanner(result=scan_result))

            scan, validation, message = await flow.scan(
                image_bytes=b"...", account_id=ACCOUNT
            )
            before = await storage.list_expenses(ACCOUNT)
            expense = await flow.confirm(
                ACCOUNT, "a", scan, paid_by_id="a", category="מזון"
            )
            return validation, message, before, expense

        validation, message, before, expense = asyncio.run(scenario())
        assert validation.is_valid
        assert message.startswith("✅")
        assert before == []  # nothing saved before confirmation
        assert expense.amount == Decimal("84.90")
        assert expense.description == "שופרסל"
        assert expense.status == ExpenseStatus.APPROVED

    def test_member_edits_override_scan(self):
        scan_result = ReceiptScanResult(vendor="שופרסל", total=Decimal("84.90"))

        async def scenario():
            storage, expenses, _ = await make_ledger()
            flow = self._flow(storage, expenses, FakeScanner(result=scan_result))
            return await flow.confirm(
                ACCOUNT,
                "a",
                scan_result,
                paid_by_id="b",
                amount=Decimal("80"),
                description="קניות",
                day=date(2024, 3, 1),
            )

        expense = asyncio.run(scenario())
        assert expense.amount == Decimal("80")
        assert expense.description == "קניות"
        assert expense.date == date(2024, 3, 1)
        assert expense.status == ExpenseStatus.PENDING

    def test_confirm_needs_an_amount(self):
        async def scenario():
            storage, expenses, _ = await make_ledger()
            flow = self._flow(storage, expenses, FakeScanner())
            await flow.confirm(ACCOUNT, "a", ReceiptScanResult(vendor="x"), paid_by_id="a")

        with pytest.raises(ValueError, match="amount is required"):
            asyncio.run(scenario())

    def test_unreadable_receipt(self):
        async def scenario():
            storage, expenses, _ = await make_ledger()
            scanner = FakeScanner(error=ReceiptUnreadableError("Image resolution too low"))
            flow = self._flow(storage, expenses, scanner)
            result = await flow.scan(image_bytes=b"...")
            return result, await storage.get_recent_events()

        (scan, validation, message), events = asyncio.run(scenario())
        assert scan is None and validation is None
        assert "resolution" in message
        assert event_types(events) == [AuditEventType.RECEIPT_REJECTED]

    def test_scanner_failure_propagates(self):
        async def scenario():
            storage, expenses, _ = await make_ledger()
            flow = self._flow(storage, expenses, FakeScanner(error=ReceiptScanError("boom")))
            await flow.scan(image_bytes=b"...")

        with pytest.raises(ReceiptScanError):
            asyncio.run(scenario())


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_in_memory_without_gemini(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)

        expense_flow, settlement_flow, receipt_flow, sheets_client = create_app_components(
            use_storage=False
        )

        assert isinstance(expense_flow, ExpenseFlow)
        assert isinstance(settlement_flow, SettlementFlow)
        assert receipt_flow is None
        assert sheets_client is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
