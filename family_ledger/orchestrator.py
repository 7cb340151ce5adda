"""
Main Orchestrator for Family Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Expenses (add -> approve/reject -> mark paid)
2. Settlement (roster + expenses -> balances -> transfer recommendation)
3. Receipts (photo -> scan -> validate -> member confirms -> expense)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Account context is always passed explicitly
- A refused or failed status change leaves the expense as it was
- No scanned receipt becomes an expense without member confirmation
- Every step is audited
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from family_ledger.audit import AuditLogger, create_correlation_id
from family_ledger.config import AppSettings, get_settings
from family_ledger.models.expense import AccountMember, Expense, ExpenseStatus
from family_ledger.models.period import PeriodSpec
from family_ledger.models.receipt import ReceiptScanResult, ValidationResult
from family_ledger.models.report import BudgetCheckResult, BudgetCheckStatus
from family_ledger.models.settlement import (
    BalanceBreakdown,
    BalanceView,
    SettlementResult,
    StatusBalances,
)
from family_ledger.reports import check_budget_before_expense
from family_ledger.services.receipts import (
    GeminiReceiptScanner,
    ReceiptScanError,
    ReceiptUnreadableError,
)
from family_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryStorage,
    NotFoundError,
    StorageError,
)
from family_ledger.settlement import (
    compute_balances,
    compute_status_balances,
    filter_expenses_by_period,
    get_period_label,
    period_bounds,
    settle_two_members,
)
from family_ledger.validation import ReceiptValidator
from family_ledger.workflow import ExpenseTransitionError, initial_status, transition


logger = structlog.get_logger(__name__)

# Storage passed to the flows implements the expense, member and budget
# interfaces together (InMemoryStorage, GoogleSheetsExpenseStorage).
LedgerStorage = Union[InMemoryStorage, GoogleSheetsExpenseStorage]


class ExpenseFlow:
    """
    Orchestrates the expense lifecycle.

    Flow:
    1. Add -> validated Expense, auto-approved when the creator is the payer
    2. Review -> another member approves or rejects
    3. Pay -> an approved expense is marked paid

    Every status change goes through the state machine twice: once here
    to produce a clear error, once inside the storage update.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def add_expense(
        self,
        account_id: str,
        actor_id: str,
        draft: Union[dict[str, Any], Expense],
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Validate and persist a new expense.

        Args:
            account_id: Account the expense belongs to
            actor_id: Member recording the expense
            draft: Expense fields (id, status and approval fields are ignored)

        Raises:
            ValidationError: Draft is not a valid expense
            StorageError: Save failed
        """
        data = draft.model_dump() if isinstance(draft, Expense) else dict(draft)
        for field in ("id", "status", "approved_by", "approved_at"):
            data.pop(field, None)

        data["created_by"] = actor_id
        members = await self._storage.list_members(account_id)
        payer = next((m for m in members if m.user_id == data.get("paid_by_id")), None)
        if payer is not None and not data.get("paid_by_name"):
            data["paid_by_name"] = payer.user_name

        status = initial_status(data.get("paid_by_id"), actor_id)
        data["status"] = status
        if status == ExpenseStatus.APPROVED:
            data["approved_by"] = actor_id
            data["approved_at"] = dt.datetime.utcnow()

        expense = Expense.model_validate(data)

        try:
            await self._storage.save_expense(account_id, expense)
        except StorageError as e:
            await self._audit_logger.log_save_failed(
                expense_id=expense.id,
                error_message=str(e),
                account_id=account_id,
            )
            raise

        await self._audit_logger.log_expense_created(
            expense_id=expense.id,
            account_id=account_id,
            actor_id=actor_id,
            amount=expense.amount,
            status=expense.status.value,
            correlation_id=correlation_id,
        )
        if status == ExpenseStatus.APPROVED:
            await self._audit_logger.log_expense_auto_approved(
                expense_id=expense.id,
                account_id=account_id,
                actor_id=actor_id,
                correlation_id=correlation_id,
            )

        return expense

    async def _change_status(
        self,
        expense_id: str,
        actor_id: str,
        new_status: ExpenseStatus,
    ) -> Expense:
        expense = await self._storage.get_expense(expense_id)
        account_id = await self._storage.get_expense_account(expense_id)
        if expense is None or account_id is None:
            raise NotFoundError(f"Expense not found: {expense_id}")

        members = await self._storage.list_members(account_id)
        personal = len(members) == 1

        try:
            transition(expense, new_status, actor_id, personal_account=personal)
        except ExpenseTransitionError as e:
            await self._audit_logger.log_status_change_refused(
                expense_id=expense_id,
                requested=new_status.value,
                actor_id=actor_id,
                reason=str(e),
                account_id=account_id,
            )
            raise

        try:
            updated = await self._storage.set_expense_status(
                expense_id,
                new_status,
                actor_id,
                personal_account=personal,
            )
        except StorageError as e:
            await self._audit_logger.log_save_failed(
                expense_id=expense_id,
                error_message=str(e),
                account_id=account_id,
            )
            raise

        await self._audit_logger.log_status_changed(
            expense_id=expense_id,
            previous=expense.status.value,
            new=updated.status.value,
            actor_id=actor_id,
            account_id=account_id,
        )
        return updated

    async def approve_expense(self, expense_id: str, actor_id: str) -> Expense:
        return await self._change_status(expense_id, actor_id, ExpenseStatus.APPROVED)

    async def reject_expense(self, expense_id: str, actor_id: str) -> Expense:
        return await self._change_status(expense_id, actor_id, ExpenseStatus.REJECTED)

    async def mark_as_paid(self, expense_id: str, actor_id: str) -> Expense:
        return await self._change_status(expense_id, actor_id, ExpenseStatus.PAID)

    async def check_budget(
        self,
        account_id: str,
        category: str,
        amount: Decimal,
        day: dt.date,
    ) -> BudgetCheckResult:
        """Where the category's budget would stand after adding this amount."""
        budgets = await self._storage.list_budgets(account_id)
        expenses = await self._storage.list_expenses(account_id)

        result = check_budget_before_expense(
            budgets,
            expenses,
            category,
            Decimal(str(amount)),
            day,
            warning_ratio=self._settings.budget_warning_ratio,
        )

        if result.status != BudgetCheckStatus.OK:
            await self._audit_logger.log_budget_threshold(
                account_id=account_id,
                category=category,
                status=result.status.value,
                budget=result.budget,
                new_spent=result.new_spent,
            )

        return result


class SettlementFlow:
    """
    Computes balances and the transfer recommendation for an account.

    The roster and the expenses are always fetched for the account passed
    in; nothing is cached between calls.
    """

    def __init__(
        self,
        storage: LedgerStorage,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    async def _load(
        self,
        account_id: str,
        period: PeriodSpec,
    ) -> tuple[list[AccountMember], list[Expense]]:
        bounds = period_bounds(period)
        date_from, date_to = bounds if bounds else (None, None)

        try:
            members = await self._storage.list_members(account_id)
            expenses = await self._storage.list_expenses(
                account_id,
                date_from=date_from,
                date_to=date_to,
            )
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type="ledger_read_failed",
                error_message=str(e),
                details={"account_id": account_id, "period": get_period_label(period)},
            )
            raise
        return members, filter_expenses_by_period(expenses, period)

    async def get_balances(
        self,
        account_id: str,
        period: PeriodSpec,
        view: BalanceView,
        status: Optional[ExpenseStatus] = None,
    ) -> BalanceBreakdown:
        members, expenses = await self._load(account_id, period)
        breakdown = compute_balances(expenses, members, view, status=status)

        if breakdown.skipped_count:
            await self._audit_logger.log_malformed_skipped(account_id, breakdown.skipped_count)

        return breakdown

    async def get_status_balances(
        self,
        account_id: str,
        period: PeriodSpec,
        view: BalanceView,
    ) -> StatusBalances:
        members, expenses = await self._load(account_id, period)
        buckets = compute_status_balances(expenses, members, view)

        # Every bucket sees the same rows, so one count covers them all.
        if buckets.pending.skipped_count:
            await self._audit_logger.log_malformed_skipped(
                account_id, buckets.pending.skipped_count
            )

        return buckets

    async def get_settlement(
        self,
        account_id: str,
        period: PeriodSpec,
        view: BalanceView,
        status: Optional[ExpenseStatus] = ExpenseStatus.APPROVED,
    ) -> SettlementResult:
        """
        Transfer recommendation between the two members of the account.

        Only approved expenses count by default. status=None takes every
        bucket except rejected.
        """
        members, expenses = await self._load(account_id, period)
        result = settle_two_members(
            expenses,
            members,
            view,
            status=status,
            threshold=self._settings.settled_threshold,
        )

        await self._audit_logger.log_settlement_computed(
            account_id=account_id,
            view=view.value,
            period_label=get_period_label(period),
            state=result.state.value,
            amount=result.amount,
        )
        return result


class ReceiptFlow:
    """
    Orchestrates receipt scanning.

    Flow:
    1. Scan -> vision model reads the receipt
    2. Validate -> two-stage validation
    3. Review -> shown to the member (PAUSE - require confirmation)
    4. Confirm -> expense created through ExpenseFlow

    Human confirmation (step 4) is MANDATORY.
    The system NEVER auto-saves a scan.
    """

    def __init__(
        self,
        scanner: GeminiReceiptScanner,
        validator: ReceiptValidator,
        expense_flow: ExpenseFlow,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._scanner = scanner
        self._validator = validator
        self._expense_flow = expense_flow
        self._audit_logger = audit_logger or AuditLogger()

    async def scan(
        self,
        image_url: Optional[str] = None,
        image_bytes: Optional[bytes] = None,
        account_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[ReceiptScanResult], Optional[ValidationResult], str]:
        """
        Scan and validate a receipt photo.

        Returns:
            (scan, validation, message_for_member)

        If the receipt could not be read, scan and validation are None
        and the message tells the member what to do.
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            scan = await self._scanner.scan_receipt(
                image_url=image_url,
                image_bytes=image_bytes,
            )
        except ReceiptUnreadableError as e:
            await self._audit_logger.log_receipt_rejected(
                reason=str(e),
                correlation_id=correlation_id,
            )
            return None, None, str(e)
        except ReceiptScanError as e:
            await self._audit_logger.log_external_service_error(
                service="gemini",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_receipt_scanned(
            scan_id=scan.scan_id,
            confidence=scan.confidence_score,
            item_count=len(scan.items),
            correlation_id=correlation_id,
        )

        result = await self._validator.validate(scan, account_id=account_id)
        message = self._validator.get_user_friendly_summary(result)

        if not result.is_valid:
            await self._audit_logger.log_validation_failed(
                scan_id=scan.scan_id,
                issues=[
                    {"field": i.field, "type": i.issue_type, "message": i.message}
                    for i in result.issues
                ],
                correlation_id=correlation_id,
            )

        return scan, result, message

    async def confirm(
        self,
        account_id: str,
        actor_id: str,
        scan: ReceiptScanResult,
        paid_by_id: str,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
        day: Optional[dt.date] = None,
        category: str = "",
        split_equally: bool = False,
        child_id: Optional[str] = None,
        child_name: Optional[str] = None,
        receipt_url: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Expense:
        """
        Create the expense the member confirmed.

        CRITICAL: Called ONLY after explicit member confirmation.
        Fields the member edited override the scanned values.

        Raises:
            ValueError: Neither the member nor the scan supplied an amount
        """
        total = amount if amount is not None else scan.total
        if total is None:
            raise ValueError("An amount is required to save the expense")

        draft = {
            "amount": total,
            "description": description if description is not None else (scan.vendor or ""),
            "date": day or scan.date or dt.date.today(),
            "category": category,
            "paid_by_id": paid_by_id,
            "split_equally": split_equally,
            "child_id": child_id,
            "child_name": child_name,
            "receipt_url": receipt_url,
        }

        expense = await self._expense_flow.add_expense(
            account_id,
            actor_id,
            draft,
            correlation_id=correlation_id,
        )

        await self._audit_logger.log_receipt_confirmed(
            scan_id=scan.scan_id,
            expense_id=expense.id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        return expense


def create_app_components(
    use_storage: bool = True,
) -> tuple[ExpenseFlow, SettlementFlow, Optional[ReceiptFlow], Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        (expense_flow, settlement_flow, receipt_flow, sheets_client)

    receipt_flow is None when Gemini is not configured.
    """
    sheets_client = None
    storage: LedgerStorage
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsExpenseStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except (ValidationError, StorageError) as e:
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            storage = InMemoryStorage()
    else:
        storage = InMemoryStorage()

    settings = get_settings().app
    expense_flow = ExpenseFlow(storage, audit_logger, settings)
    settlement_flow = SettlementFlow(storage, audit_logger, settings)

    receipt_flow = None
    try:
        scanner = GeminiReceiptScanner()
    except ValidationError as e:
        logger.warning("receipt_scanning_not_configured", error=str(e))
    else:
        receipt_flow = ReceiptFlow(
            scanner=scanner,
            validator=ReceiptValidator(storage, settings),
            expense_flow=expense_flow,
            audit_logger=audit_logger,
        )

    return expense_flow, settlement_flow, receipt_flow, sheets_client
