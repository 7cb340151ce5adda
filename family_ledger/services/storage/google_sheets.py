"""
Spreadsheet-backed storage.

The family already keeps its books in a shared spreadsheet, so both parents
can read every row without any extra tooling. Each worksheet starts with a
header row and carries an account_id column, which lets several accounts live
in one spreadsheet. Filtering happens here after reading the whole sheet;
that is fine at household volume.

Status changes rewrite the full row in a single update call. There are no
transactions.
"""

import json
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from family_ledger.config import get_settings
from family_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from family_ledger.models.expense import AccountMember, Budget, Expense, ExpenseStatus
from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    MemberStorageInterface,
    NotFoundError,
    StorageError,
)
from family_ledger.workflow.status import transition


logger = structlog.get_logger(__name__)


EXPENSE_COLUMNS = [
    "id",
    "account_id",
    "amount",
    "description",
    "date",
    "category",
    "child_id",
    "child_name",
    "created_by",
    "paid_by_id",
    "paid_by_name",
    "split_equally",
    "status",
    "approved_by",
    "approved_at",
    "receipt_url",
    "include_in_monthly_balance",
    "is_recurring",
    "frequency",
    "has_end_date",
    "end_date",
    "recurring_parent_id",
]

MEMBER_COLUMNS = [
    "account_id",
    "user_id",
    "user_name",
    "role",
    "joined_at",
]

BUDGET_COLUMNS = [
    "account_id",
    "id",
    "category",
    "categories_json",
    "monthly_amount",
    "budget_type",
    "month",
    "year",
    "start_date",
    "end_date",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "account_id",
    "actor_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_BOOL_FIELDS = {"split_equally", "include_in_monthly_balance", "is_recurring", "has_end_date"}


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)


def _row_dict(columns: list[str], row: list) -> dict:
    """Pair a row with its header; empty cells become None."""
    padded = list(row) + [""] * (len(columns) - len(row))
    return {col: (cell if cell != "" else None) for col, cell in zip(columns, padded)}


class GoogleSheetsClient:
    """Owns the authorized gspread session and hands out worksheets."""

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """Authorize once with the service account file; later calls reuse the session."""
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)

    def get_members_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.members_sheet_name, MEMBER_COLUMNS, rows=100)

    def get_budgets_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.budgets_sheet_name, BUDGET_COLUMNS, rows=200)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsExpenseStorage(
    ExpenseStorageInterface,
    MemberStorageInterface,
    BudgetStorageInterface,
):
    """
    Google Sheets implementation of expense, roster and budget storage.

    One expense per row. Rows that no longer validate are skipped with a
    warning instead of failing the whole listing.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # =========================================================================
    # ROW CONVERSION
    # =========================================================================

    def _expense_to_row(self, account_id: str, expense: Expense) -> list:
        data = expense.model_dump()
        data["account_id"] = account_id
        return [_cell(data.get(col)) for col in EXPENSE_COLUMNS]

    def _row_to_expense(self, row: list) -> tuple[str, Expense]:
        data = _row_dict(EXPENSE_COLUMNS, row)
        account_id = data.pop("account_id") or ""
        for field in _BOOL_FIELDS:
            if data[field] is not None:
                data[field] = data[field].lower() == "true"
        # Blank cells fall back to the model defaults
        data = {k: v for k, v in data.items() if v is not None}
        return account_id, Expense.model_validate(data)

    def _find_expense_row(self, sheet: gspread.Worksheet, expense_id: str) -> tuple[int, list]:
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == expense_id:
                return idx, row
        raise NotFoundError(f"Expense not found: {expense_id}")

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
        try:
            sheet = self._client.get_expenses_sheet()
            all_rows = sheet.get_all_values()[1:]
        except ConnectionError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        expenses = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            if len(row) < 2 or row[1] != account_id:
                continue

            try:
                _, expense = self._row_to_expense(row)
            except (ValidationError, ValueError) as e:
                logger.warning("malformed_expense_row", expense_id=row[0], error=str(e))
                continue

            if status and expense.status != status:
                continue
            if date_from and expense.date < date_from:
                continue
            if date_to and expense.date > date_to:
                continue
            expenses.append(expense)

        expenses.sort(key=lambda e: e.date, reverse=True)
        return expenses

    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        try:
            sheet = self._client.get_expenses_sheet()
            _, row = self._find_expense_row(sheet, expense_id)
        except NotFoundError:
            return None
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")
        return self._row_to_expense(row)[1]

    async def get_expense_account(self, expense_id: str) -> Optional[str]:
        try:
            sheet = self._client.get_expenses_sheet()
            _, row = self._find_expense_row(sheet, expense_id)
        except NotFoundError:
            return None
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")
        return _row_dict(EXPENSE_COLUMNS, row)["account_id"]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(DuplicateError),
        reraise=True,
    )
    async def save_expense(self, account_id: str, expense: Expense) -> bool:
        if await self.get_expense(expense.id) is not None:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        try:
            sheet = self._client.get_expenses_sheet()
            sheet.append_row(self._expense_to_row(account_id, expense), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def set_expense_status(
        self,
        expense_id: str,
        new_status: ExpenseStatus,
        actor_id: str,
        personal_account: bool = False,
    ) -> Expense:
        try:
            sheet = self._client.get_expenses_sheet()
            idx, row = self._find_expense_row(sheet, expense_id)
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load expense: {e}")

        account_id, current = self._row_to_expense(row)

        # Refused transitions raise before anything is written.
        updated = transition(current, new_status, actor_id, personal_account=personal_account)

        try:
            sheet.update(
                range_name=f"A{idx}",
                values=[self._expense_to_row(account_id, updated)],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to update expense status: {e}")

        return updated

    async def delete_expense(self, expense_id: str) -> bool:
        try:
            sheet = self._client.get_expenses_sheet()
            idx, _ = self._find_expense_row(sheet, expense_id)
            sheet.delete_rows(idx)
            return True
        except NotFoundError:
            return False
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    # =========================================================================
    # MEMBERS
    # =========================================================================

    async def list_members(self, account_id: str) -> list[AccountMember]:
        try:
            sheet = self._client.get_members_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list members: {e}")

        members = []
        for row in all_rows:
            data = _row_dict(MEMBER_COLUMNS, row)
            if data.pop("account_id") != account_id or not data["user_id"]:
                continue
            members.append(AccountMember.model_validate(
                {k: v for k, v in data.items() if v is not None}
            ))
        return members

    async def add_member(self, account_id: str, member: AccountMember) -> bool:
        existing = await self.list_members(account_id)
        if any(m.user_id == member.user_id for m in existing):
            raise DuplicateError(
                f"User {member.user_id} is already a member of {account_id}"
            )
        try:
            sheet = self._client.get_members_sheet()
            sheet.append_row([
                account_id,
                member.user_id,
                member.user_name,
                member.role.value,
                _cell(member.joined_at),
            ], value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to add member: {e}")

    # =========================================================================
    # BUDGETS
    # =========================================================================

    async def list_budgets(self, account_id: str) -> list[Budget]:
        try:
            sheet = self._client.get_budgets_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

        budgets = []
        for row in all_rows:
            data = _row_dict(BUDGET_COLUMNS, row)
            if data.pop("account_id") != account_id:
                continue
            categories = data.pop("categories_json")
            data["categories"] = json.loads(categories) if categories else []
            budgets.append(Budget.model_validate(
                {k: v for k, v in data.items() if v is not None}
            ))
        return budgets

    async def save_budget(self, account_id: str, budget: Budget) -> bool:
        try:
            sheet = self._client.get_budgets_sheet()
            sheet.append_row([
                account_id,
                budget.id,
                budget.category or "",
                json.dumps(budget.categories, ensure_ascii=False) if budget.categories else "",
                str(budget.monthly_amount),
                budget.budget_type.value,
                _cell(budget.month),
                _cell(budget.year),
                _cell(budget.start_date),
                _cell(budget.end_date),
            ], value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """Audit trail kept as one worksheet row per event. Rows are never rewritten."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        data = _row_dict(AUDIT_COLUMNS, row)
        details = data.pop("details_json")
        return AuditEvent(
            event_id=UUID(data["event_id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            event_type=AuditEventType(data["event_type"]),
            severity=AuditSeverity(data["severity"]),
            entity_type=data["entity_type"],
            entity_id=data["entity_id"],
            account_id=data["account_id"],
            actor_id=data["actor_id"],
            correlation_id=UUID(data["correlation_id"]) if data["correlation_id"] else None,
            description=data["description"] or "",
            details=json.loads(details) if details else {},
            error_message=data["error_message"],
            is_user_action=(data["is_user_action"] or "").lower() == "true",
        )

    def _load_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValidationError, ValueError) as e:
                logger.warning("malformed_audit_row", event_id=row[0], error=str(e))
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._load_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._load_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = self._load_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
