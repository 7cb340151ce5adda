"""
Abstract Storage Interface

The flows only talk to these async interfaces. Google Sheets is the
persistent backend and InMemoryStorage serves tests and local runs; the
calculator and reports never see either.

Every read is scoped by an explicit account_id. There is no ambient
"current account" anywhere in the storage layer.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from family_ledger.models.audit import AuditEvent
from family_ledger.models.expense import AccountMember, Budget, Expense, ExpenseStatus


class ExpenseStorageInterface(ABC):
    """Expenses, each owned by exactly one account."""

    @abstractmethod
    async def list_expenses(
        self,
        account_id: str,
        status: Optional[ExpenseStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        """
        List an account's expenses with optional filters.

        Args:
            account_id: Account whose expenses to list
            status: Filter by status
            date_from: Expenses on or after this date
            date_to: Expenses on or before this date

        Returns:
            Matching expenses, newest first
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: str) -> Optional[Expense]:
        """
        Retrieve an expense by its ID.

        Returns:
            The expense if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_expense_account(self, expense_id: str) -> Optional[str]:
        """Account an expense belongs to, or None if it doesn't exist."""
        pass

    @abstractmethod
    async def save_expense(self, account_id: str, expense: Expense) -> bool:
        """
        Save a new expense under an account.

        Raises:
            DuplicateError: If an expense with the same ID exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def set_expense_status(
        self,
        expense_id: str,
        new_status: ExpenseStatus,
        actor_id: str,
        personal_account: bool = False,
    ) -> Expense:
        """
        Move an expense to a new status in a single update.

        The state machine is applied against the stored copy; if the
        transition is refused nothing is written.

        Returns:
            The updated expense

        Raises:
            NotFoundError: If the expense doesn't exist
            ExpenseTransitionError: If the state machine refuses the change
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: str) -> bool:
        """
        Delete an expense by ID.

        Returns:
            True if deleted, False if it did not exist
        """
        pass


class MemberStorageInterface(ABC):
    """Account rosters."""

    @abstractmethod
    async def list_members(self, account_id: str) -> list[AccountMember]:
        """
        Members of an account, in the order they joined.

        Returns an empty list for an unknown account.
        """
        pass

    @abstractmethod
    async def add_member(self, account_id: str, member: AccountMember) -> bool:
        """
        Add a member to an account.

        Raises:
            DuplicateError: If the user is already a member
        """
        pass


class BudgetStorageInterface(ABC):
    """Budgets per account."""

    @abstractmethod
    async def list_budgets(self, account_id: str) -> list[Budget]:
        pass

    @abstractmethod
    async def save_budget(self, account_id: str, budget: Budget) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Append-only audit trail.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Persist one audit event.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one receipt scan and confirm).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Events about one expense, receipt or account.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Latest events across all accounts.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Any failure inside a storage backend."""
    pass


class NotFoundError(StorageError):
    """No record with the requested id."""
    pass


class DuplicateError(StorageError):
    """A record with this id or user already exists."""
    pass


class ConnectionError(StorageError):
    """The backend could not be reached or opened."""
    pass
