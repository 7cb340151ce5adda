"""
Audit Models for Family Ledger

Every change to an expense and every computed settlement is recorded.
Co-parents rely on this trail when they disagree about who paid what.

Events are only ever appended; nothing here edits or removes one.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""

    # Expense lifecycle
    EXPENSE_CREATED = "expense_created"
    EXPENSE_AUTO_APPROVED = "expense_auto_approved"
    EXPENSE_STATUS_CHANGED = "expense_status_changed"
    EXPENSE_STATUS_CHANGE_REFUSED = "expense_status_change_refused"
    EXPENSE_DELETED = "expense_deleted"
    SAVE_FAILED = "save_failed"

    # Receipt scanning
    RECEIPT_SCANNED = "receipt_scanned"
    RECEIPT_REJECTED = "receipt_rejected"
    VALIDATION_FAILED = "validation_failed"
    RECEIPT_CONFIRMED = "receipt_confirmed"

    # Balances and budgets
    SETTLEMENT_COMPUTED = "settlement_computed"
    BUDGET_THRESHOLD_REACHED = "budget_threshold_reached"
    MALFORMED_EXPENSE_SKIPPED = "malformed_expense_skipped"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'receipt', 'account')"
    )
    entity_id: Optional[str] = None

    account_id: Optional[str] = None
    actor_id: Optional[str] = Field(
        default=None,
        description="Member who triggered the event"
    )

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a scan and its confirmation)"
    )

    description: str = Field(
        ...,
        max_length=500,
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "account_id": self.account_id,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the audit worksheet.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, account_id, actor_id, correlation_id, description,
        details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.account_id or "",
            self.actor_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Factories for the events the flows emit.

    Usage:
        event = AuditEventBuilder.expense_created(
            expense.id, account_id, actor_id, expense.amount, "approved"
        )
        event = AuditEventBuilder.status_changed(expense_id, "pending", "approved", actor_id)
    """

    @staticmethod
    def expense_created(
        expense_id: str,
        account_id: str,
        actor_id: str,
        amount: Decimal,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_CREATED,
            entity_type="expense",
            entity_id=expense_id,
            account_id=account_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense created: {amount} ({status})",
            details={
                "amount": str(amount),
                "status": status,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_auto_approved(
        expense_id: str,
        account_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_AUTO_APPROVED,
            entity_type="expense",
            entity_id=expense_id,
            account_id=account_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Expense approved automatically: paid by its creator",
        )

    @staticmethod
    def status_changed(
        expense_id: str,
        previous: str,
        new: str,
        actor_id: str,
        account_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_STATUS_CHANGED,
            entity_type="expense",
            entity_id=expense_id,
            account_id=account_id,
            actor_id=actor_id,
            description=f"Expense moved from {previous} to {new}",
            details={
                "previous_status": previous,
                "new_status": new,
            },
            is_user_action=True,
        )

    @staticmethod
    def status_change_refused(
        expense_id: str,
        requested: str,
        actor_id: str,
        reason: str,
        account_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_STATUS_CHANGE_REFUSED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            entity_id=expense_id,
            account_id=account_id,
            actor_id=actor_id,
            description=f"Status change to {requested} refused",
            error_message=reason,
            details={"requested_status": requested},
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        expense_id: str,
        error_message: str,
        account_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="expense",
            entity_id=expense_id,
            account_id=account_id,
            description="Expense could not be saved",
            error_message=error_message,
        )

    @staticmethod
    def receipt_scanned(
        scan_id: UUID,
        confidence: float,
        item_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_SCANNED,
            entity_type="receipt",
            entity_id=str(scan_id),
            correlation_id=correlation_id,
            description=f"Receipt scanned with {confidence:.0%} confidence",
            details={
                "confidence_score": confidence,
                "item_count": item_count,
            },
        )

    @staticmethod
    def receipt_rejected(
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt could not be read",
            error_message=reason,
        )

    @staticmethod
    def validation_failed(
        scan_id: UUID,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            entity_id=str(scan_id),
            correlation_id=correlation_id,
            description=f"Receipt validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def receipt_confirmed(
        scan_id: UUID,
        expense_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_CONFIRMED,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Member confirmed scanned receipt data",
            details={"scan_id": str(scan_id)},
            is_user_action=True,
        )

    @staticmethod
    def settlement_computed(
        account_id: str,
        view: str,
        period_label: str,
        state: str,
        amount: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_COMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="account",
            entity_id=account_id,
            account_id=account_id,
            description=f"Settlement computed for {period_label}: {state}",
            details={
                "view": view,
                "state": state,
                "amount": str(amount),
            },
        )

    @staticmethod
    def budget_threshold_reached(
        account_id: str,
        category: str,
        status: str,
        budget: Decimal,
        new_spent: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_THRESHOLD_REACHED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            account_id=account_id,
            description=f"Budget {status} for {category}",
            details={
                "category": category,
                "status": status,
                "budget": str(budget),
                "new_spent": str(new_spent),
            },
        )

    @staticmethod
    def malformed_expenses_skipped(
        account_id: str,
        skipped_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MALFORMED_EXPENSE_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            account_id=account_id,
            description=f"{skipped_count} malformed expenses left out of balances",
            details={"skipped_count": skipped_count},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
