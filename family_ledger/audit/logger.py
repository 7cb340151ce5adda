"""
Audit Logger

DESIGN DECISION: Every change to an expense is logged, along with every
refused change and every settlement shown to a member.

The audit logger:
- Is async so flows can await it alongside storage calls
- Never crashes the app if persisting an event fails
- Supports correlation IDs to trace related events (scan -> confirm)
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from family_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from family_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and member visibility), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    @property
    def persists(self) -> bool:
        return self._storage is not None

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if the storage write succeeded (or no storage is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # The trail is best effort; the action itself already happened.
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_created(
        self,
        expense_id: str,
        account_id: str,
        actor_id: str,
        amount: Decimal,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_created(
            expense_id=expense_id,
            account_id=account_id,
            actor_id=actor_id,
            amount=amount,
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_expense_auto_approved(
        self,
        expense_id: str,
        account_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_auto_approved(
            expense_id=expense_id,
            account_id=account_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_status_changed(
        self,
        expense_id: str,
        previous: str,
        new: str,
        actor_id: str,
        account_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.status_changed(
            expense_id=expense_id,
            previous=previous,
            new=new,
            actor_id=actor_id,
            account_id=account_id,
        ))

    async def log_status_change_refused(
        self,
        expense_id: str,
        requested: str,
        actor_id: str,
        reason: str,
        account_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.status_change_refused(
            expense_id=expense_id,
            requested=requested,
            actor_id=actor_id,
            reason=reason,
            account_id=account_id,
        ))

    async def log_save_failed(
        self,
        expense_id: str,
        error_message: str,
        account_id: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(
            expense_id=expense_id,
            error_message=error_message,
            account_id=account_id,
        ))

    async def log_receipt_scanned(
        self,
        scan_id: UUID,
        confidence: float,
        item_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scanned(
            scan_id=scan_id,
            confidence=confidence,
            item_count=item_count,
            correlation_id=correlation_id,
        ))

    async def log_receipt_rejected(self, reason: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.receipt_rejected(
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        scan_id: UUID,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            scan_id=scan_id,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_receipt_confirmed(
        self,
        scan_id: UUID,
        expense_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_confirmed(
            scan_id=scan_id,
            expense_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_settlement_computed(
        self,
        account_id: str,
        view: str,
        period_label: str,
        state: str,
        amount: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_computed(
            account_id=account_id,
            view=view,
            period_label=period_label,
            state=state,
            amount=amount,
        ))

    async def log_budget_threshold(
        self,
        account_id: str,
        category: str,
        status: str,
        budget: Decimal,
        new_spent: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.budget_threshold_reached(
            account_id=account_id,
            category=category,
            status=status,
            budget=budget,
            new_spent=new_spent,
        ))

    async def log_malformed_skipped(self, account_id: str, skipped_count: int) -> None:
        await self.log(AuditEventBuilder.malformed_expenses_skipped(
            account_id=account_id,
            skipped_count=skipped_count,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a member action (e.g., a receipt scan) and
    pass it through all subsequent operations.
    """
    return uuid4()
