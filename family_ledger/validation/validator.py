"""
Two-Stage Receipt Validation

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (total, vendor, date)
- Scan confidence
- This catches unreadable photos and model misses

STAGE 2 - SEMANTIC VALIDATION:
- Future and very old dates
- Absurd or tiny amounts
- Line items that don't add up to the total
- Foreign currency
- Possible duplicates of expenses already recorded

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the member to review.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

import structlog

from family_ledger.config import AppSettings, get_settings
from family_ledger.models.receipt import (
    ReceiptScanResult,
    ValidationIssue,
    ValidationResult,
)
from family_ledger.services.storage import ExpenseStorageInterface, StorageError


logger = structlog.get_logger(__name__)

ITEMS_TOLERANCE_RATIO = Decimal("0.05")
ITEMS_TOLERANCE_MIN = Decimal("5")


class ReceiptValidator:
    """
    Validates scanned receipts through a two-stage pipeline.

    Stage 1: Schema validation (can run without storage)
    Stage 2: Semantic validation (uses storage for duplicate checks)
    """

    def __init__(
        self,
        expense_storage: Optional[ExpenseStorageInterface] = None,
        settings: Optional[AppSettings] = None,
    ):
        """
        Args:
            expense_storage: Used for duplicate checking; skipped if None
            settings: Thresholds; defaults to the environment's AppSettings
        """
        self._storage = expense_storage
        self._settings = settings or get_settings().app

    def _validate_schema(
        self,
        scan: ReceiptScanResult,
    ) -> tuple[bool, list[ValidationIssue]]:
        issues = []

        if scan.total is None:
            issues.append(ValidationIssue(
                field="total",
                issue_type="missing",
                message="Total amount is required but was not read from the receipt",
                severity="error",
                suggested_fix="Make sure the total is clearly visible in the photo",
            ))
        elif scan.total <= 0:
            issues.append(ValidationIssue(
                field="total",
                issue_type="invalid_value",
                message="Total amount must be greater than zero",
                severity="error",
                suggested_fix="Check if the amount was read correctly",
            ))

        if not scan.vendor:
            issues.append(ValidationIssue(
                field="vendor",
                issue_type="missing",
                message="Store name was not read from the receipt",
                severity="warning",  # The member can type it in
                suggested_fix="Enter a description manually",
            ))

        if scan.date is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="Receipt date was not read",
                severity="warning",
                suggested_fix="Enter the expense date manually",
            ))

        if scan.confidence_score < self._settings.min_receipt_confidence:
            issues.append(ValidationIssue(
                field="confidence_score",
                issue_type="low_confidence",
                message=f"Scan confidence is low ({scan.confidence_score:.0%})",
                severity="warning",
                suggested_fix="Please review all fields carefully",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        scan: ReceiptScanResult,
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if scan.date and scan.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Receipt date ({scan.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        min_reasonable_date = today - timedelta(days=365 * 2)
        if scan.date and scan.date < min_reasonable_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_date",
                message=f"Receipt date ({scan.date}) seems unusually old",
                severity="warning",
                suggested_fix="Please verify the date was read correctly",
            ))

        if scan.total and scan.total > self._settings.max_expense_amount:
            issues.append(ValidationIssue(
                field="total",
                issue_type="suspicious_value",
                message=f"Amount ({scan.total:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if scan.total and scan.total < Decimal("1"):
            issues.append(ValidationIssue(
                field="total",
                issue_type="suspicious_value",
                message=f"Amount ({scan.total}) seems unusually low",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if scan.items and scan.total:
            items_total = scan.items_total
            tolerance = max(scan.total * ITEMS_TOLERANCE_RATIO, ITEMS_TOLERANCE_MIN)
            if abs(items_total - scan.total) > tolerance:
                issues.append(ValidationIssue(
                    field="items",
                    issue_type="inconsistent",
                    message=(
                        f"Items add up to {items_total} but the total is {scan.total}"
                    ),
                    severity="warning",
                    suggested_fix="Please verify the total and the items",
                ))

        if scan.currency != self._settings.currency_code:
            issues.append(ValidationIssue(
                field="currency",
                issue_type="foreign_currency",
                message=(
                    f"Receipt is in {scan.currency}, expenses are kept in "
                    f"{self._settings.currency_code}"
                ),
                severity="warning",
                suggested_fix="Convert the amount before saving",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    async def _check_duplicates(
        self,
        scan: ReceiptScanResult,
        account_id: Optional[str],
    ) -> list[ValidationIssue]:
        issues = []

        if self._storage is None or account_id is None:
            return issues
        if scan.date is None or scan.total is None:
            return issues

        try:
            same_day = await self._storage.list_expenses(
                account_id,
                date_from=scan.date,
                date_to=scan.date,
            )
        except StorageError as e:
            # A failed lookup only loses the hint, not the scan.
            logger.warning("duplicate_check_failed", error=str(e))
            return issues

        if any(expense.amount == scan.total for expense in same_day):
            issues.append(ValidationIssue(
                field="duplicate",
                issue_type="potential_duplicate",
                message=(
                    f"An expense of {scan.total} dated {scan.date} may already exist"
                ),
                severity="warning",
                suggested_fix="Please verify this isn't a duplicate entry",
            ))

        return issues

    async def validate(
        self,
        scan: ReceiptScanResult,
        account_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Args:
            scan: The scanned receipt to validate
            account_id: Account to check for duplicates (requires storage)
            today: Reference date for date checks (defaults to today)
        """
        today = today or date.today()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(scan)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(scan, today)
            all_issues.extend(semantic_issues)
            all_issues.extend(await self._check_duplicates(scan, account_id))

        warnings = [issue.message for issue in all_issues if issue.severity == "warning"]

        return ValidationResult(
            scan_id=scan.scan_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            can_proceed_with_review=(
                scan.total is not None
                and not any(issue.severity == "error" for issue in all_issues)
            ),
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Plain-language summary shown next to the scanned fields.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed! Please review the details below."

        lines = []

        if not result.schema_valid:
            lines.append("❌ Some required information could not be read:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.can_proceed_with_review:
            lines.append("You can still proceed, but please review carefully.")
        else:
            lines.append("Please fix the issues above before continuing.")

        return "\n".join(lines)
