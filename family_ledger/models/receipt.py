"""
Receipt Scanning Models

CRITICAL: A scan result is PROPOSED data, NOT verified.
It is shown to the member for review and only becomes an expense after
explicit confirmation. The system NEVER saves a scan on its own.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScannedItem(BaseModel):
    """A single line read off the receipt."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
    )
    price: Decimal = Field(
        ...,
        ge=0,
        description="Line price in the receipt currency"
    )
    quantity: Optional[Decimal] = Field(default=None, ge=0)
    category: str = Field(
        default="",
        max_length=100,
        description="Coarse classification suggested by the model"
    )


class ReceiptScanResult(BaseModel):
    """
    What the vision model thinks it saw on a receipt.

    All fields are optional because the model might fail to read some.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    scan_id: UUID = Field(
        default_factory=uuid4,
        description="Unique ID for this scan attempt"
    )
    scanned_at: dt.datetime = Field(
        default_factory=dt.datetime.utcnow,
    )

    date: Optional[dt.date] = Field(
        default=None,
        description="Date printed on the receipt"
    )
    vendor: Optional[str] = Field(default=None, max_length=200)
    total: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Total amount to pay"
    )
    items: list[ScannedItem] = Field(default_factory=list)
    currency: str = Field(default="ILS", max_length=10)

    confidence_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Overall confidence in the scan (0-1)"
    )

    raw_response: Optional[str] = Field(
        default=None,
        description="Raw model output for debugging"
    )

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper() if v else "ILS"

    @property
    def items_total(self) -> Decimal:
        """Sum of line prices times quantities (quantity defaults to 1)."""
        return sum(
            (item.price * (item.quantity or Decimal("1")) for item in self.items),
            Decimal("0"),
        )


# =============================================================================
# VALIDATION RESULTS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of the two-stage receipt validation.

    Stage 1: Schema validation (required fields present)
    Stage 2: Semantic validation (plausibility checks)
    """

    scan_id: UUID
    validated_at: dt.datetime = Field(default_factory=dt.datetime.utcnow)

    schema_valid: bool
    semantic_valid: bool

    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )
    can_proceed_with_review: bool = Field(
        ...,
        description="Can the scan be shown to the member for review?"
    )

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")
