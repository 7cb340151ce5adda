"""
Configuration Management for Family Ledger

All tunables of the ledger are read from the environment or a .env file
through pydantic-settings. Service settings are loaded lazily so the
ledger runs locally with none of them configured.
"""

import warnings
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini vision model configuration (receipt scanning)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use for receipt extraction"
    )
    max_tokens: int = Field(
        default=1000,
        ge=100,
        le=8192,
        description="Upper bound on the length of the extraction answer"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sampling temperature; receipts want near-deterministic answers"
    )


class GoogleSheetsSettings(BaseSettings):
    """Spreadsheet backing the expenses, rosters, budgets and audit trail."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account JSON used to open the spreadsheet"
    )
    spreadsheet_id: str = Field(
        ...,
        description="Spreadsheet key (the long id in its URL)"
    )

    # Worksheet names within the spreadsheet
    expenses_sheet_name: str = Field(
        default="Expenses",
        description="Name of the sheet for expenses"
    )
    members_sheet_name: str = Field(
        default="Members",
        description="Name of the sheet for account members"
    )
    budgets_sheet_name: str = Field(
        default="Budgets",
        description="Name of the sheet for budgets"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for the audit trail"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """A missing file only warns; the secret may be mounted after startup."""
        if not Path(v).exists():
            warnings.warn(
                f"No service account file at {v}; Sheets storage will fail to connect"
            )
        return v


class AppSettings(BaseSettings):
    """Thresholds and presentation defaults of the ledger itself."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="development, staging or production"
    )
    debug_mode: bool = Field(
        default=False,
        description="Verbose local logging"
    )

    # Presentation
    currency_symbol: str = Field(
        default="₪",
        description="Symbol used when rendering amounts"
    )
    currency_code: str = Field(
        default="ILS",
        description="Currency the household records expenses in"
    )

    # Settlement
    settled_threshold: Decimal = Field(
        default=Decimal("1"),
        ge=0,
        description="Net difference below which two members are considered settled"
    )

    # Budgets
    budget_warning_ratio: Decimal = Field(
        default=Decimal("0.9"),
        gt=0,
        le=1,
        description="Share of a budget that triggers a warning"
    )

    # Validation thresholds
    max_expense_amount: Decimal = Field(
        default=Decimal("100000"),
        description="Maximum reasonable expense amount (for sanity checking)"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future an expense date can be"
    )
    min_receipt_confidence: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum scan confidence before the result is trusted"
    )

    # Reports
    trend_months: int = Field(
        default=6,
        ge=1,
        le=24,
        description="Number of months shown in the monthly trend report"
    )


class Settings(BaseSettings):
    """Entry point to the per-area settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Each area is read on access, so a missing Gemini key does not stop
    # the ledger from running on in-memory storage.

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings; get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Try loading every settings area.

    Returns {area: loaded_ok}, plus an "<area>_error" message for each
    area that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("gemini", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
