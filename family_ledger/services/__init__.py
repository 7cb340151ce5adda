"""Services package."""

from family_ledger.services.receipts import (
    GeminiReceiptScanner,
    ReceiptScanError,
    ReceiptUnreadableError,
)
from family_ledger.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsExpenseStorage,
    InMemoryStorage,
    MemberStorageInterface,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Receipt scanning
    "GeminiReceiptScanner",
    "ReceiptScanError",
    "ReceiptUnreadableError",
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsExpenseStorage",
    "InMemoryStorage",
    "MemberStorageInterface",
    "NotFoundError",
    "StorageError",
]
