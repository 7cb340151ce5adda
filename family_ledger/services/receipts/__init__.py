"""Receipt scanning service."""

from family_ledger.services.receipts.gemini_scanner import (
    GeminiReceiptScanner,
    ReceiptScanError,
    ReceiptUnreadableError,
    parse_scan_response,
)

__all__ = [
    "GeminiReceiptScanner",
    "ReceiptScanError",
    "ReceiptUnreadableError",
    "parse_scan_response",
]
