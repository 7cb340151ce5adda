"""Receipt validation."""

from family_ledger.validation.validator import ReceiptValidator

__all__ = ["ReceiptValidator"]
