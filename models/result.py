from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ErrorKind(str, Enum):
    """Reasons a receipt is rejected before or during commit."""
    # Detected locally, before any network call
    ORDER_NOT_RECEIVABLE = "ORDER_NOT_RECEIVABLE"
    NO_ITEMS_SELECTED = "NO_ITEMS_SELECTED"
    QUANTITY_EXCEEDS_REMAINING = "QUANTITY_EXCEEDS_REMAINING"
    MISSING_RECEIPT_DATE = "MISSING_RECEIPT_DATE"
    MISSING_BRAND = "MISSING_BRAND"
    SERIAL_COUNT_MISMATCH = "SERIAL_COUNT_MISMATCH"
    DUPLICATE_SERIAL = "DUPLICATE_SERIAL"
    # Invariant violation
    RECEIVED_EXCEEDS_ORDERED = "RECEIVED_EXCEEDS_ORDERED"


class ReceivingIssue(BaseModel):
    """A single reason a receipt cannot be submitted."""
    kind: ErrorKind
    description: str                        # Human-readable explanation
    po_line_id: Optional[int] = None        # Set for line-level failures
    expected_value: Optional[str] = None
    actual_value: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of the pre-commit check: ok, or the first failure found."""
    ok: bool
    error: Optional[ReceivingIssue] = None

    @classmethod
    def success(cls) -> "ValidationResult":
        return cls(ok=True)

    @classmethod
    def failure(cls, kind: ErrorKind, description: str, **extra) -> "ValidationResult":
        return cls(ok=False, error=ReceivingIssue(kind=kind, description=description, **extra))

    @property
    def reason(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None
