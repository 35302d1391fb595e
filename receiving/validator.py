"""
Pre-commit validation for a goods receipt.

Checks, in order (stops at the first failure):
  Order:      status must still accept receipts
  Selection:  at least one line with a quantity to receive
  Quantities: no line receives more than it has remaining
  Header:     receipt date present
  Brand:      optional, every received line carries a brand
  Serials:    one non-blank serial per unit, no duplicates within a line

No side effects: run it immediately before submitting.
"""
import logging
from typing import Iterable, Optional

from models.purchase_order import PurchaseOrderStatus
from models.receiving import ReceivingHeaderDraft, ReceivingLineDraft
from models.result import ErrorKind, ValidationResult
from .serials import normalise_serial
from .status import is_receivable, RECEIVABLE_STATUSES

logger = logging.getLogger(__name__)

MIN_BRAND_LENGTH = 2


class ReceivingValidator:
    """
    Gatekeeper between a receiving draft and the commit request.

    Usage:
        validator = ReceivingValidator()
        result = validator.validate(order.status, header, drafts)
        if not result.ok:
            print(result.error.description)
    """

    def __init__(self, require_brand: bool = False):
        self.require_brand = require_brand

    def validate(
        self,
        order_status: PurchaseOrderStatus,
        header: ReceivingHeaderDraft,
        drafts: Iterable[ReceivingLineDraft],
    ) -> ValidationResult:
        drafts = list(drafts)
        checks = (
            lambda: self._check_order_status(order_status),
            lambda: self._check_selection(drafts),
            lambda: self._check_quantities(drafts),
            lambda: self._check_header(header),
            lambda: self._check_brands(drafts),
            lambda: self._check_serial_counts(drafts),
            lambda: self._check_serial_duplicates(drafts),
        )
        for check in checks:
            failure = check()
            if failure is not None:
                logger.info("Receipt rejected: %s (%s)", failure.reason.value, failure.error.description)
                return failure
        return ValidationResult.success()

    # ------------------------------------------------------------------
    # Order checks
    # ------------------------------------------------------------------

    def _check_order_status(self, status: PurchaseOrderStatus) -> Optional[ValidationResult]:
        if is_receivable(status):
            return None
        allowed = ", ".join(sorted(s.value for s in RECEIVABLE_STATUSES))
        return ValidationResult.failure(
            ErrorKind.ORDER_NOT_RECEIVABLE,
            f"Purchase order is {PurchaseOrderStatus(status).value} and cannot receive goods "
            f"(allowed: {allowed})",
            actual_value=PurchaseOrderStatus(status).value,
        )

    # ------------------------------------------------------------------
    # Quantity checks
    # ------------------------------------------------------------------

    def _check_selection(self, drafts: list[ReceivingLineDraft]) -> Optional[ValidationResult]:
        if any(d.current_receive_quantity > 0 for d in drafts):
            return None
        return ValidationResult.failure(
            ErrorKind.NO_ITEMS_SELECTED,
            "Please specify quantities to receive",
        )

    def _check_quantities(self, drafts: list[ReceivingLineDraft]) -> Optional[ValidationResult]:
        for d in drafts:
            if d.current_receive_quantity > d.remaining_quantity:
                return ValidationResult.failure(
                    ErrorKind.QUANTITY_EXCEEDS_REMAINING,
                    f"Cannot receive {d.current_receive_quantity} of {d.label}: "
                    f"only {d.remaining_quantity} remaining",
                    po_line_id=d.po_line_id,
                    expected_value=f"<= {d.remaining_quantity}",
                    actual_value=str(d.current_receive_quantity),
                )
        return None

    # ------------------------------------------------------------------
    # Header checks
    # ------------------------------------------------------------------

    def _check_header(self, header: ReceivingHeaderDraft) -> Optional[ValidationResult]:
        if header.receipt_date is not None:
            return None
        return ValidationResult.failure(
            ErrorKind.MISSING_RECEIPT_DATE,
            "Receipt date is required",
        )

    def _check_brands(self, drafts: list[ReceivingLineDraft]) -> Optional[ValidationResult]:
        if not self.require_brand:
            return None
        for d in _receiving(drafts):
            brand = (d.brand or d.line.brand or "").strip()
            if len(brand) < MIN_BRAND_LENGTH:
                return ValidationResult.failure(
                    ErrorKind.MISSING_BRAND,
                    f"Brand for {d.line.size} must be at least {MIN_BRAND_LENGTH} characters",
                    po_line_id=d.po_line_id,
                    actual_value=brand,
                )
        return None

    # ------------------------------------------------------------------
    # Serial checks
    # ------------------------------------------------------------------

    def _check_serial_counts(self, drafts: list[ReceivingLineDraft]) -> Optional[ValidationResult]:
        for d in _receiving(drafts):
            entered = len(d.entered_serials)
            if entered != d.current_receive_quantity:
                return ValidationResult.failure(
                    ErrorKind.SERIAL_COUNT_MISMATCH,
                    f"Please enter all {d.current_receive_quantity} serial numbers "
                    f"for {d.label} ({entered} entered)",
                    po_line_id=d.po_line_id,
                    expected_value=str(d.current_receive_quantity),
                    actual_value=str(entered),
                )
        return None

    def _check_serial_duplicates(self, drafts: list[ReceivingLineDraft]) -> Optional[ValidationResult]:
        for d in _receiving(drafts):
            seen: set[str] = set()
            for serial in d.entered_serials:
                key = normalise_serial(serial)
                if key in seen:
                    return ValidationResult.failure(
                        ErrorKind.DUPLICATE_SERIAL,
                        f"Duplicate serial number {key} for {d.label}",
                        po_line_id=d.po_line_id,
                        actual_value=key,
                    )
                seen.add(key)
        return None


def _receiving(drafts: list[ReceivingLineDraft]) -> list[ReceivingLineDraft]:
    return [d for d in drafts if d.current_receive_quantity > 0]
