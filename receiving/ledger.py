"""
Quantity ledger for a receipt in progress.

Keeps each draft's current_receive_quantity inside [0, remaining] while
the operator edits, and computes the running totals shown alongside the
receiving form.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from models.receiving import ReceivingLineDraft
from .serials import resize_serial_slots

logger = logging.getLogger(__name__)


def clamp_quantity(requested: int, remaining: int) -> int:
    return max(0, min(int(requested), remaining))


def set_receive_quantity(draft: ReceivingLineDraft, requested: int) -> int:
    """
    Set the quantity to receive on a draft line and return the stored value.

    Out-of-range input is clamped, not rejected. The serial slots are
    resized to the new quantity in the same step.
    """
    new_qty = clamp_quantity(requested, draft.remaining_quantity)
    if new_qty != requested:
        logger.debug(
            "Line %s: requested quantity %s clamped to %d (remaining %d)",
            draft.po_line_id, requested, new_qty, draft.remaining_quantity,
        )
    draft.current_receive_quantity = new_qty
    draft.serial_numbers = resize_serial_slots(draft.serial_numbers, new_qty)
    return new_qty


def fill_all_remaining(drafts: Iterable[ReceivingLineDraft]) -> int:
    """Set every line to its full remaining quantity with blank serial slots."""
    total = 0
    for draft in drafts:
        draft.current_receive_quantity = draft.remaining_quantity
        draft.serial_numbers = [""] * draft.remaining_quantity
        total += draft.remaining_quantity
    return total


def total_received(drafts: Iterable[ReceivingLineDraft]) -> int:
    return sum(d.current_receive_quantity for d in drafts)


def total_value(drafts: Iterable[ReceivingLineDraft]) -> Decimal:
    return sum(
        (d.current_receive_quantity * d.line.unit_price for d in drafts),
        Decimal("0"),
    )


def remaining_after_receipt(drafts: Iterable[ReceivingLineDraft]) -> int:
    return sum(d.remaining_quantity - d.current_receive_quantity for d in drafts)


def progress_percentage(drafts: Iterable[ReceivingLineDraft]) -> int:
    """Percent of the ordered quantity received once this receipt lands."""
    drafts = list(drafts)
    ordered = sum(d.line.ordered_quantity for d in drafts)
    if ordered == 0:
        return 0
    received = sum(d.line.previously_received_quantity for d in drafts) + total_received(drafts)
    pct = Decimal(100 * received) / Decimal(ordered)
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
