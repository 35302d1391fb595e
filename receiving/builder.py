"""
Turns a validated receiving draft into the GRN commit request.

The builder only describes the intended change. Source PO lines are never
touched; quantities advance when the backend confirms the commit and the
session reloads the order.
"""
import logging
from typing import Iterable, Optional

from models.grn import GRNLineItem, GRNProposal, GRNRequest, LineReceiptRequest
from models.purchase_order import PurchaseOrder
from models.receiving import ReceivingHeaderDraft, ReceivingLineDraft
from .errors import ReceivingValidationError
from .serials import normalise_serial
from .status import next_status
from .validator import ReceivingValidator

logger = logging.getLogger(__name__)


class GRNBuilder:
    """
    Usage:
        builder = GRNBuilder()
        proposal = builder.build(order, header, drafts)
        backend.commit(proposal.request)
    """

    def __init__(self, validator: Optional[ReceivingValidator] = None):
        self.validator = validator or ReceivingValidator()

    def build(
        self,
        order: PurchaseOrder,
        header: ReceivingHeaderDraft,
        drafts: Iterable[ReceivingLineDraft],
    ) -> GRNProposal:
        drafts = list(drafts)
        seen: set[int] = set()
        for d in drafts:
            if order.line(d.po_line_id) is None:
                raise ValueError(f"Line {d.po_line_id} does not belong to PO {order.po_number}")
            if d.po_line_id in seen:
                raise ValueError(f"Line {d.po_line_id} appears more than once in the receipt")
            seen.add(d.po_line_id)

        result = self.validator.validate(order.status, header, drafts)
        if not result.ok:
            raise ReceivingValidationError(result.error)

        receiving = [d for d in drafts if d.current_receive_quantity > 0]
        items = [self._line_item(d) for d in receiving]
        line_updates = [
            LineReceiptRequest(
                po_line_id=d.po_line_id,
                ordered_quantity=d.line.ordered_quantity,
                previously_received_quantity=d.line.previously_received_quantity,
                quantity_received=d.current_receive_quantity,
                new_previously_received=(
                    d.line.previously_received_quantity + d.current_receive_quantity
                ),
            )
            for d in receiving
        ]

        receiving_now = sum(u.quantity_received for u in line_updates)
        total_ordered = order.total_ordered
        total_received_after = order.total_previously_received + receiving_now
        proposed = next_status(order.status, total_ordered, total_received_after)

        request = GRNRequest(
            po_id=order.id,
            receipt_date=header.receipt_date,
            supplier_invoice_number=_blank_to_none(header.supplier_invoice_number),
            delivery_note_number=_blank_to_none(header.delivery_note_number),
            vehicle_number=_blank_to_none(header.vehicle_number),
            driver_name=_blank_to_none(header.driver_name),
            notes=_blank_to_none(header.receiving_notes),
            inspection_notes=_blank_to_none(header.inspection_notes),
            items=items,
        )
        logger.info(
            "Built GRN request for PO %s: %d line(s), %d unit(s), status %s -> %s",
            order.po_number, len(items), receiving_now,
            order.status.value, proposed.value,
        )
        return GRNProposal(
            request=request,
            line_updates=line_updates,
            total_ordered=total_ordered,
            total_received_after=total_received_after,
            current_status=order.status,
            proposed_status=proposed,
        )

    @staticmethod
    def _line_item(draft: ReceivingLineDraft) -> GRNLineItem:
        brand = (draft.brand or draft.line.brand or "").strip() or None
        return GRNLineItem(
            po_item_id=draft.po_line_id,
            quantity_received=draft.current_receive_quantity,
            unit_cost=draft.line.unit_price,
            batch_number=draft.batch_number,
            serial_numbers=[normalise_serial(sn) for sn in draft.entered_serials],
            notes=_blank_to_none(draft.notes),
            brand=brand,
            condition=draft.condition,
            location=draft.location,
        )


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
