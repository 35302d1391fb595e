from datetime import date
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field

from .purchase_order import PurchaseOrderLine


class ItemCondition(str, Enum):
    """Physical condition recorded for units on arrival."""
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    DEFECTIVE = "DEFECTIVE"


class ReceivingLineDraft(BaseModel):
    """
    Working copy of one PO line while goods are being received.

    Owned by a single receiving session and discarded once a GRN commit
    succeeds. serial_numbers may contain blank slots while editing.
    """
    model_config = ConfigDict(validate_assignment=True)

    line: PurchaseOrderLine
    current_receive_quantity: int = Field(default=0, ge=0)
    serial_numbers: List[str] = Field(default_factory=list)
    batch_number: str = ""
    brand: Optional[str] = None
    condition: ItemCondition = ItemCondition.GOOD
    location: Optional[str] = None
    notes: str = ""

    @property
    def po_line_id(self) -> int:
        return self.line.id

    @property
    def remaining_quantity(self) -> int:
        return self.line.remaining_quantity

    @property
    def entered_serials(self) -> List[str]:
        """Non-blank serials, trimmed, in entry order."""
        return [sn.strip() for sn in self.serial_numbers if sn and sn.strip()]

    @property
    def label(self) -> str:
        parts = [self.line.size, self.brand or self.line.brand]
        return " ".join(p for p in parts if p) or f"line {self.line.id}"


def default_batch_number(po_number: str, line_id: int, prefix: str = "BATCH") -> str:
    return f"{prefix}-{po_number}-{line_id}"


class ReceivingHeaderDraft(BaseModel):
    """Delivery-level fields captured alongside the line quantities."""
    receipt_date: Optional[date] = Field(default_factory=date.today)
    supplier_invoice_number: Optional[str] = None
    delivery_note_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    receiving_notes: Optional[str] = None
    inspection_notes: Optional[str] = None
