from datetime import date
from decimal import Decimal
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .purchase_order import PurchaseOrderStatus
from .receiving import ItemCondition

INVENTORY_STATUS_IN_STORE = "IN_STORE"


class GRNLineItem(BaseModel):
    """One received PO line as sent to the backend."""
    po_item_id: int
    quantity_received: int
    unit_cost: Decimal
    batch_number: str
    serial_numbers: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    brand: Optional[str] = None
    condition: ItemCondition = ItemCondition.GOOD
    location: Optional[str] = None

    @field_serializer("unit_cost")
    def _serialise_cost(self, value: Decimal) -> float:
        return float(value)


class GRNRequest(BaseModel):
    """
    The single outbound commit request for a receipt.

    The backend must apply it atomically: every line or none.
    """
    po_id: int
    receipt_date: date
    supplier_invoice_number: Optional[str] = None
    delivery_note_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    notes: Optional[str] = None
    inspection_notes: Optional[str] = None
    items: List[GRNLineItem] = Field(default_factory=list)

    def to_payload(self) -> dict:
        """JSON-ready dict; optional header fields left out when empty."""
        return self.model_dump(mode="json", exclude_none=True)

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity_received for item in self.items)


class LineReceiptRequest(BaseModel):
    """Requested (not yet confirmed) quantity change for one PO line."""
    po_line_id: int
    ordered_quantity: int
    previously_received_quantity: int
    quantity_received: int
    new_previously_received: int


class GRNProposal(BaseModel):
    """Builder output: the request plus the order state it should produce."""
    request: GRNRequest
    line_updates: List[LineReceiptRequest] = Field(default_factory=list)
    total_ordered: int
    total_received_after: int
    current_status: PurchaseOrderStatus
    proposed_status: PurchaseOrderStatus


class InventoryUnit(BaseModel):
    """A physical tire created in inventory by a GRN."""
    id: int
    serial_number: str
    po_item_id: int
    status: str = INVENTORY_STATUS_IN_STORE


class GRNResultItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grn_item_id: int = Field(alias="grnItemId")
    po_item_id: int
    quantity_received: int
    serial_numbers: List[str] = Field(default_factory=list)


class GRNResult(BaseModel):
    """Success payload returned by the backend for a committed GRN."""
    model_config = ConfigDict(populate_by_name=True)

    grn_number: str
    grn_id: int = Field(alias="grnId")
    items: List[GRNResultItem] = Field(default_factory=list)
    tires: List[InventoryUnit] = Field(default_factory=list)


class GRNRecord(BaseModel):
    """
    A stored GRN as read back from persistence.

    Immutable after creation apart from the accounting linkage fields,
    each of which is set at most once by the accounting workflow.
    """
    grn_id: int
    grn_number: str
    po_id: int
    po_number: Optional[str] = None
    receipt_date: str
    supplier_invoice_number: Optional[str] = None
    accounting_transaction_id: Optional[str] = None
    delivery_note_number: Optional[str] = None
    vehicle_number: Optional[str] = None
    driver_name: Optional[str] = None
    notes: Optional[str] = None
    inspection_notes: Optional[str] = None
    created_at: str
    items: List[GRNResultItem] = Field(default_factory=list)
    tires: List[InventoryUnit] = Field(default_factory=list)

    @property
    def total_units(self) -> int:
        return sum(item.quantity_received for item in self.items)

    @property
    def is_invoiced(self) -> bool:
        return bool(self.supplier_invoice_number or self.accounting_transaction_id)
