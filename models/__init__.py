from .purchase_order import PurchaseOrder, PurchaseOrderLine, PurchaseOrderStatus
from .receiving import ItemCondition, ReceivingLineDraft, ReceivingHeaderDraft, default_batch_number
from .grn import (
    GRNLineItem, GRNRequest, GRNProposal, LineReceiptRequest,
    GRNResult, GRNResultItem, InventoryUnit, GRNRecord, INVENTORY_STATUS_IN_STORE,
)
from .result import ErrorKind, ReceivingIssue, ValidationResult

__all__ = [
    "PurchaseOrder", "PurchaseOrderLine", "PurchaseOrderStatus",
    "ItemCondition", "ReceivingLineDraft", "ReceivingHeaderDraft", "default_batch_number",
    "GRNLineItem", "GRNRequest", "GRNProposal", "LineReceiptRequest",
    "GRNResult", "GRNResultItem", "InventoryUnit", "GRNRecord", "INVENTORY_STATUS_IN_STORE",
    "ErrorKind", "ReceivingIssue", "ValidationResult",
]
