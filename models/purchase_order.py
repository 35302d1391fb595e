from decimal import Decimal
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PurchaseOrderStatus(str, Enum):
    """Purchase Order lifecycle states."""
    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    ORDERED = "ORDERED"
    PARTIALLY_RECEIVED = "PARTIALLY_RECEIVED"
    FULLY_RECEIVED = "FULLY_RECEIVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"

    @classmethod
    def _missing_(cls, value):
        # Older backends report a completed order as "RECEIVED"
        if isinstance(value, str):
            normalised = value.strip().upper().replace(" ", "_")
            if normalised == "RECEIVED":
                return cls.FULLY_RECEIVED
            for member in cls:
                if member.value == normalised:
                    return member
        return None


class PurchaseOrderLine(BaseModel):
    """
    A single tire line on a Purchase Order.

    previously_received_quantity only ever grows, and only when the
    persistence layer confirms a GRN commit.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    size: str
    brand: Optional[str] = None
    model: Optional[str] = None
    type: Optional[str] = "NEW"
    ordered_quantity: int = Field(ge=0)
    previously_received_quantity: int = Field(default=0, ge=0)
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _check_received_within_ordered(self) -> "PurchaseOrderLine":
        if self.previously_received_quantity > self.ordered_quantity:
            raise ValueError(
                f"line {self.id}: received quantity ({self.previously_received_quantity}) "
                f"exceeds ordered quantity ({self.ordered_quantity})"
            )
        return self

    @property
    def remaining_quantity(self) -> int:
        return self.ordered_quantity - self.previously_received_quantity

    @property
    def description(self) -> str:
        """Human-readable label used in validation messages."""
        parts = [self.size, self.brand, self.model]
        return " ".join(p for p in parts if p)


class PurchaseOrder(BaseModel):
    """
    A Purchase Order snapshot as last confirmed by the backend.

    Instances are frozen: a receiving session never edits the confirmed
    snapshot, it reloads a new one after every successful commit.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    po_number: str
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    po_date: Optional[str] = None                  # YYYY-MM-DD
    expected_delivery_date: Optional[str] = None   # YYYY-MM-DD
    status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT
    notes: Optional[str] = None
    lines: List[PurchaseOrderLine] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value):
        if isinstance(value, str):
            return PurchaseOrderStatus(value)
        return value

    @property
    def total_ordered(self) -> int:
        return sum(line.ordered_quantity for line in self.lines)

    @property
    def total_previously_received(self) -> int:
        return sum(line.previously_received_quantity for line in self.lines)

    @property
    def total_remaining(self) -> int:
        return sum(line.remaining_quantity for line in self.lines)

    def line(self, line_id: int) -> Optional[PurchaseOrderLine]:
        return next((ln for ln in self.lines if ln.id == line_id), None)
