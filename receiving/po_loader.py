"""
Purchase Order import from CSV.

Loads POs from two CSV files:
  - purchase_orders.csv      (PO header records)
  - purchase_order_lines.csv (tire lines, linked by po_number)

CSV formats:
  purchase_orders.csv:
    id, po_number, supplier_id, supplier_name, po_date,
    expected_delivery_date, status, notes

  purchase_order_lines.csv:
    po_number, id, size, brand, model, type, quantity,
    received_quantity, unit_price, notes
"""
import csv
import logging
import re
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from models.purchase_order import PurchaseOrder, PurchaseOrderLine

logger = logging.getLogger(__name__)


def load_purchase_orders_csv(po_csv: str | Path, lines_csv: str | Path) -> list[PurchaseOrder]:
    po_path, lines_path = Path(po_csv), Path(lines_csv)
    if not po_path.exists():
        logger.warning("PO CSV not found: %s", po_path)
        return []

    headers: dict[str, dict] = {}
    with open(po_path, newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            po_number = row["po_number"].strip()
            headers[po_number.upper()] = {
                "id": int(row["id"]),
                "po_number": po_number,
                "supplier_id": _to_int(row.get("supplier_id")),
                "supplier_name": _clean(row.get("supplier_name")),
                "po_date": _clean(row.get("po_date")),
                "expected_delivery_date": _clean(row.get("expected_delivery_date")),
                "status": _clean(row.get("status")) or "DRAFT",
                "notes": _clean(row.get("notes")),
                "lines": [],
            }

    if lines_path.exists():
        with open(lines_path, newline="", encoding="utf-8") as f:
            for row in csv.DictReader(f):
                key = row["po_number"].strip().upper()
                if key not in headers:
                    logger.warning("PO line references unknown PO: %s", key)
                    continue
                headers[key]["lines"].append(PurchaseOrderLine(
                    id=int(row["id"]),
                    size=row["size"].strip(),
                    brand=_clean(row.get("brand")),
                    model=_clean(row.get("model")),
                    type=_clean(row.get("type")) or "NEW",
                    ordered_quantity=int(row["quantity"]),
                    previously_received_quantity=_to_int(row.get("received_quantity")) or 0,
                    unit_price=_to_decimal(row.get("unit_price")),
                    notes=_clean(row.get("notes")),
                ))
    else:
        logger.info("No PO lines CSV found at %s; orders loaded without lines", lines_path)

    orders = [PurchaseOrder(**h) for h in headers.values()]
    logger.info(
        "Loaded %d POs (%d with line items)",
        len(orders), sum(1 for po in orders if po.lines),
    )
    return orders


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _clean(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def _to_int(value: Optional[str]) -> Optional[int]:
    value = _clean(value)
    return int(value) if value else None


def _to_decimal(value: Optional[str]) -> Decimal:
    if not value or not str(value).strip():
        return Decimal("0")
    cleaned = re.sub(r"[^\d.\-]", "", str(value))
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
