"""
SQLite persistence layer for purchase orders and goods received notes.

A single database file (output/receiving.db) that plays the backend's part
of the receiving contract:

  - Holds the authoritative PO line quantities and order status
  - Applies a GRN as one transaction: header, lines, tire units, quantity
    increments and the new order status all commit together or not at all
  - Enforces globally unique tire serial numbers
  - Records accounting linkage on a GRN exactly once
  - Keeps an audit log of every commit and linkage

Order status values are the PurchaseOrderStatus enum values; tires are
created with status IN_STORE.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Optional

from models.grn import (
    GRNRecord, GRNRequest, GRNResult, GRNResultItem, InventoryUnit,
    INVENTORY_STATUS_IN_STORE,
)
from models.purchase_order import PurchaseOrder, PurchaseOrderLine, PurchaseOrderStatus
from .errors import AccountingLinkError, CommitError, DataIntegrityError
from .status import can_transition, is_receivable, next_status

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS purchase_orders (
    id                      INTEGER PRIMARY KEY,
    po_number               TEXT NOT NULL UNIQUE,
    supplier_id             INTEGER,
    supplier_name           TEXT,
    po_date                 TEXT,
    expected_delivery_date  TEXT,
    status                  TEXT NOT NULL DEFAULT 'DRAFT',
    notes                   TEXT,
    updated_at              TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS purchase_order_items (
    id                  INTEGER PRIMARY KEY,
    po_id               INTEGER NOT NULL REFERENCES purchase_orders (id),
    size                TEXT NOT NULL,
    brand               TEXT,
    model               TEXT,
    type                TEXT,
    quantity            INTEGER NOT NULL CHECK (quantity >= 0),
    received_quantity   INTEGER NOT NULL DEFAULT 0
                        CHECK (received_quantity >= 0 AND received_quantity <= quantity),
    unit_price          TEXT NOT NULL DEFAULT '0',   -- Decimal as string
    notes               TEXT
);

CREATE INDEX IF NOT EXISTS idx_po_items_po ON purchase_order_items (po_id);

CREATE TABLE IF NOT EXISTS grns (
    id                          INTEGER PRIMARY KEY AUTOINCREMENT,
    grn_number                  TEXT NOT NULL UNIQUE,
    po_id                       INTEGER NOT NULL REFERENCES purchase_orders (id),
    receipt_date                TEXT NOT NULL,
    supplier_invoice_number     TEXT,   -- set once by accounting
    accounting_transaction_id   TEXT,   -- set once by accounting
    delivery_note_number        TEXT,
    vehicle_number              TEXT,
    driver_name                 TEXT,
    notes                       TEXT,
    inspection_notes            TEXT,
    created_at                  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_grns_po ON grns (po_id);

CREATE TABLE IF NOT EXISTS grn_items (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    grn_id              INTEGER NOT NULL REFERENCES grns (id),
    po_item_id          INTEGER NOT NULL REFERENCES purchase_order_items (id),
    quantity_received   INTEGER NOT NULL CHECK (quantity_received > 0),
    unit_cost           TEXT NOT NULL,
    batch_number        TEXT,
    brand               TEXT,
    condition           TEXT NOT NULL DEFAULT 'GOOD',
    location            TEXT,
    notes               TEXT
);

CREATE TABLE IF NOT EXISTS tires (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    serial_number   TEXT NOT NULL UNIQUE,
    grn_item_id     INTEGER NOT NULL REFERENCES grn_items (id),
    po_item_id      INTEGER NOT NULL REFERENCES purchase_order_items (id),
    size            TEXT,
    brand           TEXT,
    model           TEXT,
    type            TEXT,
    condition       TEXT,
    location        TEXT,
    status          TEXT NOT NULL DEFAULT 'IN_STORE',
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_tires_po_item ON tires (po_item_id);

CREATE TABLE IF NOT EXISTS audit_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    entity      TEXT    NOT NULL,   -- po_number or grn_number
    timestamp   TEXT    NOT NULL,   -- ISO-8601 UTC
    action      TEXT    NOT NULL,   -- po_loaded | grn_created | grn_rejected | accounting_linked
    actor       TEXT    NOT NULL DEFAULT 'system',
    detail      TEXT                -- optional JSON blob with action-specific context
);

CREATE INDEX IF NOT EXISTS idx_audit_entity ON audit_log (entity);
"""


class Database:
    """Thin wrapper around an SQLite database file for receiving state."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Database schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def upsert_purchase_order(self, po: PurchaseOrder, actor: str = "system") -> None:
        """
        Insert or replace a PO and its lines.

        Received quantities already recorded by GRNs are kept when the
        incoming snapshot reports less. Once anything has been received the
        stored status is re-derived from the merged quantities; the snapshot
        can only move such an order on to CLOSED or CANCELLED.
        """
        now = _now()
        with self._conn() as conn:
            existing = conn.execute(
                "SELECT status FROM purchase_orders WHERE id = ?", (po.id,)
            ).fetchone()
            conn.execute(
                """
                INSERT INTO purchase_orders
                    (id, po_number, supplier_id, supplier_name, po_date,
                     expected_delivery_date, status, notes, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    po_number              = excluded.po_number,
                    supplier_id            = excluded.supplier_id,
                    supplier_name          = excluded.supplier_name,
                    po_date                = excluded.po_date,
                    expected_delivery_date = excluded.expected_delivery_date,
                    status                 = excluded.status,
                    notes                  = excluded.notes,
                    updated_at             = excluded.updated_at
                """,
                (po.id, po.po_number, po.supplier_id, po.supplier_name, po.po_date,
                 po.expected_delivery_date, po.status.value, po.notes, now),
            )
            for line in po.lines:
                conn.execute(
                    """
                    INSERT INTO purchase_order_items
                        (id, po_id, size, brand, model, type, quantity,
                         received_quantity, unit_price, notes)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        size              = excluded.size,
                        brand             = excluded.brand,
                        model             = excluded.model,
                        type              = excluded.type,
                        quantity          = excluded.quantity,
                        received_quantity = MAX(received_quantity, excluded.received_quantity),
                        unit_price        = excluded.unit_price,
                        notes             = excluded.notes
                    """,
                    (line.id, po.id, line.size, line.brand, line.model, line.type,
                     line.ordered_quantity, line.previously_received_quantity,
                     str(line.unit_price), line.notes),
                )
            if existing is not None:
                self._reconcile_status(conn, po, PurchaseOrderStatus(existing["status"]), now)
            _audit(conn, po.po_number, "po_loaded", actor, {"lines": len(po.lines)})
        logger.debug("Stored PO %s (%d lines)", po.po_number, len(po.lines))

    def _reconcile_status(
        self,
        conn: sqlite3.Connection,
        incoming: PurchaseOrder,
        stored: PurchaseOrderStatus,
        now: str,
    ) -> None:
        merged = self._load_po(conn, "id = ?", (incoming.id,))
        if merged.total_previously_received == 0:
            return
        if incoming.status in (PurchaseOrderStatus.CLOSED, PurchaseOrderStatus.CANCELLED) \
                and can_transition(stored, incoming.status):
            status = incoming.status
        elif stored in (PurchaseOrderStatus.CLOSED, PurchaseOrderStatus.CANCELLED):
            status = stored
        else:
            status = next_status(stored, merged.total_ordered, merged.total_previously_received)
        if status != merged.status:
            logger.info(
                "PO %s: imported status %s ignored, keeping %s",
                incoming.po_number, incoming.status.value, status.value,
            )
            conn.execute(
                "UPDATE purchase_orders SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, now, incoming.id),
            )

    def get_purchase_order(self, po_id: int) -> Optional[PurchaseOrder]:
        with self._conn() as conn:
            return self._load_po(conn, "id = ?", (po_id,))

    def get_purchase_order_by_number(self, po_number: str) -> Optional[PurchaseOrder]:
        with self._conn() as conn:
            return self._load_po(conn, "UPPER(po_number) = UPPER(?)", (po_number.strip(),))

    def list_purchase_orders(self, status: Optional[PurchaseOrderStatus] = None) -> list[PurchaseOrder]:
        with self._conn() as conn:
            if status:
                rows = conn.execute(
                    "SELECT id FROM purchase_orders WHERE status = ? ORDER BY id",
                    (PurchaseOrderStatus(status).value,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT id FROM purchase_orders ORDER BY id").fetchall()
            return [self._load_po(conn, "id = ?", (r["id"],)) for r in rows]

    def issued_serials(self, po_id: int) -> set[str]:
        """Serial numbers of every tire already received against a PO."""
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT t.serial_number FROM tires t
                JOIN purchase_order_items i ON i.id = t.po_item_id
                WHERE i.po_id = ?
                """,
                (po_id,),
            ).fetchall()
        return {r["serial_number"] for r in rows}

    # ------------------------------------------------------------------
    # GRN commit
    # ------------------------------------------------------------------

    def create_grn(self, request: GRNRequest, actor: str = "system") -> GRNResult:
        """
        Apply a GRN request atomically and return the created records.

        Any rejection raises CommitError and leaves the database unchanged.
        """
        try:
            with self._conn() as conn:
                conn.execute("BEGIN IMMEDIATE")
                result = self._apply_grn(conn, request, actor)
        except sqlite3.IntegrityError as exc:
            message = _integrity_message(exc)
            logger.warning("GRN for PO id %s rejected: %s", request.po_id, message)
            self._audit_rejection(request, actor, message)
            raise CommitError(message) from exc
        except (CommitError, DataIntegrityError) as exc:
            logger.warning("GRN for PO id %s rejected: %s", request.po_id, exc)
            self._audit_rejection(request, actor, str(exc))
            if isinstance(exc, CommitError):
                raise
            raise CommitError(str(exc)) from exc

        logger.info(
            "Created %s for PO id %s (%d tires)",
            result.grn_number, request.po_id, len(result.tires),
        )
        return result

    def _apply_grn(self, conn: sqlite3.Connection, request: GRNRequest, actor: str) -> GRNResult:
        po = self._load_po(conn, "id = ?", (request.po_id,))
        if po is None:
            raise CommitError(f"Purchase order {request.po_id} not found")
        if not is_receivable(po.status):
            raise CommitError(f"Purchase order {po.po_number} is {po.status.value} and cannot receive goods")
        if not request.items:
            raise CommitError("No items to receive")
        self._check_serials_unused(conn, request)

        now = _now()
        grn_number = self._next_grn_number(conn, request.receipt_date)
        cur = conn.execute(
            """
            INSERT INTO grns
                (grn_number, po_id, receipt_date, supplier_invoice_number,
                 delivery_note_number, vehicle_number, driver_name, notes,
                 inspection_notes, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (grn_number, po.id, request.receipt_date.isoformat(),
             request.supplier_invoice_number, request.delivery_note_number,
             request.vehicle_number, request.driver_name, request.notes,
             request.inspection_notes, now),
        )
        grn_id = cur.lastrowid

        received_by_line: dict[int, int] = {}
        result_items: list[GRNResultItem] = []
        tires: list[InventoryUnit] = []

        for item in request.items:
            line = po.line(item.po_item_id)
            if line is None:
                raise CommitError(f"Item {item.po_item_id} does not belong to {po.po_number}")
            already = received_by_line.get(line.id, 0)
            if item.quantity_received <= 0:
                raise CommitError(f"Quantity for item {line.id} must be positive")
            if already + item.quantity_received > line.remaining_quantity:
                raise CommitError(
                    f"Cannot receive {item.quantity_received} of item {line.id}: "
                    f"only {line.remaining_quantity - already} remaining"
                )
            if len(item.serial_numbers) != item.quantity_received:
                raise CommitError(
                    f"Item {line.id}: {len(item.serial_numbers)} serial numbers "
                    f"for {item.quantity_received} units"
                )
            received_by_line[line.id] = already + item.quantity_received

            cur = conn.execute(
                """
                INSERT INTO grn_items
                    (grn_id, po_item_id, quantity_received, unit_cost, batch_number,
                     brand, condition, location, notes)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (grn_id, line.id, item.quantity_received, str(item.unit_cost),
                 item.batch_number, item.brand or line.brand, item.condition.value,
                 item.location, item.notes),
            )
            grn_item_id = cur.lastrowid
            result_items.append(GRNResultItem(
                grn_item_id=grn_item_id,
                po_item_id=line.id,
                quantity_received=item.quantity_received,
                serial_numbers=list(item.serial_numbers),
            ))

            for serial in item.serial_numbers:
                cur = conn.execute(
                    """
                    INSERT INTO tires
                        (serial_number, grn_item_id, po_item_id, size, brand, model,
                         type, condition, location, status, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (serial, grn_item_id, line.id, line.size, item.brand or line.brand,
                     line.model, line.type, item.condition.value, item.location,
                     INVENTORY_STATUS_IN_STORE, now),
                )
                tires.append(InventoryUnit(
                    id=cur.lastrowid, serial_number=serial, po_item_id=line.id,
                ))

            conn.execute(
                "UPDATE purchase_order_items SET received_quantity = received_quantity + ? WHERE id = ?",
                (item.quantity_received, line.id),
            )

        total_received_after = po.total_previously_received + sum(received_by_line.values())
        new_status = next_status(po.status, po.total_ordered, total_received_after)
        conn.execute(
            "UPDATE purchase_orders SET status = ?, updated_at = ? WHERE id = ?",
            (new_status.value, now, po.id),
        )
        _audit(conn, grn_number, "grn_created", actor, {
            "po_number": po.po_number,
            "units": len(tires),
            "status_from": po.status.value,
            "status_to": new_status.value,
        })
        return GRNResult(grn_number=grn_number, grn_id=grn_id, items=result_items, tires=tires)

    def _check_serials_unused(self, conn: sqlite3.Connection, request: GRNRequest) -> None:
        seen: set[str] = set()
        for item in request.items:
            for serial in item.serial_numbers:
                if serial in seen:
                    raise CommitError(f"Serial number {serial} appears more than once in this GRN")
                seen.add(serial)
        if not seen:
            return
        placeholders = ", ".join("?" for _ in seen)
        row = conn.execute(
            f"SELECT serial_number FROM tires WHERE serial_number IN ({placeholders}) LIMIT 1",
            tuple(seen),
        ).fetchone()
        if row is not None:
            raise CommitError(f"Serial number {row['serial_number']} already exists in inventory")

    def _next_grn_number(self, conn: sqlite3.Connection, receipt_date: date) -> str:
        prefix = f"GRN-{receipt_date.strftime('%Y%m%d')}-"
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM grns WHERE grn_number LIKE ?",
            (prefix + "%",),
        ).fetchone()
        return f"{prefix}{row['n'] + 1:04d}"

    def _audit_rejection(self, request: GRNRequest, actor: str, message: str) -> None:
        with self._conn() as conn:
            _audit(conn, f"PO:{request.po_id}", "grn_rejected", actor, {"error": message})

    # ------------------------------------------------------------------
    # GRN reads
    # ------------------------------------------------------------------

    def get_grn(self, grn_number: str) -> Optional[GRNRecord]:
        with self._conn() as conn:
            row = conn.execute(
                """
                SELECT g.*, p.po_number FROM grns g
                JOIN purchase_orders p ON p.id = g.po_id
                WHERE g.grn_number = ?
                """,
                (grn_number,),
            ).fetchone()
            return self._load_grn(conn, row) if row else None

    def list_grns(self, po_id: Optional[int] = None) -> list[GRNRecord]:
        sql = """
            SELECT g.*, p.po_number FROM grns g
            JOIN purchase_orders p ON p.id = g.po_id
        """
        params: tuple = ()
        if po_id is not None:
            sql += " WHERE g.po_id = ?"
            params = (po_id,)
        sql += " ORDER BY g.id DESC"
        with self._conn() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._load_grn(conn, row) for row in rows]

    # ------------------------------------------------------------------
    # Accounting linkage
    # ------------------------------------------------------------------

    def link_accounting(
        self,
        grn_number: str,
        supplier_invoice_number: Optional[str] = None,
        accounting_transaction_id: Optional[str] = None,
        actor: str = "system",
    ) -> GRNRecord:
        """
        Record the supplier invoice and/or accounting transaction for a GRN.

        Each field can be set once; setting an already-set field raises
        AccountingLinkError and changes nothing.
        """
        if not supplier_invoice_number and not accounting_transaction_id:
            raise ValueError("Nothing to link: pass an invoice number or a transaction id")

        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT id, supplier_invoice_number, accounting_transaction_id FROM grns WHERE grn_number = ?",
                (grn_number,),
            ).fetchone()
            if row is None:
                raise AccountingLinkError(f"GRN {grn_number} not found")
            if supplier_invoice_number and row["supplier_invoice_number"]:
                raise AccountingLinkError(
                    f"GRN {grn_number} already invoiced ({row['supplier_invoice_number']})"
                )
            if accounting_transaction_id and row["accounting_transaction_id"]:
                raise AccountingLinkError(f"GRN {grn_number} already has accounting entries")

            updates: dict[str, str] = {}
            if supplier_invoice_number:
                updates["supplier_invoice_number"] = supplier_invoice_number
            if accounting_transaction_id:
                updates["accounting_transaction_id"] = accounting_transaction_id
            assignments = ", ".join(f"{col} = ?" for col in updates)
            conn.execute(
                f"UPDATE grns SET {assignments} WHERE id = ?",
                (*updates.values(), row["id"]),
            )
            _audit(conn, grn_number, "accounting_linked", actor, updates)

        logger.info("Linked accounting for %s: %s", grn_number, ", ".join(updates))
        return self.get_grn(grn_number)

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def get_audit_log(self, entity: str) -> list[dict]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_log WHERE entity = ? ORDER BY id",
                (entity,),
            ).fetchall()
        entries = []
        for r in rows:
            entry = dict(r)
            if entry.get("detail"):
                entry["detail"] = json.loads(entry["detail"])
            entries.append(entry)
        return entries

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _load_po(self, conn: sqlite3.Connection, where: str, params: tuple) -> Optional[PurchaseOrder]:
        row = conn.execute(f"SELECT * FROM purchase_orders WHERE {where}", params).fetchone()
        if row is None:
            return None
        items = conn.execute(
            "SELECT * FROM purchase_order_items WHERE po_id = ? ORDER BY id",
            (row["id"],),
        ).fetchall()
        return PurchaseOrder(
            id=row["id"],
            po_number=row["po_number"],
            supplier_id=row["supplier_id"],
            supplier_name=row["supplier_name"],
            po_date=row["po_date"],
            expected_delivery_date=row["expected_delivery_date"],
            status=row["status"],
            notes=row["notes"],
            lines=[
                PurchaseOrderLine(
                    id=i["id"],
                    size=i["size"],
                    brand=i["brand"],
                    model=i["model"],
                    type=i["type"],
                    ordered_quantity=i["quantity"],
                    previously_received_quantity=i["received_quantity"],
                    unit_price=Decimal(i["unit_price"]),
                    notes=i["notes"],
                )
                for i in items
            ],
        )

    def _load_grn(self, conn: sqlite3.Connection, row: sqlite3.Row) -> GRNRecord:
        items = conn.execute(
            "SELECT * FROM grn_items WHERE grn_id = ? ORDER BY id", (row["id"],)
        ).fetchall()
        tires = conn.execute(
            """
            SELECT t.* FROM tires t JOIN grn_items gi ON gi.id = t.grn_item_id
            WHERE gi.grn_id = ? ORDER BY t.id
            """,
            (row["id"],),
        ).fetchall()
        serials_by_item: dict[int, list[str]] = {}
        for t in tires:
            serials_by_item.setdefault(t["grn_item_id"], []).append(t["serial_number"])
        return GRNRecord(
            grn_id=row["id"],
            grn_number=row["grn_number"],
            po_id=row["po_id"],
            po_number=row["po_number"],
            receipt_date=row["receipt_date"],
            supplier_invoice_number=row["supplier_invoice_number"],
            accounting_transaction_id=row["accounting_transaction_id"],
            delivery_note_number=row["delivery_note_number"],
            vehicle_number=row["vehicle_number"],
            driver_name=row["driver_name"],
            notes=row["notes"],
            inspection_notes=row["inspection_notes"],
            created_at=row["created_at"],
            items=[
                GRNResultItem(
                    grn_item_id=i["id"],
                    po_item_id=i["po_item_id"],
                    quantity_received=i["quantity_received"],
                    serial_numbers=serials_by_item.get(i["id"], []),
                )
                for i in items
            ],
            tires=[
                InventoryUnit(
                    id=t["id"], serial_number=t["serial_number"],
                    po_item_id=t["po_item_id"], status=t["status"],
                )
                for t in tires
            ],
        )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _audit(conn: sqlite3.Connection, entity: str, action: str, actor: str, detail: Optional[dict] = None) -> None:
    conn.execute(
        "INSERT INTO audit_log (entity, timestamp, action, actor, detail) VALUES (?, ?, ?, ?, ?)",
        (entity, _now(), action, actor, json.dumps(detail) if detail else None),
    )


def _integrity_message(exc: sqlite3.IntegrityError) -> str:
    text = str(exc)
    if "tires.serial_number" in text:
        return "Serial number already exists in inventory"
    return f"Integrity error: {text}"
