"""
Backend adapters for committing GRNs.

The receiving workflow talks to exactly one collaborator. Two
implementations share the GRNBackend interface:

  HttpGRNBackend    REST API (GET /api/purchase-orders/{id}, POST /api/grn)
                    using the {success, data | message} envelope
  SqliteGRNBackend  the local Database, for offline use and tests

Backend rejections and transport failures are raised as CommitError
carrying the backend's message unchanged. Nothing here retries.
"""
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from models.grn import GRNRequest, GRNResult
from models.purchase_order import PurchaseOrder, PurchaseOrderLine
from .database import Database
from .errors import CommitError, PurchaseOrderNotFound, TransportError

logger = logging.getLogger(__name__)

USER_AGENT = "Tire-Receiving-Client/1.0"


class GRNBackend(Protocol):
    def get_purchase_order(self, po_id: int) -> PurchaseOrder: ...

    def issued_serials(self, po_id: int) -> set[str]: ...

    def commit(self, request: GRNRequest) -> GRNResult: ...


class SqliteGRNBackend:
    """GRNBackend over the local SQLite store."""

    def __init__(self, db: Database, actor: str = "system") -> None:
        self.db = db
        self.actor = actor

    def get_purchase_order(self, po_id: int) -> PurchaseOrder:
        po = self.db.get_purchase_order(po_id)
        if po is None:
            raise PurchaseOrderNotFound(f"Purchase order {po_id} not found")
        return po

    def issued_serials(self, po_id: int) -> set[str]:
        return self.db.issued_serials(po_id)

    def commit(self, request: GRNRequest) -> GRNResult:
        return self.db.create_grn(request, actor=self.actor)


class HttpGRNBackend:
    """
    GRNBackend over the REST API.

    Usage:
        backend = HttpGRNBackend("https://fleet.example.com", token="...")
        order = backend.get_purchase_order(42)
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: int = 30) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_purchase_order(self, po_id: int) -> PurchaseOrder:
        try:
            envelope = self._request("GET", f"/api/purchase-orders/{po_id}")
        except CommitError as exc:
            if exc.status_code == 404:
                raise PurchaseOrderNotFound(exc.message) from exc
            raise
        data = envelope.get("data")
        if not data:
            raise PurchaseOrderNotFound(envelope.get("message") or f"Purchase order {po_id} not found")
        try:
            return purchase_order_from_api(data)
        except (KeyError, TypeError, ValueError) as exc:
            # pydantic's ValidationError is a ValueError
            raise CommitError(f"Unexpected purchase order response from backend: {exc}") from exc

    def issued_serials(self, po_id: int) -> set[str]:
        """
        Serials already received against the PO, read from its GRN list.

        This only feeds the collision check during batch generation; the
        backend is still the authority on uniqueness, so a failed lookup
        is logged and treated as "none known".
        """
        query = urllib.parse.urlencode({"po_id": po_id})
        try:
            envelope = self._request("GET", f"/api/grn?{query}")
        except CommitError as exc:
            logger.warning("Could not load issued serials for PO %s: %s", po_id, exc)
            return set()
        serials: set[str] = set()
        for grn in envelope.get("data") or []:
            for item in grn.get("items") or []:
                serials.update(sn for sn in item.get("serial_numbers") or [] if sn)
        return serials

    def commit(self, request: GRNRequest) -> GRNResult:
        payload = request.to_payload()
        logger.info(
            "Submitting GRN for PO %s (%d line(s))", request.po_id, len(request.items)
        )
        envelope = self._request("POST", "/api/grn", payload)
        try:
            return GRNResult.model_validate(envelope.get("data") or {})
        except ValidationError as exc:
            # The commit may have happened; surface rather than guess.
            raise CommitError(f"Unexpected GRN response from backend: {exc}") from exc

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, body: Optional[dict] = None) -> dict[str, Any]:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(self.base_url + path, data=data, method=method)
        req.add_header("Accept", "application/json")
        req.add_header("User-Agent", USER_AGENT)
        if data is not None:
            req.add_header("Content-Type", "application/json; charset=utf-8")
        if self.token:
            req.add_header("Authorization", f"Bearer {self.token}")

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                status_code = response.getcode()
                raw = response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raw = e.read().decode("utf-8", errors="replace") if e.fp else ""
            message = _envelope_message(raw) or f"HTTP {e.code}: {e.reason}"
            logger.error("%s %s failed: HTTP %d - %s", method, path, e.code, message)
            raise CommitError(message, status_code=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            reason = getattr(e, "reason", e)
            logger.error("%s %s failed: %s", method, path, reason)
            raise TransportError(f"Could not reach backend: {reason}") from e

        try:
            envelope = json.loads(raw) if raw else {}
        except json.JSONDecodeError as e:
            raise CommitError(f"Invalid JSON from backend (HTTP {status_code})", status_code) from e

        if not envelope.get("success", False):
            message = envelope.get("message") or "Request failed"
            logger.error("%s %s rejected: %s", method, path, message)
            raise CommitError(message, status_code=status_code)
        return envelope


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def purchase_order_from_api(data: dict) -> PurchaseOrder:
    """Map the backend's purchase order JSON onto the PurchaseOrder model."""
    lines = []
    for item in data.get("items") or []:
        ordered = int(item.get("quantity") or 0)
        received = item.get("received_quantity")
        if received is None and item.get("remaining_quantity") is not None:
            received = ordered - int(item["remaining_quantity"])
        lines.append(PurchaseOrderLine(
            id=item["id"],
            size=item.get("size") or "",
            brand=item.get("brand") or None,
            model=item.get("model") or None,
            type=item.get("type") or "NEW",
            ordered_quantity=ordered,
            previously_received_quantity=int(received or 0),
            unit_price=_to_decimal(item.get("unit_price")),
            notes=item.get("notes"),
        ))
    return PurchaseOrder(
        id=data["id"],
        po_number=data["po_number"],
        supplier_id=data.get("supplier_id"),
        supplier_name=data.get("supplier_name"),
        po_date=data.get("po_date"),
        expected_delivery_date=data.get("expected_delivery_date"),
        status=data.get("status") or "DRAFT",
        notes=data.get("notes"),
        lines=lines,
    )


def _to_decimal(value: Any) -> Decimal:
    if value is None or str(value).strip() == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _envelope_message(raw: str) -> Optional[str]:
    try:
        return json.loads(raw).get("message")
    except (json.JSONDecodeError, AttributeError):
        return raw.strip()[:500] or None
