"""
Receiving session orchestrator.

ReceivingSession ties the ledger, serial allocator, validator, builder and
backend together for one purchase order:

  1. open()      -- load the confirmed PO snapshot from the backend
  2. edit        -- quantities, serials, batch/condition/brand, header fields
  3. validate()  -- pure pre-commit check, no network
  4. submit()    -- build the GRN request, commit it once, then reload the
                    confirmed snapshot and start fresh drafts

`confirmed` is only ever replaced by what the backend returns. If a commit
fails the drafts are left exactly as they were so the operator can retry.
"""
import logging
from typing import Any, Optional

from config import Config
from models.grn import GRNProposal, GRNResult
from models.purchase_order import PurchaseOrder, PurchaseOrderLine
from models.receiving import (
    ItemCondition, ReceivingHeaderDraft, ReceivingLineDraft, default_batch_number,
)
from models.result import ValidationResult
from . import ledger
from .backend import GRNBackend
from .builder import GRNBuilder
from .errors import ReceivingError
from .serials import SerialAllocator, collect_issued, set_serial
from .validator import ReceivingValidator

logger = logging.getLogger(__name__)


class ReceivingSession:
    """Single-owner working copy of a goods receipt against one PO."""

    def __init__(
        self,
        order: PurchaseOrder,
        config: Optional[Config] = None,
        backend: Optional[GRNBackend] = None,
        allocator: Optional[SerialAllocator] = None,
    ):
        self.config = config or Config()
        self.backend = backend
        self.allocator = allocator or SerialAllocator(
            fallback_prefix=self.config.serial_fallback_prefix,
            max_attempts=self.config.max_serial_attempts,
        )
        self.validator = ReceivingValidator(require_brand=self.config.require_brand)
        self.builder = GRNBuilder(self.validator)
        self.last_result: Optional[GRNResult] = None
        self._stale = False
        self._load(order)

    @classmethod
    def open(
        cls,
        backend: GRNBackend,
        po_id: int,
        config: Optional[Config] = None,
        allocator: Optional[SerialAllocator] = None,
    ) -> "ReceivingSession":
        order = backend.get_purchase_order(po_id)
        logger.info("Opened receiving session for PO %s (%s)", order.po_number, order.status.value)
        return cls(order, config=config, backend=backend, allocator=allocator)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def _load(self, order: PurchaseOrder) -> None:
        self.confirmed = order
        self.header = ReceivingHeaderDraft()
        self.drafts = [self._new_draft(line) for line in order.lines]
        self._issued: Optional[set[str]] = None

    def _new_draft(self, line: PurchaseOrderLine) -> ReceivingLineDraft:
        return ReceivingLineDraft(
            line=line,
            batch_number=default_batch_number(
                self.confirmed.po_number, line.id, self.config.batch_prefix
            ),
            brand=line.brand,
            location=self.config.default_location,
        )

    def draft(self, line_id: int) -> ReceivingLineDraft:
        for d in self.drafts:
            if d.po_line_id == line_id:
                return d
        raise KeyError(f"PO {self.confirmed.po_number} has no line {line_id}")

    def reset(self) -> None:
        """Discard every edit and start again from the confirmed snapshot."""
        self._load(self.confirmed)
        logger.debug("Receiving form reset for PO %s", self.confirmed.po_number)

    # ------------------------------------------------------------------
    # Line edits
    # ------------------------------------------------------------------

    def set_quantity(self, line_id: int, quantity: int) -> int:
        return ledger.set_receive_quantity(self.draft(line_id), quantity)

    def receive_all_remaining(self) -> int:
        return ledger.fill_all_remaining(self.drafts)

    def set_serial(self, line_id: int, index: int, value: str) -> str:
        return set_serial(self.draft(line_id), index, value)

    def set_serials(self, line_id: int, serials: list[str]) -> list[str]:
        draft = self.draft(line_id)
        for index, value in enumerate(serials[: draft.current_receive_quantity]):
            set_serial(draft, index, value)
        return list(draft.serial_numbers)

    def generate_serials(self, line_id: int) -> list[str]:
        draft = self.draft(line_id)
        issued = collect_issued(self.drafts, exclude=draft) | self._issued_serials()
        return self.allocator.generate_batch(draft, issued=issued)

    def set_batch_number(self, line_id: int, batch_number: str) -> None:
        self.draft(line_id).batch_number = batch_number

    def set_condition(self, line_id: int, condition: ItemCondition | str) -> None:
        self.draft(line_id).condition = ItemCondition(condition)

    def set_brand(self, line_id: int, brand: str) -> None:
        self.draft(line_id).brand = brand

    def set_location(self, line_id: int, location: str) -> None:
        self.draft(line_id).location = location

    def set_notes(self, line_id: int, notes: str) -> None:
        self.draft(line_id).notes = notes

    # ------------------------------------------------------------------
    # Header edits
    # ------------------------------------------------------------------

    def update_header(self, **fields: Any) -> ReceivingHeaderDraft:
        unknown = set(fields) - set(ReceivingHeaderDraft.model_fields)
        if unknown:
            raise ValueError(f"Unknown header field(s): {', '.join(sorted(unknown))}")
        self.header = ReceivingHeaderDraft.model_validate(
            {**self.header.model_dump(), **fields}
        )
        return self.header

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def totals(self) -> dict:
        return {
            "total_ordered": self.confirmed.total_ordered,
            "previously_received": self.confirmed.total_previously_received,
            "currently_receiving": ledger.total_received(self.drafts),
            "remaining_after_receipt": ledger.remaining_after_receipt(self.drafts),
            "total_value": ledger.total_value(self.drafts),
            "progress_percentage": ledger.progress_percentage(self.drafts),
            "serials_entered": sum(len(d.entered_serials) for d in self.drafts),
        }

    # ------------------------------------------------------------------
    # Validate / submit
    # ------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        return self.validator.validate(self.confirmed.status, self.header, self.drafts)

    def build(self) -> GRNProposal:
        if self._stale:
            raise ReceivingError(
                f"PO {self.confirmed.po_number} changed since this session was loaded; reopen it"
            )
        return self.builder.build(self.confirmed, self.header, self.drafts)

    def submit(self) -> GRNResult:
        """
        Validate, build and commit the receipt as one request.

        Errors from the backend propagate unchanged and leave the drafts
        untouched. On success the confirmed snapshot is reloaded.
        """
        if self.backend is None:
            raise ReceivingError("No backend configured for this session")
        proposal = self.build()
        result = self.backend.commit(proposal.request)
        self.last_result = result
        logger.info(
            "GRN %s committed for PO %s (%d tires, proposed status %s)",
            result.grn_number, self.confirmed.po_number,
            len(result.tires), proposal.proposed_status.value,
        )

        # The receipt is committed; any reload failure leaves the drafts unusable
        try:
            refreshed = self.backend.get_purchase_order(self.confirmed.id)
        except Exception:
            self._stale = True
            logger.error(
                "GRN %s committed but PO %s could not be reloaded",
                result.grn_number, self.confirmed.po_number,
            )
            raise
        self._load(refreshed)
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issued_serials(self) -> set[str]:
        if self._issued is None:
            self._issued = self.backend.issued_serials(self.confirmed.id) if self.backend else set()
        return self._issued
