"""
Unit tests for the purchase order status policy.
"""
import pytest

from models.purchase_order import PurchaseOrder, PurchaseOrderStatus as S
from models.result import ErrorKind
from receiving.errors import DataIntegrityError
from receiving.status import can_transition, is_receivable, next_status


@pytest.mark.unit
class TestNextStatus:

    def test_partial_receipt(self):
        assert next_status(S.ORDERED, 5, 3) == S.PARTIALLY_RECEIVED

    def test_full_receipt(self):
        assert next_status(S.PARTIALLY_RECEIVED, 5, 5) == S.FULLY_RECEIVED

    def test_nothing_received_keeps_status(self):
        assert next_status(S.APPROVED, 5, 0) == S.APPROVED

    def test_over_receipt_is_fatal(self):
        with pytest.raises(DataIntegrityError) as exc_info:
            next_status(S.ORDERED, 5, 6)
        assert exc_info.value.kind == ErrorKind.RECEIVED_EXCEEDS_ORDERED
        assert exc_info.value.total_received == 6

    def test_negative_totals_rejected(self):
        with pytest.raises(DataIntegrityError):
            next_status(S.ORDERED, 5, -1)

    def test_accepts_status_strings(self):
        assert next_status("DRAFT", 2, 1) == S.PARTIALLY_RECEIVED


@pytest.mark.unit
class TestReceivability:

    @pytest.mark.parametrize("status,expected", [
        (S.DRAFT, True),
        (S.APPROVED, True),
        (S.ORDERED, True),
        (S.PARTIALLY_RECEIVED, True),
        (S.FULLY_RECEIVED, False),
        (S.CLOSED, False),
        (S.CANCELLED, False),
    ])
    def test_is_receivable(self, status, expected):
        assert is_receivable(status) is expected

    def test_cancel_only_before_fully_received(self):
        assert can_transition(S.ORDERED, S.CANCELLED)
        assert can_transition(S.PARTIALLY_RECEIVED, S.CANCELLED)
        assert not can_transition(S.FULLY_RECEIVED, S.CANCELLED)
        assert not can_transition(S.CLOSED, S.CANCELLED)

    def test_fully_received_only_closes(self):
        assert can_transition(S.FULLY_RECEIVED, S.CLOSED)
        assert not can_transition(S.FULLY_RECEIVED, S.PARTIALLY_RECEIVED)

    def test_legacy_received_status_normalised(self):
        po = PurchaseOrder(id=1, po_number="PO-1", status="RECEIVED")
        assert po.status == S.FULLY_RECEIVED

    def test_lowercase_status_accepted(self):
        po = PurchaseOrder(id=1, po_number="PO-1", status="partially_received")
        assert po.status == S.PARTIALLY_RECEIVED
