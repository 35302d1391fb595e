"""
Unit tests for the receiving session, using an in-memory backend.
"""
from datetime import date

import pytest

from models.grn import GRNResult, InventoryUnit
from models.purchase_order import PurchaseOrder, PurchaseOrderStatus
from models.result import ErrorKind
from receiving.errors import CommitError, ReceivingError, ReceivingValidationError, TransportError
from receiving.serials import SerialAllocator
from receiving.session import ReceivingSession


class FakeBackend:
    """Records commits and applies them to a stored order when accepted."""

    def __init__(self, order: PurchaseOrder, issued=None, fail_with=None):
        self.order = order
        self.issued = set(issued or ())
        self.fail_with = fail_with
        self.reload_error = None
        self.commits = []
        self.loads = 0

    def get_purchase_order(self, po_id):
        self.loads += 1
        if self.reload_error is not None and self.commits:
            raise self.reload_error
        return self.order

    def issued_serials(self, po_id):
        return set(self.issued)

    def commit(self, request):
        self.commits.append(request)
        if self.fail_with is not None:
            raise self.fail_with
        received = {item.po_item_id: item.quantity_received for item in request.items}
        lines = [
            line.model_copy(update={
                "previously_received_quantity":
                    line.previously_received_quantity + received.get(line.id, 0),
            })
            for line in self.order.lines
        ]
        total = sum(line.previously_received_quantity for line in lines)
        ordered = sum(line.ordered_quantity for line in lines)
        status = (PurchaseOrderStatus.FULLY_RECEIVED if total == ordered
                  else PurchaseOrderStatus.PARTIALLY_RECEIVED)
        self.order = self.order.model_copy(update={"lines": lines, "status": status})
        tires = [
            InventoryUnit(id=n, serial_number=sn, po_item_id=item.po_item_id)
            for n, (item, sn) in enumerate(
                ((item, sn) for item in request.items for sn in item.serial_numbers), start=1
            )
        ]
        return GRNResult(grn_number="GRN-20240125-0001", grn_id=1, tires=tires)


@pytest.fixture
def allocator(fixed_clock):
    return SerialAllocator(clock=fixed_clock)


@pytest.mark.unit
class TestReceivingSession:
    """Tests for ReceivingSession class."""

    def test_open_builds_default_drafts(self, small_order, test_config, allocator):
        backend = FakeBackend(small_order)
        session = ReceivingSession.open(backend, 2, config=test_config, allocator=allocator)

        draft = session.draft(21)
        assert draft.batch_number == "BATCH-PO-2024-002-21"
        assert draft.location == "WAREHOUSE-A"
        assert draft.brand == "Goodyear"
        assert draft.current_receive_quantity == 0

    def test_unknown_line(self, small_order, test_config):
        session = ReceivingSession(small_order, config=test_config)
        with pytest.raises(KeyError):
            session.draft(99)

    def test_receive_all_and_reset(self, sample_order, test_config):
        session = ReceivingSession(sample_order, config=test_config)

        assert session.receive_all_remaining() == 12
        assert session.totals()["remaining_after_receipt"] == 0
        assert session.totals()["progress_percentage"] == 100

        session.set_batch_number(11, "CUSTOM")
        session.reset()
        assert session.totals()["currently_receiving"] == 0
        assert session.draft(11).batch_number == "BATCH-PO-2024-001-11"

    def test_set_serials_upper_cases(self, small_order, test_config):
        session = ReceivingSession(small_order, config=test_config)
        session.set_quantity(21, 2)

        assert session.set_serials(21, ["ab1", "cd2", "ignored"]) == ["AB1", "CD2"]

    def test_update_header_rejects_unknown_fields(self, small_order, test_config):
        session = ReceivingSession(small_order, config=test_config)
        session.update_header(driver_name="Otieno", receipt_date=date(2024, 1, 25))

        assert session.header.driver_name == "Otieno"
        with pytest.raises(ValueError):
            session.update_header(colour="blue")

    def test_generation_avoids_serials_on_other_lines(self, small_order, test_config, allocator):
        """Two lines with the same brand/size prefix never share a generated serial."""
        twin = small_order.model_copy(update={"lines": [
            small_order.lines[0],
            small_order.lines[1].model_copy(update={"size": "11R22.5", "brand": "Goodyear"}),
        ]})
        session = ReceivingSession(twin, config=test_config, allocator=allocator)
        session.set_quantity(21, 2)
        session.set_quantity(22, 2)

        first = session.generate_serials(21)
        second = session.generate_serials(22)

        assert not set(first) & set(second)
        assert second[0] == "GOO-11R22.5-123457-001"

    def test_generation_avoids_backend_serials(self, small_order, test_config, allocator):
        backend = FakeBackend(small_order, issued={"GOO-11R22.5-123456-001"})
        session = ReceivingSession(small_order, config=test_config, backend=backend,
                                   allocator=allocator)
        session.set_quantity(21, 1)

        assert session.generate_serials(21) == ["GOO-11R22.5-123457-001"]

    def test_validate_is_pure(self, small_order, test_config):
        session = ReceivingSession(small_order, config=test_config)
        result = session.validate()

        assert result.reason == ErrorKind.NO_ITEMS_SELECTED
        assert session.confirmed is small_order

    def test_submit_success_reloads_snapshot(self, small_order, test_config, allocator):
        backend = FakeBackend(small_order)
        session = ReceivingSession.open(backend, 2, config=test_config, allocator=allocator)
        session.set_quantity(21, 3)
        session.generate_serials(21)

        result = session.submit()

        assert result.grn_number == "GRN-20240125-0001"
        assert len(result.tires) == 3
        assert all(t.status == "IN_STORE" for t in result.tires)
        assert len(backend.commits) == 1
        assert session.confirmed.status == PurchaseOrderStatus.PARTIALLY_RECEIVED
        assert session.draft(21).remaining_quantity == 0
        assert session.draft(21).current_receive_quantity == 0
        assert session.last_result is result

    def test_submit_failure_preserves_drafts(self, small_order, test_config):
        error = CommitError("Serial number GOO-1 already exists", status_code=409)
        backend = FakeBackend(small_order, fail_with=error)
        session = ReceivingSession(small_order, config=test_config, backend=backend)
        session.set_quantity(21, 1)
        session.set_serial(21, 0, "goo-1")
        session.update_header(driver_name="Otieno")

        with pytest.raises(CommitError) as exc_info:
            session.submit()

        assert str(exc_info.value) == "Serial number GOO-1 already exists"
        assert session.draft(21).current_receive_quantity == 1
        assert session.draft(21).serial_numbers == ["GOO-1"]
        assert session.header.driver_name == "Otieno"
        assert session.confirmed is small_order

    def test_invalid_receipt_never_reaches_backend(self, small_order, test_config):
        backend = FakeBackend(small_order)
        session = ReceivingSession(small_order, config=test_config, backend=backend)
        session.set_quantity(21, 2)

        with pytest.raises(ReceivingValidationError) as exc_info:
            session.submit()

        assert exc_info.value.kind == ErrorKind.SERIAL_COUNT_MISMATCH
        assert backend.commits == []

    def test_reload_failure_marks_session_stale(self, small_order, test_config, allocator):
        backend = FakeBackend(small_order)
        backend.reload_error = TransportError("Could not reach backend: timed out")
        session = ReceivingSession(small_order, config=test_config, backend=backend,
                                   allocator=allocator)
        session.set_quantity(22, 1)
        session.generate_serials(22)

        with pytest.raises(TransportError):
            session.submit()
        with pytest.raises(ReceivingError):
            session.build()
        assert len(backend.commits) == 1

    def test_submit_without_backend(self, small_order, test_config):
        session = ReceivingSession(small_order, config=test_config)
        with pytest.raises(ReceivingError):
            session.submit()

    def test_malformed_reload_marks_session_stale(self, small_order, test_config, allocator):
        """A committed receipt is never offered for a second commit."""
        backend = FakeBackend(small_order)
        backend.reload_error = KeyError("po_number")
        session = ReceivingSession(small_order, config=test_config, backend=backend,
                                   allocator=allocator)
        session.set_quantity(21, 1)
        session.generate_serials(21)

        with pytest.raises(KeyError):
            session.submit()
        with pytest.raises(ReceivingError):
            session.submit()
        assert len(backend.commits) == 1
