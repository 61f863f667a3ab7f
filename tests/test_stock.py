"""
Stock movement tests (incoming restock and outgoing gate passes).

Verifies:
- Restock increments stock and writes an immutable log
- A failed log write triggers the compensating decrement
- A failed compensating decrement is logged and the original error raised
- Dispatch rejects over-stock requests before any write
- Gate pass totals, QR payload, sequential numbering and line merging
- Slip generation or slip save failure keeps the committed dispatch
"""

from datetime import date

import pytest

from core.errors import BackendError
from core.schemas import DispatchForm, GatePassLine, RestockForm
from core.services import (
    attach_slip,
    create_gate_pass,
    get_gate_pass,
    get_product,
    list_gate_passes,
    list_incoming_logs,
    merge_lines,
    record_incoming,
    user_path,
)
from core.store import SqlTreeStore
from tests.conftest import (
    FailingRevertStore,
    FailingSlipGenerator,
    FailingUpdateStore,
    StaticSlipGenerator,
    TableDroppingSlipGenerator,
)


def _dispatch(*lines, destination="Branch Office", reason="Internal Transfer"):
    return DispatchForm(
        items=[GatePassLine(product_id=pid, quantity=qty) for pid, qty in lines],
        destination=destination,
        reason=reason,
        dispatched_at=date(2024, 5, 1),
    )


# =============================================================================
# INCOMING
# =============================================================================


class TestRecordIncoming:

    def test_increments_stock_and_logs(self, store, uid, make_product):
        product = make_product(stock=5, supplier="Acme")
        log = record_incoming(store, uid, RestockForm(product_id=product.id, quantity=7, purchase_order="PO-9"))

        assert get_product(store, uid, product.id).current_stock == 12
        stored = store.get(user_path(uid, "incomingLogs", log.id))
        assert stored["productName"] == product.name
        assert stored["productSku"] == product.sku
        assert stored["quantity"] == 7
        assert stored["purchaseOrder"] == "PO-9"
        assert stored["supplier"] == "Acme"
        assert stored["type"] == "incoming"

    def test_unknown_product_rejected(self, store, uid):
        with pytest.raises(ValueError, match="not found"):
            record_incoming(store, uid, RestockForm(product_id="missing", quantity=1))

    def test_failed_log_write_reverts_stock(self, conn, uid, make_product):
        product = make_product(stock=5)
        failing = FailingUpdateStore(conn)

        with pytest.raises(BackendError):
            record_incoming(failing, uid, RestockForm(product_id=product.id, quantity=3))

        store = SqlTreeStore(conn)
        assert get_product(store, uid, product.id).current_stock == 5
        assert list_incoming_logs(store, uid) == []

    def test_failed_revert_keeps_original_error(self, conn, uid, make_product):
        product = make_product(stock=5)
        failing = FailingRevertStore(conn)

        with pytest.raises(BackendError, match="503"):
            record_incoming(failing, uid, RestockForm(product_id=product.id, quantity=3))

        assert failing.increments == 2
        store = SqlTreeStore(conn)
        assert get_product(store, uid, product.id).current_stock == 8
        assert list_incoming_logs(store, uid) == []

    def test_logs_newest_first(self, store, uid, make_product):
        product = make_product()
        first = record_incoming(store, uid, RestockForm(product_id=product.id, quantity=1))
        second = record_incoming(store, uid, RestockForm(product_id=product.id, quantity=2))
        assert [log.id for log in list_incoming_logs(store, uid)] == [second.id, first.id]


# =============================================================================
# OUTGOING
# =============================================================================


class TestCreateGatePass:

    def test_decrements_stock_and_records_pass(self, store, uid, make_product):
        mouse = make_product(stock=10)
        desk = make_product(name="Oak Desk", sku="DESK-1", stock=4)

        result = create_gate_pass(store, uid, _dispatch((mouse.id, 3), (desk.id, 4)), user_name="Sam")
        gate_pass = result.gate_pass

        assert get_product(store, uid, mouse.id).current_stock == 7
        assert get_product(store, uid, desk.id).current_stock == 0
        assert gate_pass.total_quantity == 7
        assert gate_pass.total_quantity == sum(item.quantity for item in gate_pass.items)
        assert gate_pass.qr_code_data == gate_pass.id
        assert gate_pass.date == "2024-05-01"
        assert gate_pass.user_name == "Sam"

        stored = store.get(user_path(uid, "gatePasses", gate_pass.id))
        assert stored["qrCodeData"] == gate_pass.id
        assert stored["totalQuantity"] == 7
        assert [item["sku"] for item in stored["items"]] == [mouse.sku, desk.sku]

    def test_insufficient_stock_rejected_before_commit(self, store, uid, make_product):
        mouse = make_product(stock=10)
        desk = make_product(name="Oak Desk", sku="DESK-1", stock=2)

        with pytest.raises(ValueError, match="Insufficient stock for Oak Desk"):
            create_gate_pass(store, uid, _dispatch((mouse.id, 1), (desk.id, 3)))

        assert get_product(store, uid, mouse.id).current_stock == 10
        assert get_product(store, uid, desk.id).current_stock == 2
        assert list_gate_passes(store, uid) == []
        assert store.get(user_path(uid, "counters", "gatePassNumber")) is None

    def test_unknown_product_rejected(self, store, uid):
        with pytest.raises(ValueError, match="Product not found"):
            create_gate_pass(store, uid, _dispatch(("ghost", 1)))

    def test_duplicate_lines_merged(self, store, uid, make_product):
        mouse = make_product(stock=5)
        result = create_gate_pass(store, uid, _dispatch((mouse.id, 2), (mouse.id, 3)))
        assert len(result.gate_pass.items) == 1
        assert result.gate_pass.items[0].quantity == 5
        assert get_product(store, uid, mouse.id).current_stock == 0

    def test_merged_lines_checked_against_stock(self, store, uid, make_product):
        mouse = make_product(stock=4)
        with pytest.raises(ValueError, match="Insufficient stock"):
            create_gate_pass(store, uid, _dispatch((mouse.id, 2), (mouse.id, 3)))

    def test_pass_numbers_are_sequential(self, store, uid, make_product):
        mouse = make_product(stock=10)
        first = create_gate_pass(store, uid, _dispatch((mouse.id, 1))).gate_pass
        second = create_gate_pass(store, uid, _dispatch((mouse.id, 1))).gate_pass
        assert (first.gate_pass_number, second.gate_pass_number) == (1, 2)

    def test_slip_attached(self, store, uid, make_product):
        mouse = make_product(stock=10)
        generator = StaticSlipGenerator("SLIP TEXT")
        result = create_gate_pass(store, uid, _dispatch((mouse.id, 2)), slip_generator=generator, shop_name="Acme")

        assert result.slip_error is None
        assert result.gate_pass.generated_pass_content == "SLIP TEXT"
        stored = store.get(user_path(uid, "gatePasses", result.gate_pass.id))
        assert stored["generatedPassContent"] == "SLIP TEXT"
        slip_input = generator.calls[0]
        assert slip_input.qr_code_data == result.gate_pass.id
        assert slip_input.shop_name == "Acme"
        assert slip_input.items[0].quantity == 2

    def test_slip_failure_keeps_dispatch(self, store, uid, make_product):
        mouse = make_product(stock=10)
        result = create_gate_pass(store, uid, _dispatch((mouse.id, 4)), slip_generator=FailingSlipGenerator())

        assert "AI failed" in result.slip_error
        assert result.gate_pass.generated_pass_content is None
        assert get_product(store, uid, mouse.id).current_stock == 6
        stored = get_gate_pass(store, uid, result.gate_pass.id)
        assert stored is not None
        assert stored.generated_pass_content is None

    def test_slip_save_failure_keeps_dispatch(self, conn, store, uid, make_product):
        mouse = make_product(stock=10)
        result = create_gate_pass(store, uid, _dispatch((mouse.id, 4)), slip_generator=TableDroppingSlipGenerator(conn))

        assert "no such table" in result.slip_error
        assert result.gate_pass.gate_pass_number == 1
        assert result.gate_pass.generated_pass_content is None

    def test_slip_can_be_generated_later(self, store, uid, make_product):
        mouse = make_product(stock=10)
        gate_pass = create_gate_pass(store, uid, _dispatch((mouse.id, 1))).gate_pass
        assert attach_slip(store, uid, gate_pass, StaticSlipGenerator("LATER")) is None
        assert get_gate_pass(store, uid, gate_pass.id).generated_pass_content == "LATER"


class TestGatePassLookup:

    def test_lookup_strips_whitespace(self, store, uid, make_product):
        mouse = make_product(stock=3)
        gate_pass = create_gate_pass(store, uid, _dispatch((mouse.id, 1))).gate_pass
        found = get_gate_pass(store, uid, f"  {gate_pass.id}\n")
        assert found.id == gate_pass.id
        assert found.items[0].name == mouse.name

    @pytest.mark.parametrize("pass_id", ["", "   "])
    def test_empty_id_rejected(self, store, uid, pass_id):
        with pytest.raises(ValueError, match="Please enter a Pass ID."):
            get_gate_pass(store, uid, pass_id)

    @pytest.mark.parametrize("pass_id", ["unknown", "a/b", "x.y"])
    def test_unknown_id_returns_none(self, store, uid, pass_id):
        assert get_gate_pass(store, uid, pass_id) is None

    def test_list_newest_first(self, store, uid, make_product):
        mouse = make_product(stock=10)
        create_gate_pass(store, uid, _dispatch((mouse.id, 1)))
        create_gate_pass(store, uid, _dispatch((mouse.id, 1)))
        numbers = [gp.gate_pass_number for gp in list_gate_passes(store, uid)]
        assert numbers == [2, 1]


def test_merge_lines_keeps_first_seen_order():
    lines = [GatePassLine(product_id="b", quantity=1), GatePassLine(product_id="a", quantity=2),
             GatePassLine(product_id="b", quantity=3)]
    assert [(line.product_id, line.quantity) for line in merge_lines(lines)] == [("b", 4), ("a", 2)]
