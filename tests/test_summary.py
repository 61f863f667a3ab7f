"""
Dashboard and profile tests.

Verifies:
- Summary counts for products, stock units and today's movements
- Stock overview ordering and the recent activity feed
- Profile save overwrites the whole record
"""

from datetime import date

from core.schemas import DispatchForm, GatePassLine, ProfileForm, RestockForm
from core.services import (
    create_gate_pass,
    get_products,
    get_profile,
    inventory_summary,
    list_gate_passes,
    list_incoming_logs,
    record_incoming,
    recent_activity,
    save_profile,
    stock_overview,
    user_path,
)

TODAY = date(2024, 5, 1)


def _seed(store, uid, make_product):
    mouse = make_product(stock=10)
    desk = make_product(name="Oak Desk", sku="DESK-1", stock=3)
    record_incoming(store, uid, RestockForm(product_id=mouse.id, quantity=5, received_at=TODAY))
    record_incoming(store, uid, RestockForm(product_id=desk.id, quantity=2, received_at=date(2024, 4, 30)))
    create_gate_pass(
        store, uid,
        DispatchForm(items=[GatePassLine(product_id=mouse.id, quantity=4)], destination="Branch Office",
                     reason="Internal Transfer", dispatched_at=TODAY),
    )
    return mouse, desk


class TestDashboard:

    def test_inventory_summary(self, store, uid, make_product):
        _seed(store, uid, make_product)
        summary = inventory_summary(
            get_products(store, uid), list_incoming_logs(store, uid), list_gate_passes(store, uid), today=TODAY
        )
        assert summary == {
            "total_products": 2,
            "total_stock_units": 11 + 5,
            "incoming_today": 5,
            "outgoing_today": 4,
        }

    def test_empty_summary(self):
        assert inventory_summary([], [], [], today=TODAY) == {
            "total_products": 0, "total_stock_units": 0, "incoming_today": 0, "outgoing_today": 0,
        }

    def test_stock_overview_sorted(self, store, uid, make_product):
        _seed(store, uid, make_product)
        df = stock_overview(get_products(store, uid))
        assert list(df["name"]) == ["Wireless Mouse", "Oak Desk"]
        assert list(df["stock"]) == [11, 5]

    def test_recent_activity(self, store, uid, make_product):
        _seed(store, uid, make_product)
        events = recent_activity(
            get_products(store, uid), list_incoming_logs(store, uid), list_gate_passes(store, uid)
        )
        kinds = [e["kind"] for e in events]
        assert kinds[0] == "outgoing"
        assert sorted(kinds) == ["incoming", "incoming", "outgoing", "product", "product"]
        assert 'Received 5 units of "Wireless Mouse"' in [e["message"] for e in events]
        assert events[0]["message"].startswith("Shipped 4 units (Wireless Mouse) to Branch Office")


class TestProfile:

    def test_default_profile(self, store, uid):
        assert get_profile(store, uid).shop_name == ""

    def test_save_overwrites(self, store, uid):
        save_profile(store, uid, ProfileForm(shop_name="Acme", address="1 Main St", employees=["Ana", "Ben"]))
        save_profile(store, uid, ProfileForm(shop_name="Acme Traders"))

        profile = get_profile(store, uid)
        assert profile.shop_name == "Acme Traders"
        assert profile.address == ""
        assert profile.employees == []
        assert store.get(user_path(uid, "profileData"))["shopName"] == "Acme Traders"

    def test_employees_stored_as_list(self, store, uid):
        save_profile(store, uid, ProfileForm(shop_name="Acme", employees="Ana\nBen"))
        assert get_profile(store, uid).employees == ["Ana", "Ben"]
