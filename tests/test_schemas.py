"""
Form and record schema tests.

Verifies:
- Quantities below 1 and future dates are rejected
- Product, profile and sign-up rules
- Records serialize with camelCase keys and without their id
"""

from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from core.schemas import (
    DispatchForm,
    GatePassLine,
    LoginForm,
    Product,
    ProductForm,
    ProfileForm,
    RestockForm,
    SignupForm,
    format_validation_error,
)


class TestProductForm:

    def test_valid_product_is_stripped(self):
        form = ProductForm(name="  Wireless Mouse ", sku=" WM-1 ", current_stock=3, unit_price=12.5)
        assert form.name == "Wireless Mouse"
        assert form.sku == "WM-1"

    def test_short_name_rejected(self):
        with pytest.raises(ValidationError):
            ProductForm(name="ab", sku="X")

    def test_negative_stock_rejected(self):
        with pytest.raises(ValidationError):
            ProductForm(name="Mouse", sku="X", current_stock=-1)

    def test_sku_required(self):
        with pytest.raises(ValidationError):
            ProductForm(name="Mouse", sku="   ")


class TestStockForms:

    @pytest.mark.parametrize("qty", [0, -3])
    def test_restock_quantity_below_one_rejected(self, qty):
        with pytest.raises(ValidationError):
            RestockForm(product_id="p1", quantity=qty)

    def test_restock_future_date_rejected(self):
        with pytest.raises(ValidationError, match="cannot be in the future"):
            RestockForm(product_id="p1", quantity=1, received_at=date.today() + timedelta(days=2))

    def test_restock_defaults_to_today(self):
        form = RestockForm(product_id="p1", quantity=5)
        assert form.received_at <= date.today() + timedelta(days=1)

    def test_gate_pass_line_quantity_below_one_rejected(self):
        with pytest.raises(ValidationError):
            GatePassLine(product_id="p1", quantity=0)

    def test_dispatch_requires_items(self):
        with pytest.raises(ValidationError):
            DispatchForm(items=[], destination="Branch 2", reason="Transfer")

    def test_dispatch_short_destination_rejected(self):
        with pytest.raises(ValidationError):
            DispatchForm(items=[GatePassLine(product_id="p1", quantity=1)], destination="AB", reason="Transfer")


class TestProfileForm:

    def test_employees_trimmed_and_deduplicated(self):
        form = ProfileForm(shop_name="Acme", employees=" Ana \n\nBen\nana\n")
        assert form.employees == ["Ana", "Ben"]

    @pytest.mark.parametrize("contact", ["", "+961 70-123456", "0123456789"])
    def test_valid_contacts(self, contact):
        assert ProfileForm(shop_name="Acme", contact_no=contact).contact_no == contact

    @pytest.mark.parametrize("contact", ["12345", "call me maybe", "+1234567890123456789"])
    def test_invalid_contacts(self, contact):
        with pytest.raises(ValidationError):
            ProfileForm(shop_name="Acme", contact_no=contact)

    def test_address_length_limit(self):
        with pytest.raises(ValidationError):
            ProfileForm(shop_name="Acme", address="x" * 251)


class TestAuthForms:

    def test_password_mismatch(self):
        with pytest.raises(ValidationError) as exc:
            SignupForm(email="a@b.co", password="secret1", confirm_password="secret2")
        assert "Passwords don't match." in format_validation_error(exc.value)

    def test_short_password(self):
        with pytest.raises(ValidationError):
            SignupForm(email="a@b.co", password="12345", confirm_password="12345")

    def test_invalid_email(self):
        with pytest.raises(ValidationError):
            LoginForm(email="not-an-email", password="x")


class TestRecords:

    def test_to_store_uses_camel_case_and_drops_id(self):
        product = Product(id="p1", name="Mouse", sku="M1", current_stock=4, image_url="u")
        data = product.to_store()
        assert "id" not in data
        assert data["currentStock"] == 4
        assert data["imageUrl"] == "u"
        assert "unitPrice" not in data

    def test_records_accept_stored_keys(self):
        product = Product.model_validate({"name": "Mouse", "sku": "M1", "currentStock": 2, "unknown": 1})
        assert product.current_stock == 2

    def test_format_validation_error_names_fields(self):
        with pytest.raises(ValidationError) as exc:
            ProductForm(name="ab", sku="X")
        assert format_validation_error(exc.value).startswith("name:")
