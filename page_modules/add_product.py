"""Add/Edit product page."""
import logging

import streamlit as st
from pydantic import ValidationError
from streamlit_free_text_select import st_free_text_select

from core.constants import IMAGE_EXTENSIONS, PRODUCT_CATEGORIES
from core.errors import BackendError
from core.schemas import ProductForm, format_validation_error
from core.services import add_product, update_product
from ui.components import bump_cache, image_to_base64, load_products

logger = logging.getLogger(__name__)

MODE_CREATE = "\U0001F9FE Create New Product"
MODE_EDIT = "\U0001F4DD Edit Existing Product"
FIELDS = ["name", "sku", "category", "supplier", "stock", "price", "desc"]


def _suggest_input(label: str, options, key: str) -> str:
    """Free-text input with suggestions; reuses the existing spelling when it matches."""
    options = sorted({o for o in options if o}, key=str.casefold)
    value = (st_free_text_select(label, options, key=key, placeholder="Type to search or add") or "").strip()
    match = next((o for o in options if o.casefold() == value.casefold()), None)
    return match or value


def _uploaded_image(key: str):
    uploaded = st.file_uploader("Product Image", type=IMAGE_EXTENSIONS, key=key)
    if uploaded is None:
        return None
    return uploaded.name, uploaded.getvalue(), uploaded.type


def _product_fields(prefix: str, products) -> dict:
    """Render the shared product inputs and return their raw values."""
    col1, col2 = st.columns(2)
    with col1:
        name = st.text_input("Product Name *", key=f"{prefix}_name")
    with col2:
        sku = st.text_input("SKU *", key=f"{prefix}_sku")
    col1, col2 = st.columns(2)
    with col1:
        category = _suggest_input(
            "Category", PRODUCT_CATEGORIES + [p.category for p in products], f"{prefix}_category"
        )
    with col2:
        supplier = _suggest_input("Supplier", [p.supplier for p in products], f"{prefix}_supplier")
    col1, col2 = st.columns(2)
    with col1:
        stock = st.number_input("Current Stock", min_value=0, step=1, key=f"{prefix}_stock")
    with col2:
        price = st.number_input(
            "Unit Price", min_value=0.0, value=None, step=0.01, format="%.2f",
            placeholder="Not set", key=f"{prefix}_price",
        )
    desc = st.text_area("Description", key=f"{prefix}_desc")
    return {
        "name": name,
        "sku": sku,
        "description": desc,
        "category": category,
        "current_stock": int(stock),
        "unit_price": optional_price(price),
        "supplier": supplier,
    }


def optional_price(value):
    """An empty price input means "not set"; 0.00 is a real price."""
    return None if value is None else float(value)


def _reset(prefix: str):
    for field in FIELDS:
        st.session_state.pop(f"{prefix}_{field}", None)
    st.session_state.pop(f"{prefix}_selected_prev", None)
    # File uploaders cannot be cleared through session state; rotate the key
    st.session_state[f"{prefix}_image_nonce"] = st.session_state.get(f"{prefix}_image_nonce", 0) + 1


def render(ctx):
    """Render the add/edit product page."""
    if st.session_state.get("product_saved_success"):
        st.toast(st.session_state.pop("product_saved_message", "Product saved"), icon="✅")
        del st.session_state["product_saved_success"]
        st.session_state.pop("save_product_busy", None)

    st.header("➕ Add / Edit Product")
    products = load_products(ctx.store, ctx.uid)

    params = st.session_state.pop("page_params", None) or {}
    if params.get("product_id"):
        st.session_state["add_mode"] = MODE_EDIT
        st.session_state["edit_product_id"] = params["product_id"]

    mode = st.radio("Choose option", [MODE_CREATE, MODE_EDIT], horizontal=True, key="add_mode")
    if mode == MODE_EDIT:
        _render_edit(ctx, products)
    else:
        _render_create(ctx, products)


def _render_create(ctx, products):
    if st.session_state.pop("reset_add_form", False):
        _reset("add")

    values = _product_fields("add", products)
    image = _uploaded_image(f"add_image_{st.session_state.get('add_image_nonce', 0)}")
    if image:
        st.image(image[1], width=160)

    busy = st.session_state.get("save_product_busy", False)
    if st.button("✅ Add Product", disabled=busy or not values["name"] or not values["sku"]):
        st.session_state["save_product_busy"] = True
        try:
            form = ProductForm(**values)
            product = add_product(ctx.store, ctx.storage, ctx.uid, form, image=image)
        except ValidationError as e:
            st.error(format_validation_error(e))
        except ValueError as e:
            st.toast(f"❌ {e}", icon="⚠️")
        except BackendError as e:
            logger.exception("Add product failed")
            st.toast(f"❌ Could not add product: {e}", icon="⚠️")
        else:
            bump_cache("products")
            st.session_state["product_saved_success"] = True
            st.session_state["product_saved_message"] = f"Product '{product.name}' added"
            st.session_state["reset_add_form"] = True
            st.session_state["save_product_busy"] = False
            st.rerun()
        st.session_state["save_product_busy"] = False


def _render_edit(ctx, products):
    if not products:
        st.info("No products yet. Create one first.")
        return

    by_id = {p.id: p for p in products}
    ids = list(by_id)
    current = st.session_state.get("edit_product_id")
    selected_id = st.selectbox(
        "Select Product",
        ids,
        index=ids.index(current) if current in by_id else 0,
        format_func=lambda pid: f"{by_id[pid].name} | {by_id[pid].sku}",
    )
    st.session_state["edit_product_id"] = selected_id
    product = by_id[selected_id]

    # Load the record into the widgets when the selection changes
    if st.session_state.get("edit_selected_prev") != selected_id:
        st.session_state["edit_selected_prev"] = selected_id
        st.session_state["edit_name"] = product.name
        st.session_state["edit_sku"] = product.sku
        st.session_state["edit_category"] = product.category
        st.session_state["edit_supplier"] = product.supplier
        st.session_state["edit_stock"] = int(product.current_stock)
        st.session_state["edit_price"] = None if product.unit_price is None else float(product.unit_price)
        st.session_state["edit_desc"] = product.description

    values = _product_fields("edit", products)

    remove_image = False
    if product.image_url:
        preview = image_to_base64(product.image_url)
        if preview:
            st.image(preview, width=160, caption="Current image")
        remove_image = st.checkbox("Remove current image", key=f"edit_remove_image_{selected_id}")
    image = _uploaded_image(f"edit_image_{selected_id}_{st.session_state.get('edit_image_nonce', 0)}")

    busy = st.session_state.get("save_product_busy", False)
    if st.button("\U0001F4BE Update Product", width="stretch", disabled=busy):
        st.session_state["save_product_busy"] = True
        try:
            form = ProductForm(**values)
            updated = update_product(
                ctx.store, ctx.storage, ctx.uid, selected_id, form, image=image, remove_image=remove_image
            )
        except ValidationError as e:
            st.error(format_validation_error(e))
        except ValueError as e:
            st.toast(f"❌ {e}", icon="⚠️")
        except BackendError as e:
            logger.exception("Update product failed")
            st.toast(f"❌ Could not update product: {e}", icon="⚠️")
        else:
            bump_cache("products")
            _reset("edit")
            st.session_state["product_saved_success"] = True
            st.session_state["product_saved_message"] = f"Product '{updated.name}' updated"
            st.session_state["save_product_busy"] = False
            st.rerun()
        st.session_state["save_product_busy"] = False
