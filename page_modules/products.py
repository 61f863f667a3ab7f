"""Product catalog: search, stock status, edit/delete and export."""
import logging

import streamlit as st

from core.constants import MENU_ADD_PRODUCT
from core.errors import BackendError
from core.services import (
    delete_product,
    export_products_excel,
    export_products_pdf,
    products_frame,
    search_products,
)
from ui.components import bump_cache, load_products, render_products_table
from ui.sidebar import navigate

logger = logging.getLogger(__name__)

STATUS_FILTERS = ["All", "In Stock", "Low Stock", "Out of Stock"]


def render(ctx):
    """Render the products page."""
    if st.session_state.get("product_deleted_success"):
        deleted_name = st.session_state.pop("product_deleted_name", "Product")
        st.toast(f"Deleted '{deleted_name}'", icon="\U0001F5D1️")
        del st.session_state["product_deleted_success"]

    st.header("\U0001F5C2️ Products")
    products = load_products(ctx.store, ctx.uid)
    if not products:
        st.info("No products yet. Add your first product to get started.")
        if st.button("➕ Add Product"):
            navigate(MENU_ADD_PRODUCT)
        return

    col1, col2 = st.columns([3, 1])
    term = col1.text_input("Search", placeholder="Name, SKU or category", key="products_search")
    status = col2.selectbox("Status", STATUS_FILTERS, key="products_status")

    filtered = search_products(products, term)
    df = products_frame(filtered)
    if status != "All":
        df = df[df["status"] == status]

    low = int((products_frame(products)["status"] != "In Stock").sum())
    if low:
        st.warning(f"⚠️ {low} product(s) are low or out of stock.")

    render_products_table(df)
    st.caption(f"Showing {len(df)} of {len(products)} products")

    if not df.empty:
        col1, col2 = st.columns(2)
        col1.download_button(
            "Export to Excel",
            data=export_products_excel(df),
            file_name="products_export.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            width="stretch",
        )
        col2.download_button(
            "Export to PDF",
            data=export_products_pdf(df),
            file_name="products_export.pdf",
            mime="application/pdf",
            width="stretch",
        )

    st.markdown("---")
    st.subheader("Manage Product")
    by_id = {p.id: p for p in filtered}
    if not by_id:
        return
    selected_id = st.selectbox(
        "Product",
        list(by_id),
        format_func=lambda pid: f"{by_id[pid].name} | {by_id[pid].sku}",
        key="products_manage",
    )
    product = by_id[selected_id]

    col1, col2 = st.columns(2)
    if col1.button("\U0001F4DD Edit", width="stretch"):
        navigate(MENU_ADD_PRODUCT, product_id=selected_id)

    confirm_key = f"confirm_delete_{selected_id}"
    if col2.button("\U0001F5D1️ Delete", width="stretch"):
        st.session_state[confirm_key] = True
    if st.session_state.get(confirm_key):
        st.warning(f"Delete '{product.name}' ({product.sku})? This cannot be undone.")
        c1, c2 = st.columns(2)
        if c1.button("Yes, delete", key=f"{confirm_key}_yes", type="primary"):
            st.session_state.pop(confirm_key, None)
            try:
                delete_product(ctx.store, ctx.storage, ctx.uid, selected_id)
            except (ValueError, BackendError) as e:
                logger.exception("Delete product failed")
                st.toast(f"❌ Could not delete product: {e}", icon="⚠️")
            else:
                bump_cache("products")
                st.session_state["product_deleted_success"] = True
                st.session_state["product_deleted_name"] = product.name
                st.rerun()
        if c2.button("Cancel", key=f"{confirm_key}_no"):
            st.session_state.pop(confirm_key, None)
            st.rerun()
