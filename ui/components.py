"""Reusable UI components."""
import base64
import logging
from pathlib import Path

import pandas as pd
import streamlit as st
import streamlit.components.v1 as components

from core import services
from core.gate_pass import qr_png, slip_pdf, slip_print_html
from core.schemas import GatePass

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Cached reads; writers bump the version key so the next read refetches
# ---------------------------------------------------------------------------

def bump_cache(*names):
    """Invalidate cached reads, e.g. ``bump_cache("products", "incoming")``."""
    for name in names:
        key = f"{name}_cache_version"
        st.session_state[key] = st.session_state.get(key, 0) + 1


def _version(name):
    return st.session_state.get(f"{name}_cache_version", 0)


@st.cache_data(ttl=30, show_spinner=False)
def _fetch_products(_store, uid, version):
    return services.get_products(_store, uid)


@st.cache_data(ttl=30, show_spinner=False)
def _fetch_incoming(_store, uid, version):
    return services.list_incoming_logs(_store, uid)


@st.cache_data(ttl=30, show_spinner=False)
def _fetch_gate_passes(_store, uid, version):
    return services.list_gate_passes(_store, uid)


@st.cache_data(ttl=300, show_spinner=False)
def _fetch_profile(_store, uid, version):
    return services.get_profile(_store, uid)


def load_products(store, uid):
    return _fetch_products(store, uid, _version("products"))


def load_incoming(store, uid):
    return _fetch_incoming(store, uid, _version("incoming"))


def load_gate_passes(store, uid):
    return _fetch_gate_passes(store, uid, _version("gate_passes"))


def load_profile(store, uid):
    return _fetch_profile(store, uid, _version("profile"))


# ---------------------------------------------------------------------------
# Widgets
# ---------------------------------------------------------------------------

def image_to_base64(image_path):
    """Convert local image file to base64 data URI."""
    if not image_path or image_path.startswith(("http://", "https://", "data:")):
        return image_path
    file_path = Path(image_path)
    if not file_path.exists():
        return None
    mime_types = {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".gif": "image/gif",
        ".webp": "image/webp",
    }
    mime = mime_types.get(file_path.suffix.lower(), "image/png")
    b64 = base64.b64encode(file_path.read_bytes()).decode()
    return f"data:{mime};base64,{b64}"


def render_products_table(df: pd.DataFrame):
    """Render products as a table with image thumbnails and stock status."""
    if df.empty:
        st.info("No products to show")
        return

    table_cols = ["image_url", "name", "sku", "category", "current_stock", "status", "unit_price", "supplier"]
    display_df = df.copy()
    for c in table_cols:
        if c not in display_df.columns:
            display_df[c] = ""
    display_df = display_df[table_cols]
    display_df["image_url"] = display_df["image_url"].apply(image_to_base64)
    display_df = display_df.rename(
        columns={
            "image_url": "Image",
            "name": "Name",
            "sku": "SKU",
            "category": "Category",
            "current_stock": "Stock",
            "status": "Status",
            "unit_price": "Unit Price",
            "supplier": "Supplier",
        }
    )

    st.dataframe(
        display_df,
        width="stretch",
        hide_index=True,
        column_config={
            "Image": st.column_config.ImageColumn("Image", help="Product image thumbnail", width="small"),
            "Unit Price": st.column_config.NumberColumn("Unit Price", format="$%.2f"),
        },
    )


def render_gate_pass_details(gate_pass: GatePass):
    """Plain details view of a gate pass."""
    col1, col2 = st.columns(2)
    col1.markdown(f"**Gate Pass No.:** {gate_pass.gate_pass_number}")
    col1.markdown(f"**Date:** {gate_pass.date}")
    col1.markdown(f"**Destination:** {gate_pass.destination}")
    col2.markdown(f"**Reason:** {gate_pass.reason}")
    col2.markdown(f"**Authorized by:** {gate_pass.user_name or gate_pass.user_email}")
    col2.markdown(f"**Total Quantity:** {gate_pass.total_quantity}")

    items_df = pd.DataFrame(
        [
            {"Image": image_to_base64(item.image_url), "Product": item.name, "SKU": item.sku, "Quantity": item.quantity}
            for item in gate_pass.items
        ]
    )
    st.dataframe(
        items_df,
        width="stretch",
        hide_index=True,
        column_config={"Image": st.column_config.ImageColumn("Image", width="small")},
    )
    st.caption(f"Pass ID: {gate_pass.id}")


def render_slip(gate_pass: GatePass, shop_name: str = "", key: str = "slip"):
    """Slip preview with QR code, copy, print and PDF download."""
    content = gate_pass.generated_pass_content
    col_text, col_qr = st.columns([3, 2])
    with col_qr:
        st.image(qr_png(gate_pass.qr_code_data), caption="Scan to look up this pass", width=180)
    with col_text:
        if not content:
            st.info("No printable slip was generated for this pass.")
            return
        # st.code renders a copy-to-clipboard button
        st.code(content, language=None)

    col1, col2 = st.columns(2)
    printing = col1.button("\U0001F5A8️ Print", key=f"{key}_print", width="stretch")
    col2.download_button(
        "\U0001F4C4 Download PDF",
        data=slip_pdf(content, gate_pass.qr_code_data, shop_name),
        file_name=f"gate_pass_{gate_pass.gate_pass_number or gate_pass.id}.pdf",
        mime="application/pdf",
        key=f"{key}_pdf",
        width="stretch",
    )
    if printing:
        st.caption("Printer settings: paper size 80mm, scale 100%, margins none.")
        components.html(slip_print_html(content, gate_pass.qr_code_data, shop_name), height=10)
