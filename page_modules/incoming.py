"""Incoming stock: restock form and received log."""
import logging
from datetime import datetime

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from core.config import APP_TZ
from core.errors import BackendError
from core.schemas import RestockForm, format_validation_error
from core.services import record_incoming
from ui.components import bump_cache, load_incoming, load_products

logger = logging.getLogger(__name__)


def render(ctx):
    """Render the incoming stock page."""
    if st.session_state.get("restock_success"):
        st.toast(st.session_state.pop("restock_message", "Stock received"), icon="\U0001F4E5")
        del st.session_state["restock_success"]
        st.session_state.pop("restock_busy", None)

    st.header("\U0001F4E5 Incoming Stock")
    products = load_products(ctx.store, ctx.uid)
    tab_form, tab_log = st.tabs(["Receive Stock", "Incoming Log"])

    with tab_form:
        if not products:
            st.info("Add a product before logging incoming stock.")
        else:
            _render_form(ctx, products)

    with tab_log:
        _render_log(ctx)


def _render_form(ctx, products):
    by_id = {p.id: p for p in products}
    today = datetime.now(APP_TZ).date()
    busy = st.session_state.get("restock_busy", False)

    with st.form("restock_form", clear_on_submit=True):
        product_id = st.selectbox(
            "Product *",
            list(by_id),
            format_func=lambda pid: f"{by_id[pid].name} | {by_id[pid].sku} (stock: {by_id[pid].current_stock})",
        )
        col1, col2 = st.columns(2)
        quantity = col1.number_input("Quantity Received *", min_value=1, step=1, value=1)
        received_at = col2.date_input("Date Received", value=today, max_value=today)
        col1, col2 = st.columns(2)
        purchase_order = col1.text_input("Purchase Order #")
        supplier = col2.text_input("Supplier", placeholder=by_id[product_id].supplier if product_id else "")
        submitted = st.form_submit_button("\U0001F4E5 Log Incoming Stock", disabled=busy)

    if submitted:
        st.session_state["restock_busy"] = True
        try:
            form = RestockForm(
                product_id=product_id,
                quantity=int(quantity),
                received_at=received_at,
                purchase_order=purchase_order,
                supplier=supplier,
            )
            log = record_incoming(ctx.store, ctx.uid, form)
        except ValidationError as e:
            st.error(format_validation_error(e))
        except ValueError as e:
            st.toast(f"❌ {e}", icon="⚠️")
        except BackendError as e:
            logger.exception("Restock failed")
            st.toast(f"❌ Could not log incoming stock: {e}", icon="⚠️")
        else:
            bump_cache("products", "incoming")
            st.session_state["restock_success"] = True
            st.session_state["restock_message"] = f"Received {log.quantity} x {log.product_name}"
            st.session_state["restock_busy"] = False
            st.rerun()
        st.session_state["restock_busy"] = False


def _render_log(ctx):
    logs = load_incoming(ctx.store, ctx.uid)
    if not logs:
        st.info("No incoming stock logged yet.")
        return
    df = pd.DataFrame(
        [
            {
                "Date Received": log.received_at,
                "Product": log.product_name,
                "SKU": log.product_sku,
                "Quantity": log.quantity,
                "PO #": log.purchase_order,
                "Supplier": log.supplier,
                "Logged At": log.timestamp[:16].replace("T", " "),
            }
            for log in logs
        ]
    )
    st.dataframe(df, width="stretch", hide_index=True)
