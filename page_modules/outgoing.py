"""Outgoing stock: dispatch form that creates a gate pass."""
import logging
from datetime import datetime

import pandas as pd
import streamlit as st
from pydantic import ValidationError

from core.config import APP_TZ
from core.constants import DISPATCH_REASONS
from core.errors import BackendError
from core.schemas import DispatchForm, GatePassLine, format_validation_error
from core.services import create_gate_pass
from ui.components import bump_cache, load_products, load_profile, render_gate_pass_details, render_slip

logger = logging.getLogger(__name__)


def _product_label(product) -> str:
    return f"{product.name} | {product.sku}"


@st.dialog("Gate Pass Generated", width="large")
def _gate_pass_dialog(gate_pass, shop_name, slip_error=None):
    if slip_error:
        st.warning(f"Stock was dispatched, but the printable slip could not be generated: {slip_error}")
    render_gate_pass_details(gate_pass)
    render_slip(gate_pass, shop_name, key=f"dialog_{gate_pass.id}")


def render(ctx):
    """Render the outgoing stock page."""
    st.header("\U0001F4E4 Outgoing Stock")
    st.caption("Record products leaving inventory and generate gate passes.")

    result = st.session_state.pop("dispatch_result", None)
    if result is not None:
        st.toast(f"Gate pass #{result.gate_pass.gate_pass_number} created", icon="✅")
        shop_name = load_profile(ctx.store, ctx.uid).shop_name
        _gate_pass_dialog(result.gate_pass, shop_name, result.slip_error)

    products = load_products(ctx.store, ctx.uid)
    in_stock = [p for p in products if p.current_stock > 0]
    if not in_stock:
        st.info("No products in stock to dispatch.")
        return

    by_label = {_product_label(p): p for p in in_stock}
    today = datetime.now(APP_TZ).date()
    editor_key = f"dispatch_lines_{st.session_state.get('dispatch_nonce', 0)}"

    st.markdown("**Items** (add a row per product)")
    lines_df = st.data_editor(
        pd.DataFrame({"Product": pd.Series([], dtype="object"), "Quantity": pd.Series([], dtype="int64")}),
        num_rows="dynamic",
        width="stretch",
        hide_index=True,
        key=editor_key,
        column_config={
            "Product": st.column_config.SelectboxColumn("Product", options=list(by_label), required=True),
            "Quantity": st.column_config.NumberColumn("Quantity", min_value=1, step=1, default=1, required=True),
        },
    )

    lines = []
    for _, row in lines_df.dropna(subset=["Product"]).iterrows():
        product = by_label.get(row["Product"])
        if product is None:
            continue
        qty = int(row["Quantity"]) if pd.notna(row["Quantity"]) else 0
        lines.append({"product_id": product.id, "quantity": qty})
        if qty > product.current_stock:
            st.caption(f"⚠️ Only {product.current_stock} of {product.name} in stock.")

    col1, col2 = st.columns(2)
    destination = col1.text_input("Destination *", key="dispatch_destination")
    dispatched_at = col2.date_input("Date of Dispatch", value=today, max_value=today, key="dispatch_date")
    reason_choice = st.selectbox("Reason *", DISPATCH_REASONS + ["Other"], key="dispatch_reason_choice")
    reason = reason_choice
    if reason_choice == "Other":
        reason = st.text_area("Describe the reason *", key="dispatch_reason_other")

    busy = st.session_state.get("dispatch_busy", False)
    if st.button("\U0001F4E4 Dispatch & Generate Gate Pass", disabled=busy or not lines, type="primary"):
        st.session_state["dispatch_busy"] = True
        try:
            form = DispatchForm(
                items=[GatePassLine(**line) for line in lines],
                destination=destination,
                reason=reason,
                dispatched_at=dispatched_at,
            )
            with st.spinner("Recording dispatch and generating gate pass..."):
                result = create_gate_pass(
                    ctx.store,
                    ctx.uid,
                    form,
                    user_name=ctx.user.name,
                    user_email=ctx.user.email,
                    slip_generator=ctx.slip_generator,
                    shop_name=load_profile(ctx.store, ctx.uid).shop_name,
                )
        except ValidationError as e:
            st.error(format_validation_error(e))
        except ValueError as e:
            st.toast(f"❌ {e}", icon="⚠️")
        except BackendError as e:
            logger.exception("Dispatch failed")
            st.toast(f"❌ Could not record dispatch: {e}", icon="⚠️")
        else:
            bump_cache("products", "gate_passes")
            st.session_state["dispatch_result"] = result
            st.session_state["dispatch_nonce"] = st.session_state.get("dispatch_nonce", 0) + 1
            for key in ("dispatch_destination", "dispatch_reason_other"):
                st.session_state.pop(key, None)
            st.session_state["dispatch_busy"] = False
            st.rerun()
        st.session_state["dispatch_busy"] = False
