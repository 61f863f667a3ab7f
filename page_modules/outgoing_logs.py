"""Gate pass log: list of dispatches with slip view and regeneration."""
import logging

import pandas as pd
import streamlit as st

from core.services import attach_slip
from ui.components import bump_cache, load_gate_passes, load_profile, render_gate_pass_details, render_slip

logger = logging.getLogger(__name__)


def render(ctx):
    """Render the gate pass log page."""
    st.header("\U0001F9FE Gate Pass Log")
    passes = load_gate_passes(ctx.store, ctx.uid)
    if not passes:
        st.info("No gate passes yet.")
        return

    term = st.text_input("Filter", placeholder="Destination, product or pass number", key="passes_filter")
    term = term.strip().casefold()
    if term:
        passes = [
            gp for gp in passes
            if term in gp.destination.casefold()
            or term == str(gp.gate_pass_number)
            or any(term in item.name.casefold() for item in gp.items)
        ]

    df = pd.DataFrame(
        [
            {
                "No.": gp.gate_pass_number,
                "Date": gp.date,
                "Destination": gp.destination,
                "Items": ", ".join(f"{item.name} x{item.quantity}" for item in gp.items),
                "Total Qty": gp.total_quantity,
                "Reason": gp.reason,
                "By": gp.user_name or gp.user_email,
                "Slip": "✅" if gp.generated_pass_content else "—",
            }
            for gp in passes
        ]
    )
    st.dataframe(df, width="stretch", hide_index=True)
    if not passes:
        return

    by_id = {gp.id: gp for gp in passes}
    selected_id = st.selectbox(
        "View gate pass",
        list(by_id),
        format_func=lambda pid: f"#{by_id[pid].gate_pass_number} | {by_id[pid].date} | {by_id[pid].destination}",
        key="passes_selected",
    )
    gate_pass = by_id[selected_id]
    shop_name = load_profile(ctx.store, ctx.uid).shop_name

    with st.container(border=True):
        render_gate_pass_details(gate_pass)
        render_slip(gate_pass, shop_name, key=f"log_{gate_pass.id}")
        if not gate_pass.generated_pass_content:
            if st.button("\U0001F504 Generate Slip", key=f"regen_{gate_pass.id}"):
                with st.spinner("Generating slip..."):
                    error = attach_slip(ctx.store, ctx.uid, gate_pass, ctx.slip_generator, shop_name)
                if error:
                    st.toast(f"❌ {error}", icon="⚠️")
                else:
                    bump_cache("gate_passes")
                    st.rerun()
