"""Look up a gate pass by scanning its QR code or typing the Pass ID."""
import logging

import streamlit as st

from core.errors import BackendError
from core.gate_pass import decode_qr
from core.services import get_gate_pass
from ui.components import load_profile, render_gate_pass_details, render_slip

logger = logging.getLogger(__name__)


def _lookup(ctx, pass_id: str):
    try:
        gate_pass = get_gate_pass(ctx.store, ctx.uid, pass_id)
    except ValueError as e:
        st.warning(str(e))
        return
    except BackendError as e:
        logger.exception("Gate pass lookup failed")
        st.error(f"❌ Could not look up gate pass: {e}")
        return
    if gate_pass is None:
        st.error(f"No gate pass found with ID '{pass_id.strip()}'.")
        return
    st.success(f"Gate pass #{gate_pass.gate_pass_number} found.")
    render_gate_pass_details(gate_pass)
    render_slip(gate_pass, load_profile(ctx.store, ctx.uid).shop_name, key=f"scan_{gate_pass.id}")


def render(ctx):
    """Render the scan gate pass page."""
    st.header("\U0001F4F7 Scan Gate Pass")
    tab_camera, tab_manual = st.tabs(["Camera", "Enter Pass ID"])

    with tab_camera:
        snapshot = st.camera_input("Point the camera at the gate pass QR code")
        if snapshot is not None:
            try:
                pass_id = decode_qr(snapshot.getvalue())
            except Exception:
                # Unreadable image data; fall back to manual entry
                logger.exception("QR decode failed")
                pass_id = None
            if pass_id:
                st.session_state["scan_pass_id"] = pass_id
            else:
                st.warning("No QR code detected. Try again or enter the Pass ID manually.")

    with tab_manual:
        with st.form("pass_lookup_form"):
            typed = st.text_input("Pass ID", placeholder="e.g. -NxY3...")
            if st.form_submit_button("\U0001F50D Look Up"):
                st.session_state["scan_pass_id"] = typed

    if "scan_pass_id" in st.session_state:
        st.markdown("---")
        _lookup(ctx, st.session_state["scan_pass_id"])
