"""Shop profile: name, contact, address and employees."""
import logging

import streamlit as st
from pydantic import ValidationError

from core.auth import password_confirmation
from core.errors import BackendError
from core.schemas import ProfileForm, format_validation_error
from core.services import save_profile
from ui.components import bump_cache, load_profile

logger = logging.getLogger(__name__)


def render(ctx):
    """Render the profile page."""
    if st.session_state.pop("profile_saved_success", False):
        st.toast("Profile updated", icon="✅")

    st.header("\U0001F464 Profile")
    st.caption(f"Account: {ctx.user.email}")
    profile = load_profile(ctx.store, ctx.uid)

    pending = st.session_state.get("profile_pending")
    if pending is not None:
        if password_confirmation(ctx.auth, "profile_pending", "save your profile"):
            try:
                save_profile(ctx.store, ctx.uid, pending)
            except BackendError as e:
                logger.exception("Profile save failed")
                st.toast(f"❌ Could not save profile: {e}", icon="⚠️")
            else:
                st.session_state.pop("profile_pending", None)
                bump_cache("profile")
                st.session_state["profile_saved_success"] = True
                st.rerun()
        return

    with st.form("profile_form"):
        shop_name = st.text_input("Shop Name *", value=profile.shop_name)
        contact_no = st.text_input("Contact No.", value=profile.contact_no, placeholder="+1 555 123 4567")
        address = st.text_area("Address", value=profile.address, max_chars=250)
        employees = st.text_area(
            "Employees (one per line)",
            value="\n".join(profile.employees),
            help="Names are trimmed and duplicates removed.",
        )
        submitted = st.form_submit_button("\U0001F4BE Save Profile")

    if submitted:
        try:
            form = ProfileForm(shop_name=shop_name, contact_no=contact_no, address=address, employees=employees)
        except ValidationError as e:
            st.error(format_validation_error(e))
        else:
            st.session_state["profile_pending"] = form
            st.rerun()
