"""Sidebar navigation and account controls."""
import streamlit as st

from core.auth import get_current_user, logout
from core.constants import (
    MENU_ADD_PRODUCT,
    MENU_DASHBOARD,
    MENU_INCOMING,
    MENU_OUTGOING,
    MENU_OUTGOING_LOGS,
    MENU_PRODUCTS,
    MENU_PROFILE,
    MENU_SCAN_PASS,
)

MENU = [
    MENU_DASHBOARD,
    MENU_PRODUCTS,
    MENU_ADD_PRODUCT,
    MENU_INCOMING,
    MENU_OUTGOING,
    MENU_OUTGOING_LOGS,
    MENU_SCAN_PASS,
    MENU_PROFILE,
]


def navigate(page, **params):
    """Switch page on the next rerun, e.g. to edit a product."""
    st.session_state["pending_menu"] = page
    st.session_state["page_params"] = params
    st.rerun()


def render_sidebar_menu():
    """Render the sidebar navigation menu with the signed-in account."""
    st.sidebar.markdown("## \U0001F4E6 StockFlow")

    pending = st.session_state.pop("pending_menu", None)
    if pending in MENU:
        st.session_state.menu_selection = pending
    if st.session_state.get("menu_selection") not in MENU:
        st.session_state.menu_selection = MENU[0]
    selected = st.sidebar.radio("Select Page", MENU, key="menu_selection")

    user = get_current_user()
    st.sidebar.markdown("---")
    if user:
        st.sidebar.caption(f"Signed in as **{user.email}**")
    if st.sidebar.button("\U0001F6AA Sign Out", key="sidebar_logout"):
        logout()
        st.toast("Signed out.", icon="\U0001F512")
        st.rerun()
    return selected
