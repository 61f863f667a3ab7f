"""StockFlow - Main Application Entry Point."""
import logging

import streamlit as st

from core.auth import get_current_user, login_form, require_auth, subscribe_auth_state
from core.backend import AppContext, build_backend
from core.config import LOG_LEVEL
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
from core.mobile_styles import apply_mobile_styles
from page_modules import add_product, dashboard, incoming, outgoing, outgoing_logs, products, profile, scan_pass
from ui.sidebar import render_sidebar_menu

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Page configuration
st.set_page_config(
    page_title="StockFlow",
    page_icon="\U0001F4E6",
    layout="wide",
)

apply_mobile_styles()


# Backend clients and the local DB connection are shared across sessions
@st.cache_resource
def get_backend():
    return build_backend()


backend = get_backend()


def _on_auth_change(user):
    # Page state belongs to the previous user
    for key in ("menu_selection", "page_params", "dispatch_result", "scan_pass_id", "profile_pending"):
        st.session_state.pop(key, None)


subscribe_auth_state("app", _on_auth_change)

if not require_auth(backend.auth):
    login_form(backend.auth)
    st.stop()

ctx = AppContext(backend, get_current_user())

menu = render_sidebar_menu()

pages = {
    MENU_DASHBOARD: dashboard.render,
    MENU_PRODUCTS: products.render,
    MENU_ADD_PRODUCT: add_product.render,
    MENU_INCOMING: incoming.render,
    MENU_OUTGOING: outgoing.render,
    MENU_OUTGOING_LOGS: outgoing_logs.render,
    MENU_SCAN_PASS: scan_pass.render,
    MENU_PROFILE: profile.render,
}

if menu not in pages:
    menu = MENU_DASHBOARD
pages[menu](ctx)
