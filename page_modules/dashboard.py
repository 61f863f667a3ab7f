"""Dashboard page with inventory overview and recent activity."""
import html

import plotly.express as px
import streamlit as st

from core.services import inventory_summary, recent_activity, stock_overview
from ui.components import load_gate_passes, load_incoming, load_products

ACTIVITY_ICONS = {"incoming": "\U0001F7E2", "outgoing": "\U0001F534", "product": "\U0001F4E6"}


def render(ctx):
    """Render the dashboard page."""
    st.header("\U0001F4C8 Inventory Overview")
    products = load_products(ctx.store, ctx.uid)
    incoming = load_incoming(ctx.store, ctx.uid)
    passes = load_gate_passes(ctx.store, ctx.uid)

    summary = inventory_summary(products, incoming, passes)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total Products", summary["total_products"], help="Distinct product types")
    col2.metric("Total Stock Units", f"{summary['total_stock_units']:,}", help="Across all products")
    col3.metric("Incoming Today", f"{summary['incoming_today']:,}", help="Units received")
    col4.metric("Outgoing Today", f"{summary['outgoing_today']:,}", help="Units shipped")

    if not products:
        st.info("No products available")
        return

    col_chart, col_feed = st.columns(2)
    with col_chart:
        st.subheader("Stock Overview")
        st.caption("Current stock levels for top products.")
        chart_df = stock_overview(products)
        fig = px.bar(chart_df, x="name", y="stock", labels={"name": "Product", "stock": "Current Stock"})
        fig.update_layout(height=320, margin=dict(l=10, r=10, t=10, b=10))
        st.plotly_chart(fig, width="stretch")

    with col_feed:
        st.subheader("Recent Activity")
        st.caption("Latest inventory movements.")
        events = recent_activity(products, incoming, passes)
        if not events:
            st.write("No activity yet.")
        for event in events:
            st.markdown(
                f"{ACTIVITY_ICONS.get(event['kind'], '•')} **{html.escape(event['message'])}**  \n"
                f"<span style='color:gray;font-size:0.85em'>{event['timestamp'][:16].replace('T', ' ')}</span>",
                unsafe_allow_html=True,
            )
