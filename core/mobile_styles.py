"""Mobile-friendly CSS styles for the app."""
import streamlit as st


def apply_mobile_styles():
    """Apply mobile-responsive CSS styles."""
    st.markdown("""
    <style>
    /* Expand main content when sidebar is collapsed */
    section[data-testid="stSidebar"][aria-expanded="false"] ~ div[data-testid="stAppViewContainer"] {
        margin-left: 0 !important;
    }

    section[data-testid="stSidebar"] {
        width: 17rem !important;
        min-width: 17rem !important;
    }

    /* Summary cards */
    div[data-testid="stMetric"] {
        border: 1px solid rgba(128, 128, 128, 0.25);
        border-radius: 0.5rem;
        padding: 0.75rem 1rem;
    }

    @media (max-width: 768px) {
        /* Larger touch targets for buttons */
        .stButton button {
            min-height: 48px !important;
            font-size: 16px !important;
        }

        .block-container {
            padding-left: 1rem !important;
            padding-right: 1rem !important;
        }

        /* Form inputs - prevent zoom on iOS */
        input, select, textarea {
            font-size: 16px !important;
        }
    }
    </style>
    """, unsafe_allow_html=True)
