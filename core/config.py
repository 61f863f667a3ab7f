"""Settings lookup: Streamlit secrets first, then environment variables.

A local ``.env`` file next to the project root is loaded on import so that
local development can keep credentials out of the shell profile.
"""
import logging
import os
from pathlib import Path
from typing import Any, Optional
from zoneinfo import ZoneInfo

import streamlit as st
from dotenv import load_dotenv

from core.constants import LOW_STOCK_THRESHOLD_DEFAULT

logger = logging.getLogger(__name__)

_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


def _secrets_section(section: str) -> dict:
    try:
        if section in st.secrets:
            return dict(st.secrets[section])
    except Exception:
        # No secrets.toml on this machine
        logger.debug("No secrets section %s", section)
    return {}


def get_setting(name: str, default: Any = None, section: Optional[str] = None) -> Any:
    """Return a setting from ``st.secrets`` (optionally inside ``section``),
    falling back to the environment variable of the same upper-cased name.
    """
    if section:
        value = _secrets_section(section).get(name)
        if value not in (None, ""):
            return value
        env_name = f"{section}_{name}".upper()
    else:
        try:
            value = st.secrets.get(name)
        except Exception:
            value = None
        if value not in (None, ""):
            return value
        env_name = name.upper()
    return os.getenv(env_name, default)


def firebase_settings() -> dict:
    """Hosted backend settings; empty values mean "not configured"."""
    return {
        "api_key": get_setting("api_key", "", section="firebase"),
        "database_url": (get_setting("database_url", "", section="firebase") or "").rstrip("/"),
        "storage_bucket": get_setting("storage_bucket", "", section="firebase"),
    }


def hosted_backend_enabled() -> bool:
    settings = firebase_settings()
    return bool(settings["api_key"] and settings["database_url"])


def ai_settings() -> dict:
    return {
        "api_key": get_setting("api_key", "", section="ai") or os.getenv("GEMINI_API_KEY", ""),
        "model": get_setting("model", "", section="ai") or os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
    }


def postgres_settings() -> Optional[dict]:
    section = _secrets_section("postgres")
    return section or None


ROOT_NODE: str = get_setting("STOCKFLOW_ROOT", "Stockflow")
APP_TZ = ZoneInfo(get_setting("APP_TIMEZONE", "UTC"))
LOG_LEVEL: str = str(get_setting("LOG_LEVEL", "INFO")).upper()
LOW_STOCK_THRESHOLD: int = int(get_setting("LOW_STOCK_THRESHOLD", LOW_STOCK_THRESHOLD_DEFAULT))
SQLITE_PATH: str = get_setting("SQLITE_PATH", "data/stockflow.db")
