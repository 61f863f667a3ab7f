"""Create and return the local database connection (PostgreSQL or SQLite).

Only used when no hosted backend is configured: the local connection then
backs both the data tree (``nodes``) and the account table (``users``).
"""
import logging
import os
import sqlite3

import streamlit as st

from core.config import SQLITE_PATH, postgres_settings
from core.store import DBConnection, is_postgres

logger = logging.getLogger(__name__)


def init_schema(conn: DBConnection) -> None:
    """Create tables for a new database (safe to run on existing DB)."""
    id_type = "SERIAL PRIMARY KEY" if is_postgres(conn) else "INTEGER PRIMARY KEY AUTOINCREMENT"
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS nodes (
            path TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )
    cur.execute(
        f"""
        CREATE TABLE IF NOT EXISTS users (
            id {id_type},
            uid TEXT UNIQUE NOT NULL,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            display_name TEXT,
            created_at TEXT
        )
        """
    )
    conn.commit()


def init_db() -> DBConnection:
    """Initialize database connection.
    Uses PostgreSQL when a ``[postgres]`` secrets section exists, SQLite otherwise.
    Connection pooling is handled by caching in app.py.
    """
    pg = postgres_settings()
    if pg:
        import psycopg2

        try:
            conn = psycopg2.connect(
                host=pg["host"],
                port=int(pg.get("port", 5432)),
                database=pg["database"],
                user=pg["user"],
                password=pg["password"],
                sslmode=pg.get("sslmode", "require"),
                connect_timeout=10,
                options="-c statement_timeout=30000",
            )
            conn.autocommit = False
        except Exception as e:
            logger.exception("PostgreSQL connection failed")
            st.error(f"⚠️ PostgreSQL connection failed: {e}")
            st.stop()
    else:
        conn = connect_sqlite(SQLITE_PATH)

    init_schema(conn)
    return conn


def connect_sqlite(path: str) -> sqlite3.Connection:
    """Create local SQLite connection (ensures the parent dir exists)."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    return sqlite3.connect(path, check_same_thread=False)
