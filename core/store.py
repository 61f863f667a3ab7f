"""Hierarchical data store used for every per-user record.

Records live at slash separated paths such as
``Stockflow/{uid}/product/{productId}``. Two implementations share one
interface:

* ``RealtimeDatabaseStore`` talks to the hosted realtime database REST API.
* ``SqlTreeStore`` keeps the same tree in a SQLite/PostgreSQL table so the app
  runs locally without any hosted backend.
"""
from __future__ import annotations

import json
import logging
import secrets
import sqlite3
import time
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import requests

from core.errors import BackendError

try:
    import psycopg2
    import psycopg2.extensions
except ImportError:
    psycopg2 = None

logger = logging.getLogger(__name__)

DBConnection = Union[sqlite3.Connection, "psycopg2.extensions.connection"]

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"
REQUEST_TIMEOUT = 15


def is_postgres(conn: DBConnection) -> bool:
    """Check if connection is PostgreSQL."""
    return psycopg2 is not None and isinstance(conn, psycopg2.extensions.connection)


def generate_push_id(now_ms: Optional[int] = None) -> str:
    """Return a 20 character, chronologically sortable id.

    The first 8 characters encode the timestamp, the remaining 12 are random,
    matching the shape of keys created by the hosted database's ``push()``.
    """
    now_ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    stamp = []
    for _ in range(8):
        stamp.append(PUSH_CHARS[now_ms % 64])
        now_ms //= 64
    suffix = "".join(secrets.choice(PUSH_CHARS) for _ in range(12))
    return "".join(reversed(stamp)) + suffix


def join_path(*parts: Any) -> str:
    """Join path segments, dropping empty ones and stray slashes."""
    cleaned = []
    for part in parts:
        for seg in str(part).split("/"):
            if seg:
                cleaned.append(seg)
    return "/".join(cleaned)


def flatten(path: str, value: Any) -> Iterable[Tuple[str, Any]]:
    """Yield ``(leaf_path, scalar)`` pairs for a nested value.

    Lists are stored as index-keyed children, empty containers and ``None``
    produce no rows.
    """
    if isinstance(value, dict):
        for key, child in value.items():
            yield from flatten(join_path(path, key), child)
    elif isinstance(value, (list, tuple)):
        for idx, child in enumerate(value):
            yield from flatten(join_path(path, idx), child)
    elif value is not None:
        yield path, value


def _listify(node: Any) -> Any:
    if not isinstance(node, dict):
        return node
    node = {k: _listify(v) for k, v in node.items()}
    keys = list(node.keys())
    if keys and all(k.isdigit() for k in keys):
        indexes = sorted(int(k) for k in keys)
        if indexes == list(range(len(indexes))):
            return [node[str(i)] for i in indexes]
    return node


def unflatten(base: str, rows: Iterable[Tuple[str, Any]]) -> Any:
    """Rebuild the value stored under ``base`` from its leaf rows."""
    root: Dict[str, Any] = {}
    found = False
    for path, value in rows:
        found = True
        if path == base:
            return value
        rel = path[len(base) + 1:] if base else path
        node = root
        segments = rel.split("/")
        for seg in segments[:-1]:
            node = node.setdefault(seg, {})
        node[segments[-1]] = value
    if not found:
        return None
    return _listify(root)


class TreeStore:
    """Interface shared by the store implementations."""

    def get(self, path: str) -> Any:
        raise NotImplementedError

    def set(self, path: str, value: Any) -> None:
        raise NotImplementedError

    def update(self, updates: Dict[str, Any]) -> None:
        """Apply several path writes at once; ``None`` removes a path."""
        raise NotImplementedError

    def remove(self, path: str) -> None:
        self.set(path, None)

    def increment(self, path: str, delta: int) -> int:
        """Atomically add ``delta`` to the number at ``path``; return the new value."""
        raise NotImplementedError

    def push_key(self) -> str:
        return generate_push_id()


class SqlTreeStore(TreeStore):
    """Tree stored as one row per leaf value in the ``nodes`` table.

    Values are JSON encoded so numbers and booleans round-trip.  Every public
    operation commits or rolls back as a single transaction.
    """

    def __init__(self, conn: DBConnection):
        self.conn = conn
        self.placeholder = "%s" if is_postgres(conn) else "?"

    # -- helpers -----------------------------------------------------------
    def _select_subtree(self, cur, path: str):
        p = self.placeholder
        cur.execute(
            f"SELECT path, value FROM nodes WHERE path = {p} "
            f"OR substr(path, 1, {p}) = {p} ORDER BY path",
            (path, len(path) + 1, path + "/"),
        )
        return [(row[0], json.loads(row[1])) for row in cur.fetchall()]

    def _delete_subtree(self, cur, path: str) -> None:
        p = self.placeholder
        cur.execute(
            f"DELETE FROM nodes WHERE path = {p} OR substr(path, 1, {p}) = {p}",
            (path, len(path) + 1, path + "/"),
        )

    def _delete_ancestor_leaves(self, cur, path: str) -> None:
        # A scalar stored at an ancestor would shadow the new subtree
        segments = path.split("/")
        ancestors = ["/".join(segments[:i]) for i in range(1, len(segments))]
        if not ancestors:
            return
        marks = ", ".join([self.placeholder] * len(ancestors))
        cur.execute(f"DELETE FROM nodes WHERE path IN ({marks})", ancestors)

    def _write(self, cur, path: str, value: Any) -> None:
        self._delete_subtree(cur, path)
        if value is None:
            return
        self._delete_ancestor_leaves(cur, path)
        p = self.placeholder
        for leaf, scalar in flatten(path, value):
            cur.execute(
                f"INSERT INTO nodes (path, value) VALUES ({p}, {p})",
                (leaf, json.dumps(scalar)),
            )

    def _rollback(self) -> None:
        try:
            self.conn.rollback()
        except Exception:
            logger.exception("Rollback failed")

    def _failed(self, op: str, path: str, e: Exception) -> BackendError:
        logger.exception("Local database %s %s failed", op, path)
        return BackendError(f"Database error: {e}")

    # -- interface ---------------------------------------------------------
    def get(self, path: str) -> Any:
        path = join_path(path)
        try:
            cur = self.conn.cursor()
            try:
                rows = self._select_subtree(cur, path)
            finally:
                cur.close()
        except Exception as e:
            self._rollback()
            raise self._failed("get", path, e) from e
        return unflatten(path, rows)

    def set(self, path: str, value: Any) -> None:
        self.update({path: value})

    def update(self, updates: Dict[str, Any]) -> None:
        try:
            cur = self.conn.cursor()
            try:
                for path, value in updates.items():
                    self._write(cur, join_path(path), value)
                self.conn.commit()
            finally:
                cur.close()
        except Exception as e:
            self._rollback()
            raise self._failed("update", ", ".join(updates), e) from e

    def increment(self, path: str, delta: int) -> int:
        path = join_path(path)
        p = self.placeholder
        try:
            cur = self.conn.cursor()
            try:
                if is_postgres(self.conn):
                    cur.execute(f"SELECT value FROM nodes WHERE path = {p} FOR UPDATE", (path,))
                else:
                    cur.execute(f"SELECT value FROM nodes WHERE path = {p}", (path,))
                row = cur.fetchone()
                current = json.loads(row[0]) if row else 0
                if not isinstance(current, (int, float)) or isinstance(current, bool):
                    current = 0
                new_value = current + delta
                self._write(cur, path, new_value)
                self.conn.commit()
            finally:
                cur.close()
        except Exception as e:
            self._rollback()
            raise self._failed("increment", path, e) from e
        return new_value


class RealtimeDatabaseStore(TreeStore):
    """Hosted realtime database accessed through its REST API.

    ``id_token`` is the signed-in user's token; the database rules scope every
    read and write to ``{root}/{uid}``.
    """

    def __init__(self, database_url: str, id_token: Optional[str] = None, session=None):
        self.database_url = database_url.rstrip("/")
        self.id_token = id_token
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return f"{self.database_url}/{join_path(path)}.json"

    def _params(self) -> dict:
        return {"auth": self.id_token} if self.id_token else {}

    def _request(self, method: str, path: str, payload: Any = None) -> Any:
        try:
            response = self.session.request(
                method,
                self._url(path),
                params=self._params(),
                data=None if payload is None else json.dumps(payload),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.exception("Realtime database %s %s failed", method, path)
            raise BackendError(f"Could not reach the database: {e}") from e
        if response.status_code >= 400:
            try:
                detail = response.json().get("error", response.text)
            except ValueError:
                detail = response.text
            logger.error("Realtime database %s %s -> %s: %s", method, path, response.status_code, detail)
            raise BackendError(f"Database request failed ({response.status_code}): {detail}")
        if not response.content:
            return None
        return response.json()

    def get(self, path: str) -> Any:
        return self._request("GET", path)

    def set(self, path: str, value: Any) -> None:
        if value is None:
            self._request("DELETE", path)
        else:
            self._request("PUT", path, value)

    def update(self, updates: Dict[str, Any]) -> None:
        # A PATCH at the root with slash separated keys is applied atomically
        self._request("PATCH", "", {join_path(k): v for k, v in updates.items()})

    def increment(self, path: str, delta: int) -> int:
        # The PUT response carries the value the server computed
        value = self._request("PUT", path, {".sv": {"increment": delta}})
        return int(value or 0)
