# src/store/sqlite_store.py — v1
"""SQLite-based object store (STORE_BACKEND=sqlite).

Uses stdlib sqlite3, no external dependency. One row per object, keyed by
(kind, namespace, name).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from seqctl.store.base_store import BaseObjectStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS objects (
    kind TEXT NOT NULL,
    namespace TEXT NOT NULL,
    name TEXT NOT NULL,
    data TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (kind, namespace, name)
);
CREATE INDEX IF NOT EXISTS idx_objects_namespace ON objects(namespace);
"""


class SqliteObjectStore(BaseObjectStore):
    """SQLite-backed object store."""

    def __init__(self, db_path: Path | str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    async def _read(self, kind: str, namespace: str, name: str) -> dict[str, Any] | None:
        cursor = self._conn.execute(
            "SELECT data FROM objects WHERE kind = ? AND namespace = ? AND name = ?",
            (kind, namespace, name),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def _write(self, kind: str, namespace: str, name: str, data: dict[str, Any]) -> None:
        self._conn.execute(
            """INSERT OR REPLACE INTO objects (kind, namespace, name, data, updated_at)
               VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)""",
            (kind, namespace, name, json.dumps(data, sort_keys=True)),
        )
        self._conn.commit()

    async def _remove(self, kind: str, namespace: str, name: str) -> None:
        self._conn.execute(
            "DELETE FROM objects WHERE kind = ? AND namespace = ? AND name = ?",
            (kind, namespace, name),
        )
        self._conn.commit()

    async def _scan(self, kind: str | None, namespace: str | None) -> list[dict[str, Any]]:
        query = "SELECT data FROM objects"
        clauses: list[str] = []
        params: list[str] = []
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind)
        if namespace is not None:
            clauses.append("namespace = ?")
            params.append(namespace)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY kind, namespace, name"
        cursor = self._conn.execute(query, params)
        rows: list[dict[str, Any]] = []
        for (data,) in cursor.fetchall():
            try:
                rows.append(json.loads(data))
            except json.JSONDecodeError as e:
                logger.warning("Skipping undecodable object row: %s", e)
        return rows

    async def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
