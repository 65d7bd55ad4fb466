"""SQLiteStore: single-file store for power users and CI caching.

Each put() is its own transaction; a crash rolls back to the last committed
document.

Schema:
  documents: one row per (target, name); body holds the JSON document.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from prtask_store.base import BaseStore, StorageIOError

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    target      TEXT NOT NULL,
    name        TEXT NOT NULL,
    body        TEXT NOT NULL,
    updated_at  TEXT,
    PRIMARY KEY (target, name)
);
CREATE INDEX IF NOT EXISTS idx_documents_target ON documents (target);
"""


class SQLiteStore(BaseStore):
    """Stores task documents in a local SQLite database file.

    The database file path defaults to `.prtask.db` in the current working
    directory. Configure via .prtask.yml: `store_path: /path/to/prtask.db`.
    """

    def __init__(self, db_path: str = ".prtask.db"):
        try:
            self._conn = sqlite3.connect(db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError(f"Could not open {db_path}: {e}") from e

    def get(self, target: str, name: str) -> Any | None:
        try:
            row = self._conn.execute(
                "SELECT body FROM documents WHERE target=? AND name=?",
                (target, name),
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageIOError(f"Could not read {target}/{name}: {e}") from e
        if row is None:
            return None
        try:
            return json.loads(row["body"])
        except json.JSONDecodeError as e:
            raise StorageIOError(f"Corrupt document {target}/{name}: {e}") from e

    def put(self, target: str, name: str, value: Any) -> None:
        try:
            body = json.dumps(value, ensure_ascii=False)
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO documents (target, name, body, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(target, name) DO UPDATE SET
                      body=excluded.body,
                      updated_at=excluded.updated_at
                    """,
                    (target, name, body, datetime.now(timezone.utc).isoformat()),
                )
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise StorageIOError(f"Could not write {target}/{name}: {e}") from e

    def delete(self, target: str, name: str) -> None:
        try:
            with self._conn:
                self._conn.execute("DELETE FROM documents WHERE target=? AND name=?", (target, name))
        except sqlite3.Error as e:
            raise StorageIOError(f"Could not delete {target}/{name}: {e}") from e

    def list_targets(self) -> list[str]:
        try:
            rows = self._conn.execute("SELECT DISTINCT target FROM documents ORDER BY target").fetchall()
        except sqlite3.Error as e:
            raise StorageIOError(f"Could not list targets: {e}") from e
        return [r["target"] for r in rows]

    def close(self) -> None:
        self._conn.close()
