import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class KeyValueStore:
    """
    Durable get/set-by-key storage. Values are JSON documents.

    Subclasses implement the raw text operations; JSON encoding lives here so
    every backend persists exactly the same bytes.
    """

    def _read(self, key: str) -> str | None:
        raise NotImplementedError

    def _write(self, key: str, raw: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> list[str]:
        raise NotImplementedError

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._read(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._write(key, json.dumps(value, ensure_ascii=False, separators=(",", ":")))


class MemoryStore(KeyValueStore):
    def __init__(self):
        self._data: dict[str, str] = {}

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class SqliteStore(KeyValueStore):
    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.create_tables()

    def connect_db(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path), check_same_thread=False)

    def create_tables(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self.connect_db()
        cursor = conn.cursor()
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)
        conn.commit()
        conn.close()

    def _read(self, key: str) -> str | None:
        conn = self.connect_db()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT value
            FROM kv_store
            WHERE key = ?
            """,
            (key,),
        )
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else None

    def _write(self, key: str, raw: str) -> None:
        conn = self.connect_db()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO kv_store (key, value)
            VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = CURRENT_TIMESTAMP
            """,
            (key, raw),
        )
        conn.commit()
        conn.close()

    def delete(self, key: str) -> bool:
        conn = self.connect_db()
        cur = conn.cursor()
        cur.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        deleted = cur.rowcount > 0
        conn.commit()
        conn.close()
        return deleted

    def keys(self, prefix: str = "") -> list[str]:
        conn = self.connect_db()
        cur = conn.cursor()
        # substr() instead of LIKE so '_' in the prefix is matched literally.
        cur.execute(
            """
            SELECT key
            FROM kv_store
            WHERE substr(key, 1, ?) = ?
            ORDER BY key ASC
            """,
            (len(prefix), prefix),
        )
        rows = cur.fetchall()
        conn.close()
        return [str(r[0]) for r in rows]


def open_store(backend: str, db_path: Path | str) -> KeyValueStore:
    if backend == "memory":
        logger.info("Using in-memory store; state is lost on restart")
        return MemoryStore()
    logger.info("Using sqlite store at %s", db_path)
    return SqliteStore(db_path)
