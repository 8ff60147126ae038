# shop_aggregator/storage/cache_db.py

"""SQLite-backed durable tier for the result cache."""

import logging
import sqlite3
import threading
from pathlib import Path

from shop_aggregator.config.settings import Settings

logger = logging.getLogger("shop_aggregator.cache")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS cache_entries (
    key        TEXT PRIMARY KEY,
    namespace  TEXT NOT NULL,
    payload    TEXT NOT NULL,
    created_at REAL NOT NULL,
    ttl        REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cache_namespace_created
    ON cache_entries(namespace, created_at);
"""


class SqliteCacheStore:
    """Key → (JSON payload, created_at, ttl) rows that survive restarts.

    Values are opaque JSON strings; encoding is the caller's job.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.STATE_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("SqliteCacheStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ── Single-entry operations ──────────────────────────

    def fetch(self, key: str) -> tuple[str, float, float] | None:
        """Return ``(payload, created_at, ttl)`` or ``None``."""
        with self._lock:
            row = self._conn.execute(
                "SELECT payload, created_at, ttl "
                "FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return str(row[0]), float(row[1]), float(row[2])

    def upsert(
        self,
        key: str,
        namespace: str,
        payload: str,
        created_at: float,
        ttl: float,
    ) -> None:
        """Insert or overwrite one entry atomically."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO cache_entries "
                "(key, namespace, payload, created_at, ttl) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET "
                "payload=excluded.payload, "
                "created_at=excluded.created_at, "
                "ttl=excluded.ttl",
                (key, namespace, payload, created_at, ttl),
            )
            self._conn.commit()

    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if a row was deleted."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM cache_entries WHERE key = ?", (key,),
            )
            self._conn.commit()
        return cur.rowcount > 0

    # ── Maintenance ──────────────────────────────────────

    def clear(self) -> int:
        """Delete every entry. Returns the number removed."""
        with self._lock:
            cur = self._conn.execute("DELETE FROM cache_entries")
            self._conn.commit()
        return cur.rowcount

    def purge_expired(self, now: float) -> int:
        """Delete entries whose age exceeds their TTL."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM cache_entries "
                "WHERE ? - created_at > ttl",
                (now,),
            )
            self._conn.commit()
        return cur.rowcount

    def evict_oldest(self, namespace: str, keep: int) -> int:
        """Trim a namespace to ``keep`` rows, oldest-created first."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM cache_entries WHERE key IN ("
                "  SELECT key FROM cache_entries "
                "  WHERE namespace = ? "
                "  ORDER BY created_at DESC "
                "  LIMIT -1 OFFSET ?"
                ")",
                (namespace, keep),
            )
            self._conn.commit()
        return cur.rowcount

    def count(self, namespace: str | None = None) -> int:
        """Number of stored rows, optionally within one namespace."""
        with self._lock:
            if namespace is None:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM cache_entries"
                ).fetchone()
            else:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM cache_entries "
                    "WHERE namespace = ?",
                    (namespace,),
                ).fetchone()
        return int(row[0])
