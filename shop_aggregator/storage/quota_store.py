# shop_aggregator/storage/quota_store.py

"""SQLite persistence for per-service quota counters."""

import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from pathlib import Path

from shop_aggregator.config.settings import Settings

logger = logging.getLogger("shop_aggregator.quota")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS quota_state (
    service_id      TEXT PRIMARY KEY,
    period          TEXT NOT NULL,
    request_count   INTEGER NOT NULL DEFAULT 0,
    last_request_at REAL,
    history         TEXT NOT NULL DEFAULT '[]'
);
"""


@dataclass
class QuotaState:
    """Mutable counters for one service within one calendar month."""

    service_id: str
    period: str                       # "YYYY-MM"
    request_count: int = 0
    last_request_at: float | None = None
    history: list[float] = field(
        default_factory=lambda: list[float]()
    )


class SqliteQuotaStore:
    """service id → quota counters, one row per service."""

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.STATE_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug("SqliteQuotaStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def load(self, service_id: str) -> QuotaState | None:
        """Return the persisted state for a service, if any."""
        with self._lock:
            row = self._conn.execute(
                "SELECT period, request_count, last_request_at, history "
                "FROM quota_state WHERE service_id = ?",
                (service_id,),
            ).fetchone()
        if row is None:
            return None
        history = [float(t) for t in json.loads(row[3] or "[]")]
        return QuotaState(
            service_id=service_id,
            period=str(row[0]),
            request_count=int(row[1]),
            last_request_at=(
                float(row[2]) if row[2] is not None else None
            ),
            history=history,
        )

    def save(self, state: QuotaState) -> None:
        """Upsert the full state row for a service."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO quota_state "
                "(service_id, period, request_count, "
                " last_request_at, history) "
                "VALUES (?, ?, ?, ?, ?) "
                "ON CONFLICT(service_id) DO UPDATE SET "
                "period=excluded.period, "
                "request_count=excluded.request_count, "
                "last_request_at=excluded.last_request_at, "
                "history=excluded.history",
                (
                    state.service_id,
                    state.period,
                    state.request_count,
                    state.last_request_at,
                    json.dumps(state.history),
                ),
            )
            self._conn.commit()

    def service_ids(self) -> list[str]:
        """All services with persisted state."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT service_id FROM quota_state ORDER BY service_id"
            ).fetchall()
        return [str(r[0]) for r in rows]
