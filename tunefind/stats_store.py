import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Optional, Protocol

from pydantic import BaseModel, ValidationError, computed_field

logger = logging.getLogger(__name__)

STATS_KEY = "scanStats"


class ScanStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0

    @computed_field
    @property
    def success_rate(self) -> int:
        if self.total <= 0:
            return 0
        return round(self.successful / self.total * 100)

    def record(self, success: bool) -> "ScanStats":
        """Return a copy with one more terminal outcome counted."""
        return ScanStats(
            total=self.total + 1,
            successful=self.successful + (1 if success else 0),
            failed=self.failed + (0 if success else 1),
        )

    def is_consistent(self) -> bool:
        return (
            min(self.total, self.successful, self.failed) >= 0
            and self.total == self.successful + self.failed
        )


class StatsStore(Protocol):
    def load(self) -> ScanStats: ...

    def save(self, stats: ScanStats) -> None: ...


class MemoryStatsStore:
    def __init__(self, initial: Optional[ScanStats] = None):
        self._stats = initial.model_copy() if initial else ScanStats()

    def load(self) -> ScanStats:
        return self._stats.model_copy()

    def save(self, stats: ScanStats) -> None:
        self._stats = stats.model_copy()


def _ensure_schema(conn):
    conn.execute("""
    CREATE TABLE IF NOT EXISTS kv_store(
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at INTEGER NOT NULL
    )
    """)
    conn.commit()


def _parse(raw: str) -> Optional[ScanStats]:
    try:
        stats = ScanStats.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        return None
    return stats if stats.is_consistent() else None


class SqliteStatsStore:
    """ScanStats kept as a JSON object under a fixed key in a sqlite file.

    Concurrent writers are not coordinated; the last save wins.
    """

    def __init__(self, path: str, key: str = STATS_KEY):
        self.path = path
        self.key = key
        self._lock = threading.Lock()

    @contextmanager
    def _db(self):
        conn = sqlite3.connect(self.path)
        _ensure_schema(conn)
        try:
            yield conn
        finally:
            conn.close()

    def load(self) -> ScanStats:
        with self._lock, self._db() as conn:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key=?",
                (self.key,),
            ).fetchone()
        if not row:
            return ScanStats()
        stats = _parse(row[0])
        if stats is None:
            logger.warning("Discarding unreadable %s entry in %s", self.key, self.path)
            return ScanStats()
        return stats

    def save(self, stats: ScanStats) -> None:
        payload = json.dumps(stats.model_dump(include={"total", "successful", "failed"}), separators=(",", ":"))
        now = int(time.time())
        with self._lock, self._db() as conn:
            conn.execute(
                "REPLACE INTO kv_store(key, value, updated_at) VALUES(?,?,?)",
                (self.key, payload, now),
            )
            conn.commit()
