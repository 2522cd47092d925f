"""SQLite-backed TTL cache shared by pricing runs."""

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable, Optional, Union

from ..utils.error_handler import CacheError
from ..utils.log import get_logger


class TTLCache:
    """Key/value cache with per-entry expiry and an injectable clock."""

    def __init__(self, db_path: Union[str, Path], clock: Callable[[], float] = time.time):
        self.logger = get_logger(__name__)
        self.db_path = Path(db_path)
        self.clock = clock
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        """Initialize SQLite database with the cache table."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS cache_entries (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL,
                        created_at REAL NOT NULL,
                        expires_at REAL NOT NULL
                    )
                """
                )
                conn.commit()
                self.logger.info("Cache initialized", db_path=str(self.db_path))

        except sqlite3.Error as e:
            self.logger.error("Error initializing cache", error=str(e))
            raise CacheError("Could not initialize cache", details={"db_path": str(self.db_path)}) from e

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when absent or expired."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row
                row = conn.execute(
                    "SELECT value_json, expires_at FROM cache_entries WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as e:
            raise CacheError("Cache read failed", details={"key": key, "error": str(e)}) from e

        if row is None:
            self.logger.debug("Cache miss", key=key)
            return None

        if row["expires_at"] <= self.clock():
            self.logger.debug("Cache entry expired", key=key)
            return None

        self.logger.debug("Cache hit", key=key)
        return json.loads(row["value_json"])

    def set(self, key: str, value: Any, ttl_s: float) -> None:
        """Store a JSON-serializable value; last write wins."""
        now = self.clock()
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO cache_entries (key, value_json, created_at, expires_at)
                    VALUES (?, ?, ?, ?)
                """,
                    (key, json.dumps(value), now, now + ttl_s),
                )
                conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise CacheError("Cache write failed", details={"key": key, "error": str(e)}) from e

        self.logger.debug("Cache entry stored", key=key, ttl_s=ttl_s)

    def delete(self, key: str) -> None:
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            raise CacheError("Cache delete failed", details={"key": key, "error": str(e)}) from e

    def purge_expired(self) -> int:
        """Delete expired entries and return how many were removed."""
        try:
            with sqlite3.connect(self.db_path) as conn:
                cursor = conn.execute(
                    "DELETE FROM cache_entries WHERE expires_at <= ?", (self.clock(),)
                )
                conn.commit()
                removed = cursor.rowcount
        except sqlite3.Error as e:
            raise CacheError("Cache purge failed", details={"error": str(e)}) from e

        self.logger.info("Expired cache entries purged", removed=removed)
        return removed
