"""SQLite snapshot storage for the classification cache."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from screenplay_agent.cache.eviction import CacheEntry

log = logging.getLogger(__name__)


class SqliteCacheStore:
    """Persists the full cache entry set to a local SQLite file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        _ensure_entries_table(self.path)

    def save(self, entries: Iterable[CacheEntry]) -> int:
        """Replace the stored snapshot with `entries`."""
        rows = [_row(entry) for entry in entries]
        with sqlite3.connect(self.path) as conn:
            conn.execute("DELETE FROM cache_entries")
            conn.executemany(
                "INSERT INTO cache_entries(key, data, created_at, ttl, access_count, last_access, compressed) "
                "VALUES(?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
            conn.commit()
        return len(rows)

    def put(self, entry: CacheEntry) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache_entries(key, data, created_at, ttl, access_count, last_access, compressed) "
                "VALUES(?, ?, ?, ?, ?, ?, ?)",
                _row(entry),
            )
            conn.commit()

    def remove(self, key: str) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            conn.commit()

    def clear(self) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute("DELETE FROM cache_entries")
            conn.commit()

    def load(self) -> list[CacheEntry]:
        """Read all rows; rows with unusable column values are skipped."""
        with sqlite3.connect(self.path) as conn:
            cur = conn.execute(
                "SELECT key, data, created_at, ttl, access_count, last_access, compressed FROM cache_entries"
            )
            rows = cur.fetchall()

        entries: list[CacheEntry] = []
        for row in rows:
            key, data, created_at, ttl, access_count, last_access, compressed = row
            try:
                entries.append(
                    CacheEntry(
                        key=str(key),
                        data=bytes(data),
                        created_at=float(created_at),
                        ttl=float(ttl),
                        access_count=int(access_count),
                        last_access=float(last_access),
                        compressed=bool(compressed),
                    )
                )
            except (TypeError, ValueError):
                log.warning("Dropping unreadable persisted cache row for key %r", key)
        return entries


def _ensure_entries_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS cache_entries ("
            "key TEXT PRIMARY KEY, data BLOB, created_at REAL, ttl REAL, "
            "access_count INTEGER, last_access REAL, compressed INTEGER)"
        )
        conn.commit()


def _row(entry: CacheEntry) -> tuple[object, ...]:
    return (
        entry.key,
        sqlite3.Binary(entry.data),
        entry.created_at,
        entry.ttl,
        entry.access_count,
        entry.last_access,
        int(entry.compressed),
    )
