"""Bounded, thread-safe classification cache with transparent compression."""

from __future__ import annotations

import json
import logging
import threading
import time
import zlib
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from screenplay_agent.cache.eviction import CacheEntry, EvictionPolicy, default_policies
from screenplay_agent.cache.persistence import SqliteCacheStore
from screenplay_agent.config import CacheConfig

log = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheStats:
    entries: int
    total_bytes: int
    hits: int
    misses: int
    evictions: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class ClassificationCache:
    """Key-value cache bounded by a byte budget and an entry budget.

    Values are JSON-serialized; payloads above the compression threshold
    are stored zlib-compressed. Every public operation runs under one
    re-entrant lock, and eviction happens inside `set` before the new
    entry is inserted, so concurrent writers cannot both overshoot the
    budget. Expired entries are never returned.

    With a persistence store the cache loads it on construction and
    writes every insert and removal through to it, so a later cache on
    the same store starts warm.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        policies: Sequence[EvictionPolicy] | None = None,
        store: SqliteCacheStore | None = None,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._policies = list(policies) if policies is not None else default_policies(
            self.config.eviction_fraction
        )
        if store is None and self.config.persistence_path:
            store = SqliteCacheStore(Path(self.config.persistence_path))
        self._store = store
        self._entries: dict[str, CacheEntry] = {}
        self._total_bytes = 0
        self._seq = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._lock = threading.RLock()
        if self._store is not None:
            self.load()

    def get(self, key: str) -> Any | None:
        """Return the cached value, or `None` on a miss."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(now):
                self._remove(key)
                self._misses += 1
                return None
            try:
                value = self._decode(entry)
            except (zlib.error, UnicodeDecodeError, ValueError) as exc:
                log.warning("Dropping corrupt cache entry %r: %s", key, exc)
                self._remove(key)
                self._misses += 1
                return None
            entry.access_count += 1
            entry.last_access = now
            entry.touch_seq = self._next_seq()
            self._hits += 1
            return value

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        compress: bool | None = None,
    ) -> bool:
        """Store `value`; returns False when it cannot fit the byte budget at all.

        `compress=None` compresses only above the configured threshold.
        """

        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive")
        raw = json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        if compress is None:
            compress = (
                self.config.enable_compression
                and len(raw) > self.config.compression_threshold_bytes
            )
        data = zlib.compress(raw) if compress else raw

        with self._lock:
            now = self._clock()
            entry = CacheEntry(
                key=key,
                data=data,
                created_at=now,
                ttl=ttl if ttl is not None else self.config.default_ttl_seconds,
                last_access=now,
                compressed=bool(compress),
                touch_seq=self._next_seq(),
            )
            stored = self._insert(entry, now)
            if self._store is not None:
                if stored:
                    self._store.put(entry)
                else:
                    self._store.remove(key)
            return stored

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry.is_expired(self._clock()):
                self._remove(key)
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
            if self._store is not None:
                self._store.clear()

    def cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._remove(key)
            return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                entries=len(self._entries),
                total_bytes=self._total_bytes,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def save(self) -> int:
        if self._store is None:
            raise RuntimeError("Cache persistence is not configured")
        with self._lock:
            now = self._clock()
            live = [entry for entry in self._entries.values() if not entry.is_expired(now)]
            return self._store.save(live)

    def load(self) -> int:
        """Reload persisted entries, skipping expired or undecodable ones."""
        if self._store is None:
            raise RuntimeError("Cache persistence is not configured")
        loaded = 0
        with self._lock:
            now = self._clock()
            for entry in self._store.load():
                if entry.is_expired(now):
                    self._store.remove(entry.key)
                    continue
                try:
                    self._decode(entry)
                except (zlib.error, UnicodeDecodeError, ValueError):
                    log.warning("Dropping corrupt persisted cache entry %r", entry.key)
                    self._store.remove(entry.key)
                    continue
                entry.touch_seq = self._next_seq()
                if self._insert(entry, now):
                    loaded += 1
                else:
                    self._store.remove(entry.key)
        log.info("Loaded %d cache entries from %s", loaded, self._store.path)
        return loaded

    def _insert(self, entry: CacheEntry, now: float) -> bool:
        if entry.size > self.config.max_bytes:
            log.debug("Cache value for %r exceeds the byte budget; not stored", entry.key)
            return False
        if entry.key in self._entries:
            self._discard(entry.key)
        if not self._make_room(entry.size, now):
            return False
        self._entries[entry.key] = entry
        self._total_bytes += entry.size
        return True

    def _fits(self, incoming: int) -> bool:
        return (
            len(self._entries) + 1 <= self.config.max_entries
            and self._total_bytes + incoming <= self.config.max_bytes
        )

    def _make_room(self, incoming: int, now: float) -> bool:
        while not self._fits(incoming):
            evicted = 0
            for policy in self._policies:
                victims = policy.select(list(self._entries.values()), now)
                for key in victims:
                    self._remove(key)
                evicted += len(victims)
                if victims:
                    log.debug("Cache evicted %d entries via %s", len(victims), policy.name)
                if self._fits(incoming):
                    break
            self._evictions += evicted
            if evicted == 0:
                return False
        return True

    def _remove(self, key: str) -> None:
        self._discard(key)
        if self._store is not None:
            self._store.remove(key)

    def _discard(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    @staticmethod
    def _decode(entry: CacheEntry) -> Any:
        raw = zlib.decompress(entry.data) if entry.compressed else entry.data
        return json.loads(raw.decode("utf-8"))
