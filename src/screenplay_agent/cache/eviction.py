"""Cache entries and eviction policies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(slots=True)
class CacheEntry:
    """Stored cache value plus the bookkeeping eviction needs."""

    key: str
    data: bytes
    created_at: float
    ttl: float
    access_count: int = 0
    last_access: float = 0.0
    compressed: bool = False
    touch_seq: int = 0

    @property
    def size(self) -> int:
        return len(self.key.encode("utf-8")) + len(self.data)

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


class EvictionPolicy(ABC):
    """Picks keys to drop from a snapshot of the current entries."""

    name = "policy"

    @abstractmethod
    def select(self, entries: list[CacheEntry], now: float) -> list[str]:
        """Return keys to evict, in eviction order."""


class ExpiredPolicy(EvictionPolicy):
    name = "ttl"

    def select(self, entries: list[CacheEntry], now: float) -> list[str]:
        return [entry.key for entry in entries if entry.is_expired(now)]


class _DecilePolicy(EvictionPolicy):
    def __init__(self, fraction: float = 0.1) -> None:
        if not 0.0 < fraction <= 1.0:
            raise ValueError("fraction must be in (0, 1]")
        self.fraction = fraction

    def _count(self, total: int) -> int:
        return max(1, int(total * self.fraction)) if total else 0


class LeastRecentlyUsedPolicy(_DecilePolicy):
    name = "lru"

    def select(self, entries: list[CacheEntry], now: float) -> list[str]:
        ordered = sorted(entries, key=lambda e: (e.last_access, e.touch_seq))
        return [entry.key for entry in ordered[: self._count(len(entries))]]


class LeastFrequentlyUsedPolicy(_DecilePolicy):
    name = "lfu"

    def select(self, entries: list[CacheEntry], now: float) -> list[str]:
        ordered = sorted(entries, key=lambda e: (e.access_count, e.last_access, e.touch_seq))
        return [entry.key for entry in ordered[: self._count(len(entries))]]


def default_policies(fraction: float = 0.1) -> list[EvictionPolicy]:
    """Expired entries first, then the LRU decile, then the LFU decile."""
    return [ExpiredPolicy(), LeastRecentlyUsedPolicy(fraction), LeastFrequentlyUsedPolicy(fraction)]
