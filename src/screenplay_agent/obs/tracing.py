"""Classification metrics and timing helpers."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from screenplay_agent.types import SourceTag, StrategyTrace


@dataclass(slots=True)
class StrategyStats:
    """Rolling per-strategy health, smoothed with an exponential average."""

    calls: int = 0
    failures: int = 0
    success_rate: float = 1.0
    avg_latency_ms: float = 0.0

    def record(self, succeeded: bool, latency_ms: float, alpha: float) -> None:
        outcome = 1.0 if succeeded else 0.0
        if self.calls == 0:
            self.success_rate = outcome
            self.avg_latency_ms = latency_ms
        else:
            self.success_rate = (1 - alpha) * self.success_rate + alpha * outcome
            self.avg_latency_ms = (1 - alpha) * self.avg_latency_ms + alpha * latency_ms
        self.calls += 1
        if not succeeded:
            self.failures += 1


class EngineMetrics:
    """Read-only observability counters for one engine instance.

    Strategy stats are never fed back into voting weights.
    """

    def __init__(self, *, smoothing: float = 0.5) -> None:
        self.smoothing = smoothing
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._by_source = {tag: 0 for tag in SourceTag}
            self._latency_total_ms = 0.0
            self._cache_hits = 0
            self._cache_lookups = 0
            self._strategies: dict[str, StrategyStats] = {}

    def record_classification(self, source: SourceTag, latency_ms: float) -> None:
        with self._lock:
            self._by_source[source] += 1
            self._latency_total_ms += latency_ms

    def record_cache_lookup(self, hit: bool) -> None:
        with self._lock:
            self._cache_lookups += 1
            if hit:
                self._cache_hits += 1

    def record_strategy(self, trace: StrategyTrace) -> None:
        """Observer hook for the strategy registry."""
        with self._lock:
            stats = self._strategies.setdefault(trace.name, StrategyStats())
            stats.record(trace.succeeded, trace.latency_ms, self.smoothing)

    def strategy_stats(self, name: str) -> StrategyStats | None:
        return self._strategies.get(name)

    def summary(self) -> dict[str, object]:
        """Aggregate metrics for dashboard display."""
        with self._lock:
            total = sum(self._by_source.values())
            return {
                "total_classifications": total,
                "by_source": {tag.value: count for tag, count in self._by_source.items()},
                "cache_hit_rate": self._cache_hits / self._cache_lookups if self._cache_lookups else 0.0,
                "avg_latency_ms": self._latency_total_ms / total if total else 0.0,
                "strategies": {
                    name: {
                        "calls": stats.calls,
                        "failures": stats.failures,
                        "success_rate": stats.success_rate,
                        "avg_latency_ms": stats.avg_latency_ms,
                    }
                    for name, stats in self._strategies.items()
                },
            }


class Timer:
    """Simple context timer used by the engine."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
