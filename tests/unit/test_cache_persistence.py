import sqlite3

import pytest

from screenplay_agent.cache.persistence import SqliteCacheStore
from screenplay_agent.cache.store import ClassificationCache
from screenplay_agent.config import CacheConfig


class FakeClock:
    def __init__(self, now: float = 500.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_save_and_reload_round_trip(tmp_path) -> None:
    db_path = tmp_path / "cache.db"
    clock = FakeClock()
    config = CacheConfig(persistence_path=str(db_path), compression_threshold_bytes=32)
    cache = ClassificationCache(config, clock=clock)
    cache.set("short", {"element_type": "action"})
    cache.set("long", {"text": "يدخل أحمد إلى الغرفة " * 10})

    assert cache.save() == 2

    restored = ClassificationCache(config, clock=clock)
    assert restored.load() == 2
    assert restored.get("short") == {"element_type": "action"}
    assert restored.get("long") == {"text": "يدخل أحمد إلى الغرفة " * 10}


def test_expired_entries_are_not_restored(tmp_path) -> None:
    clock = FakeClock()
    store = SqliteCacheStore(tmp_path / "cache.db")
    cache = ClassificationCache(clock=clock, store=store)
    cache.set("soon", 1, ttl=5.0)
    cache.set("later", 2, ttl=60.0)
    cache.save()

    clock.now += 10
    restored = ClassificationCache(clock=clock, store=store)

    assert restored.load() == 1
    assert restored.has("later")
    assert not restored.has("soon")


def test_corrupt_rows_are_dropped_on_load(tmp_path) -> None:
    db_path = tmp_path / "cache.db"
    clock = FakeClock()
    store = SqliteCacheStore(db_path)
    cache = ClassificationCache(clock=clock, store=store)
    cache.set("good", {"ok": True})
    cache.save()

    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "INSERT INTO cache_entries VALUES(?, ?, ?, ?, ?, ?, ?)",
            ("bad-json", b"{not json", clock.now, 60.0, 0, clock.now, 0),
        )
        conn.execute(
            "INSERT INTO cache_entries VALUES(?, ?, ?, ?, ?, ?, ?)",
            ("no-data", None, clock.now, 60.0, 0, clock.now, 0),
        )
        conn.commit()

    restored = ClassificationCache(clock=clock, store=store)

    assert restored.load() == 1
    assert restored.get("good") == {"ok": True}
    assert not restored.has("bad-json")
    assert not restored.has("no-data")


def test_save_without_store_is_an_error() -> None:
    cache = ClassificationCache()

    with pytest.raises(RuntimeError, match="persistence"):
        cache.save()


def test_second_cache_on_same_store_starts_warm(tmp_path) -> None:
    config = CacheConfig(persistence_path=str(tmp_path / "cache.db"))
    clock = FakeClock()
    first = ClassificationCache(config, clock=clock)
    first.set("kept", {"element_type": "action"})
    first.set("dropped", {"element_type": "dialogue"})
    first.delete("dropped")

    second = ClassificationCache(config, clock=clock)

    assert len(second) == 1
    assert second.get("kept") == {"element_type": "action"}
    assert not second.has("dropped")


def test_clear_empties_the_persisted_entries(tmp_path) -> None:
    store = SqliteCacheStore(tmp_path / "cache.db")
    cache = ClassificationCache(clock=FakeClock(), store=store)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.clear()

    assert store.load() == []
    assert len(ClassificationCache(clock=FakeClock(), store=store)) == 0
