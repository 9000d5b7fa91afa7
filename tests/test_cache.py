"""Tests for the store-data cache strategies."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from storechat.services.cache import (
    CacheStore,
    CallerSuppliedCache,
    DatabaseCache,
    MemoryCache,
    build_cache,
    cache_key,
)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


# ── Key format ──────────────────────────────────────────────────────


def test_cache_key_format():
    assert cache_key("42", "services") == "store:42:services"


# ── MemoryCache: core operations ────────────────────────────────────


class TestMemoryCacheBasics:
    def test_set_and_get(self):
        cache = MemoryCache()
        cache.set("store:1:services", [{"serviceName": "Yoga"}])
        assert cache.get("store:1:services") == [{"serviceName": "Yoga"}]

    def test_get_returns_none_for_missing_key(self):
        cache = MemoryCache()
        assert cache.get("store:1:nothing") is None

    def test_set_overwrites_existing_key(self):
        cache = MemoryCache()
        cache.set("k", "old")
        cache.set("k", "new")
        assert cache.get("k") == "new"
        assert cache.entry_count == 1

    def test_satisfies_protocol(self):
        assert isinstance(MemoryCache(), CacheStore)


class TestMemoryCacheExpiry:
    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        cache.set("store:1:hours", [{"day": "Mon"}], ttl_seconds=60)
        clock.now += 59
        assert cache.get("store:1:hours") == [{"day": "Mon"}]
        clock.now += 2
        assert cache.get("store:1:hours") is None

    def test_expired_entry_is_not_in_stats(self):
        clock = FakeClock()
        cache = MemoryCache(clock=clock)
        cache.set(cache_key("1", "services"), [1], ttl_seconds=10)
        cache.set(cache_key("1", "products"), [2], ttl_seconds=100)
        clock.now += 50
        stats = cache.stats("1")
        assert set(stats) == {"products"}
        assert stats["products"]["cached"] is True
        assert stats["products"]["age"] == 50


# ── MemoryCache: LRU eviction ───────────────────────────────────────


class TestMemoryCacheEviction:
    def test_evicts_lru_when_over_limit(self):
        # json.dumps("aaa") -> '"aaa"' -> 5 bytes.  Limit of 10 fits 2 entries.
        cache = MemoryCache(max_bytes=10)
        cache.set("first", "aaa")
        cache.set("second", "bbb")
        cache.set("third", "ccc")
        assert cache.get("first") is None
        assert cache.get("third") == "ccc"

    def test_access_promotes_to_mru(self):
        cache = MemoryCache(max_bytes=10)
        cache.set("a", "111")
        cache.set("b", "222")
        cache.get("a")
        cache.set("c", "333")
        assert cache.get("a") == "111"
        assert cache.get("b") is None

    def test_skips_entry_larger_than_max(self):
        cache = MemoryCache(max_bytes=10)
        cache.set("huge", "x" * 100)
        assert cache.get("huge") is None
        assert cache.entry_count == 0

    def test_overwrite_adjusts_size(self):
        cache = MemoryCache()
        cache.set("k", "short")
        size_short = cache.current_bytes
        cache.set("k", "a much longer value string")
        assert cache.current_bytes > size_short
        assert cache.entry_count == 1


class TestMemoryCacheClearStore:
    def test_clears_only_that_store(self):
        cache = MemoryCache()
        cache.set(cache_key("1", "services"), [1])
        cache.set(cache_key("1", "hours"), [2])
        cache.set(cache_key("2", "services"), [3])

        assert cache.clear_store("1") == 2
        assert cache.get(cache_key("1", "services")) is None
        assert cache.get(cache_key("2", "services")) == [3]

    def test_store_prefix_does_not_match_longer_ids(self):
        cache = MemoryCache()
        cache.set(cache_key("1", "services"), [1])
        cache.set(cache_key("10", "services"), [2])
        cache.clear_store("1")
        assert cache.get(cache_key("10", "services")) == [2]


# ── DatabaseCache ───────────────────────────────────────────────────


class TestDatabaseCache:
    NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def _cache(self, db: MagicMock) -> DatabaseCache:
        return DatabaseCache(db=db, clock=lambda: self.NOW)

    def test_get_filters_on_expiry(self):
        db = MagicMock()
        db.select.return_value = [{"value": [{"serviceName": "Yoga"}]}]
        cache = self._cache(db)

        assert cache.get("store:1:services") == [{"serviceName": "Yoga"}]
        table, filters = db.select.call_args[0]
        assert table == "cache"
        assert filters["key"] == "eq.store:1:services"
        assert filters["expiresAt"] == f"gt.{self.NOW.isoformat()}"

    def test_get_miss_returns_none(self):
        db = MagicMock()
        db.select.return_value = []
        assert self._cache(db).get("store:1:services") is None

    def test_read_failure_is_a_miss(self):
        db = MagicMock()
        db.select.side_effect = RuntimeError("connection refused")
        assert self._cache(db).get("store:1:services") is None

    def test_set_upserts_with_expiry(self):
        db = MagicMock()
        self._cache(db).set("store:1:hours", [{"day": "Mon"}], ttl_seconds=3600)

        db.upsert.assert_called_once()
        table, rows = db.upsert.call_args[0]
        assert table == "cache"
        assert db.upsert.call_args[1]["on_conflict"] == "key"
        row = rows[0]
        assert row["key"] == "store:1:hours"
        assert row["expiresAt"] == (self.NOW + timedelta(hours=1)).isoformat()

    def test_write_failure_is_swallowed(self):
        db = MagicMock()
        db.upsert.side_effect = RuntimeError("boom")
        self._cache(db).set("store:1:hours", [])

    def test_clear_store_deletes_by_prefix(self):
        db = MagicMock()
        self._cache(db).clear_store("7")
        db.delete.assert_called_once_with("cache", {"key": "like.store:7:*"})

    def test_stats_reports_age(self):
        db = MagicMock()
        db.select.return_value = [
            {
                "key": "store:7:services",
                "cachedAt": (self.NOW - timedelta(seconds=90)).isoformat(),
                "expiresAt": (self.NOW + timedelta(seconds=30)).isoformat(),
            }
        ]
        stats = self._cache(db).stats("7")
        assert stats["services"]["age"] == 90
        assert stats["services"]["cached"] is True


# ── CallerSuppliedCache / strategy selection ────────────────────────


class TestStrategies:
    def test_caller_cache_never_stores(self):
        cache = CallerSuppliedCache()
        cache.set("store:1:services", [1])
        assert cache.get("store:1:services") is None
        assert cache.stats("1") == {}

    @pytest.mark.parametrize(
        "name, expected",
        [("memory", MemoryCache), ("database", DatabaseCache), ("caller", CallerSuppliedCache)],
    )
    def test_build_cache_picks_strategy(self, name, expected):
        assert isinstance(build_cache(name), expected)

    def test_build_cache_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unknown CACHE_STRATEGY"):
            build_cache("redis")
