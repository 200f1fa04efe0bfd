"""
Tests for the TTL cache store, cache keys and TTL policies
"""
from datetime import datetime, timedelta, timezone

import pytest

from dashboard_data.cache import (
    MISS,
    CacheEntry,
    CacheStore,
    DataDomain,
    domain_prefix,
    make_cache_key,
    ttl_for_domain,
)
from dashboard_data.clock import ManualClock


# =============================================================================
# Entries
# =============================================================================

class TestCacheEntry:

    def test_expiry_must_follow_cached_at(self):
        """An entry that expires before it was cached is rejected"""
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        with pytest.raises(ValueError):
            CacheEntry(key="k", payload=1, cached_at=now, expires_at=now)

    def test_fresh_until_expiry_inclusive(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        entry = CacheEntry(key="k", payload=1, cached_at=now, expires_at=now + timedelta(seconds=10))
        assert entry.is_fresh(now + timedelta(seconds=10))
        assert not entry.is_fresh(now + timedelta(seconds=10, microseconds=1))
        assert entry.ttl_seconds == 10


# =============================================================================
# Get / set
# =============================================================================

class TestGetSet:

    def test_set_then_get_returns_payload(self, cache):
        cache.set("weather:loc=paris", {"temp": 18}, 600)
        assert cache.get("weather:loc=paris") == {"temp": 18}

    def test_get_missing_key_is_miss(self, cache):
        assert cache.get("nope") is MISS

    def test_miss_once_ttl_elapsed(self, cache, clock):
        cache.set("k", "v", 600)
        clock.advance(600)
        assert cache.get("k") == "v"
        clock.advance(1)
        assert cache.get("k") is MISS

    def test_expired_read_evicts_entry(self, cache, clock):
        cache.set("k", "v", 10)
        clock.advance(11)
        cache.get("k")
        assert "k" not in cache.keys()
        assert len(cache) == 0

    def test_overwrite_resets_timestamps(self, cache, clock):
        cache.set("k", "old", 10)
        clock.advance(8)
        entry = cache.set("k", "new", 10)
        clock.advance(8)
        assert cache.get("k") == "new"
        assert entry.cached_at == clock.now() - timedelta(seconds=8)

    def test_keys_are_timed_independently(self, cache, clock):
        cache.set("short", 1, 10)
        cache.set("long", 2, 100)
        clock.advance(50)
        assert cache.get("short") is MISS
        assert cache.get("long") == 2

    def test_non_positive_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("k", "v", 0)
        with pytest.raises(ValueError):
            cache.set("k", "v", -5)

    def test_get_entry_carries_timestamps(self, cache, clock):
        cache.set("k", "v", 60)
        entry = cache.get_entry("k")
        assert entry.cached_at == clock.now()
        assert entry.expires_at == clock.now() + timedelta(seconds=60)


# =============================================================================
# Stale shelf and purge
# =============================================================================

class TestStaleAndPurge:

    def test_get_stale_survives_lazy_eviction(self, cache, clock):
        """An evicted entry stays available for stale-on-error with its original cached_at"""
        original = cache.set("k", "v", 10)
        clock.advance(30)
        assert cache.get("k") is MISS
        stale = cache.get_stale("k")
        assert stale is not None
        assert stale.payload == "v"
        assert stale.cached_at == original.cached_at

    def test_set_replaces_shelved_entry(self, cache, clock):
        cache.set("k", "old", 10)
        clock.advance(30)
        cache.get("k")
        cache.set("k", "new", 10)
        assert cache.get_stale("k").payload == "new"

    def test_purge_drops_entries_older_than_horizon(self, clock):
        cache = CacheStore(clock=clock, cleanup_horizon_seconds=3600)
        cache.set("old", 1, 7200)
        clock.advance(1800)
        cache.set("young", 2, 7200)
        clock.advance(1801)
        assert cache.purge() == 1
        assert cache.get("old") is MISS
        assert cache.get("young") == 2

    def test_purge_includes_shelf(self, cache, clock):
        cache.set("k", "v", 10)
        clock.advance(20)
        cache.get("k")
        clock.advance(3600)
        cache.purge()
        assert cache.get_stale("k") is None

    def test_set_purges_opportunistically(self, cache, clock):
        cache.set("ancient", 1, 10)
        clock.advance(3601)
        cache.set("fresh", 2, 10)
        assert cache.get_stale("ancient") is None


# =============================================================================
# Clear and stats
# =============================================================================

class TestClear:

    def test_clear_all(self, cache):
        cache.set("weather:loc=a", 1, 60)
        cache.set("feed:url=x", 2, 60)
        assert cache.clear() == 2
        assert len(cache) == 0

    def test_clear_by_prefix(self, cache):
        cache.set("forecast:loc=paris;units=metric", 1, 60)
        cache.set("forecast:loc=rome;units=metric", 2, 60)
        cache.set("weather:loc=paris;units=metric", 3, 60)
        removed = cache.clear("forecast:loc=paris;")
        assert removed == 1
        assert cache.get("forecast:loc=rome;units=metric") == 2
        assert cache.get("weather:loc=paris;units=metric") == 3

    def test_clear_removes_shelved_entries(self, cache, clock):
        cache.set("feed:url=x", 1, 10)
        clock.advance(20)
        cache.get("feed:url=x")
        assert cache.clear("feed:") == 1
        assert cache.get_stale("feed:url=x") is None

    def test_expire_forces_miss_but_keeps_stale(self, cache):
        original = cache.set("feed:url=x", "<rss/>", 600)
        cache.set("weather:loc=paris", 1, 600)
        assert cache.expire("feed:") == 1
        assert cache.get("feed:url=x") is MISS
        assert cache.get_stale("feed:url=x") == original
        assert cache.get("weather:loc=paris") == 1

    def test_stats_count_hits_misses_and_expirations(self, cache, clock):
        cache.set("k", "v", 10)
        cache.get("k")
        cache.get("other")
        clock.advance(11)
        cache.get("k")
        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 2
        assert stats["expirations"] == 1
        assert stats["stale_entries"] == 1


# =============================================================================
# Keys and TTLs
# =============================================================================

class TestKeysAndTtl:

    def test_key_sorted_and_deterministic(self):
        a = make_cache_key(DataDomain.WEATHER, {"units": "metric", "loc": "paris"})
        b = make_cache_key(DataDomain.WEATHER, {"loc": "paris", "units": "metric"})
        assert a == b == "weather:loc=paris;units=metric"

    def test_key_excludes_credentials_and_none(self):
        key = make_cache_key("weather", {"loc": "paris", "appid": "s3cret", "lang": None})
        assert key == "weather:loc=paris"
        assert "s3cret" not in key

    def test_domain_prefix(self):
        assert domain_prefix(DataDomain.FEED) == "feed:"

    def test_default_ttls(self):
        assert ttl_for_domain(DataDomain.WEATHER) == 600
        assert ttl_for_domain(DataDomain.FORECAST) == 600
        assert ttl_for_domain(DataDomain.FEED) == 1800

    def test_ttl_override(self):
        assert ttl_for_domain(DataDomain.FEED, {DataDomain.FEED: 60}) == 60


def test_store_uses_wall_clock_by_default():
    cache = CacheStore()
    cache.set("k", "v", 60)
    assert cache.get("k") == "v"


def test_manual_clock_is_timezone_aware():
    assert ManualClock().now().tzinfo is not None
