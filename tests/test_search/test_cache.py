"""Tests for ResultCache - in-memory entries with a lazy TTL check."""

import time

from multicity.models import CacheEntry, FlightResult
from multicity.search.cache import ResultCache, default_cache


def _entry(**kwargs) -> CacheEntry:
    return CacheEntry(results=[FlightResult(result_id="r1", price=120.0)], **kwargs)


class TestResultCache:
    """Test ResultCache put/get/freshness/clear operations."""

    def test_put_and_get(self):
        cache = ResultCache()
        cache.put("k", _entry(progress=40, search_id="S-1"))

        entry = cache.get("k")
        assert entry is not None
        assert entry.progress == 40
        assert entry.search_id == "S-1"
        assert [r.result_id for r in entry.results] == ["r1"]

    def test_get_missing_key(self):
        assert ResultCache().get("nope") is None

    def test_put_stamps_timestamp(self):
        cache = ResultCache()
        before = time.time()
        stored = cache.put("k", _entry(timestamp=1.0))
        assert stored.timestamp >= before
        assert cache.get("k").timestamp == stored.timestamp

    def test_put_overwrites(self):
        cache = ResultCache()
        cache.put("k", _entry(progress=10))
        cache.put("k", _entry(progress=90))
        assert cache.get("k").progress == 90

    def test_is_fresh_within_ttl(self):
        cache = ResultCache(ttl_seconds=300)
        entry = cache.put("k", _entry())
        assert cache.is_fresh(entry)
        assert cache.is_fresh(entry, now=entry.timestamp + 299)

    def test_is_fresh_expired(self):
        cache = ResultCache(ttl_seconds=300)
        entry = cache.put("k", _entry())
        assert not cache.is_fresh(entry, now=entry.timestamp + 300)

    def test_get_returns_stale_entries(self):
        """Expiry is a reader decision; stale entries stay readable."""
        cache = ResultCache(ttl_seconds=0.0001)
        cache.put("k", _entry())
        time.sleep(0.01)
        assert cache.get("k") is not None
        assert cache.get_fresh("k") is None

    def test_get_fresh(self):
        cache = ResultCache()
        cache.put("k", _entry())
        assert cache.get_fresh("k") is not None
        assert cache.get_fresh("other") is None

    def test_ttl_override(self):
        cache = ResultCache(ttl_seconds=300)
        entry = cache.put("k", _entry())
        assert not cache.is_fresh(entry, now=entry.timestamp + 60, ttl_seconds=30)
        assert cache.is_fresh(entry, now=entry.timestamp + 400, ttl_seconds=600)
        assert cache.get_fresh("k", ttl_seconds=600) is not None

    def test_clear(self):
        cache = ResultCache()
        cache.put("a", _entry())
        cache.put("b", _entry())
        assert len(cache) == 2

        assert cache.clear() == 2
        assert len(cache) == 0
        assert "a" not in cache

    def test_contains(self):
        cache = ResultCache()
        cache.put("a", _entry())
        assert "a" in cache
        assert "b" not in cache

    def test_default_cache_is_shared(self):
        assert default_cache() is default_cache()
