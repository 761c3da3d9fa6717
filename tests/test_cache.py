"""
Unit tests for the response cache.

Tests key derivation, TTL expiry and bounded eviction.
"""

import threading

from ai_gateway.config.loader import CacheConfig
from ai_gateway.core.cache import ResponseCache, make_cache_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    """Test cache key derivation."""

    def test_key_ignores_field_order(self):
        """Logically identical payloads share a key."""
        a = make_cache_key("m", {"prompt": "hi", "max_tokens": 10})
        b = make_cache_key("m", {"max_tokens": 10, "prompt": "hi"})
        assert a == b

    def test_key_depends_on_model(self):
        payload = {"prompt": "hi"}
        assert make_cache_key("m1", payload) != make_cache_key("m2", payload)

    def test_key_depends_on_payload(self):
        assert make_cache_key("m", {"prompt": "hi"}) != make_cache_key("m", {"prompt": "hello"})

    def test_key_is_prefixed_with_model(self):
        assert make_cache_key("amazon.titan-embed-text-v1", {}).startswith("amazon.titan-embed-text-v1:")


class TestResponseCache:
    """Test cache storage behavior."""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = ResponseCache(ttl_seconds=60, max_entries=3, clock=self.clock)

    def test_set_and_get(self):
        self.cache.set("k", {"text": "hello"}, 0.5)
        entry = self.cache.get("k")
        assert entry.payload == {"text": "hello"}
        assert entry.cached_cost == 0.5

    def test_missing_key(self):
        assert self.cache.get("missing") is None

    def test_entry_expires_after_ttl(self):
        """Entries older than the TTL are removed on read."""
        self.cache.set("k", "v", 0.1)
        self.clock.now += 60
        assert self.cache.get("k") is not None

        self.clock.now += 1
        assert self.cache.get("k") is None
        assert self.cache.size() == 0

    def test_oldest_entry_evicted_when_full(self):
        """Inserting into a full cache evicts the oldest insertion."""
        for key in ("a", "b", "c"):
            self.cache.set(key, key, 0.0)
        # Reads do not refresh position
        self.cache.get("a")
        self.cache.set("d", "d", 0.0)

        assert self.cache.get("a") is None
        assert self.cache.get("b") is not None
        assert self.cache.size() == 3

    def test_overwrite_moves_entry_to_newest(self):
        for key in ("a", "b", "c"):
            self.cache.set(key, key, 0.0)
        self.cache.set("a", "a2", 0.0)
        self.cache.set("d", "d", 0.0)

        assert self.cache.get("a").payload == "a2"
        assert self.cache.get("b") is None

    def test_concurrent_writers_respect_capacity(self):
        """Eviction keeps the size bound under concurrent inserts."""
        cache = ResponseCache(ttl_seconds=60, max_entries=5, clock=self.clock)
        sizes = []

        def worker(prefix):
            for i in range(500):
                cache.set(f"{prefix}-{i}", i, 0.0)
                sizes.append(cache.size())

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert max(sizes) <= 5
        assert cache.size() == 5

    def test_disabled_cache_stores_nothing(self):
        cache = ResponseCache(enabled=False)
        cache.set("k", "v", 0.1)
        assert cache.get("k") is None
        assert cache.size() == 0

    def test_clear_and_stats(self):
        self.cache.set("a", "a", 0.0)
        assert self.cache.stats() == {"size": 1, "max_size": 3, "enabled": True}

        self.cache.clear()
        assert self.cache.stats()["size"] == 0

    def test_from_config(self):
        cache = ResponseCache.from_config(CacheConfig(enabled=False, ttl_seconds=5, max_entries=7))
        assert cache.enabled is False
        assert cache.ttl_seconds == 5
        assert cache.max_entries == 7
