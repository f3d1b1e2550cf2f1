from __future__ import annotations

import fnmatch
import threading
import unittest

from chronomarket.utils.cache_layer import (
    MemoryCacheBackend,
    RedisCacheBackend,
    SearchCache,
    _reset_cache_state_for_tests,
    build_cache_key,
    cache_stats,
)


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class _FakeRedis:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value
        return True

    def incr(self, key):
        self.data[key] = str(int(self.data.get(key) or 0) + 1)
        return int(self.data[key])

    def scan(self, cursor=0, match="*", count=100):
        return 0, [k for k in list(self.data) if fnmatch.fnmatch(k, match)]

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed


class _BrokenBackend:
    name = "broken"

    def generation(self, tag):
        raise ConnectionError("down")

    def get(self, key, *, tag):
        raise ConnectionError("down")

    def set(self, key, payload, *, ttl_seconds, tag, generation):
        raise ConnectionError("down")

    def invalidate_tag(self, tag):
        raise ConnectionError("down")


class _Counter:
    def __init__(self, value=None):
        self.calls = 0
        self.value = value

    def __call__(self):
        self.calls += 1
        return self.value if self.value is not None else {"total": self.calls}


class SearchCacheTestCase(unittest.TestCase):
    def setUp(self):
        _reset_cache_state_for_tests()
        self.clock = _Clock()
        self.cache = SearchCache(MemoryCacheBackend(clock=self.clock), ttl_seconds=300)

    def test_second_call_is_served_from_cache(self):
        compute = _Counter()
        first = self.cache.get_or_compute("k", compute)
        second = self.cache.get_or_compute("k", compute)
        self.assertEqual(first, {"total": 1})
        self.assertEqual(second, first)
        self.assertEqual(compute.calls, 1)
        stats = cache_stats(self.cache)
        self.assertEqual(stats["hits"], 1)
        self.assertEqual(stats["misses"], 1)
        self.assertEqual(stats["backend"], "memory")

    def test_invalidation_forces_recompute(self):
        compute = _Counter()
        self.cache.get_or_compute("k", compute)
        self.assertEqual(self.cache.invalidate(), 1)
        self.assertEqual(self.cache.get_or_compute("k", compute), {"total": 2})
        self.assertEqual(compute.calls, 2)

    def test_entries_expire_after_ttl(self):
        compute = _Counter()
        self.cache.get_or_compute("k", compute)
        self.clock.now += 299
        self.cache.get_or_compute("k", compute)
        self.assertEqual(compute.calls, 1)
        self.clock.now += 2
        self.cache.get_or_compute("k", compute)
        self.assertEqual(compute.calls, 2)

    def test_result_computed_across_an_invalidation_is_not_stored(self):
        def compute():
            self.cache.invalidate()
            return {"stale": True}

        self.assertEqual(self.cache.get_or_compute("k", compute), {"stale": True})
        fresh = _Counter({"stale": False})
        self.assertEqual(self.cache.get_or_compute("k", fresh), {"stale": False})
        self.assertEqual(fresh.calls, 1)

    def test_disabled_cache_always_computes(self):
        cache = SearchCache(MemoryCacheBackend(), enabled=False)
        compute = _Counter()
        cache.get_or_compute("k", compute)
        cache.get_or_compute("k", compute)
        self.assertEqual(compute.calls, 2)

    def test_backend_failures_fall_through_to_compute(self):
        cache = SearchCache(_BrokenBackend())
        compute = _Counter()
        self.assertEqual(cache.get_or_compute("k", compute), {"total": 1})
        self.assertEqual(cache.invalidate(), 0)
        self.assertGreaterEqual(cache_stats(cache)["errors"], 3)

    def test_compute_errors_propagate_and_nothing_is_stored(self):
        def boom():
            raise RuntimeError("db down")

        with self.assertRaises(RuntimeError):
            self.cache.get_or_compute("k", boom)
        self.assertIsNone(self.cache.backend.entry("k"))

    def test_concurrent_identical_misses_compute_once(self):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow():
            calls.append(1)
            started.set()
            release.wait(5)
            return {"rows": 1}

        results = []
        first = threading.Thread(target=lambda: results.append(self.cache.get_or_compute("k", slow)))
        first.start()
        started.wait(5)
        second = threading.Thread(target=lambda: results.append(self.cache.get_or_compute("k", slow)))
        second.start()
        release.set()
        first.join(5)
        second.join(5)
        self.assertEqual(results, [{"rows": 1}, {"rows": 1}])
        self.assertEqual(len(calls), 1)


class RedisCacheBackendTestCase(unittest.TestCase):
    def setUp(self):
        _reset_cache_state_for_tests()
        self.client = _FakeRedis()
        self.cache = SearchCache(RedisCacheBackend(self.client), ttl_seconds=60)

    def test_hit_and_generation_invalidation(self):
        compute = _Counter()
        self.cache.get_or_compute("k", compute)
        self.cache.get_or_compute("k", compute)
        self.assertEqual(compute.calls, 1)
        self.assertIn("v1:cache:catalog-search:0:k", self.client.data)

        self.assertEqual(self.cache.invalidate(), 1)
        self.assertNotIn("v1:cache:catalog-search:0:k", self.client.data)
        self.cache.get_or_compute("k", compute)
        self.assertEqual(compute.calls, 2)
        self.assertIn("v1:cache:catalog-search:1:k", self.client.data)


class CacheKeyTestCase(unittest.TestCase):
    def test_key_ignores_param_order(self):
        a = build_cache_key("catalog_search", {"brand": ["Omega", "Rolex"], "page": 1})
        b = build_cache_key("catalog_search", {"page": 1, "brand": ["Omega", "Rolex"]})
        self.assertEqual(a, b)
        self.assertTrue(a.startswith("v1:catalog_search:"))

    def test_long_keys_are_hashed(self):
        key = build_cache_key("catalog_search", {"q": "x" * 600})
        self.assertLess(len(key), 120)


if __name__ == "__main__":
    unittest.main()
