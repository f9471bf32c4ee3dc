"""Tests for the per-run LRU caches."""
import pytest

from logslim.cache.lru import LRUCache, RunCaches, ScoreCache, StructuralMatchCache, TokenizationCache
from logslim.config import CacheConfig


class TestLRUCache:
    def test_get_or_compute(self):
        calls = []
        cache = LRUCache(2, compute=lambda k: calls.append(k) or k * 2)
        assert cache.get(3) == 6
        assert cache.get(3) == 6
        assert calls == [3]
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)
        assert stats.hit_rate == 0.5

    def test_evicts_least_recently_used(self):
        cache = LRUCache(3, compute=str)
        for key in (1, 2, 3):
            cache.get(key)
        cache.get(1)          # 2 is now least recently used
        cache.get(4)
        assert 2 not in cache
        assert len(cache) == 3
        assert cache.keys() == [3, 1, 4]

    def test_maxsize_plus_one_misses_oldest(self):
        cache = LRUCache(5, compute=lambda k: k)
        for key in range(6):
            cache.get(key)
        misses = cache.misses
        cache.get(0)
        assert cache.misses == misses + 1
        assert cache.stats().evictions == 2

    def test_peek_does_not_touch_recency(self):
        cache = LRUCache(2, compute=str)
        cache.get("a")
        cache.get("b")
        assert cache.peek("a") == "a"
        cache.get("c")
        assert "a" not in cache

    def test_missing_without_compute_raises(self):
        with pytest.raises(KeyError):
            LRUCache(2).get("nope")

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            LRUCache(0)

    def test_clear(self):
        cache = LRUCache(2, compute=str)
        cache.get(1)
        cache.clear()
        assert len(cache) == 0
        assert cache.stats().misses == 0


class TestWrappers:
    def test_tokenization_cache(self):
        seen = []
        cache = TokenizationCache(lambda t: seen.append(t) or t.split(), maxsize=10)
        assert cache.tokens("a b") == ["a", "b"]
        assert cache.tokens("a b") == ["a", "b"]
        assert cache.tokens("") == []
        assert seen == ["a b"]

    def test_structural_cache_key_is_order_independent(self):
        cache = StructuralMatchCache(maxsize=10)
        a, b = "connection refused to db", "ECONNRESET while reading"
        assert cache.should_cluster(a, b) is True
        assert cache.should_cluster(b, a) is True
        stats = cache.stats()
        assert (stats.misses, stats.hits) == (1, 1)
        assert cache.should_cluster("", a) is False

    def test_score_cache_keys_by_content(self):
        calls = []
        cache = ScoreCache(lambda lines: calls.append(1) or float(len(lines)), maxsize=4)
        assert cache.score(["x", "y"]) == 2.0
        assert cache.score(("x", "y")) == 2.0
        assert len(calls) == 1

    def test_run_caches(self):
        caches = RunCaches.from_config(CacheConfig(tokenization_size=2), scorer=lambda lines: 1.0)
        caches.tokens.tokens("GET /api")
        caches.scores.score(["a"])
        stats = caches.stats()
        assert set(stats) == {"tokenization", "structural", "score"}
        assert stats["tokenization"]["maxsize"] == 2
        caches.clear()
        assert caches.stats()["tokenization"]["size"] == 0

    def test_run_caches_without_scorer(self):
        caches = RunCaches.from_config(CacheConfig())
        assert caches.scores is None
        assert "score" not in caches.stats()
