"""Tests for LRUCache - bounded recency cache."""

import threading

import pytest

from auth.cache import LRUCache


class TestInit:
    """Test construction bounds."""

    def test_zero_capacity_rejected(self):
        with pytest.raises(ValueError):
            LRUCache(0)

    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ValueError):
            LRUCache(10, ttl_seconds=0)


class TestGetPut:
    """Test basic get/put behavior."""

    def test_missing_key_returns_none(self):
        assert LRUCache(2).get("missing") is None

    def test_put_then_get(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        assert cache.get("a") == 1

    def test_put_replaces_value(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        cache.put("a", 2)
        assert cache.get("a") == 2
        assert len(cache) == 1


class TestEviction:
    """Test least-recently-used eviction."""

    def test_never_exceeds_capacity(self):
        cache = LRUCache(3)
        for i in range(10):
            cache.put(i, i)
        assert len(cache) == 3

    def test_evicts_least_recently_used(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)

        assert "a" not in cache
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_get_promotes(self):
        """A read makes the key most recently used."""
        cache = LRUCache(2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)

        assert cache.get("a") == 1
        assert "b" not in cache

    def test_replacing_existing_key_does_not_evict(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("a", 10)

        assert cache.get("b") == 2
        assert cache.get("a") == 10


class TestDelete:
    """Test explicit removal."""

    def test_delete_present_key(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        assert cache.delete("a") is True
        assert cache.get("a") is None

    def test_delete_missing_key(self):
        assert LRUCache(2).delete("a") is False

    def test_clear(self):
        cache = LRUCache(2)
        cache.put("a", 1)
        cache.clear()
        assert len(cache) == 0


class TestPopIf:
    """Test atomic conditional removal."""

    def test_pops_when_predicate_holds(self):
        cache = LRUCache(2)
        cache.put("a", 1)

        assert cache.pop_if("a", lambda v: v == 1) == 1
        assert "a" not in cache

    def test_leaves_entry_when_predicate_fails(self):
        cache = LRUCache(2)
        cache.put("a", 1)

        assert cache.pop_if("a", lambda v: v == 2) is None
        assert cache.get("a") == 1

    def test_missing_key_returns_none(self):
        assert LRUCache(2).pop_if("a", lambda v: True) is None

    def test_only_one_concurrent_pop_wins(self):
        cache = LRUCache(10)
        cache.put("code", "value")
        winners = []
        barrier = threading.Barrier(8)

        def claim():
            barrier.wait()
            if cache.pop_if("code", lambda v: True) is not None:
                winners.append(1)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1


class TestTTL:
    """Test optional entry lifetime."""

    def test_entry_visible_before_ttl(self, clock):
        cache = LRUCache(2, ttl_seconds=60, clock=clock)
        cache.put("a", 1)
        clock.advance(59)
        assert cache.get("a") == 1

    def test_entry_gone_after_ttl(self, clock):
        cache = LRUCache(2, ttl_seconds=60, clock=clock)
        cache.put("a", 1)
        clock.advance(60)

        assert cache.get("a") is None
        assert "a" not in cache

    def test_expired_entry_not_popped(self, clock):
        cache = LRUCache(2, ttl_seconds=60, clock=clock)
        cache.put("a", 1)
        clock.advance(61)
        assert cache.pop_if("a", lambda v: True) is None

    def test_put_restarts_lifetime(self, clock):
        cache = LRUCache(2, ttl_seconds=60, clock=clock)
        cache.put("a", 1)
        clock.advance(50)
        cache.put("a", 2)
        clock.advance(50)
        assert cache.get("a") == 2

    def test_no_ttl_never_expires(self, clock):
        cache = LRUCache(2, clock=clock)
        cache.put("a", 1)
        clock.advance(10**9)
        assert cache.get("a") == 1
