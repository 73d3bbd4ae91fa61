"""
Tests for the result cache.
"""

import threading
import time

import pytest

from pollsite.cache import ResultCache
from pollsite.errors import StoreUnavailableError
from pollsite.models import SiteAssignment

SITE = SiteAssignment(department="ATLANTICO", site_name="COLEGIO")


class CountingFetch:
    def __init__(self, result=SITE):
        self.result = result
        self.calls = []

    def __call__(self, key):
        self.calls.append(key)
        return self.result


class TestGetOrFetch:
    """Test hit, miss and expiry behaviour."""

    def test_miss_calls_fetch_and_caches(self, clock):
        cache = ResultCache(timeout=60, clock=clock)
        fetch = CountingFetch()

        assert cache.get_or_fetch("1", fetch) == SITE
        assert fetch.calls == ["1"]
        assert len(cache) == 1
        assert cache.misses == 1

    def test_hit_does_not_call_fetch(self, clock):
        cache = ResultCache(timeout=60, clock=clock)
        fetch = CountingFetch()

        cache.get_or_fetch("1", fetch)
        clock.advance(59)
        assert cache.get_or_fetch("1", fetch) == SITE

        assert fetch.calls == ["1"]
        assert cache.hits == 1

    def test_expired_entry_is_refetched(self, clock):
        cache = ResultCache(timeout=60, clock=clock)
        fetch = CountingFetch()

        cache.get_or_fetch("1", fetch)
        clock.advance(60)
        cache.get_or_fetch("1", fetch)

        assert fetch.calls == ["1", "1"]
        assert cache.hits == 0

    def test_not_found_is_cached(self, clock):
        cache = ResultCache(timeout=60, clock=clock)
        fetch = CountingFetch(result=None)

        assert cache.get_or_fetch("9", fetch) is None
        assert cache.get_or_fetch("9", fetch) is None
        assert fetch.calls == ["9"]
        assert cache.hits == 1

    def test_fetch_error_is_not_cached(self, clock):
        cache = ResultCache(timeout=60, clock=clock)

        def failing(key):
            raise StoreUnavailableError("down")

        with pytest.raises(StoreUnavailableError):
            cache.get_or_fetch("1", failing)
        assert len(cache) == 0

        fetch = CountingFetch()
        assert cache.get_or_fetch("1", fetch) == SITE
        assert fetch.calls == ["1"]

    def test_concurrent_misses_fetch_once(self):
        cache = ResultCache(timeout=60)
        calls = []
        started = threading.Event()

        def slow_fetch(key):
            calls.append(key)
            started.set()
            time.sleep(0.05)
            return SITE

        results = []

        def worker():
            results.append(cache.get_or_fetch("1", slow_fetch))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert calls == ["1"]
        assert results == [SITE] * 5


class TestSweep:
    """Test expiry sweep."""

    def test_sweep_removes_only_expired(self, clock):
        cache = ResultCache(timeout=60, clock=clock)
        cache.put("old", SITE)
        clock.advance(30)
        cache.put("new", None)
        clock.advance(30)

        assert cache.sweep() == 1
        assert len(cache) == 1
        assert cache.get_or_fetch("new", CountingFetch()) is None

    def test_background_sweeper(self):
        cache = ResultCache(timeout=0.05)
        cache.put("1", SITE)
        cache.start_sweeper(interval=0.02)
        try:
            deadline = time.time() + 2
            while len(cache) and time.time() < deadline:
                time.sleep(0.01)
        finally:
            cache.stop_sweeper()
        assert len(cache) == 0


class TestWarm:
    """Test batched prefetch."""

    def test_warm_caches_found_and_missing(self, clock):
        cache = ResultCache(timeout=60, clock=clock)
        batches = []

        def fetch_many(keys):
            batches.append(keys)
            return {"1": SITE}

        assert cache.warm(["1", "2", "1", ""], fetch_many) == 2
        assert batches == [["1", "2"]]

        fetch = CountingFetch()
        assert cache.get_or_fetch("1", fetch) == SITE
        assert cache.get_or_fetch("2", fetch) is None
        assert fetch.calls == []

    def test_stats(self, clock):
        cache = ResultCache(timeout=60, clock=clock)
        cache.get_or_fetch("1", CountingFetch())
        cache.get_or_fetch("1", CountingFetch())
        assert cache.stats() == {"size": 1, "hits": 1, "misses": 1, "timeout": 60}
