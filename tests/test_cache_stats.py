"""Tests for CacheStatsCollector: per-tier hit/miss tracking."""

from __future__ import annotations

import threading

import pytest

from tjimagecache.domain.models import Depth
from tjimagecache.infrastructure.services.cache_stats import CacheStatsCollector, TierStats


class TestTierStats:
    def test_empty(self):
        s = TierStats()
        assert s.total == 0
        assert s.hit_rate == 0.0

    def test_all_hits(self):
        s = TierStats(hits=10, misses=0)
        assert s.hit_rate == pytest.approx(1.0)

    def test_mixed(self):
        s = TierStats(hits=7, misses=3)
        assert s.hit_rate == pytest.approx(0.7)

    def test_failures_do_not_count_towards_total(self):
        s = TierStats(hits=4, misses=6, failures=3)
        assert s.total == 10


class TestCacheStatsCollector:
    def test_record_hit(self):
        c = CacheStatsCollector()
        c.record_hit(Depth.MEMORY)
        assert c.get(Depth.MEMORY).hits == 1
        assert c.get(Depth.MEMORY).misses == 0

    def test_record_miss_and_failure(self):
        c = CacheStatsCollector()
        c.record_miss(Depth.DISK)
        c.record_failure(Depth.INTERNET)
        assert c.get(Depth.DISK).misses == 1
        assert c.get(Depth.INTERNET).failures == 1

    def test_tiers_are_independent(self):
        c = CacheStatsCollector()
        c.record_hit(Depth.MEMORY)
        c.record_hit(Depth.MEMORY)
        c.record_miss(Depth.DISK)
        assert c.get(Depth.MEMORY).hits == 2
        assert c.get(Depth.DISK).hits == 0

    def test_all_lists_every_tier_in_order(self):
        c = CacheStatsCollector()
        c.record_hit(Depth.DISK)
        result = c.all()
        assert list(result) == [Depth.MEMORY, Depth.DISK, Depth.INTERNET]
        assert result[Depth.DISK].hits == 1
        assert result[Depth.INTERNET] == TierStats()

    def test_reset(self):
        c = CacheStatsCollector()
        c.record_hit(Depth.MEMORY)
        c.record_failure(Depth.INTERNET)
        c.reset()
        assert c.get(Depth.MEMORY).hits == 0
        assert c.get(Depth.INTERNET).failures == 0

    def test_concurrent_recording(self):
        c = CacheStatsCollector()

        def worker():
            for _ in range(1000):
                c.record_hit(Depth.MEMORY)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert c.get(Depth.MEMORY).hits == 8000
