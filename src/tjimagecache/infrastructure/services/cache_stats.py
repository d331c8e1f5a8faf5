"""Per-tier hit / miss / failure counters for the image cache."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass

from ...domain.models import Depth


@dataclass(frozen=True)
class TierStats:
    """Immutable snapshot of one tier's counters."""

    hits: int = 0
    misses: int = 0
    failures: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Hit rate as a float in [0.0, 1.0]; 0.0 when no requests."""
        if self.total == 0:
            return 0.0
        return self.hits / self.total


class CacheStatsCollector:
    """Thread-safe counters keyed by :class:`Depth`.

    For the ``INTERNET`` tier a *hit* is a completed download and a
    *failure* a transport or decode error; it never records misses.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits: Counter[Depth] = Counter()
        self._misses: Counter[Depth] = Counter()
        self._failures: Counter[Depth] = Counter()

    def record_hit(self, tier: Depth) -> None:
        with self._lock:
            self._hits[tier] += 1

    def record_miss(self, tier: Depth) -> None:
        with self._lock:
            self._misses[tier] += 1

    def record_failure(self, tier: Depth) -> None:
        with self._lock:
            self._failures[tier] += 1

    def get(self, tier: Depth) -> TierStats:
        with self._lock:
            return TierStats(self._hits[tier], self._misses[tier], self._failures[tier])

    def all(self) -> dict[Depth, TierStats]:
        """Return a snapshot for every tier, shallowest first."""
        with self._lock:
            return {
                tier: TierStats(self._hits[tier], self._misses[tier], self._failures[tier])
                for tier in Depth
            }

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._misses.clear()
            self._failures.clear()
