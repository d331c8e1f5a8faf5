"""Memory tier: decoded images keyed by hashed URL.

Each entry is held two ways: a strong reference that keeps the image
alive while the cache wants it, and a :class:`weakref.ref` that lets the
cache keep answering for an image some caller is still holding after the
strong reference has been dropped.  A memory-pressure purge drops only
the strong references, so images still in use survive until their last
caller releases them and unused ones are reclaimed by the collector.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections import OrderedDict
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)

CostFunction = Callable[[Any], int]


class MemoryImageCache:
    """Thread-safe strong/weak image cache with an optional byte budget.

    A :class:`threading.RLock` (reentrant) is used because the weak-ref
    ``_remove`` callback may fire while another method already holds the
    lock (e.g. the GC triggers during ``put``).

    Parameters
    ----------
    max_bytes:
        Budget for strongly held images, measured with *cost*.  When it is
        exceeded the least-recently-used strong references are dropped
        (the weak references stay).  ``0`` means unlimited, leaving
        eviction to memory-pressure purges.
    cost:
        Returns the approximate size in bytes of a decoded image.
    """

    def __init__(self, max_bytes: int = 0, cost: CostFunction | None = None) -> None:
        self._max_bytes = max(0, max_bytes)
        self._cost = cost or (lambda _image: 0)
        self._strong: OrderedDict[str, tuple[Any, int]] = OrderedDict()
        self._weak: dict[str, weakref.ref] = {}
        self._strong_bytes = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Any | None:
        """Return the cached image, or *None* if missing / collected."""
        with self._lock:
            held = self._strong.get(key)
            if held is not None:
                self._strong.move_to_end(key)
                return held[0]
            ref = self._weak.get(key)
            if ref is None:
                return None
            image = ref()
            if image is None:
                self._weak.pop(key, None)
                return None
            # Someone still holds it; keep it strongly again.
            self._hold(key, image)
            return image

    def contains(self, key: str) -> bool:
        with self._lock:
            if key in self._strong:
                return True
            ref = self._weak.get(key)
            return ref is not None and ref() is not None

    def put(self, key: str, image: Any) -> None:
        with self._lock:
            self._release(key)

            def _remove(ref: weakref.ref, _key: str = key) -> None:
                with self._lock:
                    if self._weak.get(_key) is ref:
                        self._weak.pop(_key, None)

            try:
                self._weak[key] = weakref.ref(image, _remove)
            except TypeError:
                # Not weak-referenceable; it lives only as long as the strong entry.
                self._weak.pop(key, None)
            self._hold(key, image)

    def remove(self, key: str) -> None:
        with self._lock:
            self._release(key)
            self._weak.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._strong.clear()
            self._weak.clear()
            self._strong_bytes = 0

    def purge(self) -> int:
        """Drop every strong reference; return how many were dropped.

        This is the memory-pressure response.  Entries survive only while
        some caller keeps the image alive.
        """
        with self._lock:
            dropped = len(self._strong)
            self._strong.clear()
            self._strong_bytes = 0
        LOGGER.debug("Purged %d strongly held images", dropped)
        return dropped

    @property
    def size(self) -> int:
        """Number of entries whose image is still reachable."""
        with self._lock:
            keys = set(self._strong)
            keys.update(k for k, ref in self._weak.items() if ref() is not None)
            return len(keys)

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def strong_size(self) -> int:
        with self._lock:
            return len(self._strong)

    @property
    def memory_usage_bytes(self) -> int:
        with self._lock:
            return self._strong_bytes

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _hold(self, key: str, image: Any) -> None:
        cost = max(0, int(self._cost(image)))
        self._strong[key] = (image, cost)
        self._strong_bytes += cost
        if not self._max_bytes:
            return
        while self._strong_bytes > self._max_bytes and len(self._strong) > 1:
            _oldest_key, (_image, oldest_cost) = self._strong.popitem(last=False)
            self._strong_bytes -= oldest_cost

    def _release(self, key: str) -> None:
        held = self._strong.pop(key, None)
        if held is not None:
            self._strong_bytes -= held[1]
