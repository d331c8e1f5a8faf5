"""Approximate disk usage kept current without rescanning the root."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from .delivery import Dispatcher

LOGGER = logging.getLogger(__name__)

UsageObserver = Callable[[int], None]


class DiskUsageTracker:
    """Base size from the last full scan plus the bytes written or freed since.

    Until a base has been recorded (by a size query or an audit) deltas
    are ignored and :attr:`approximate_size` is ``None``.  Observers are
    told about every change through *dispatcher*.
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher
        self._lock = threading.Lock()
        self._base: int | None = None
        self._delta = 0
        self._observers: list[UsageObserver] = []

    @property
    def has_base(self) -> bool:
        with self._lock:
            return self._base is not None

    @property
    def approximate_size(self) -> int | None:
        with self._lock:
            if self._base is None:
                return None
            return max(0, self._base + self._delta)

    def add_observer(self, observer: UsageObserver) -> None:
        with self._lock:
            self._observers.append(observer)

    def set_base(self, size: int) -> None:
        with self._lock:
            previous = None if self._base is None else self._base + self._delta
            self._base = size
            self._delta = 0
        if previous != size:
            self._notify(size)

    def apply_delta(self, delta: int) -> None:
        if not delta:
            return
        with self._lock:
            if self._base is None:
                return
            self._delta += delta
            size = max(0, self._base + self._delta)
        self._notify(size)

    def _notify(self, size: int) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            self._dispatcher.submit(observer, size)
