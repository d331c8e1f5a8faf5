"""Process memory watcher standing in for a host low-memory signal.

The monitor samples resident memory and calls pressure handlers when a
threshold is crossed.  :meth:`MemoryMonitor.check` can be driven from any
timer; :meth:`MemoryMonitor.start` runs it on a daemon thread.
"""

from __future__ import annotations

import enum
import logging
import sys
import threading
from dataclasses import dataclass
from typing import Callable, List

from ...config import MEMORY_CRITICAL_BYTES, MEMORY_POLL_INTERVAL_SEC, MEMORY_WARNING_BYTES

LOGGER = logging.getLogger(__name__)

MiB: int = 1 << 20


class PressureLevel(enum.Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class MemorySnapshot:
    """Point-in-time memory reading."""

    rss_bytes: int = 0

    @property
    def rss_mib(self) -> float:
        return self.rss_bytes / MiB


PressureHandler = Callable[[PressureLevel, MemorySnapshot], None]


class MemoryMonitor:
    """Fire pressure handlers when RSS crosses the configured thresholds.

    Each level fires once when crossed and re-arms after RSS falls back
    below it, so a process sitting above the threshold is not purged on
    every poll.
    """

    def __init__(
        self,
        warning_bytes: int = MEMORY_WARNING_BYTES,
        critical_bytes: int = MEMORY_CRITICAL_BYTES,
        reader: Callable[[], int] | None = None,
    ) -> None:
        self._thresholds = {
            PressureLevel.CRITICAL: critical_bytes,
            PressureLevel.WARNING: warning_bytes,
        }
        self._reader = reader or read_rss_bytes
        self._handlers: List[PressureHandler] = []
        self._armed = {level: True for level in PressureLevel}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def add_handler(self, handler: PressureHandler) -> None:
        with self._lock:
            self._handlers.append(handler)

    def check(self) -> MemorySnapshot:
        """Sample RSS once and notify handlers of newly crossed thresholds."""
        snap = MemorySnapshot(rss_bytes=self._reader())
        fired: list[PressureLevel] = []
        with self._lock:
            for level, threshold in self._thresholds.items():
                if snap.rss_bytes >= threshold:
                    if self._armed[level]:
                        self._armed[level] = False
                        fired.append(level)
                else:
                    self._armed[level] = True
            handlers = list(self._handlers)
        for level in fired:
            LOGGER.warning(
                "Memory %s: %.1f MiB (threshold %.1f MiB)",
                level.value,
                snap.rss_mib,
                self._thresholds[level] / MiB,
            )
            for handler in handlers:
                try:
                    handler(level, snap)
                except Exception:
                    LOGGER.exception("Error in %s memory handler", level.value)
        return snap

    # ------------------------------------------------------------------
    # Polling thread
    # ------------------------------------------------------------------

    def start(self, interval: float = MEMORY_POLL_INTERVAL_SEC) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(interval,),
            name="tjimagecache-memory-monitor",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    @property
    def running(self) -> bool:
        return self._thread is not None

    def _run(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self.check()


def read_rss_bytes() -> int:
    """Current process RSS from ``/proc/self/status``, or peak RSS elsewhere."""

    try:
        with open("/proc/self/status") as f:
            for line in f:
                if line.startswith("VmRSS:"):
                    return int(line.split()[1]) * 1024
    except OSError:
        pass
    try:
        import resource
    except ImportError:  # Windows
        return 0
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is in bytes on macOS, KiB elsewhere.
    return usage if sys.platform == "darwin" else usage * 1024
