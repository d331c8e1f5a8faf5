"""Tests for MemoryMonitor: RSS thresholds driving pressure handlers."""

from __future__ import annotations

import threading

import pytest

from tjimagecache.infrastructure.services.memory_monitor import (
    MiB,
    MemoryMonitor,
    MemorySnapshot,
    PressureLevel,
    read_rss_bytes,
)


class FakeReader:
    def __init__(self, value: int = 0):
        self.value = value

    def __call__(self) -> int:
        return self.value


class TestMemorySnapshot:
    def test_rss_mib(self):
        snap = MemorySnapshot(rss_bytes=100 * MiB)
        assert snap.rss_mib == pytest.approx(100.0)

    def test_zero(self):
        assert MemorySnapshot().rss_mib == 0.0


class TestMemoryMonitor:
    def test_check_with_real_reader(self):
        snap = MemoryMonitor().check()
        assert isinstance(snap, MemorySnapshot)
        assert snap.rss_bytes >= 0

    def test_read_rss_bytes_is_non_negative(self):
        assert read_rss_bytes() >= 0

    def test_no_handler_below_thresholds(self):
        calls = []
        mon = MemoryMonitor(100, 200, reader=FakeReader(50))
        mon.add_handler(lambda level, snap: calls.append(level))
        mon.check()
        assert calls == []

    def test_warning_fires_once_until_rearmed(self):
        calls = []
        reader = FakeReader(150)
        mon = MemoryMonitor(100, 200, reader=reader)
        mon.add_handler(lambda level, snap: calls.append(level))
        mon.check()
        mon.check()
        assert calls == [PressureLevel.WARNING]
        reader.value = 50
        mon.check()
        reader.value = 150
        mon.check()
        assert calls == [PressureLevel.WARNING, PressureLevel.WARNING]

    def test_critical_fires_both_levels(self):
        calls = []
        mon = MemoryMonitor(100, 200, reader=FakeReader(250))
        mon.add_handler(lambda level, snap: calls.append((level, snap.rss_bytes)))
        mon.check()
        assert (PressureLevel.CRITICAL, 250) in calls
        assert (PressureLevel.WARNING, 250) in calls

    def test_handler_exception_does_not_propagate(self):
        calls = []

        def bad(level, snap):
            raise RuntimeError("boom")

        mon = MemoryMonitor(0, 1 << 40, reader=FakeReader(10))
        mon.add_handler(bad)
        mon.add_handler(lambda level, snap: calls.append(level))
        mon.check()
        assert calls == [PressureLevel.WARNING]

    def test_polling_thread(self):
        fired = threading.Event()
        mon = MemoryMonitor(0, 1 << 40, reader=FakeReader(10))
        mon.add_handler(lambda level, snap: fired.set())
        mon.start(interval=0.01)
        try:
            assert mon.running
            assert fired.wait(2.0)
        finally:
            mon.stop()
        assert not mon.running

    def test_start_twice_is_harmless(self):
        mon = MemoryMonitor(reader=FakeReader(0))
        mon.start(interval=0.01)
        mon.start(interval=0.01)
        mon.stop()
        mon.stop()
