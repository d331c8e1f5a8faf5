"""Tests for CacheAuditor and the age predicates."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

from tjimagecache.domain.models import DiskEntry
from tjimagecache.infrastructure.services.cache_auditor import (
    CacheAuditor,
    accessed_on_or_after,
    created_on_or_after,
)
from tjimagecache.infrastructure.services.disk_image_cache import DiskImageCache
from tjimagecache.infrastructure.services.memory_image_cache import MemoryImageCache
from tjimagecache.utils.hashutils import hash_url


class _Img:
    pass


def _entry(created: datetime, accessed: datetime) -> DiskEntry:
    return DiskEntry(key="0" * 32, size=1, created_date=created, last_access=accessed)


def _set_times(disk: DiskImageCache, key: str, when: datetime) -> None:
    ts = when.timestamp()
    os.utime(disk.path_for(key), (ts, ts))


def test_predicate_decides_each_entry(tmp_path):
    disk = DiskImageCache(tmp_path)
    for name in ("a", "b", "c"):
        disk.write(hash_url(name), name.encode() * 10)
    doomed = hash_url("b")
    report = CacheAuditor(disk, MemoryImageCache()).run(lambda entry: entry.key != doomed)
    assert report.removed == 1
    assert report.kept == 2
    assert report.remaining_bytes == 20
    assert not disk.contains(doomed)


def test_entries_in_memory_are_spared(tmp_path):
    disk = DiskImageCache(tmp_path)
    memory = MemoryImageCache()
    key = hash_url("held")
    disk.write(key, b"xyz")
    held = _Img()
    memory.put(key, held)
    report = CacheAuditor(disk, memory).run(lambda entry: False)
    assert report.in_use == 1
    assert report.removed == 0
    assert disk.contains(key)


def test_raising_predicate_keeps_entry(tmp_path):
    disk = DiskImageCache(tmp_path)
    key = hash_url("x")
    disk.write(key, b"data")

    def explode(entry):
        raise ValueError("bad predicate")

    report = CacheAuditor(disk, MemoryImageCache()).run(explode)
    assert report.kept == 1
    assert disk.contains(key)


def test_empty_root(tmp_path):
    report = CacheAuditor(DiskImageCache(tmp_path), MemoryImageCache()).run(lambda e: False)
    assert (report.kept, report.removed, report.in_use, report.remaining_bytes) == (0, 0, 0, 0)


def test_access_age_audit_removes_stale_files(tmp_path):
    disk = DiskImageCache(tmp_path)
    now = datetime.now(timezone.utc)
    old, fresh = hash_url("old"), hash_url("fresh")
    disk.write(old, b"o")
    disk.write(fresh, b"f")
    _set_times(disk, old, now - timedelta(days=30))
    report = CacheAuditor(disk, MemoryImageCache()).run(accessed_on_or_after(now - timedelta(days=7)))
    assert report.removed == 1
    assert not disk.contains(old)
    assert disk.contains(fresh)


def test_created_predicate_boundary():
    cutoff = datetime(2024, 1, 1, tzinfo=timezone.utc)
    keep = created_on_or_after(cutoff)
    assert keep(_entry(cutoff, cutoff))
    assert not keep(_entry(cutoff - timedelta(seconds=1), cutoff))


def test_accessed_predicate_accepts_naive_dates():
    naive = datetime(2024, 1, 1, 12, 0)
    keep = accessed_on_or_after(naive)
    aware = naive.astimezone()
    assert keep(_entry(aware, aware + timedelta(minutes=1)))
    assert not keep(_entry(aware, aware - timedelta(minutes=1)))


def test_entry_loaded_into_memory_during_audit_is_kept(tmp_path):
    disk = DiskImageCache(tmp_path)
    memory = MemoryImageCache()
    key = hash_url("racing")
    disk.write(key, b"bytes")
    held = _Img()

    def load_then_reject(entry):
        # A lookup finishes between the residence check and the delete.
        memory.put(entry.key, held)
        return False

    report = CacheAuditor(disk, memory).run(load_then_reject)
    assert disk.contains(key)
    assert memory.contains(key)
    assert report.removed == 0
    assert report.in_use == 1
    assert report.remaining_bytes == 5


def test_entry_rewritten_during_audit_is_kept(tmp_path):
    disk = DiskImageCache(tmp_path)
    key = hash_url("rewritten")
    disk.write(key, b"old")

    def rewrite_then_reject(entry):
        disk.write(entry.key, b"fresh download")
        return False

    report = CacheAuditor(disk, MemoryImageCache()).run(rewrite_then_reject)
    assert disk.read_bytes(key) == b"fresh download"
    assert report.kept == 1
    assert report.removed == 0
