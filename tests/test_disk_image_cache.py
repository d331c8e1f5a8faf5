"""Tests for DiskImageCache (disk tier)."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from tjimagecache.errors import DiskIOError
from tjimagecache.infrastructure.services.disk_image_cache import DiskImageCache, default_root_path
from tjimagecache.utils.hashutils import hash_url

KEY = hash_url("https://ex/a.png")
OTHER = hash_url("https://ex/b.png")


class TestDiskImageCache:
    def test_creates_root_eagerly(self, tmp_path: Path):
        root = tmp_path / "deep" / "cache"
        DiskImageCache(root)
        assert root.is_dir()

    def test_write_and_read(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"raw-bytes")
        assert cache.read_bytes(KEY) == b"raw-bytes"

    def test_flat_layout(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"raw-bytes")
        assert sorted(p.name for p in tmp_path.iterdir()) == [KEY]
        assert (tmp_path / KEY).read_bytes() == b"raw-bytes"

    def test_read_miss(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        assert cache.read_bytes(KEY) is None
        assert cache.stat(KEY) is None
        assert not cache.contains(KEY)

    def test_overwrite_returns_size_delta(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        assert cache.write(KEY, b"12345") == 5
        assert cache.write(KEY, b"12") == -3
        assert cache.read_bytes(KEY) == b"12"

    def test_write_failure_leaves_no_partial_file(self, tmp_path: Path, monkeypatch):
        cache = DiskImageCache(tmp_path)

        def _fail(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", _fail)
        with pytest.raises(DiskIOError):
            cache.write(KEY, b"data")
        assert list(tmp_path.iterdir()) == []

    def test_stat_reports_size_and_dates(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"abcd")
        entry = cache.stat(KEY)
        assert entry is not None
        assert entry.key == KEY
        assert entry.size == 4
        assert entry.created_date.tzinfo is not None
        assert entry.last_access.tzinfo is not None

    def test_read_bumps_last_access(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"abcd")
        old = time.time() - 3 * 24 * 3600
        os.utime(tmp_path / KEY, (old, old))
        before = cache.stat(KEY)
        assert cache.read_bytes(KEY) == b"abcd"
        after = cache.stat(KEY)
        assert after.last_access > before.last_access
        # Modification time is left alone.
        assert (tmp_path / KEY).stat().st_mtime == pytest.approx(old, abs=1)

    def test_delete(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"abcd")
        assert cache.delete(KEY) == 4
        assert cache.read_bytes(KEY) is None

    def test_delete_missing_is_noop(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        assert cache.delete(KEY) == 0

    def test_delete_all_keeps_root(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path / "root")
        cache.write(KEY, b"a" * 10)
        cache.write(OTHER, b"b" * 5)
        assert cache.delete_all() == 15
        assert (tmp_path / "root").is_dir()
        assert list((tmp_path / "root").iterdir()) == []

    def test_total_size(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"a" * 10)
        cache.write(OTHER, b"b" * 5)
        assert cache.total_size() == 15

    def test_enumerate_skips_temporaries_and_directories(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"data")
        (tmp_path / f".{OTHER}.abc.tmp").write_bytes(b"partial")
        (tmp_path / "subdir").mkdir()
        keys = [entry.key for entry in cache.enumerate()]
        assert keys == [KEY]

    def test_open_reader_survives_delete(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"original")
        with cache.path_for(KEY).open("rb") as handle:
            cache.delete(KEY)
            assert handle.read() == b"original"
        assert cache.read_bytes(KEY) is None


def test_default_root_path_ends_with_cache_dir_name():
    path = default_root_path()
    assert path.name == "TJImageCache"
    assert path.is_absolute()


class TestGuardedDelete:
    def test_deletes_unchanged_entry(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"abcd")
        entry = cache.stat(KEY)
        assert entry.inode
        assert cache.delete_entry(entry) == 4
        assert not cache.contains(KEY)

    def test_skips_replaced_file(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"abcd")
        entry = cache.stat(KEY)
        cache.write(KEY, b"a newer and longer body")
        assert cache.delete_entry(entry) is None
        assert cache.read_bytes(KEY) == b"a newer and longer body"

    def test_skips_claimed_key(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"abcd")
        entry = cache.stat(KEY)
        assert cache.delete_entry(entry, unless=lambda key: key == KEY) is None
        assert cache.contains(KEY)

    def test_missing_file(self, tmp_path: Path):
        cache = DiskImageCache(tmp_path)
        cache.write(KEY, b"abcd")
        entry = cache.stat(KEY)
        cache.delete(KEY)
        assert cache.delete_entry(entry) == 0


def test_enumerate_ignores_foreign_files(tmp_path: Path):
    cache = DiskImageCache(tmp_path)
    cache.write(KEY, b"data")
    (tmp_path / "README.txt").write_text("not a cache entry")
    assert [entry.key for entry in cache.enumerate()] == [KEY]
    assert cache.total_size() == 4


def test_unwritable_root_raises_disk_io_error(tmp_path: Path):
    blocker = tmp_path / "file"
    blocker.write_bytes(b"")
    with pytest.raises(DiskIOError):
        DiskImageCache(blocker / "root")
