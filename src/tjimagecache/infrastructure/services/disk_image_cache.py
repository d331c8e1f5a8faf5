"""Disk tier: a flat directory of ``<root>/<md5-hex>`` files holding raw downloads."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator

from PySide6.QtCore import QStandardPaths

from ...config import CACHE_DIR_NAME, DISK_LOCK_STRIPES
from ...domain.models import DiskEntry
from ...errors import DiskIOError
from ...utils.hashutils import is_hashed_key

LOGGER = logging.getLogger(__name__)

_TEMP_PREFIX = "."
_TEMP_SUFFIX = ".tmp"


def default_root_path() -> Path:
    """Return ``<user cache dir>/TJImageCache`` for the current platform.

    ``QStandardPaths.CacheLocation`` already includes the organisation and
    application names when a ``QCoreApplication`` has set them.
    """

    base = QStandardPaths.writableLocation(QStandardPaths.StandardLocation.CacheLocation)
    if not base:
        base = str(Path.home() / ".cache")
    return Path(base) / CACHE_DIR_NAME


def _timestamp(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _entry_from_stat(key: str, st: os.stat_result) -> DiskEntry:
    # Birth time where the platform records it; otherwise mtime, which the
    # store never changes after the rename that creates the entry.
    created = getattr(st, "st_birthtime", None)
    if created is None:
        created = st.st_mtime
    return DiskEntry(
        key=key,
        size=st.st_size,
        created_date=_timestamp(created),
        last_access=_timestamp(st.st_atime),
        inode=st.st_ino,
    )


class DiskImageCache:
    """Persist downloaded bytes by hashed key and expose file metadata.

    Writes go to a hidden temporary file in the root and are renamed into
    place, so readers never see a partial entry.  Mutations of one key are
    serialised through a striped lock; reads take no lock at all and keep
    their file handle open until the read finishes, so an entry deleted
    mid-read still yields its original bytes.
    """

    def __init__(self, root: Path, *, lock_stripes: int = DISK_LOCK_STRIPES):
        self._root = Path(root)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DiskIOError(f"Could not create cache root {self._root}: {exc}") from exc
        self._locks = [threading.Lock() for _ in range(max(1, lock_stripes))]

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        return self._root / key

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def contains(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def read_bytes(self, key: str) -> bytes | None:
        """Return the stored bytes for *key*, or *None* when absent.

        A successful read bumps the entry's last-access time.
        """
        path = self.path_for(key)
        try:
            with path.open("rb") as handle:
                data = handle.read()
                st = os.fstat(handle.fileno())
        except FileNotFoundError:
            return None
        self._touch(key, st)
        return data

    def stat(self, key: str) -> DiskEntry | None:
        try:
            st = self.path_for(key).stat()
        except FileNotFoundError:
            return None
        return _entry_from_stat(key, st)

    def enumerate(self) -> Iterator[DiskEntry]:
        """Yield one :class:`DiskEntry` per cache file directly under the root.

        The directory listing is snapshotted up front; entries removed
        before they are reached are skipped.  In-progress temporary files
        and names that are not hashed keys are never reported.
        """
        try:
            with os.scandir(self._root) as it:
                names = [entry.name for entry in it if is_hashed_key(entry.name)]
        except FileNotFoundError:
            return
        for name in names:
            try:
                st = os.stat(self._root / name)
            except FileNotFoundError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            yield _entry_from_stat(name, st)

    def total_size(self) -> int:
        return sum(entry.size for entry in self.enumerate())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def write(self, key: str, data: bytes) -> int:
        """Atomically store *data* as the entry for *key*.

        Returns the change in bytes occupied on disk (new size minus the
        size of any entry it replaced).  Raises :class:`DiskIOError` when
        the temporary file cannot be written or renamed.
        """
        path = self.path_for(key)
        with self._lock_for(key):
            previous = self._size_or_zero(path)
            tmp_name: str | None = None
            try:
                with tempfile.NamedTemporaryFile(
                    dir=self._root,
                    prefix=f"{_TEMP_PREFIX}{key}.",
                    suffix=_TEMP_SUFFIX,
                    delete=False,
                ) as handle:
                    tmp_name = handle.name
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except OSError as exc:
                if tmp_name is not None:
                    try:
                        os.unlink(tmp_name)
                    except OSError:
                        pass
                raise DiskIOError(f"Could not store {key} in {self._root}: {exc}") from exc
        LOGGER.debug("Stored %s (%d bytes)", key, len(data))
        return len(data) - previous

    def delete(self, key: str) -> int:
        """Remove the entry for *key* if present; return the bytes freed."""
        path = self.path_for(key)
        with self._lock_for(key):
            size = self._size_or_zero(path)
            try:
                path.unlink()
            except FileNotFoundError:
                return 0
            except OSError:
                LOGGER.warning("Could not delete cache entry %s", path, exc_info=True)
                return 0
        return size

    def delete_entry(
        self,
        entry: DiskEntry,
        *,
        unless: Callable[[str], bool] | None = None,
    ) -> int | None:
        """Remove the file *entry* was read from, if it is still that file.

        Under the key's lock, *unless* is asked first and the file is
        re-stated; a file that was replaced since *entry* was taken (or
        that *unless* claims) is left alone and ``None`` is returned.
        Otherwise returns the bytes freed.
        """
        path = self.path_for(entry.key)
        with self._lock_for(entry.key):
            if unless is not None and unless(entry.key):
                return None
            try:
                current = path.stat()
            except FileNotFoundError:
                return 0
            if entry.inode and current.st_ino != entry.inode:
                return None
            if current.st_size != entry.size:
                return None
            try:
                path.unlink()
            except FileNotFoundError:
                return 0
            except OSError:
                LOGGER.warning("Could not delete cache entry %s", path, exc_info=True)
                return None
        return current.st_size

    def delete_all(self) -> int:
        """Remove every entry, keeping the root directory; return the bytes freed."""
        freed = 0
        for entry in self.enumerate():
            freed += self.delete(entry.key)
        LOGGER.debug("Cleared disk cache at %s (%d bytes)", self._root, freed)
        return freed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock_for(self, key: str) -> threading.Lock:
        try:
            index = int(key[:8], 16)
        except ValueError:
            index = hash(key)
        return self._locks[index % len(self._locks)]

    @staticmethod
    def _size_or_zero(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0

    def _touch(self, key: str, read_stat: os.stat_result) -> None:
        path = self.path_for(key)
        with self._lock_for(key):
            try:
                current = path.stat()
                # The entry was replaced or deleted while we were reading.
                if current.st_ino != read_stat.st_ino:
                    return
                os.utime(path, ns=(time.time_ns(), current.st_mtime_ns))
            except OSError:
                LOGGER.debug("Could not update last access for %s", path, exc_info=True)
