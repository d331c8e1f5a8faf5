"""Three-tier image cache (memory, disk, network) keyed by URL."""

from __future__ import annotations

import io
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from ...config import FETCH_TIMEOUT_SEC, IO_WORKERS, MEMORY_BUDGET_BYTES
from ...domain.models import AuditPredicate, AuditReport, Depth
from ...errors import DecodeError, DiskIOError, TransportError
from ...utils.hashutils import hash_url
from .cache_auditor import CacheAuditor, accessed_on_or_after, created_on_or_after
from .cache_stats import CacheStatsCollector
from .delivery import Dispatcher, create_default_dispatcher
from .disk_image_cache import DiskImageCache
from .disk_usage import DiskUsageTracker, UsageObserver
from .image_decoder import ImageDecoder, PillowImageDecoder, estimate_image_bytes
from .image_fetcher import HttpImageFetcher, ImageFetcher
from .inflight_registry import InFlightRegistry, JoinResult
from .memory_image_cache import MemoryImageCache
from .memory_monitor import MemoryMonitor, MemorySnapshot, PressureLevel

LOGGER = logging.getLogger(__name__)


class ImageCacheService:
    """URL-keyed image cache rooted at one directory.

    :meth:`image_at_url` answers synchronously from memory only.  Anything
    deeper runs on the background *executor*; the result reaches the
    caller's delegate through *dispatcher*, never on an I/O thread.
    Concurrent lookups of the same URL share a single disk read or
    download.

    Collaborators default to Pillow decoding, an ``httpx`` fetcher, a
    private I/O pool of *io_workers* threads and the Qt main thread (or a
    dedicated delivery thread when no Qt application is running).  Pass
    your own to share pools or to control where callbacks run.
    """

    def __init__(
        self,
        root: Path,
        *,
        fetcher: ImageFetcher | None = None,
        decoder: ImageDecoder | None = None,
        executor: Executor | None = None,
        dispatcher: Dispatcher | None = None,
        memory_cache: MemoryImageCache | None = None,
        memory_monitor: MemoryMonitor | None = None,
        stats: CacheStatsCollector | None = None,
        io_workers: int = IO_WORKERS,
        fetch_timeout: float = FETCH_TIMEOUT_SEC,
        force_decode: bool = False,
    ):
        self._disk = DiskImageCache(root)
        self._memory = memory_cache or MemoryImageCache(
            max_bytes=MEMORY_BUDGET_BYTES, cost=estimate_image_bytes
        )
        self._owns_fetcher = fetcher is None
        self._fetcher = fetcher or HttpImageFetcher(timeout=fetch_timeout)
        self._decoder = decoder or PillowImageDecoder(force_decode=force_decode)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=io_workers, thread_name_prefix="tjimagecache-io"
        )
        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher or create_default_dispatcher()
        self._registry = InFlightRegistry(self._dispatcher)
        self._auditor = CacheAuditor(self._disk, self._memory)
        self._usage = DiskUsageTracker(self._dispatcher)
        self._stats = stats or CacheStatsCollector()
        self._memory_monitor = memory_monitor
        if memory_monitor is not None:
            memory_monitor.add_handler(self.handle_memory_pressure)
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path:
        return self._disk.root

    @property
    def stats(self) -> CacheStatsCollector:
        return self._stats

    @property
    def memory_cache(self) -> MemoryImageCache:
        return self._memory

    @property
    def disk_cache(self) -> DiskImageCache:
        return self._disk

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def image_at_url(
        self,
        url: str,
        depth: Depth = Depth.INTERNET,
        delegate: Any | None = None,
    ) -> Any | None:
        """Return the image for *url* if it is in memory, else *None*.

        On a memory miss with *depth* of at least ``DISK`` the lookup
        continues in the background and *delegate* (held weakly) later
        receives ``did_get_image(image, url)`` or
        ``did_fail_to_get_image(url)``.  A memory hit issues no callback.
        """
        if not url or self._closed:
            return None
        key = hash_url(url)
        image = self._memory.get(key)
        if image is not None:
            self._stats.record_hit(Depth.MEMORY)
            return image
        self._stats.record_miss(Depth.MEMORY)
        if depth < Depth.DISK:
            return None

        if self._registry.join_or_start(key, url, delegate, depth) is JoinResult.STARTED:
            try:
                self._executor.submit(self._load, key, url)
            except RuntimeError:
                LOGGER.warning("I/O pool is shut down; failing lookup for %s", url)
                self._registry.complete(key, None)
        return None

    def cancel_image_load(self, url: str, delegate: Any) -> bool:
        """Stop *delegate* from hearing about *url*; the load itself continues."""
        if not url:
            return False
        return self._registry.cancel_waiter(hash_url(url), delegate)

    def depth_for_image_at_url(self, url: str) -> Depth:
        """Return the shallowest tier currently holding *url*."""
        if not url or self._closed:
            return Depth.INTERNET
        key = hash_url(url)
        if self._memory.contains(key):
            return Depth.MEMORY
        if self._disk.contains(key):
            return Depth.DISK
        return Depth.INTERNET

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove_image_at_url(self, url: str) -> None:
        """Drop *url* from memory and disk; a load already running is left alone."""
        if not url or self._closed:
            return
        key = hash_url(url)
        self._memory.remove(key)
        self._usage.apply_delta(-self._disk.delete(key))

    def dump_memory_cache(self) -> None:
        if self._closed:
            return
        self._memory.clear()

    def dump_disk_cache(self) -> Future[int]:
        """Delete every disk entry in the background; resolves to the bytes freed."""
        return self._submit(self._dump_disk, default=0)

    def handle_memory_pressure(
        self,
        level: PressureLevel | None = None,
        snapshot: MemorySnapshot | None = None,
    ) -> None:
        """Release every image no caller is holding."""
        dropped = self._memory.purge()
        LOGGER.info(
            "Memory pressure (%s): released %d images",
            level.value if level else "signal",
            dropped,
        )

    # ------------------------------------------------------------------
    # Disk size
    # ------------------------------------------------------------------

    def get_disk_cache_size(self, completion: Callable[[int], None] | None = None) -> Future[int]:
        """Sum the disk tier in the background and deliver the total to *completion*."""
        return self._submit(self._measure_disk, completion, default=0)

    def compute_disk_cache_size_if_needed(self) -> Future[int] | None:
        if self._usage.has_base:
            return None
        return self.get_disk_cache_size()

    @property
    def approximate_disk_cache_size(self) -> int | None:
        """Last measured size adjusted by writes and removals since; *None* before any measurement."""
        return self._usage.approximate_size

    def add_disk_size_observer(self, observer: UsageObserver) -> None:
        self._usage.add_observer(observer)

    # ------------------------------------------------------------------
    # Auditing
    # ------------------------------------------------------------------

    def audit_cache(
        self,
        predicate: AuditPredicate,
        on_complete: Callable[[], None] | None = None,
    ) -> Future[AuditReport]:
        """Delete every disk entry *predicate* rejects, except those in memory."""
        return self._submit(self._audit, predicate, on_complete, default=AuditReport())

    def audit_cache_removing_files_older_than(self, date: datetime) -> Future[AuditReport]:
        return self.audit_cache(created_on_or_after(date))

    def audit_cache_removing_files_last_accessed_before(self, date: datetime) -> Future[AuditReport]:
        return self.audit_cache(accessed_on_or_after(date))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self, wait: bool = False) -> None:
        """Forget pending lookups and release owned pools.

        Delegates of lookups still in flight receive nothing.  Pools and
        clients passed in by the caller are left running.
        """
        if self._closed:
            return
        self._closed = True
        self._registry.clear()
        self._memory.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=wait, cancel_futures=True)
        if self._owns_fetcher and isinstance(self._fetcher, HttpImageFetcher):
            self._fetcher.close()
        if self._owns_dispatcher and isinstance(self._dispatcher, ThreadPoolExecutor):
            self._dispatcher.shutdown(wait=wait)
        LOGGER.debug("Image cache at %s shut down", self.root)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _submit(self, fn: Callable[..., Any], *args: Any, default: Any) -> Future:
        if not self._closed:
            try:
                return self._executor.submit(fn, *args)
            except RuntimeError:
                LOGGER.warning("I/O pool is shut down; skipping %s", fn.__name__)
        done: Future = Future()
        done.set_result(default)
        return done

    def _load(self, key: str, url: str) -> None:
        image = None
        try:
            # A lookup that raced with a just-finished ticket lands here.
            image = self._memory.get(key)
            if image is None:
                image = self._read_disk(key, url)
            if image is None and self._may_download(key):
                image = self._download(key, url)
        except TransportError as exc:
            self._stats.record_failure(Depth.INTERNET)
            LOGGER.warning("Failed to fetch image %s: %s", url, exc.reason)
        except DecodeError:
            pass
        except Exception:
            LOGGER.exception("Unexpected error loading %s", url)
        self._registry.complete(key, image)

    def _may_download(self, key: str) -> bool:
        depth = self._registry.depth_for(key)
        return depth is not None and depth >= Depth.INTERNET

    def _read_disk(self, key: str, url: str) -> Any | None:
        try:
            data = self._disk.read_bytes(key)
        except OSError:
            LOGGER.warning("Could not read cache entry for %s", url, exc_info=True)
            data = None
        if data is None:
            self._stats.record_miss(Depth.DISK)
            return None
        self._stats.record_hit(Depth.DISK)
        return self._decode(key, url, data, Depth.DISK)

    def _download(self, key: str, url: str) -> Any:
        buffer = io.BytesIO()
        self._fetcher.fetch(url, buffer)
        data = buffer.getvalue()
        LOGGER.debug("Fetched %s (%d bytes)", url, len(data))
        try:
            self._usage.apply_delta(self._disk.write(key, data))
        except DiskIOError:
            # The decoded image still goes to memory; the next cold lookup refetches.
            LOGGER.error("Could not persist %s", url, exc_info=True)
        image = self._decode(key, url, data, Depth.INTERNET)
        self._stats.record_hit(Depth.INTERNET)
        return image

    def _decode(self, key: str, url: str, data: bytes, tier: Depth) -> Any:
        try:
            image = self._decoder.decode(data)
        except DecodeError as exc:
            self._stats.record_failure(tier)
            LOGGER.warning("Discarding undecodable image for %s: %s", url, exc)
            self._usage.apply_delta(-self._disk.delete(key))
            raise
        self._memory.put(key, image)
        return image

    def _dump_disk(self) -> int:
        freed = self._disk.delete_all()
        self._usage.apply_delta(-freed)
        return freed

    def _measure_disk(self, completion: Callable[[int], None] | None) -> int:
        size = self._disk.total_size()
        self._usage.set_base(size)
        if completion is not None:
            self._dispatcher.submit(completion, size)
        return size

    def _audit(self, predicate: AuditPredicate, on_complete: Callable[[], None] | None) -> AuditReport:
        report = self._auditor.run(predicate)
        self._usage.set_base(report.remaining_bytes)
        if on_complete is not None:
            self._dispatcher.submit(on_complete)
        return report
