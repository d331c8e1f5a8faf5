"""Process-wide convenience façade over a shared :class:`ImageCacheService`.

Nothing works until one of the ``configure_*`` functions has run; before
that every call is a silent no-op returning ``None``.  Configuring again
with the same root keeps the existing cache, configuring with a different
root shuts the old one down (dropping its memory tier and pending loads)
and starts a fresh one.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from .config import MEMORY_BUDGET_BYTES
from .domain.models import AuditPredicate, AuditReport, Depth
from .errors import DiskIOError, NotConfiguredError
from .infrastructure.services.delivery import Dispatcher
from .infrastructure.services.disk_image_cache import default_root_path
from .infrastructure.services.image_cache_service import ImageCacheService
from .infrastructure.services.image_decoder import estimate_image_bytes
from .infrastructure.services.memory_image_cache import MemoryImageCache
from .infrastructure.services.memory_monitor import MemoryMonitor
from .settings.manager import SettingsManager
from .utils.hashutils import hash_url

LOGGER = logging.getLogger(__name__)

_lock = threading.RLock()
_cache: ImageCacheService | None = None
_monitor: MemoryMonitor | None = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def configure_with_root_path(
    root_path: Path | str,
    *,
    dispatcher: Dispatcher | None = None,
    memory_budget_bytes: int = MEMORY_BUDGET_BYTES,
    memory_monitor: MemoryMonitor | None = None,
    poll_interval: float | None = None,
    **service_options: Any,
) -> ImageCacheService:
    """Create the shared cache rooted at *root_path* (created if missing).

    *service_options* are passed to :class:`ImageCacheService` (fetcher,
    decoder, executor, memory_cache, io_workers, fetch_timeout,
    force_decode).  An explicit *memory_cache* replaces the one built from
    *memory_budget_bytes*.  Raises :class:`DiskIOError` when the root
    cannot be created; the previous cache is already shut down by then.

    *memory_monitor*, when given, is subscribed to the cache and polled
    every *poll_interval* seconds (if set) until the cache is torn down.
    """

    global _cache, _monitor
    root = Path(root_path).expanduser().resolve()
    with _lock:
        if _cache is not None and _cache.root == root:
            return _cache
        _shutdown_locked()
        memory_cache = service_options.pop("memory_cache", None) or MemoryImageCache(
            max_bytes=memory_budget_bytes, cost=estimate_image_bytes
        )
        try:
            _cache = ImageCacheService(
                root,
                dispatcher=dispatcher,
                memory_cache=memory_cache,
                memory_monitor=memory_monitor,
                **service_options,
            )
        except DiskIOError:
            LOGGER.error("Could not configure image cache at %s", root, exc_info=True)
            raise
        _monitor = memory_monitor
        if memory_monitor is not None and poll_interval:
            memory_monitor.start(poll_interval)
        LOGGER.info("Image cache configured at %s", root)
        return _cache


def configure_with_default_root_path(**options: Any) -> ImageCacheService:
    return configure_with_root_path(default_root_path(), **options)


def configure_from_settings(settings_path: Path | None = None, **options: Any) -> ImageCacheService:
    """Configure the shared cache from the JSON settings file.

    Explicit *options* win over values read from the file.
    """

    manager = SettingsManager(path=settings_path)
    manager.load()
    root = manager.get("root_path") or default_root_path()
    options.setdefault("io_workers", manager.get("cache.io_workers"))
    options.setdefault("fetch_timeout", manager.get("cache.fetch_timeout_sec"))
    options.setdefault("force_decode", manager.get("cache.force_decode"))
    options.setdefault("memory_budget_bytes", manager.get("memory.budget_bytes"))
    if manager.get("memory.watch") and "memory_monitor" not in options:
        options["memory_monitor"] = MemoryMonitor(
            warning_bytes=manager.get("memory.warning_bytes"),
            critical_bytes=manager.get("memory.critical_bytes"),
        )
        options.setdefault("poll_interval", manager.get("memory.poll_interval_sec"))
    return configure_with_root_path(root, **options)


def shared_cache() -> ImageCacheService | None:
    """Return the configured cache, or *None* before configuration."""

    with _lock:
        return _cache


def require_shared_cache() -> ImageCacheService:
    """Return the configured cache or raise :class:`NotConfiguredError`."""

    cache = shared_cache()
    if cache is None:
        raise NotConfiguredError("call configure_with_root_path() or configure_with_default_root_path() first")
    return cache


def teardown(wait: bool = False) -> None:
    """Shut the shared cache down and return to the unconfigured state."""

    with _lock:
        _shutdown_locked(wait)


def _shutdown_locked(wait: bool = False) -> None:
    global _cache, _monitor
    if _monitor is not None:
        _monitor.stop()
        _monitor = None
    if _cache is not None:
        _cache.shutdown(wait=wait)
        _cache = None


def _current(operation: str) -> ImageCacheService | None:
    cache = shared_cache()
    if cache is None:
        LOGGER.debug("%s called before the image cache was configured", operation)
    return cache


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def image_at_url(url: str, depth: Depth = Depth.INTERNET, delegate: Any | None = None) -> Any | None:
    cache = _current("image_at_url")
    if cache is None:
        return None
    return cache.image_at_url(url, depth, delegate)


def cancel_image_load(url: str, delegate: Any) -> bool:
    cache = _current("cancel_image_load")
    if cache is None:
        return False
    return cache.cancel_image_load(url, delegate)


def depth_for_image_at_url(url: str) -> Depth | None:
    cache = _current("depth_for_image_at_url")
    if cache is None:
        return None
    return cache.depth_for_image_at_url(url)


def remove_image_at_url(url: str) -> None:
    cache = _current("remove_image_at_url")
    if cache is not None:
        cache.remove_image_at_url(url)


def dump_memory_cache() -> None:
    cache = _current("dump_memory_cache")
    if cache is not None:
        cache.dump_memory_cache()


def dump_disk_cache() -> Future[int] | None:
    cache = _current("dump_disk_cache")
    if cache is None:
        return None
    return cache.dump_disk_cache()


def get_disk_cache_size(completion: Callable[[int], None] | None = None) -> Future[int] | None:
    cache = _current("get_disk_cache_size")
    if cache is None:
        return None
    return cache.get_disk_cache_size(completion)


def approximate_disk_cache_size() -> int | None:
    cache = _current("approximate_disk_cache_size")
    if cache is None:
        return None
    return cache.approximate_disk_cache_size


def audit_cache(
    predicate: AuditPredicate,
    on_complete: Callable[[], None] | None = None,
) -> Future[AuditReport] | None:
    cache = _current("audit_cache")
    if cache is None:
        return None
    return cache.audit_cache(predicate, on_complete)


def audit_cache_removing_files_older_than(date: datetime) -> Future[AuditReport] | None:
    cache = _current("audit_cache_removing_files_older_than")
    if cache is None:
        return None
    return cache.audit_cache_removing_files_older_than(date)


def audit_cache_removing_files_last_accessed_before(date: datetime) -> Future[AuditReport] | None:
    cache = _current("audit_cache_removing_files_last_accessed_before")
    if cache is None:
        return None
    return cache.audit_cache_removing_files_last_accessed_before(date)


__all__ = [
    "approximate_disk_cache_size",
    "audit_cache",
    "audit_cache_removing_files_last_accessed_before",
    "audit_cache_removing_files_older_than",
    "cancel_image_load",
    "configure_from_settings",
    "configure_with_default_root_path",
    "configure_with_root_path",
    "depth_for_image_at_url",
    "dump_disk_cache",
    "dump_memory_cache",
    "get_disk_cache_size",
    "hash_url",
    "image_at_url",
    "remove_image_at_url",
    "require_shared_cache",
    "shared_cache",
    "teardown",
]
