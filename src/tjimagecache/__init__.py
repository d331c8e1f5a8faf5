"""URL-keyed image cache with memory, disk and network tiers."""

from __future__ import annotations

from .domain.models import AuditReport, Depth, DiskEntry, ImageCacheDelegate
from .errors import ImageCacheError
from .facade import (
    approximate_disk_cache_size,
    audit_cache,
    audit_cache_removing_files_last_accessed_before,
    audit_cache_removing_files_older_than,
    cancel_image_load,
    configure_from_settings,
    configure_with_default_root_path,
    configure_with_root_path,
    depth_for_image_at_url,
    dump_disk_cache,
    dump_memory_cache,
    get_disk_cache_size,
    image_at_url,
    remove_image_at_url,
    require_shared_cache,
    shared_cache,
    teardown,
)
from .infrastructure.services.image_cache_service import ImageCacheService
from .utils.hashutils import hash_url

__version__ = "1.0.0"

__all__ = [
    "AuditReport",
    "Depth",
    "DiskEntry",
    "ImageCacheDelegate",
    "ImageCacheError",
    "ImageCacheService",
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
