"""Default configuration values for TJImageCache."""

from __future__ import annotations

from typing import Final

# Name of the directory created under the platform cache location by
# ``configure_with_default_root_path``.  Existing on-disk caches use this
# exact name so it must not change.
CACHE_DIR_NAME: Final[str] = "TJImageCache"

# Background I/O pool size.  Disk reads, writes, HTTP fetches and decoding
# all share this pool.
IO_WORKERS: Final[int] = 4

FETCH_TIMEOUT_SEC: Final[float] = 30.0
FETCH_CHUNK_SIZE: Final[int] = 64 * 1024
ACCEPT_HEADER: Final[str] = "image/*"
USER_AGENT: Final[str] = "TJImageCache/1.0"

# Number of lock stripes guarding per-key disk mutations.
DISK_LOCK_STRIPES: Final[int] = 32

# Memory-pressure thresholds for the RSS watcher.  ``0`` for the budget
# means the memory tier is bounded only by pressure purges.
MEMORY_WARNING_BYTES: Final[int] = 1 << 30
MEMORY_CRITICAL_BYTES: Final[int] = 2 << 30
MEMORY_BUDGET_BYTES: Final[int] = 0
MEMORY_POLL_INTERVAL_SEC: Final[float] = 5.0

SETTINGS_FILE_NAME: Final[str] = "settings.json"
