"""Value types shared by the cache tiers."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Protocol


class Depth(enum.IntEnum):
    """How far a lookup may descend, ordered ``MEMORY < DISK < INTERNET``.

    :meth:`ImageCacheService.depth_for_image_at_url` reuses the same
    values to report where an image currently lives, ``INTERNET`` meaning
    "not cached locally".
    """

    MEMORY = 0
    DISK = 1
    INTERNET = 2


@dataclass(frozen=True)
class DiskEntry:
    """Metadata for one file in the cache root."""

    key: str
    size: int
    created_date: datetime
    last_access: datetime
    inode: int = 0


@dataclass(frozen=True)
class AuditReport:
    """Summary of a finished audit pass."""

    kept: int = 0
    removed: int = 0
    in_use: int = 0
    remaining_bytes: int = 0


class ImageCacheDelegate(Protocol):
    """Receiver for asynchronous lookup results.

    Both methods are optional; the cache checks for them at delivery time.
    Delegates are held weakly, so a delegate that is garbage-collected
    before its lookup finishes receives nothing.  They are matched by
    identity and need not be hashable.
    """

    def did_get_image(self, image: Any, url: str) -> None: ...

    def did_fail_to_get_image(self, url: str) -> None: ...


AuditPredicate = Callable[[DiskEntry], bool]
"""Return ``True`` to keep the entry, ``False`` to delete it."""


__all__ = ["AuditPredicate", "AuditReport", "Depth", "DiskEntry", "ImageCacheDelegate"]
