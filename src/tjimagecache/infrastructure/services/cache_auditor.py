"""Audit pass over the disk tier: keep or delete each entry via a predicate."""

from __future__ import annotations

import logging
from datetime import datetime

from ...domain.models import AuditPredicate, AuditReport, DiskEntry
from .disk_image_cache import DiskImageCache
from .memory_image_cache import MemoryImageCache

LOGGER = logging.getLogger(__name__)


class CacheAuditor:
    """Apply a keep/delete predicate to every disk entry.

    Entries whose image is still resident in memory are never deleted,
    whatever the predicate says, and residence is checked again under the
    key's lock just before a file is removed.  A file rewritten after the
    listing was taken is kept.  A predicate that raises keeps its entry.
    """

    def __init__(self, disk: DiskImageCache, memory: MemoryImageCache) -> None:
        self._disk = disk
        self._memory = memory

    def run(self, predicate: AuditPredicate) -> AuditReport:
        kept = removed = in_use = remaining = 0
        for entry in self._disk.enumerate():
            if self._memory.contains(entry.key):
                in_use += 1
                remaining += entry.size
                continue
            try:
                keep = bool(predicate(entry))
            except Exception:
                LOGGER.exception("Audit predicate failed for %s; keeping it", entry.key)
                keep = True
            if keep:
                kept += 1
                remaining += entry.size
                continue
            freed = self._disk.delete_entry(entry, unless=self._memory.contains)
            if freed is None:
                # Loaded into memory or rewritten since it was listed.
                current = self._disk.stat(entry.key)
                if self._memory.contains(entry.key):
                    in_use += 1
                else:
                    kept += 1
                remaining += current.size if current is not None else 0
                continue
            removed += 1
            LOGGER.debug("Audit removed %s (%d bytes)", entry.key, freed)
        report = AuditReport(kept=kept, removed=removed, in_use=in_use, remaining_bytes=remaining)
        LOGGER.info(
            "Audit of %s finished: %d kept, %d removed, %d in use",
            self._disk.root,
            report.kept,
            report.removed,
            report.in_use,
        )
        return report


def created_on_or_after(date: datetime) -> AuditPredicate:
    """Predicate keeping entries created at or after *date*."""

    cutoff = _aware(date)
    return lambda entry: entry.created_date >= cutoff


def accessed_on_or_after(date: datetime) -> AuditPredicate:
    """Predicate keeping entries last accessed at or after *date*."""

    cutoff = _aware(date)
    return lambda entry: entry.last_access >= cutoff


def _aware(date: datetime) -> datetime:
    # Naive datetimes are taken as local time, matching ``datetime.now()``.
    if date.tzinfo is None:
        return date.astimezone()
    return date


__all__ = ["CacheAuditor", "DiskEntry", "accessed_on_or_after", "created_on_or_after"]
