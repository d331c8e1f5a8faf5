"""Hashing utilities."""

from __future__ import annotations

import hashlib

HASH_LENGTH = 32


def hash_url(url: str) -> str:
    """Return the on-disk key for *url*: the MD5 hex digest of its UTF-8 bytes.

    MD5 is kept for compatibility with existing cache directories, not
    for any security property.
    """

    return hashlib.md5(url.encode("utf-8")).hexdigest()  # noqa: S324


def is_hashed_key(name: str) -> bool:
    """Return ``True`` when *name* looks like a value produced by :func:`hash_url`."""

    if len(name) != HASH_LENGTH:
        return False
    return all(ch in "0123456789abcdef" for ch in name)
