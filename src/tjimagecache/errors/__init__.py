"""Custom exception hierarchy for TJImageCache.

None of these escape the public cache API; the lookup engine turns them
into ``None`` returns or ``did_fail_to_get_image`` callbacks.  They exist
so that collaborators (fetcher, decoder, disk store) can report *why*
something failed and so the CLI can map them to exit codes.
"""

from __future__ import annotations


class ImageCacheError(Exception):
    """Base class for all custom errors raised by TJImageCache."""


class InfrastructureError(ImageCacheError):
    """Base class for failures in an external collaborator."""


class TransportError(InfrastructureError):
    """Raised when an HTTP fetch fails terminally."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class DecodeError(InfrastructureError):
    """Raised when downloaded bytes cannot be decoded into an image."""


class DiskIOError(InfrastructureError):
    """Raised when a disk entry cannot be written or renamed into place."""


class NotConfiguredError(ImageCacheError):
    """Raised when the shared cache is used before ``configure_*``."""


class SettingsError(ImageCacheError):
    """Base class for settings related failures."""


class SettingsLoadError(SettingsError):
    """Raised when the settings file cannot be parsed or loaded."""


class SettingsValidationError(SettingsError):
    """Raised when settings data fails schema validation."""


__all__ = [
    "DecodeError",
    "DiskIOError",
    "ImageCacheError",
    "InfrastructureError",
    "NotConfiguredError",
    "SettingsError",
    "SettingsLoadError",
    "SettingsValidationError",
    "TransportError",
]
