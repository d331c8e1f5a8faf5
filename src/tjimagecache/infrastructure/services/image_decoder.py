"""Decoders turning raw downloaded bytes into image handles."""

from __future__ import annotations

import io
import logging
from typing import Any, Protocol

from PIL import Image, UnidentifiedImageError
from PySide6.QtGui import QImage

from ...errors import DecodeError

LOGGER = logging.getLogger(__name__)


class ImageDecoder(Protocol):
    """Protocol for decoders used by the lookup engine."""

    def decode(self, data: bytes) -> Any:
        """Return an image handle or raise :class:`DecodeError`."""
        ...


class PillowImageDecoder:
    """Decode bytes with Pillow.

    The returned :class:`PIL.Image.Image` is shared between every caller
    that asks for the same URL and must be treated as read-only; copy it
    before drawing on it.

    Parameters
    ----------
    force_decode:
        Convert the image to a fully materialised ``RGB``/``RGBA`` bitmap
        up front so that the first draw does not pay for palette or
        colour-space conversion.
    """

    def __init__(self, force_decode: bool = False) -> None:
        self._force_decode = force_decode

    def decode(self, data: bytes) -> Image.Image:
        if not data:
            raise DecodeError("empty image data")
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                if self._force_decode and img.mode not in ("RGB", "RGBA"):
                    has_alpha = "A" in img.getbands() or "transparency" in img.info
                    return img.convert("RGBA" if has_alpha else "RGB")
                return img.copy()
        except (UnidentifiedImageError, OSError, ValueError) as exc:
            raise DecodeError(f"Pillow could not decode image: {exc}") from exc


class QtImageDecoder:
    """Decode bytes into a :class:`QImage` for direct use by Qt views."""

    def __init__(self, force_decode: bool = False) -> None:
        self._force_decode = force_decode

    def decode(self, data: bytes) -> QImage:
        image = QImage()
        if not data or not image.loadFromData(data) or image.isNull():
            raise DecodeError("Qt could not decode image")
        if self._force_decode:
            image = image.convertToFormat(QImage.Format.Format_ARGB32_Premultiplied)
        return image


def estimate_image_bytes(image: Any) -> int:
    """Approximate in-memory size of a decoded image, ``0`` when unknown."""

    if isinstance(image, QImage):
        return int(image.sizeInBytes())
    if isinstance(image, Image.Image):
        return image.width * image.height * len(image.getbands())
    return 0
