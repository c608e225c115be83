"""Thumbnail generator service.

Small wrapper around Pillow that turns raw image bytes into a PNG preview
used by the chat sidebar. The preview fits within `max_size` and any alpha
channel is flattened against a solid background.

Example:
    tg = ThumbnailGenerator(max_size=(256, 256))
    png_bytes = tg.create_thumbnail(raw_bytes)
"""
from __future__ import annotations

import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError


class ThumbnailGenerator:
    """Generate PNG thumbnails from raw image bytes.

    Args:
        max_size: Maximum width and height for the thumbnail. Defaults to (256, 256).
        background: Background color used when flattening transparent images.
    """

    def __init__(self, max_size: Tuple[int, int] = (256, 256), background: Tuple[int, int, int] | None = None):
        self.max_size = max_size
        self.background = background or (255, 255, 255)

    def create_thumbnail(self, image_bytes: bytes) -> bytes:
        """Return a PNG thumbnail of `image_bytes`.

        Raises:
            ValueError: If the bytes cannot be opened as an image.
        """
        if not image_bytes:
            raise ValueError("Image bytes are required for a thumbnail")
        try:
            src = Image.open(io.BytesIO(image_bytes))
            src.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Bytes are not a supported image format") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        flattened = Image.new("RGB", src.size, self.background)
        flattened.paste(src, mask=src.split()[3])

        out_io = io.BytesIO()
        flattened.save(out_io, format="PNG", optimize=True)
        return out_io.getvalue()
