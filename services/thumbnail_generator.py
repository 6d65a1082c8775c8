"""Thumbnail generator service.

Provides a small OOP wrapper around Pillow to create the history-list
thumbnail of an uploaded photo. The resulting thumbnail fits within
160x160 pixels and is returned as a base64-encoded PNG string.

Example:
    tg = ThumbnailGenerator(max_size=(160, 160))
    thumb_b64 = tg.create_thumbnail(image_bytes)
"""
from __future__ import annotations

import base64
import io
from typing import Tuple

from PIL import Image, UnidentifiedImageError


class ThumbnailGenerator:
    """Generate thumbnails from raw image bytes.

    Args:
        max_size: Maximum width and height for the thumbnail. Defaults to (160, 160).
        background: Optional background color used when flattening images with alpha.
            If None, images with alpha are flattened against white.
    """

    def __init__(self, max_size: Tuple[int, int] = (160, 160), background: Tuple[int, int, int] | None = None):
        self.max_size = max_size
        self.background = background or (255, 255, 255)

    def create_thumbnail(self, data: bytes) -> str:
        """Create a thumbnail from raw image bytes.

        Returns:
            A base64-encoded PNG string of the thumbnail.

        Raises:
            ValueError: If the bytes cannot be opened as an image.
        """
        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError("Bytes are not a supported image format") from exc

        src = src.convert("RGBA")
        src.thumbnail(self.max_size, Image.LANCZOS)

        # Flatten alpha against the background color
        background = Image.new("RGB", src.size, self.background)
        background.paste(src, mask=src.split()[3])

        out_io = io.BytesIO()
        background.save(out_io, format="PNG", optimize=True)
        return base64.b64encode(out_io.getvalue()).decode("utf-8")

    def create_data_url(self, data: bytes) -> str:
        return f"data:image/png;base64,{self.create_thumbnail(data)}"
