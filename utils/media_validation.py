"""Validation helpers for uploaded urban space photos."""

import io
import os
from typing import Optional, Tuple

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from utils.errors import ValidationError

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
}

ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png")

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(15 * 1024 * 1024)))


def normalize_mime(mime_type: Optional[str]) -> str:
    """Strip MIME parameters and lower-case the type."""
    return (mime_type or "").lower().split(";", 1)[0].strip()


def validate_image_metadata(
    filename: Optional[str],
    mime_type: Optional[str],
    size: Optional[int],
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> str:
    """Check name, type and size of an upload before reading or sending it.

    Only JPG, JPEG and PNG files up to `max_bytes` are accepted. When the
    content type is missing, the filename extension decides.

    Returns:
        The normalized MIME type to use for the image.

    Raises:
        ValidationError: With status 415 for a wrong type, 413 when too large.
    """
    mime = normalize_mime(mime_type)
    name = (filename or "").lower()
    if mime:
        if mime not in ALLOWED_IMAGE_TYPES:
            raise ValidationError("Only JPG, JPEG, and PNG files are allowed", status_code=415)
    elif name.endswith((".jpg", ".jpeg")):
        mime = "image/jpeg"
    elif name.endswith(".png"):
        mime = "image/png"
    else:
        raise ValidationError("Only JPG, JPEG, and PNG files are allowed", status_code=415)

    if name and not name.endswith(ALLOWED_EXTENSIONS):
        raise ValidationError("Only JPG, JPEG, and PNG files are allowed", status_code=415)

    if size is not None and size > max_bytes:
        limit_mb = max_bytes // (1024 * 1024)
        raise ValidationError(f"File size exceeds {limit_mb}MB limit.", status_code=413)

    return "image/jpeg" if mime == "image/jpg" else mime


def verify_image_bytes(data: bytes) -> None:
    """Make sure the payload really decodes as an image."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except Image.DecompressionBombError as exc:
        raise ValidationError("Image dimensions are too large.", status_code=413) from exc
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValidationError("Uploaded file is not a readable image.", status_code=415) from exc


async def read_image_upload(upload: Optional[UploadFile], max_bytes: int = MAX_UPLOAD_BYTES) -> Tuple[bytes, str]:
    """Validate and read an uploaded photo.

    Returns:
        `(image_bytes, mime_type)`.

    Raises:
        ValidationError: If the upload is missing, empty, too large, or not an image.
    """
    if upload is None:
        raise ValidationError("No image uploaded")
    mime = validate_image_metadata(upload.filename, upload.content_type, getattr(upload, "size", None), max_bytes)

    data = await upload.read()
    if not data:
        raise ValidationError("Uploaded image is empty.")
    # Some clients do not send a size up front.
    validate_image_metadata(upload.filename, mime, len(data), max_bytes)
    verify_image_bytes(data)
    return data, mime
