"""Persist generated images and raw uploads, and sweep stale files.

Generated artifacts live under the results directory and are served at
`/results/<name>`:

- `improved-{ts}.png` is the final image of a session
- `improved-{ts}-step-{n}.png` is step `n` (1-based) of a session
- `original-{ts}.{ext}` is the uploaded photo, kept for history

Names derive from the session timestamp so files of one session are
attributable to it and never collide with another session's files.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Optional

import aiofiles

LOGGER = logging.getLogger(__name__)

RESULTS_URL_PREFIX = "/results"

_MIME_EXTENSIONS = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png"}


def extension_for(mime_type: Optional[str], default: str = "png") -> str:
    """Return a file extension for an image MIME type."""
    mime = (mime_type or "").lower().split(";", 1)[0].strip()
    return _MIME_EXTENSIONS.get(mime, default)


def purge_directory(directory: Path, max_age_seconds: float, now: Optional[float] = None) -> int:
    """Delete files in `directory` last modified more than `max_age_seconds` ago.

    Files that vanish between listing and deletion count as already cleaned.
    Other per-file errors are logged and skipped, so one bad file never stops
    the sweep.

    Returns:
        Number of files removed by this sweep.
    """
    if not directory.is_dir():
        return 0
    cutoff = (now if now is not None else time.time()) - max_age_seconds
    removed = 0
    try:
        entries = list(os.scandir(directory))
    except OSError as exc:
        LOGGER.warning("StorageWarning: cannot list %s: %s", directory, exc)
        return 0

    for entry in entries:
        try:
            if not entry.is_file(follow_symlinks=False):
                continue
            if entry.stat(follow_symlinks=False).st_mtime >= cutoff:
                continue
            os.unlink(entry.path)
        except FileNotFoundError:
            continue
        except OSError as exc:
            LOGGER.warning("StorageWarning: failed to remove %s: %s", entry.path, exc)
            continue
        removed += 1
        LOGGER.info("Cleaned up old file: %s", entry.path)
    return removed


class ResultStore:
    """File-backed store for generated images and uploads.

    Args:
        results_dir: Directory served at `url_prefix`.
        uploads_dir: Optional directory for raw uploads.
        url_prefix: URL path under which `results_dir` is mounted.
    """

    def __init__(
        self,
        results_dir: Path | str,
        uploads_dir: Path | str | None = None,
        url_prefix: str = RESULTS_URL_PREFIX,
    ) -> None:
        self.results_dir = Path(results_dir)
        self.uploads_dir = Path(uploads_dir) if uploads_dir is not None else None
        self.url_prefix = "/" + url_prefix.strip("/")
        self.results_dir.mkdir(parents=True, exist_ok=True)
        if self.uploads_dir is not None:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def filename_for(session_timestamp: int, step_index: Optional[int] = None) -> str:
        """Return the artifact name for a session's final image or a 0-based step."""
        if step_index is None:
            return f"improved-{session_timestamp}.png"
        if step_index < 0:
            raise ValueError("step_index must be non-negative")
        return f"improved-{session_timestamp}-step-{step_index + 1}.png"

    def url_for(self, filename: str) -> str:
        return f"{self.url_prefix}/{filename}"

    def normalize_ref(self, ref: str) -> str:
        """Return the `/results/<name>` form of a filename, path or URL."""
        if not ref:
            raise ValueError("Empty image reference")
        base = ref.split("?", 1)[0].replace("\\", "/")
        name = base.rstrip("/").rsplit("/", 1)[-1]
        if not name or name in (".", ".."):
            raise ValueError(f"Invalid image reference: {ref!r}")
        return self.url_for(name)

    def resolve(self, ref: str) -> Path:
        """Map a handle back to its file under the results root."""
        name = self.normalize_ref(ref).rsplit("/", 1)[-1]
        path = (self.results_dir / name).resolve()
        if path.parent != self.results_dir.resolve():
            raise ValueError(f"Reference escapes the results directory: {ref!r}")
        return path

    async def _write(self, path: Path, data: bytes) -> None:
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)

    async def save(self, image_bytes: bytes, session_timestamp: int, step_index: Optional[int] = None) -> str:
        """Write a generated image and return its URL.

        Raises:
            ValueError: If image bytes are missing.
        """
        if not image_bytes:
            raise ValueError("Image bytes are required for saving.")
        filename = self.filename_for(session_timestamp, step_index)
        await self._write(self.results_dir / filename, image_bytes)
        LOGGER.info("Saved %s (%d bytes)", filename, len(image_bytes))
        return self.url_for(filename)

    async def save_original(self, image_bytes: bytes, session_timestamp: int, mime_type: str) -> str:
        """Keep a copy of the uploaded photo next to its generated images."""
        if not image_bytes:
            raise ValueError("Image bytes are required for saving.")
        filename = f"original-{session_timestamp}.{extension_for(mime_type, 'jpg')}"
        await self._write(self.results_dir / filename, image_bytes)
        return self.url_for(filename)

    async def copy(self, ref: str, session_timestamp: int, step_index: Optional[int] = None) -> str:
        """Copy an existing artifact to the name for `(session_timestamp, step_index)`."""
        source = self.resolve(ref)
        filename = self.filename_for(session_timestamp, step_index)
        await asyncio.to_thread(shutil.copyfile, source, self.results_dir / filename)
        return self.url_for(filename)

    async def save_upload(self, data: bytes, mime_type: str, session_timestamp: int) -> Path:
        """Write a raw upload to the uploads directory and return its path."""
        if self.uploads_dir is None:
            raise RuntimeError("ResultStore was created without an uploads directory.")
        suffix = uuid.uuid4().hex[:9]
        path = self.uploads_dir / f"upload-{session_timestamp}-{suffix}.{extension_for(mime_type, 'jpg')}"
        await self._write(path, data)
        return path

    def purge_older_than(self, max_age_seconds: float, now: Optional[float] = None) -> int:
        """Delete stale results and uploads; return how many files went."""
        removed = purge_directory(self.results_dir, max_age_seconds, now)
        if self.uploads_dir is not None:
            removed += purge_directory(self.uploads_dir, max_age_seconds, now)
        return removed
