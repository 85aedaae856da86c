"""Local storage for generated media files."""

from __future__ import annotations

import logging
import time
from pathlib import Path

from cadence.jobs.models import is_plain_id

logger = logging.getLogger(__name__)


class MediaStorageError(OSError):
    pass


class FileMediaStore:
    """Writes media under ``<media_dir>/<kind>/<content_id>/`` and returns the relative path."""

    def __init__(self, media_dir: Path):
        self._root = Path(media_dir)

    @property
    def root(self) -> Path:
        return self._root

    def save(self, content_id: str, data: bytes, *, kind: str = "videos", ext: str = "mp4") -> str:
        relative = Path(kind) / content_id / f"{int(time.time() * 1000)}.{ext}"
        path = self._root / relative
        if not is_plain_id(content_id):
            raise MediaStorageError(f"Invalid content id for a media path: {content_id!r}")
        if not path.resolve().is_relative_to(self._root.resolve()):
            raise MediaStorageError(f"Refusing to store media outside {self._root}: {relative}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise MediaStorageError(f"Failed to store media: {e}") from e
        logger.info("Stored %d bytes at %s", len(data), path)
        return relative.as_posix()

    def resolve(self, relative_path: str) -> Path:
        return self._root / relative_path
