"""File storage on local disk under ``FILE_STORAGE_PATH``."""

from __future__ import annotations

import logging
import os
import secrets
import unicodedata
from pathlib import Path, PurePosixPath
from urllib.parse import quote

from backend.depot.core.config import settings
from backend.depot.core.errors import ValidationError

logger = logging.getLogger(__name__)


def random_file_name(original_name: str) -> str:
    """32 hex chars plus the original (lower-cased) extension."""
    ext = PurePosixPath(original_name).suffix.lower()
    return f"{secrets.token_hex(16)}{ext}"


def content_disposition(disposition: str, filename: str) -> str:
    """Header value carrying an ASCII fallback name plus the RFC 5987 UTF-8 name."""
    ascii_name = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = "".join("_" if ch in '"\\' else ch for ch in ascii_name if ch.isprintable())
    fallback = fallback.strip() or "download"
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


class FileStorageService:
    """Store and retrieve files below a root directory."""

    def __init__(self, root: str | None = None) -> None:
        self._root = Path(root or settings.FILE_STORAGE_PATH).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, relative_path: str) -> Path:
        path = (self._root / relative_path).resolve()
        if self._root != path and self._root not in path.parents:
            raise ValidationError("Invalid storage path")
        return path

    def save(self, relative_path: str, data: bytes) -> str:
        """Persist *data* under *relative_path* and return the full path."""
        dest = self._resolve(relative_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(data)
        logger.info("Stored %d bytes at %s", len(data), relative_path)
        return str(dest)

    def read(self, relative_path: str) -> bytes:
        """Return the raw bytes for the given *relative_path*."""
        return self._resolve(relative_path).read_bytes()

    def exists(self, relative_path: str) -> bool:
        return self._resolve(relative_path).exists()

    def delete(self, relative_path: str) -> None:
        path = self._resolve(relative_path)
        if path.exists():
            os.remove(path)
