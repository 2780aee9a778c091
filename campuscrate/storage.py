# Blob storage for uploaded images.
# store() must finish before a record references the returned URL; failures surface as BlobStoreError.
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Protocol
from uuid import uuid4

from .errors import BlobStoreError

logger = logging.getLogger("campuscrate.storage")

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")

# Image types accepted for upload and the extension each is stored under
IMAGE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class BlobStore(Protocol):
    def store(self, data: bytes, folder: str, content_type: str) -> str: ...

    def delete(self, url: str) -> None: ...


class LocalBlobStore:
    """Writes blobs under a root directory and serves them from PUBLIC_BASE_URL/uploads/."""

    def __init__(self, root: str = UPLOAD_DIR, base_url: str = PUBLIC_BASE_URL) -> None:
        self.root = Path(root)
        self.base_url = f"{base_url.rstrip('/')}/uploads"

    def _path_for(self, url: str) -> Path:
        prefix = self.base_url + "/"
        if not url.startswith(prefix):
            raise BlobStoreError(f"URL is not managed by this store: {url}", code="foreign_url")
        relative = url[len(prefix):]
        path = (self.root / relative).resolve()
        if self.root.resolve() not in path.parents:
            raise BlobStoreError("Invalid blob path", code="invalid_path")
        return path

    def store(self, data: bytes, folder: str, content_type: str) -> str:
        ext = IMAGE_EXTENSIONS.get(content_type, "")
        name = f"{uuid4().hex}{ext}"
        target_dir = self.root / folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / name).write_bytes(data)
        except OSError as exc:
            logger.error("blob.store_failed folder=%s: %s", folder, exc)
            raise BlobStoreError("Failed to store upload") from exc
        url = f"{self.base_url}/{folder}/{name}"
        logger.info("blob.stored", extra={"url": url, "bytes": len(data)})
        return url

    def delete(self, url: str) -> None:
        path = self._path_for(url)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.error("blob.delete_failed url=%s: %s", url, exc)
            raise BlobStoreError("Failed to delete upload") from exc


_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """FastAPI dependency returning the configured store."""
    global _store
    if _store is None:
        _store = LocalBlobStore()
    return _store


def set_blob_store(store: Optional[BlobStore]) -> None:
    global _store
    _store = store
