from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import requests
from supabase import Client

from src.domain.exceptions import UploadFailedError
from src.domain.services.raster_service import RasterService

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/local-storage/"
EXT_BY_CONTENT_TYPE = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


@dataclass
class StorageResult:
    path: str
    width: int
    height: int
    content_type: str
    size: int


class SupabaseStorage:
    """Blob store adapter for Supabase Storage with a local fake fallback.

    Objects are write-once: every upload gets a fresh name, nothing is overwritten.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.bucket = os.getenv("SUPABASE_STORAGE_BUCKET", "images")
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.local_dir = Path(os.getenv("SUPABASE_STORAGE_LOCAL_DIR", ".local_storage"))
        self.fetch_timeout = float(os.getenv("STORAGE_FETCH_TIMEOUT", "30"))
        if self.disabled:
            self.local_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_local(self) -> bool:
        return self.disabled or self.client is None

    def upload_numpy(
        self, prefix: str, array: np.ndarray, ext: str = "png", name_hint: str = "section"
    ) -> StorageResult:
        ext = ext.lower().lstrip(".")
        image_bytes, content_type = RasterService.encode(array, ext)
        height, width = array.shape[:2]
        path = self._put(prefix, name_hint, image_bytes, content_type, ext)
        return StorageResult(
            path=path, width=width, height=height, content_type=content_type, size=len(image_bytes)
        )

    def upload_bytes(
        self, prefix: str, data: bytes, content_type: str = "image/png", name_hint: str = "section"
    ) -> StorageResult:
        """Store bytes verbatim; only the image header is read for its size."""
        width, height = RasterService.read_size(data)
        ext = EXT_BY_CONTENT_TYPE.get(content_type, "png")
        path = self._put(prefix, name_hint, data, content_type, ext)
        return StorageResult(
            path=path, width=width, height=height, content_type=content_type, size=len(data)
        )

    def _put(self, prefix: str, name_hint: str, data: bytes, content_type: str, ext: str) -> str:
        file_name = f"{name_hint}-{uuid.uuid4().hex}.{ext}"
        storage_path = f"{prefix.strip('/')}/{file_name}" if prefix else file_name
        if self.is_local:
            # local fake storage
            full_path = self.local_dir / storage_path
            try:
                full_path.parent.mkdir(parents=True, exist_ok=True)
                full_path.write_bytes(data)
            except OSError as exc:
                raise UploadFailedError(f"Storage upload failed: {exc}") from exc
            logger.debug("Stored %d bytes at %s (local)", len(data), storage_path)
            return storage_path
        # real upload
        try:  # pragma: no cover - network
            self.client.storage.from_(self.bucket).upload(  # type: ignore[union-attr]
                path=storage_path,
                file=data,
                file_options={"content-type": content_type, "cache-control": "3600"},
            )
        except Exception as exc:  # pragma: no cover
            logger.error("Upload of %s failed: %s", storage_path, exc)
            raise UploadFailedError(f"Storage upload failed: {exc}") from exc
        return storage_path

    def public_url(self, path: str) -> str:
        if self.is_local:
            return f"{LOCAL_URL_PREFIX}{path}"
        try:  # pragma: no cover - network
            return self.client.storage.from_(self.bucket).get_public_url(path)  # type: ignore[union-attr]
        except Exception:
            logger.warning("Could not resolve public URL for %s", path)
            return ""

    def download_to_numpy(self, path: str) -> np.ndarray:
        return RasterService.decode(self.download_bytes(path))

    def download_bytes(self, path: str) -> bytes:
        if self.is_local:
            full_path = self._local_path(path)
            try:
                return full_path.read_bytes()
            except OSError as exc:
                raise RuntimeError(f"Storage download failed: {exc}") from exc
        try:  # pragma: no cover - network
            return self.client.storage.from_(self.bucket).download(path)  # type: ignore[union-attr]
        except Exception as exc:  # pragma: no cover
            raise RuntimeError(f"Storage download failed: {exc}") from exc

    def fetch(self, url: str) -> bytes:
        """Read an object through its public URL."""
        if url.startswith(LOCAL_URL_PREFIX):
            return self.download_bytes(url[len(LOCAL_URL_PREFIX) :])
        try:
            response = requests.get(url, timeout=self.fetch_timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise RuntimeError(f"Fetching {url} failed: {exc}") from exc
        return response.content

    def _local_path(self, path: str) -> Path:
        """Resolve a storage path; paths escaping `local_dir` are refused."""
        root = self.local_dir.resolve()
        full_path = (root / path).resolve()
        if not full_path.is_relative_to(root):
            logger.warning("Refusing to read %s outside local storage", path)
            raise RuntimeError(f"Storage path outside local storage: {path}")
        return full_path
