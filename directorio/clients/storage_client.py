"""
directorio/clients/storage_client.py — Firebase Storage (GCS bucket) for listing images
Uploads return a Firebase download URL (token-based, same shape the web SDK
produces) so the stored URL works for anonymous browsers.
"""
from __future__ import annotations

import io
import re
import uuid
from typing import Any, Callable, Optional
from urllib.parse import quote, unquote, urlparse

from fastapi.concurrency import run_in_threadpool
from firebase_admin import storage
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions

from directorio.core import logging as app_logging
from directorio.core.errors import UpstreamUnavailableError
from directorio.utils.timezone import epoch_ms

STORAGE_ERRORS = (google_exceptions.GoogleAPIError, auth_exceptions.TransportError, OSError)

DOWNLOAD_HOST = "https://firebasestorage.googleapis.com"

ProgressCallback = Callable[[float], None]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def build_image_path(business_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    """businesses/{id}/{epoch_ms}_{filename}"""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_CHARS.sub("_", name).strip("._") or "imagen"
    return f"businesses/{business_id}/{now_ms if now_ms is not None else epoch_ms()}_{name}"


def download_url(bucket_name: str, path: str, token: str) -> str:
    return f"{DOWNLOAD_HOST}/v0/b/{bucket_name}/o/{quote(path, safe='')}?alt=media&token={token}"


def path_from_url(url: str) -> str:
    """
    Object path from a download URL, a gs:// URL or a bare path.
    """
    parsed = urlparse(url)
    if parsed.scheme == "gs":
        return parsed.path.lstrip("/")
    if parsed.scheme in ("http", "https"):
        marker = "/o/"
        if marker not in parsed.path:
            raise ValueError(f"Not a storage download URL: {url!r}")
        return unquote(parsed.path.split(marker, 1)[1])
    return url.lstrip("/")


class _ProgressReader(io.BytesIO):
    """BytesIO that reports percentage read to a callback."""

    def __init__(self, content: bytes, on_progress: Optional[ProgressCallback]) -> None:
        super().__init__(content)
        self._total = max(len(content), 1)
        self._on_progress = on_progress

    def read(self, size: int = -1) -> bytes:
        chunk = super().read(size)
        if self._on_progress is not None and chunk:
            self._on_progress(min(100.0, self.tell() * 100.0 / self._total))
        return chunk


class FirebaseImageStorage:
    def __init__(self, bucket: Any = None) -> None:
        self._bucket = bucket if bucket is not None else storage.bucket()

    @property
    def bucket_name(self) -> str:
        return self._bucket.name

    async def upload(
        self,
        content: bytes,
        path: str,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Upload bytes to `path` and return the public download URL."""
        token = str(uuid.uuid4())

        def _upload() -> None:
            blob = self._bucket.blob(path)
            blob.metadata = {"firebaseStorageDownloadTokens": token}
            blob.upload_from_file(
                _ProgressReader(content, on_progress),
                size=len(content),
                content_type=content_type,
            )

        try:
            await run_in_threadpool(_upload)
        except STORAGE_ERRORS as exc:
            app_logging.log_storage_operation(path, "upload", False, len(content), str(exc))
            raise UpstreamUnavailableError("Error al subir el archivo.") from exc

        app_logging.log_storage_operation(path, "upload", True, len(content))
        if on_progress is not None:
            on_progress(100.0)
        return download_url(self.bucket_name, path, token)

    async def delete(self, url: str) -> None:
        path = path_from_url(url)

        def _delete() -> None:
            self._bucket.blob(path).delete()

        try:
            await run_in_threadpool(_delete)
        except STORAGE_ERRORS as exc:
            app_logging.log_storage_operation(path, "delete", False, error=str(exc))
            raise UpstreamUnavailableError("Error al eliminar la imagen.") from exc
        app_logging.log_storage_operation(path, "delete", True)
