"""Transient on-disk storage for uploads and synthesised audio."""

from __future__ import annotations

import re
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from uuid import uuid4

from fastapi import UploadFile

from voicerag.errors import ClientInputError, PayloadTooLargeError
from voicerag.metrics.observability import GatewayMetrics, get_logger
from voicerag.models import UploadedAsset

_CHUNK_SIZE = 1024 * 1024
_SUFFIX_PATTERN = re.compile(r"^\.[a-z0-9]{1,10}$")


def _safe_suffix(original_name: str) -> str:
    suffix = Path(original_name).suffix.lower()
    return suffix if _SUFFIX_PATTERN.match(suffix) else ""


class TemporaryFileStore:
    """Shared transient directory handing out one unique handle per call.

    Handles are ``<field>-<uuid4 hex><extension>``. ``delete`` is idempotent
    and never raises; the ``acquire_upload`` and ``reserve`` context managers
    guarantee deletion on every exit path.
    """

    _logger = get_logger("storage")

    def __init__(self, root: Path | str, *, max_bytes: int | None = None) -> None:
        self._root = Path(root)
        self._max_bytes = max_bytes
        self._live: set[Path] = set()
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def allocate(self, field_name: str, original_name: str = "", *, suffix: str | None = None) -> Path:
        """Return a fresh path under the store root and register it as live."""

        ext = suffix if suffix is not None else _safe_suffix(original_name)
        self._root.mkdir(parents=True, exist_ok=True)
        path = self._root / f"{field_name}-{uuid4().hex}{ext}"
        with self._lock:
            self._live.add(path)
        GatewayMetrics.temp_files_created.labels(field=field_name).inc()
        return path

    def store(
        self,
        data: bytes,
        original_name: str,
        *,
        field_name: str = "file",
        media_type: str = "application/octet-stream",
    ) -> UploadedAsset:
        path = self.allocate(field_name, original_name)
        asset = UploadedAsset(
            path=path,
            original_name=original_name,
            media_type=media_type,
            size_bytes=len(data),
            field_name=field_name,
        )
        try:
            path.write_bytes(data)
        except OSError:
            self.delete(asset)
            raise
        return asset

    async def save_upload(self, upload: UploadFile, field_name: str) -> UploadedAsset:
        """Stream a multipart upload to disk, enforcing the size limit."""

        filename = upload.filename or f"{field_name}-upload"
        path = self.allocate(field_name, filename)
        asset = UploadedAsset(
            path=path,
            original_name=filename,
            media_type=upload.content_type or "application/octet-stream",
            size_bytes=0,
            field_name=field_name,
        )
        bytes_written = 0
        try:
            # Stream copy to avoid loading entire file into memory
            with path.open("wb") as out_f:
                while True:
                    chunk = await upload.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    out_f.write(chunk)
                    bytes_written += len(chunk)
                    if self._max_bytes is not None and bytes_written > self._max_bytes:
                        raise PayloadTooLargeError(filename, self._max_bytes)
            if bytes_written == 0:
                raise ClientInputError(f"File is empty: {filename}")
        except BaseException:
            self.delete(asset)
            raise
        finally:
            await upload.close()
        self._logger.info("tempfile.stored", path=str(path), field=field_name, size_bytes=bytes_written)
        return UploadedAsset(
            path=path,
            original_name=filename,
            media_type=asset.media_type,
            size_bytes=bytes_written,
            field_name=field_name,
        )

    def read(self, asset: UploadedAsset | Path) -> bytes:
        path = asset.path if isinstance(asset, UploadedAsset) else asset
        return path.read_bytes()

    def delete(self, asset: UploadedAsset | Path) -> None:
        """Remove the file behind a handle. Safe to call more than once."""

        path = asset.path if isinstance(asset, UploadedAsset) else asset
        with self._lock:
            if path not in self._live:
                self._logger.debug("tempfile.already_deleted", path=str(path))
                return
            self._live.discard(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.error("tempfile.delete_failed", path=str(path), detail=str(exc))
            return
        field = asset.field_name if isinstance(asset, UploadedAsset) else path.name.split("-", 1)[0]
        GatewayMetrics.temp_files_deleted.labels(field=field).inc()
        self._logger.debug("tempfile.deleted", path=str(path))

    def live_handles(self) -> frozenset[Path]:
        with self._lock:
            return frozenset(self._live)

    @asynccontextmanager
    async def acquire_upload(self, upload: UploadFile, field_name: str) -> AsyncIterator[UploadedAsset]:
        asset = await self.save_upload(upload, field_name)
        try:
            yield asset
        finally:
            self.delete(asset)

    @asynccontextmanager
    async def reserve(self, field_name: str, suffix: str) -> AsyncIterator[Path]:
        """Allocate an output path that is removed when the block exits."""

        path = self.allocate(field_name, suffix=suffix)
        try:
            yield path
        finally:
            self.delete(path)
