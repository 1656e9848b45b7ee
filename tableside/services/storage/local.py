"""
Local-disk blob store.

Files are written under ``upload_directory`` and served by whatever sits
behind ``public_upload_base_url`` (the API mounts it as static files).
Disk I/O runs in a worker thread so the event loop is never blocked.
"""

import asyncio
import logging
from pathlib import Path

from tableside.services.storage.base import BaseBlobStore, StoredBlob, make_key

logger = logging.getLogger(__name__)


class LocalBlobStore(BaseBlobStore):
    def __init__(self, directory: str, base_url: str):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")

    @property
    def provider_name(self) -> str:
        return "local"

    @property
    def url_prefix(self) -> str:
        return f"{self.base_url}/"

    def _path(self, key: str) -> Path:
        # Keys are generated by make_key; never let one escape the directory
        path = (self.directory / key).resolve()
        if path.parent != self.directory.resolve():
            raise ValueError(f"Invalid blob key: {key}")
        return path

    def _write(self, key: str, data: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_bytes(data)

    async def upload(self, data: bytes, filename: str, content_type: str) -> StoredBlob:
        key = make_key(content_type)
        await asyncio.to_thread(self._write, key, data)
        logger.info(f"Stored upload {filename!r} as {key} ({len(data)} bytes)")
        return StoredBlob(url=f"{self.url_prefix}{key}", key=key, size=len(data))

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        return True
