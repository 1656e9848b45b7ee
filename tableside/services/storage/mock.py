"""
In-memory blob store for development and tests.

Nothing touches the disk; objects live in a dict for the lifetime of the
process and get ``memory://`` URLs.
"""

import logging

from tableside.services.storage.base import BaseBlobStore, StoredBlob, make_key

logger = logging.getLogger(__name__)


class MemoryBlobStore(BaseBlobStore):
    def __init__(self):
        self.objects: dict[str, bytes] = {}

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def url_prefix(self) -> str:
        return "memory://"

    async def upload(self, data: bytes, filename: str, content_type: str) -> StoredBlob:
        key = make_key(content_type)
        self.objects[key] = data
        logger.debug(f"[MOCK] Stored {filename!r} as {key} ({len(data)} bytes)")
        return StoredBlob(url=f"{self.url_prefix}{key}", key=key, size=len(data))

    async def delete(self, key: str) -> bool:
        return self.objects.pop(key, None) is not None
