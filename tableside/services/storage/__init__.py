"""
Blob Storage Factory

Environment Switching:
    - ENV_MODE=development → MemoryBlobStore (nothing written to disk)
    - ENV_MODE=staging / production → LocalBlobStore under UPLOAD_DIRECTORY
"""

import logging
from functools import lru_cache

from tableside.core.config import get_settings
from tableside.services.storage.base import BaseBlobStore, StoredBlob, validate_image
from tableside.services.storage.local import LocalBlobStore
from tableside.services.storage.mock import MemoryBlobStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_blob_store() -> BaseBlobStore:
    settings = get_settings()

    if settings.is_development:
        logger.info("Blob Store: Using MemoryBlobStore (development mode)")
        return MemoryBlobStore()

    logger.info(
        f"Blob Store: Using LocalBlobStore at {settings.upload_directory} "
        f"({settings.env_mode.value} mode)"
    )
    return LocalBlobStore(settings.upload_directory, settings.public_upload_base_url)


def reset_blob_store() -> None:
    get_blob_store.cache_clear()
    logger.debug("Blob store cache cleared")


__all__ = [
    "get_blob_store",
    "reset_blob_store",
    "BaseBlobStore",
    "StoredBlob",
    "validate_image",
    "MemoryBlobStore",
    "LocalBlobStore",
]
