"""
Blob Storage Abstract Base Class

Product images are uploaded through a BaseBlobStore, which returns the
public URL the product row should point at. ``validate_image`` is the
single gate every upload goes through before a store sees the bytes.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from tableside.core.config import Settings, get_settings
from tableside.exceptions import ValidationError

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


@dataclass(frozen=True)
class StoredBlob:
    """
    Attributes:
        url: Public URL of the stored object
        key: Store-specific key, used to delete it later
        size: Size in bytes
    """
    url: str
    key: str
    size: int


def validate_image(data: bytes, content_type: Optional[str], settings: Optional[Settings] = None) -> None:
    """
    Raises:
        ValidationError: empty body, body over the size cap, or a content
            type outside the allowed list
    """
    settings = settings or get_settings()
    if not data:
        raise ValidationError("Image file is required")
    if len(data) > settings.max_upload_bytes:
        limit_mb = settings.max_upload_bytes / (1024 * 1024)
        raise ValidationError(f"Image exceeds the {limit_mb:g}MB limit")
    if (content_type or "").lower() not in settings.allowed_image_types_list:
        raise ValidationError("Unsupported image type")


def make_key(content_type: str) -> str:
    """Random object key with an extension matching the content type."""
    return f"{uuid.uuid4().hex}{EXTENSIONS.get(content_type.lower(), '')}"


class BaseBlobStore(ABC):
    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    @abstractmethod
    async def upload(self, data: bytes, filename: str, content_type: str) -> StoredBlob:
        """
        Store ``data`` and return where it can be fetched.

        Args:
            data: Raw file body
            filename: Client-supplied name (informational only)
            content_type: MIME type, already validated
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a stored object. Returns False if it did not exist."""
        pass

    @property
    @abstractmethod
    def url_prefix(self) -> str:
        """Every URL this store hands out starts with this prefix."""
        pass

    def key_for_url(self, url: Optional[str]) -> Optional[str]:
        """The key behind one of this store's URLs, or None for foreign URLs."""
        if not url or not url.startswith(self.url_prefix):
            return None
        key = url[len(self.url_prefix):]
        return key if key and "/" not in key else None
