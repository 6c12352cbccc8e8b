"""
PDF Blob Cache
Keeps uploaded PDFs as data URLs in memory, mirrored into the local store.

The memory map is authoritative for the running process; the persistent
mirror is best effort. Admission to the mirror is limited by a per-file size
cap and there is no capacity-based eviction.
"""

import base64

from app.infrastructure.observability.logging import get_logger
from app.services.kv_store import KeyValueStore

logger = get_logger(__name__)

STORAGE_PREFIX = "outmail:pdf:"
DEFAULT_MAX_PERSIST_BYTES = 5 * 1024 * 1024


def build_storage_key(key: str) -> str:
    return f"{STORAGE_PREFIX}{key}"


def encode_data_url(data: bytes, content_type: str = "application/pdf") -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type or 'application/pdf'};base64,{encoded}"


class PdfBlobCache:
    """Two-tier cache: in-memory map plus an optional persistent KeyValueStore."""

    def __init__(
        self,
        persistent: KeyValueStore | None = None,
        max_persist_bytes: int = DEFAULT_MAX_PERSIST_BYTES,
    ):
        self.memory: dict[str, str] = {}
        self.persistent = persistent
        self.max_persist_bytes = max_persist_bytes

    async def _persist(self, key: str, data_url: str) -> bool:
        if self.persistent is None:
            return False
        try:
            stored = await self.persistent.set(build_storage_key(key), data_url)
            if not stored:
                logger.warning("PDF cache entry not persisted", cache_key=key)
            return bool(stored)
        except Exception as e:
            logger.warning("Failed to store PDF in persistent cache", cache_key=key, error=str(e))
            return False

    async def store(self, key: str, data: bytes, content_type: str = "application/pdf") -> str:
        """
        Cache file bytes under ``key`` and return the data URL.

        Files larger than ``max_persist_bytes`` stay memory-only.
        """
        data_url = encode_data_url(data, content_type)
        self.memory[key] = data_url

        if len(data) <= self.max_persist_bytes:
            await self._persist(key, data_url)
        else:
            logger.info(
                "PDF exceeds persistent cache cap, keeping in memory only",
                cache_key=key,
                size_bytes=len(data),
                max_bytes=self.max_persist_bytes,
            )

        return data_url

    async def hydrate(self, key: str, data_url: str) -> None:
        """Seed both tiers with a data URL restored from serialized state."""
        self.memory[key] = data_url
        await self._persist(key, data_url)

    async def get(self, key: str | None) -> str | None:
        if not key:
            return None
        if key in self.memory:
            return self.memory[key] or None
        if self.persistent is None:
            return None

        try:
            stored = await self.persistent.get(build_storage_key(key))
        except Exception as e:
            logger.warning("Failed to read PDF from persistent cache", cache_key=key, error=str(e))
            return None

        if stored:
            self.memory[key] = stored
        return stored or None

    async def remove(self, key: str | None) -> None:
        if not key:
            return
        self.memory.pop(key, None)
        if self.persistent is None:
            return
        try:
            await self.persistent.delete(build_storage_key(key))
        except Exception as e:
            logger.warning("Failed to remove PDF from persistent cache", cache_key=key, error=str(e))

    def ensure(self, key: str | None, fallback_url: str | None) -> None:
        """Memory-only seed used when a document already has a usable URL."""
        if not key or not fallback_url:
            return
        self.memory.setdefault(key, fallback_url)
