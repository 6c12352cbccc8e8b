"""
Key-value storage backends for the workspace.

Two tiers are built on top of these backends:
- the local store: deployment-wide keys (job history, PDF cache mirror)
- the session store: keys scoped to one workspace session, written with a TTL
"""

from abc import ABC, abstractmethod

from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import FastRedisClient

logger = get_logger(__name__)


class StorageQuotaExceededError(Exception):
    """Raised when a write would exceed a store's capacity."""

    def __init__(self, key: str, size: int, limit: int):
        super().__init__(f"Storing {size} bytes under '{key}' exceeds the {limit} byte quota")
        self.key = key
        self.size = size
        self.limit = limit


class KeyValueStore(ABC):
    """Async string key-value store."""

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_s: int | None = None) -> bool: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class MemoryKeyValueStore(KeyValueStore):
    """
    In-process store.

    ``max_total_bytes`` emulates a browser storage quota: a write that would
    push the total stored size over it raises StorageQuotaExceededError.
    TTLs are accepted and ignored.
    """

    def __init__(self, max_total_bytes: int | None = None):
        self.data: dict[str, str] = {}
        self.max_total_bytes = max_total_bytes

    def _used_bytes(self, excluding: str | None = None) -> int:
        return sum(len(value) for key, value in self.data.items() if key != excluding)

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        if self.max_total_bytes is not None:
            projected = self._used_bytes(excluding=key) + len(value)
            if projected > self.max_total_bytes:
                raise StorageQuotaExceededError(key, len(value), self.max_total_bytes)
        self.data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self.data.pop(key, None) is not None


class RedisKeyValueStore(KeyValueStore):
    """Store backed by the pooled Redis client; failures surface as None/False."""

    def __init__(self, client: FastRedisClient, prefix: str = ""):
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> str | None:
        return await self.client.get(self._key(key))

    async def set(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        return await self.client.set_with_ttl(self._key(key), value, ttl_s)

    async def delete(self, key: str) -> bool:
        return await self.client.delete(self._key(key))

    async def ping(self) -> bool:
        return await self.client.ping()

    async def close(self) -> None:
        await self.client.close()


class SessionStore:
    """View of a backend scoped to one workspace session."""

    def __init__(self, backend: KeyValueStore, session_id: str, ttl_s: int | None = None):
        self.backend = backend
        self.session_id = session_id
        self.ttl_s = ttl_s

    def _key(self, key: str) -> str:
        return f"session:{self.session_id}:{key}"

    async def get(self, key: str) -> str | None:
        return await self.backend.get(self._key(key))

    async def set(self, key: str, value: str) -> bool:
        return await self.backend.set(self._key(key), value, self.ttl_s)

    async def delete(self, key: str) -> bool:
        return await self.backend.delete(self._key(key))


def build_stores(config: dict) -> tuple[KeyValueStore, KeyValueStore]:
    """
    Create the (local, session) backends from ``Settings.get_storage_config()``.

    With Redis both tiers share one connection pool under different prefixes.
    """
    if config["backend"] == "redis":
        logger.info("Using Redis storage backend")
        client = FastRedisClient(config["redis_url"])
        return (
            RedisKeyValueStore(client, prefix="local:"),
            RedisKeyValueStore(client, prefix="sess:"),
        )

    logger.info("Using in-memory storage backend")
    return MemoryKeyValueStore(), MemoryKeyValueStore()
