# app/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class FastRedisClient:
    """Pooled async Redis client backing the workspace key-value stores"""

    def __init__(self, redis_url: str, max_connections: int = 20):
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on first use"""
        if self._initialized:
            return

        try:
            logger.info("Attempting Redis connection", url_preview=self.redis_url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
            )

            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Fast Redis client initialized successfully", max_connections=self.max_connections)

        except Exception as e:
            logger.error("Failed to initialize fast Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self.client = None
            self.pool = None
            self._initialized = False
            logger.info("Fast Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()
            if not self._initialized:
                raise ConnectionError("Redis client not available")

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        """Get value - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:30], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """Set value with TTL - with fallback handling"""
        try:
            await self._ensure_initialized()

            if ttl_s:
                result = await self.client.setex(key, ttl_s, value)
            else:
                result = await self.client.set(key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:30], error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        """Delete key - with fallback handling"""
        try:
            await self._ensure_initialized()
            result = await self.client.delete(key)
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:30], error=str(e))
            return False
