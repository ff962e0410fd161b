from abc import ABC
from contextlib import asynccontextmanager
from typing import AsyncIterator, TypeVar

from loguru import logger
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from app.core.config import settings
from app.core.exceptions.security import StoreUnavailableError

T = TypeVar("T")

# Global shared Redis connection pool
_redis_pool: ConnectionPool | None = None


def get_redis_pool() -> ConnectionPool:
    """
    Get or create the shared Redis connection pool.

    Returns:
        ConnectionPool: Shared Redis connection pool instance

    Note:
        All Redis clients share the same pool. Socket timeouts on the pool bound
        every store call, no call blocks indefinitely.
    """
    global _redis_pool

    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            settings.redis_url.human_repr(),
            encoding="utf-8",
            decode_responses=False,
            max_connections=settings.redis_max_pool_connections,
            retry_on_timeout=True,
            socket_connect_timeout=settings.redis_socket_connect_timeout,
            socket_timeout=settings.redis_socket_timeout,
        )
        logger.info(
            f"Redis connection pool created with max_connections={settings.redis_max_pool_connections}"
        )
    return _redis_pool


class BaseRedisClient(ABC):
    """
    Abstract base class for Redis clients with shared connection handling.

    Provides connection initialization, health checks and the error translation
    used by the security stores: any Redis failure becomes a StoreUnavailableError.
    """

    def __init__(self, redis_client: Redis | None = None):
        self._redis_client: Redis | None = redis_client

        if redis_client is None:
            self._initialize_redis()

    @property
    def redis_client(self) -> Redis | None:
        """
        Get the Redis client instance

        Returns:
            Redis | None: Redis client or None if it could not be initialized
        """
        return self._redis_client

    @redis_client.setter
    def redis_client(self, client: Redis | None) -> None:
        self._redis_client = client

    def _initialize_redis(self):
        """Initialize Redis connection using shared connection pool"""
        try:
            pool = get_redis_pool()
            self._redis_client = Redis(connection_pool=pool)
            logger.debug(
                f"Redis client initialized for {self.__class__.__name__} using shared pool"
            )
        except Exception as e:
            logger.error(f"Failed to initialize Redis for {self.__class__.__name__}: {e}")
            raise e

    def _require_client(self) -> Redis:
        if self._redis_client is None:
            raise StoreUnavailableError(
                f"Redis client is not initialized for {self.__class__.__name__}"
            )

        return self._redis_client

    @asynccontextmanager
    async def _store_call(self, operation: str, key: str) -> AsyncIterator[None]:
        """Translate Redis and socket errors raised inside the block."""
        try:
            yield
        except (RedisError, OSError) as e:
            logger.error(f"Redis {operation} failed in {self.__class__.__name__} for {key}: {e}")
            raise StoreUnavailableError(f"Redis {operation} failed", e)

    def _fail_open_or_raise(self, error: StoreUnavailableError, default: T) -> T:
        """Return ``default`` when fail-open is configured, otherwise re-raise."""
        if settings.security_store_fail_open:
            logger.warning(
                f"{self.__class__.__name__} failing open after store error: {error.message}"
            )
            return default

        raise error

    async def health_check(self) -> bool:
        """
        Check Redis connection health by pinging the server.

        Returns:
            bool: True if Redis is healthy and responsive, False otherwise
        """
        if self._redis_client is None:
            return False

        try:
            await self._redis_client.ping()
            return True
        except (RedisError, OSError) as e:
            logger.error(f"Redis health check failed for {self.__class__.__name__}: {e}")
            return False

    async def close(self):
        """Close Redis connection gracefully"""
        if self._redis_client:
            try:
                await self._redis_client.aclose()
                logger.info(f"Redis connection closed for {self.__class__.__name__}")
            except (RedisError, OSError) as e:
                logger.error(f"Error closing Redis connection for {self.__class__.__name__}: {e}")


async def close_redis_pool() -> None:
    """Disconnect every connection of the shared pool, used on shutdown."""
    global _redis_pool

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection pool closed")
