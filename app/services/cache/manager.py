from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError
from redis.exceptions import RedisError

from app.core.config import settings
from app.services.cache.base import BaseRedisClient

ModelT = TypeVar("ModelT", bound=BaseModel)


class CacheManager(BaseRedisClient):
    """
    Cache-aside helper for pydantic models stored as JSON.

    The cache is an optimization only: every Redis error is logged and treated
    as a miss, callers always fall back to the loader.

    Example:
        ```python
        user = await cache_manager.get_or_load(
            key=f"{KeyPrefix.USER_CACHE}{email}",
            model=UserResponse,
            loader=lambda: load_user(email),
        )
        ...
        await cache_manager.invalidate(f"{KeyPrefix.USER_CACHE}{email}")
        ```
    """

    async def get(self, key: str, model: type[ModelT]) -> Optional[ModelT]:
        """
        Get cached data

        Args:
            key (str): Cache key
            model (type[ModelT]): Model used to decode the cached JSON

        Returns:
            Optional[ModelT]: Cached value or None if not found or undecodable
        """
        if not settings.cache_enabled or not self.redis_client:
            return None

        try:
            data = await self.redis_client.get(key)
        except (RedisError, OSError) as e:
            logger.error(f"Cache get failed for key {key}: {e}")
            return None

        if not data:
            return None

        try:
            return model.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Dropping undecodable cache entry {key}: {e.error_count()} errors")
            await self.invalidate(key)
            return None

    async def set(self, key: str, value: BaseModel, expire: int | None = None) -> bool:
        """
        Set cached data with expiration

        Args:
            key (str): Cache key
            value (BaseModel): Value to cache
            expire (int | None): Expiration time in seconds. If None, uses default TTL.

        Returns:
            bool: True if set successfully, False otherwise
        """
        if not settings.cache_enabled or not self.redis_client:
            return False

        try:
            expire = expire or settings.cache_ttl_default
            return bool(await self.redis_client.set(key, value.model_dump_json(), ex=expire))
        except (RedisError, OSError) as e:
            logger.error(f"Cache set failed for key {key}: {e}")
            return False

    async def invalidate(self, key: str) -> bool:
        """
        Delete cached data

        Returns:
            bool: True if an entry was deleted
        """
        if not self.redis_client:
            return False

        try:
            return await self.redis_client.delete(key) > 0
        except (RedisError, OSError) as e:
            logger.error(f"Cache delete failed for key {key}: {e}")
            return False

    async def get_or_load(
        self,
        key: str,
        model: type[ModelT],
        loader: Callable[[], Awaitable[Optional[ModelT]]],
        expire: int | None = None,
    ) -> Optional[ModelT]:
        """
        Return the cached value, or load it and populate the cache on a miss.

        A loader returning None is not cached.
        """
        cached = await self.get(key, model)
        if cached is not None:
            logger.debug(f"Cache hit for {key}")
            return cached

        value = await loader()
        if value is not None:
            await self.set(key, value, expire)

        return value
