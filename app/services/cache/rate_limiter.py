import secrets
import time

from loguru import logger

from app.core.config import settings
from app.core.exceptions.rate_limiter import RateLimitConfigurationError
from app.core.exceptions.security import StoreUnavailableError
from app.core.types import RateLimitInfoDict
from app.services.cache.base import BaseRedisClient


class RateLimiter(BaseRedisClient):
    """
    Redis-based endpoint rate limiter using a sliding window.

    The sliding window algorithm:
    1. Stores timestamps of requests in a sorted set (ZSET)
    2. Removes requests outside the current time window
    3. Counts remaining requests in the window
    4. Allows or denies based on the limit

    Example:
        ```python
        is_allowed, info = await rate_limiter.check_rate_limit(
            key="ratelimit:auth:192.168.1.1",
            limit=10,
            window=60
        )

        if not is_allowed:
            raise TooManyRequestsException(headers=...)
        ```
    """

    async def check_rate_limit(
        self, key: str, limit: int, window: int = 60
    ) -> tuple[bool, RateLimitInfoDict]:
        """
        Count this request and check the limit for ``key``.

        Args:
            key: Redis key for rate limiting (e.g., "ratelimit:auth:192.168.1.1")
            limit: Maximum number of requests allowed in the time window
            window: Time window in seconds (default: 60)

        Returns:
            tuple[bool, RateLimitInfoDict]: (is_allowed, rate_limit_info)

        Raises:
            RateLimitConfigurationError: If limit or window is invalid
            StoreUnavailableError: If Redis fails and fail-open is not configured
        """
        if limit <= 0:
            raise RateLimitConfigurationError(f"Rate limit must be positive, got {limit}")
        if window <= 0:
            raise RateLimitConfigurationError(f"Rate limit window must be positive, got {window}")

        try:
            async with self._store_call("sliding_window", key):
                now_us = int(time.time() * 1_000_000)
                window_start = now_us - window * 1_000_000

                pipe = self._require_client().pipeline(transaction=True)
                pipe.zremrangebyscore(key, 0, window_start)
                # Unique member so concurrent requests in the same microsecond all count
                pipe.zadd(key, {f"{now_us}:{secrets.token_hex(4)}": now_us})
                pipe.zcard(key)
                pipe.expire(key, window)
                results = await pipe.execute()
        except StoreUnavailableError as e:
            self._fail_open_or_raise(e, default=None)
            return True, self._full_allowance(limit, window)

        request_count = int(results[2])

        rate_limit_info = RateLimitInfoDict(
            limit=limit,
            remaining=max(0, limit - request_count),
            reset_time=int(time.time()) + window,
            window=window,
        )

        if request_count > limit:
            logger.warning(f"Rate limit exceeded for {key}: {request_count}/{limit}")

        return request_count <= limit, rate_limit_info

    async def reset_limit(self, key: str) -> bool:
        """
        Reset rate limit for a specific key.

        Returns:
            bool: True if key was deleted, False otherwise
        """
        async with self._store_call("delete", key):
            deleted = await self._require_client().delete(key)

        if deleted:
            logger.info(f"Rate limit reset for key {key}")
        return deleted > 0

    @staticmethod
    def _full_allowance(limit: int, window: int) -> RateLimitInfoDict:
        return RateLimitInfoDict(
            limit=limit,
            remaining=limit,
            reset_time=int(time.time()) + window,
            window=window,
        )
