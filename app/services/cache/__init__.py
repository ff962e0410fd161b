from .base import BaseRedisClient, close_redis_pool, get_redis_pool
from .attempt_limiter import AttemptLimiter, OperationPolicy
from .manager import CacheManager
from .rate_limiter import RateLimiter
from .revocation import RevocationStore

__all__ = [
    "BaseRedisClient",
    "close_redis_pool",
    "get_redis_pool",
    "AttemptLimiter",
    "OperationPolicy",
    "CacheManager",
    "RateLimiter",
    "RevocationStore",
]
