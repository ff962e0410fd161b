from fastapi import Request
from loguru import logger

from app.core.config import settings
from app.core.constants import RateLimitPrefix
from app.core.exceptions.http_exceptions import TooManyRequestsException
from app.core.utils import get_client_ip
from app.services.cache.rate_limiter import RateLimiter


async def rate_limit_auth(request: Request) -> None:
    """
    Strict rate limiting for authentication endpoints (IP-based).

    Limit: settings.rate_limit_strict requests per settings.rate_limit_window seconds
    Key strategy: IP address
    Use case: Login, signup, refresh, password reset

    Raises:
        TooManyRequestsException: When rate limit is exceeded (HTTP 429)
    """
    if not settings.rate_limit_enabled:
        return

    rate_limiter: RateLimiter = request.app.state.rate_limiter
    ip = get_client_ip(request)
    key = f"{RateLimitPrefix.AUTH}{ip}"

    is_allowed, info = await rate_limiter.check_rate_limit(
        key=key, limit=settings.rate_limit_strict, window=settings.rate_limit_window
    )

    # Store rate limit info in request state for middleware
    request.state.rate_limit_info = info

    if not is_allowed:
        logger.warning(f"Rate limit exceeded for authentication endpoint. IP: {ip}, Key: {key}")
        raise TooManyRequestsException(
            detail="Too many authentication attempts. Please try again later.",
            headers={
                "X-RateLimit-Limit": str(info["limit"]),
                "X-RateLimit-Remaining": str(info["remaining"]),
                "X-RateLimit-Reset": str(info["reset_time"]),
                "Retry-After": str(info["window"]),
            },
        )
