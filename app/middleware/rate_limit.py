from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


class RateLimitHeaderMiddleware(BaseHTTPMiddleware):
    """
    Copy ``request.state.rate_limit_info`` into ``X-RateLimit-*`` response headers.

    The info is stored by the rate limit dependencies in
    ``app.api.v1.deps.rate_limit``; requests that were not rate limited are
    left untouched.
    """

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        info = getattr(request.state, "rate_limit_info", None)
        if info is not None:
            response.headers["X-RateLimit-Limit"] = str(info["limit"])
            response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
            response.headers["X-RateLimit-Reset"] = str(info["reset_time"])

        return response
