from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.security.csrf import CsrfTokenRepository

# Safe HTTP methods that don't require CSRF protection
SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}

# Paths reachable before a client can hold a CSRF token
EXEMPT_PATHS = {
    "/api/v1/auth/login",
    "/api/v1/auth/signup",
    "/api/v1/auth/refresh-token",
    "/api/v1/auth/csrf",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
}
EXEMPT_PREFIXES = ("/docs", "/redoc", "/openapi")

CSRF_REJECTION_DETAIL = "CSRF token missing or invalid."


class CSRFMiddleware(BaseHTTPMiddleware):
    """
    Header-based CSRF protection with self-contained signed tokens.

    State-changing requests (POST, PUT, DELETE, PATCH) must carry a token issued
    by ``GET /api/v1/auth/csrf`` in the ``X-CSRF-TOKEN`` header. A missing token
    and an invalid one get the same 403 response.

    Reference: https://cheatsheetseries.owasp.org/cheatsheets/Cross-Site_Request_Forgery_Prevention_Cheat_Sheet.html
    """

    def _is_exempt(self, request: Request) -> bool:
        path = request.url.path

        if path in EXEMPT_PATHS:
            return True

        return any(path.startswith(prefix) for prefix in EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not settings.csrf_enabled or request.method in SAFE_METHODS or self._is_exempt(request):
            return await call_next(request)

        repository: CsrfTokenRepository = request.app.state.csrf_repository

        if repository.load(request) is None:
            logger.warning(
                f"CSRF validation failed for {request.method} {request.url.path}. "
                f"Header present: {repository.header_name in request.headers}"
            )
            return JSONResponse(
                status_code=status.HTTP_403_FORBIDDEN,
                content={"detail": CSRF_REJECTION_DETAIL},
            )

        return await call_next(request)
