from datetime import timedelta

from fastapi import FastAPI, Request, status
from fastapi.concurrency import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.routes import api_router
from app.core.config import Environment, settings
from app.core.exceptions.security import StoreUnavailableError
from app.core.logger import configure_uvicorn_logging, setup_logger, shutdown_logger
from app.middleware.csrf import CSRFMiddleware
from app.middleware.logging import LoggingMiddleware
from app.middleware.rate_limit import RateLimitHeaderMiddleware
from app.security.csrf import CsrfTokenRepository
from app.security.keys import KeyProvider
from app.security.tokens import TokenCodec
from app.services.cache import (
    AttemptLimiter,
    CacheManager,
    RateLimiter,
    RevocationStore,
    close_redis_pool,
)
from app.services.captcha import CaptchaVerifier
from app.services.email import EmailService


def init_services(app: FastAPI) -> None:
    """
    Create the signing keys and every shared service, and publish them on ``app.state``.

    Raises:
        ConfigurationError: If the keys directory is unusable or the keypair
            cannot be generated. Startup is aborted.
    """
    key_provider = KeyProvider(
        keys_dir=settings.keys_dir,
        private_key_filename=settings.private_key_filename,
        public_key_filename=settings.public_key_filename,
    )
    key_provider.initialize()

    token_codec = TokenCodec(key_provider, issuer=settings.jwt_issuer)
    attempt_limiter = AttemptLimiter()

    app.state.key_provider = key_provider
    app.state.token_codec = token_codec
    app.state.revocation_store = RevocationStore(
        token_codec, refresh_token_ttl_seconds=settings.refresh_token_expire_seconds
    )
    app.state.attempt_limiter = attempt_limiter
    app.state.csrf_repository = CsrfTokenRepository(
        token_codec,
        validity=timedelta(seconds=settings.csrf_token_expire_seconds),
        header_name=settings.csrf_header_name,
        parameter_name=settings.csrf_parameter_name,
    )
    app.state.cache_manager = CacheManager()
    app.state.rate_limiter = RateLimiter()
    app.state.captcha_verifier = CaptchaVerifier()
    app.state.email_service = EmailService(attempt_limiter)

    if not app.state.captcha_verifier.is_configured:
        logger.warning("Captcha secret not configured: captcha challenges cannot be passed")


async def _check_dependencies(app: FastAPI):
    """Check essential dependencies before starting the app"""

    is_healthy = await app.state.cache_manager.health_check()

    if not is_healthy:
        logger.error("Redis health check failed. Exiting application.")
        raise RuntimeError("Redis is not healthy.")

    logger.success("Redis is healthy.")


async def _shutdown_dependencies(app: FastAPI):
    """Shutdown essential dependencies gracefully"""

    for name in ("cache_manager", "rate_limiter", "revocation_store", "attempt_limiter"):
        await getattr(app.state, name).close()

    await close_redis_pool()
    logger.success("Redis connections closed.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""

    setup_logger()
    configure_uvicorn_logging()

    logger.info("Initializing resources...")
    init_services(app)
    await _check_dependencies(app)
    logger.success("Resources initialized.")

    yield  # Application runs here

    logger.info("Cleaning up resources...")
    await _shutdown_dependencies(app)
    logger.success("Resources cleaned up.")
    shutdown_logger()


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    """Security checks fail closed: an unreachable store answers 503."""
    logger.error(f"{request.method} {request.url.path} rejected: {exc}")

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable. Please try again later."},
        headers={"Retry-After": "5"},
    )


ALLOWED_ENVIRONMENTS = {Environment.LOCAL, Environment.DEV, Environment.STG}

app = FastAPI(
    title=settings.app_title,
    version=settings.app_version,
    description=settings.app_description,
    openapi_url=("/openapi.json" if settings.current_environment in ALLOWED_ENVIRONMENTS else None),
    docs_url="/docs" if settings.current_environment in ALLOWED_ENVIRONMENTS else None,
    redoc_url="/redoc" if settings.current_environment in ALLOWED_ENVIRONMENTS else None,
    lifespan=lifespan,
    generate_unique_id_function=lambda route: f"{route.tags[0]}-{route.name}",
)

app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)

# Middlewares run in reverse order of registration: logging sees every request first
app.add_middleware(RateLimitHeaderMiddleware)
app.add_middleware(CSRFMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
)
app.add_middleware(LoggingMiddleware)

# Include API router
app.include_router(api_router)
