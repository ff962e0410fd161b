from datetime import timedelta
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from faker import Faker
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import repos
from app.core.auth import get_password_hash
from app.core.config import settings
from app.core.db import get_session
from app.main import app
from app.models import Base, User
from app.schemas import UserCreate
from app.security.csrf import CsrfTokenRepository
from app.security.keys import KeyProvider
from app.security.tokens import TokenCodec
from app.services.auth_service import AuthenticationFlow
from app.services.cache import AttemptLimiter, CacheManager, RateLimiter, RevocationStore
from app.services.captcha import CaptchaVerifier
from app.services.email import EmailService
from tests.fakes import FakeClock, FakeRedis

DEFAULT_PASSWORD = "P@ssword123"
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def faker() -> Faker:
    """Create a Faker instance for generating test data."""
    return Faker()


@pytest.fixture(scope="session")
def pre_hashed_password():
    """Pre-compute the hashed password once for all tests to avoid repeated argon2 operations."""
    return get_password_hash(DEFAULT_PASSWORD)


@pytest.fixture
def default_password() -> str:
    return DEFAULT_PASSWORD


# ==================== Keys and tokens ====================


@pytest.fixture(scope="session")
def keys_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("keys")


@pytest.fixture(scope="session")
def key_provider(keys_dir: Path) -> KeyProvider:
    """One RSA keypair for the whole session, generation is slow."""
    provider = KeyProvider(keys_dir)
    provider.initialize()
    return provider


@pytest.fixture
def token_codec(key_provider: KeyProvider) -> TokenCodec:
    return TokenCodec(key_provider, issuer=settings.jwt_issuer)


@pytest.fixture
def csrf_repository(token_codec: TokenCodec) -> CsrfTokenRepository:
    return CsrfTokenRepository(token_codec, validity=timedelta(minutes=30))


# ==================== Stores ====================


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(fake_clock: FakeClock) -> FakeRedis:
    return FakeRedis(fake_clock)


@pytest.fixture
def revocation_store(token_codec: TokenCodec, fake_redis: FakeRedis) -> RevocationStore:
    return RevocationStore(
        token_codec,
        refresh_token_ttl_seconds=settings.refresh_token_expire_seconds,
        redis_client=fake_redis,
    )


@pytest.fixture
def attempt_limiter(fake_redis: FakeRedis) -> AttemptLimiter:
    return AttemptLimiter(redis_client=fake_redis)


@pytest.fixture
def cache_manager(fake_redis: FakeRedis) -> CacheManager:
    return CacheManager(redis_client=fake_redis)


@pytest.fixture
def rate_limiter(fake_redis: FakeRedis) -> RateLimiter:
    return RateLimiter(redis_client=fake_redis)


@pytest.fixture
def captcha_verifier() -> AsyncMock:
    """Captcha provider that rejects every response unless a test says otherwise."""
    verifier = AsyncMock(spec=CaptchaVerifier)
    verifier.verify = AsyncMock(return_value=False)
    verifier.is_configured = True
    return verifier


@pytest.fixture
def email_service() -> AsyncMock:
    service = AsyncMock(spec=EmailService)
    service.send_verification_email = AsyncMock(return_value=True)
    service.send_password_reset_email = AsyncMock(return_value=True)
    return service


# ==================== Database ====================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for a test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def user(db_session: AsyncSession, faker: Faker, pre_hashed_password: str) -> User:
    """Create an active test user with an unverified email."""
    return await repos.UserRepo(db_session).create_one(
        UserCreate(
            email=faker.safe_email(),
            username=faker.user_name() + "1",
            hashed_password=pre_hashed_password,
            first_name=faker.first_name(),
            last_name=faker.last_name(),
        )
    )


@pytest.fixture
async def auth_flow(
    db_session: AsyncSession,
    token_codec: TokenCodec,
    revocation_store: RevocationStore,
    attempt_limiter: AttemptLimiter,
    captcha_verifier: AsyncMock,
    email_service: AsyncMock,
    cache_manager: CacheManager,
) -> AuthenticationFlow:
    return AuthenticationFlow(
        user_repo=repos.UserRepo(db_session),
        token_codec=token_codec,
        revocation_store=revocation_store,
        attempt_limiter=attempt_limiter,
        captcha_verifier=captcha_verifier,
        email_service=email_service,
        cache_manager=cache_manager,
    )


# ==================== HTTP ====================


@pytest.fixture
async def test_app(
    session_factory: async_sessionmaker[AsyncSession],
    key_provider: KeyProvider,
    token_codec: TokenCodec,
    csrf_repository: CsrfTokenRepository,
    revocation_store: RevocationStore,
    attempt_limiter: AttemptLimiter,
    cache_manager: CacheManager,
    rate_limiter: RateLimiter,
    captcha_verifier: AsyncMock,
    email_service: AsyncMock,
) -> AsyncGenerator[FastAPI, None]:
    """
    The application wired to in-memory stores.

    ASGITransport does not run the lifespan, so the services it would create
    are published on ``app.state`` here.
    """
    app.state.key_provider = key_provider
    app.state.token_codec = token_codec
    app.state.csrf_repository = csrf_repository
    app.state.revocation_store = revocation_store
    app.state.attempt_limiter = attempt_limiter
    app.state.cache_manager = cache_manager
    app.state.rate_limiter = rate_limiter
    app.state.captcha_verifier = captcha_verifier
    app.state.email_service = email_service

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_session] = override_get_session

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing."""
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def csrf_headers(csrf_repository: CsrfTokenRepository) -> dict[str, str]:
    token = csrf_repository.generate()
    return {token.header_name: token.token}
