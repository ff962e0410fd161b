import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app import repos
from app.core.auth import verify_password
from app.core.constants import OperationType, TokenType
from app.core.exceptions.domain import DuplicateResourceError, ResourceNotFoundError
from app.core.exceptions.security import (
    AuthenticationFailedError,
    StoreUnavailableError,
    TokenExpiredError,
    TokenInvalidError,
)
from app.models import User
from app.schemas import (
    Accepted,
    Invalid,
    NeedsCaptcha,
    RateLimited,
    TokensIssued,
    UserSignup,
    UserUpdate,
)
from app.security.tokens import TokenCodec
from app.services.auth_service import AuthenticationFlow
from app.services.cache import AttemptLimiter, CacheManager, OperationPolicy, RevocationStore
from tests.fakes import FakeRedis

IP = "1.2.3.4"
NEW_PASSWORD = "N3wP@ssword!"


def identifier_for(email: str) -> str:
    return AttemptLimiter.create_identifier(IP, email)


async def issue_login(flow: AuthenticationFlow, user: User, password: str):
    return await flow.login(identifier_for(user.email), user.email, password, remote_ip=IP)


class TestLogin:
    """Tests for AuthenticationFlow.login."""

    @pytest.mark.anyio
    async def test_login_success(
        self,
        auth_flow: AuthenticationFlow,
        user: User,
        default_password: str,
        token_codec: TokenCodec,
    ):
        result = await issue_login(auth_flow, user, default_password)

        assert isinstance(result, TokensIssued)
        claims = token_codec.parse(result.tokens.access_token)
        assert claims["sub"] == user.email
        assert claims["type"] == TokenType.ACCESS
        assert claims["authorities"] == ["ROLE_USER"]
        assert result.tokens.refresh_token
        assert result.tokens.expires_in == 3600

    @pytest.mark.anyio
    async def test_login_email_is_case_insensitive(
        self, auth_flow: AuthenticationFlow, user: User, default_password: str
    ):
        result = await auth_flow.login(
            identifier_for(user.email), user.email.upper(), default_password
        )

        assert isinstance(result, TokensIssued)

    @pytest.mark.anyio
    async def test_wrong_password(self, auth_flow: AuthenticationFlow, user: User):
        result = await issue_login(auth_flow, user, "WrongPassword1!")

        assert result == Invalid(requires_captcha=False)

    @pytest.mark.anyio
    async def test_unknown_user_counts_as_attempt(
        self, auth_flow: AuthenticationFlow, attempt_limiter: AttemptLimiter
    ):
        identifier = identifier_for("ghost@example.com")

        result = await auth_flow.login(identifier, "ghost@example.com", "whatever")

        assert isinstance(result, Invalid)
        assert await attempt_limiter.get_attempt_count(identifier, OperationType.LOGIN) == 1

    @pytest.mark.anyio
    async def test_inactive_user_rejected(
        self,
        auth_flow: AuthenticationFlow,
        user: User,
        default_password: str,
        db_session: AsyncSession,
    ):
        await repos.UserRepo(db_session).update_by_id(user.id, UserUpdate(is_active=False))

        result = await issue_login(auth_flow, user, default_password)

        assert isinstance(result, Invalid)

    @pytest.mark.anyio
    async def test_fifth_failure_requires_captcha(
        self, auth_flow: AuthenticationFlow, user: User, captcha_verifier: AsyncMock
    ):
        """Test five wrong passwords flag the captcha and the sixth is refused unsolved."""
        results = [await issue_login(auth_flow, user, "WrongPassword1!") for _ in range(5)]

        assert [r.requires_captcha for r in results] == [False, False, False, False, True]

        sixth = await issue_login(auth_flow, user, "WrongPassword1!")

        assert isinstance(sixth, NeedsCaptcha)
        captcha_verifier.verify.assert_awaited_once_with(None, IP)

    @pytest.mark.anyio
    async def test_captcha_gate_blocks_correct_password(
        self,
        auth_flow: AuthenticationFlow,
        attempt_limiter: AttemptLimiter,
        user: User,
        default_password: str,
    ):
        """Test the gate is checked before the password, a right password does not bypass it."""
        for _ in range(5):
            await attempt_limiter.record_attempt(identifier_for(user.email), OperationType.LOGIN)

        result = await issue_login(auth_flow, user, default_password)

        assert isinstance(result, NeedsCaptcha)

    @pytest.mark.anyio
    async def test_solved_captcha_allows_login_and_clears_counter(
        self,
        auth_flow: AuthenticationFlow,
        attempt_limiter: AttemptLimiter,
        captcha_verifier: AsyncMock,
        user: User,
        default_password: str,
    ):
        identifier = identifier_for(user.email)
        for _ in range(5):
            await attempt_limiter.record_attempt(identifier, OperationType.LOGIN)
        captcha_verifier.verify.return_value = True

        result = await auth_flow.login(
            identifier, user.email, default_password, captcha_token="solved", remote_ip=IP
        )

        assert isinstance(result, TokensIssued)
        assert not await attempt_limiter.is_captcha_required(identifier, OperationType.LOGIN)

    @pytest.mark.anyio
    async def test_cooldown_returns_rate_limited(
        self,
        auth_flow: AuthenticationFlow,
        attempt_limiter: AttemptLimiter,
        user: User,
        default_password: str,
    ):
        identifier = identifier_for(user.email)
        attempt_limiter.policies[OperationType.LOGIN] = OperationPolicy(
            max_attempts=5, window_seconds=1800, cooldown_seconds=300
        )
        await attempt_limiter.start_cooldown(identifier, OperationType.LOGIN)

        result = await issue_login(auth_flow, user, default_password)

        assert isinstance(result, RateLimited)
        assert 0 < result.remaining_seconds <= 300

    @pytest.mark.anyio
    async def test_store_down_fails_closed(
        self, auth_flow: AuthenticationFlow, fake_redis: FakeRedis, user: User
    ):
        fake_redis.fail = True

        with patch("app.services.cache.base.settings.security_store_fail_open", False):
            with pytest.raises(StoreUnavailableError):
                await issue_login(auth_flow, user, "whatever")


class TestRefreshAndLogout:
    """Tests for refresh and logout."""

    @pytest.mark.anyio
    async def test_refresh_keeps_refresh_token(
        self,
        auth_flow: AuthenticationFlow,
        user: User,
        default_password: str,
        token_codec: TokenCodec,
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens

        refreshed = await auth_flow.refresh(user.email, tokens.refresh_token)

        assert refreshed.refresh_token == tokens.refresh_token
        assert token_codec.parse(refreshed.access_token)["sub"] == user.email

    @pytest.mark.anyio
    async def test_refresh_with_unknown_token(self, auth_flow: AuthenticationFlow, user: User):
        with pytest.raises(AuthenticationFailedError):
            await auth_flow.refresh(user.email, "not-a-refresh-token")

    @pytest.mark.anyio
    async def test_refresh_for_other_subject(
        self, auth_flow: AuthenticationFlow, user: User, default_password: str
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens

        with pytest.raises(AuthenticationFailedError):
            await auth_flow.refresh("someone@example.com", tokens.refresh_token)

    @pytest.mark.anyio
    async def test_refresh_for_deleted_user_revokes_token(
        self,
        auth_flow: AuthenticationFlow,
        revocation_store: RevocationStore,
    ):
        subject = "gone@example.com"
        refresh_token = await revocation_store.issue_refresh_token(subject)

        with pytest.raises(AuthenticationFailedError):
            await auth_flow.refresh(subject, refresh_token)

        assert not await revocation_store.validate_refresh_token(subject, refresh_token)

    @pytest.mark.anyio
    async def test_logout_revokes_both_tokens(
        self,
        auth_flow: AuthenticationFlow,
        revocation_store: RevocationStore,
        user: User,
        default_password: str,
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens

        await auth_flow.logout(tokens.access_token, tokens.refresh_token)

        with pytest.raises(TokenInvalidError):
            await auth_flow.validate_access_token(tokens.access_token)
        assert not await revocation_store.validate_refresh_token(user.email, tokens.refresh_token)

    @pytest.mark.anyio
    async def test_logout_cannot_revoke_foreign_refresh_token(
        self,
        auth_flow: AuthenticationFlow,
        revocation_store: RevocationStore,
        user: User,
        default_password: str,
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens
        foreign = await revocation_store.issue_refresh_token("bob@example.com")

        await auth_flow.logout(tokens.access_token, foreign)

        assert await revocation_store.validate_refresh_token("bob@example.com", foreign)


class TestValidateAccessToken:
    """Tests for bearer token validation."""

    @pytest.mark.anyio
    async def test_valid_token(
        self, auth_flow: AuthenticationFlow, user: User, default_password: str
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens

        claims = await auth_flow.validate_access_token(tokens.access_token)

        assert claims.subject == user.email
        assert claims.authorities == ["ROLE_USER"]

    @pytest.mark.anyio
    async def test_wrong_token_type(self, auth_flow: AuthenticationFlow, token_codec: TokenCodec):
        token = token_codec.issue("alice@example.com", claims={"type": TokenType.CSRF.value})

        with pytest.raises(TokenInvalidError):
            await auth_flow.validate_access_token(token)

    @pytest.mark.anyio
    async def test_expired_token(self, auth_flow: AuthenticationFlow, token_codec: TokenCodec):
        token = token_codec.issue(
            "alice@example.com",
            claims={"type": TokenType.ACCESS.value},
            validity=timedelta(seconds=1),
        )
        expires_at = token_codec.parse(token)["exp"]

        with patch("app.security.tokens.time.time", return_value=expires_at + 1):
            with pytest.raises(TokenExpiredError):
                await auth_flow.validate_access_token(token)

    @pytest.mark.anyio
    async def test_globally_revoked_token(
        self,
        auth_flow: AuthenticationFlow,
        revocation_store: RevocationStore,
        fake_redis: FakeRedis,
        user: User,
        default_password: str,
        token_codec: TokenCodec,
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens
        issued_at_ms = token_codec.parse(tokens.access_token)["iat_ms"]
        await fake_redis.set(f"jwt:revoke_all:{user.email}", issued_at_ms + 1)

        with pytest.raises(TokenInvalidError):
            await auth_flow.validate_access_token(tokens.access_token)

    @pytest.mark.anyio
    async def test_revoke_all_rejects_token_from_same_second(
        self,
        auth_flow: AuthenticationFlow,
        revocation_store: RevocationStore,
        user: User,
        default_password: str,
        token_codec: TokenCodec,
    ):
        """Test a revoke-all a few milliseconds after issue rejects the token."""
        tokens = (await issue_login(auth_flow, user, default_password)).tokens
        issued_at_ms = token_codec.parse(tokens.access_token)["iat_ms"]

        revoked_at = (issued_at_ms + 5) / 1000
        with patch("app.services.cache.revocation.time.time", return_value=revoked_at):
            await revocation_store.revoke_all_user_tokens(user.email)

        with pytest.raises(TokenInvalidError):
            await auth_flow.validate_access_token(tokens.access_token)

    @pytest.mark.anyio
    async def test_token_issued_after_revoke_all_is_valid(
        self,
        auth_flow: AuthenticationFlow,
        revocation_store: RevocationStore,
        user: User,
        default_password: str,
    ):
        await revocation_store.revoke_all_user_tokens(user.email)

        tokens = (await issue_login(auth_flow, user, default_password)).tokens
        claims = await auth_flow.validate_access_token(tokens.access_token)

        assert claims.subject == user.email

    @pytest.mark.anyio
    async def test_get_current_user_is_cached(
        self, auth_flow: AuthenticationFlow, user: User, default_password: str
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens
        claims = await auth_flow.validate_access_token(tokens.access_token)

        with patch.object(
            auth_flow.user_repo, "get_by_email", wraps=auth_flow.user_repo.get_by_email
        ) as spy:
            first = await auth_flow.get_current_user(claims)
            second = await auth_flow.get_current_user(claims)

        assert first == second
        assert first.email == user.email
        assert spy.await_count == 1


class TestRegister:
    """Tests for registration and email verification."""

    @staticmethod
    def signup_data(faker: Faker) -> UserSignup:
        return UserSignup(
            username=f"user_{faker.random_int(1000, 9999)}",
            email=faker.safe_email(),
            password="P@ssword123",
        )

    @pytest.mark.anyio
    async def test_register_returns_tokens_and_sends_verification(
        self,
        auth_flow: AuthenticationFlow,
        email_service: AsyncMock,
        token_codec: TokenCodec,
        faker: Faker,
    ):
        signup = self.signup_data(faker)

        tokens = await auth_flow.register(signup)

        assert token_codec.parse(tokens.access_token)["sub"] == signup.email.lower()
        email_service.send_verification_email.assert_awaited_once()
        to_email, verification_token = email_service.send_verification_email.await_args.args
        assert to_email == signup.email.lower()
        assert token_codec.parse(verification_token)["type"] == TokenType.EMAIL_VERIFICATION

    @pytest.mark.anyio
    async def test_register_duplicate_email(
        self, auth_flow: AuthenticationFlow, user: User, faker: Faker
    ):
        signup = self.signup_data(faker).model_copy(update={"email": user.email})

        with pytest.raises(DuplicateResourceError) as exc_info:
            await auth_flow.register(signup)

        assert "email" not in exc_info.value.message.lower()

    @pytest.mark.anyio
    async def test_verify_email(
        self,
        auth_flow: AuthenticationFlow,
        email_service: AsyncMock,
        faker: Faker,
    ):
        signup = self.signup_data(faker)
        await auth_flow.register(signup)
        _, verification_token = email_service.send_verification_email.await_args.args

        user = await auth_flow.verify_email(verification_token)

        assert user.email_verified is True

    @pytest.mark.anyio
    async def test_verify_email_rejects_access_token(
        self, auth_flow: AuthenticationFlow, user: User, default_password: str
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens

        with pytest.raises(TokenInvalidError):
            await auth_flow.verify_email(tokens.access_token)

    @pytest.mark.anyio
    async def test_verify_email_unknown_user(
        self, auth_flow: AuthenticationFlow, token_codec: TokenCodec
    ):
        token = token_codec.issue(
            "ghost@example.com", claims={"type": TokenType.EMAIL_VERIFICATION.value}
        )

        with pytest.raises(ResourceNotFoundError):
            await auth_flow.verify_email(token)

    @pytest.mark.anyio
    async def test_resend_verification(
        self, auth_flow: AuthenticationFlow, email_service: AsyncMock, user: User
    ):
        await auth_flow.resend_verification(user.email)
        await auth_flow.resend_verification("ghost@example.com")

        email_service.send_verification_email.assert_awaited_once()


class TestPasswordReset:
    """Tests for the password reset flow."""

    @pytest.mark.anyio
    async def test_request_for_known_user(
        self,
        auth_flow: AuthenticationFlow,
        email_service: AsyncMock,
        attempt_limiter: AttemptLimiter,
        token_codec: TokenCodec,
        user: User,
    ):
        identifier = identifier_for(user.email)

        result = await auth_flow.request_password_reset(identifier, user.email)

        assert isinstance(result, Accepted)
        to_email, reset_token = email_service.send_password_reset_email.await_args.args
        assert to_email == user.email
        assert token_codec.parse(reset_token)["type"] == TokenType.PASSWORD_RESET
        assert await attempt_limiter.is_rate_limited(identifier, OperationType.PASSWORD_RESET)

    @pytest.mark.anyio
    async def test_request_for_unknown_user_looks_the_same(
        self,
        auth_flow: AuthenticationFlow,
        email_service: AsyncMock,
        attempt_limiter: AttemptLimiter,
    ):
        identifier = identifier_for("ghost@example.com")

        result = await auth_flow.request_password_reset(identifier, "ghost@example.com")

        assert isinstance(result, Accepted)
        email_service.send_password_reset_email.assert_not_awaited()
        assert await attempt_limiter.is_rate_limited(identifier, OperationType.PASSWORD_RESET)

    @pytest.mark.anyio
    async def test_second_request_is_rate_limited(
        self, auth_flow: AuthenticationFlow, user: User
    ):
        identifier = identifier_for(user.email)
        await auth_flow.request_password_reset(identifier, user.email)

        result = await auth_flow.request_password_reset(identifier, user.email)

        assert isinstance(result, RateLimited)
        assert 0 < result.remaining_seconds <= 60

    @pytest.mark.anyio
    async def test_request_needs_captcha_after_threshold(
        self, auth_flow: AuthenticationFlow, attempt_limiter: AttemptLimiter, user: User
    ):
        identifier = identifier_for(user.email)
        for _ in range(5):
            await attempt_limiter.record_attempt(identifier, OperationType.PASSWORD_RESET)

        result = await auth_flow.request_password_reset(identifier, user.email)

        assert isinstance(result, NeedsCaptcha)

    @pytest.mark.anyio
    async def test_reset_password(
        self,
        auth_flow: AuthenticationFlow,
        email_service: AsyncMock,
        revocation_store: RevocationStore,
        db_session: AsyncSession,
        user: User,
        default_password: str,
    ):
        """Test a reset changes the hash, consumes the token and ends old sessions."""
        tokens = (await issue_login(auth_flow, user, default_password)).tokens
        await auth_flow.request_password_reset(identifier_for(user.email), user.email)
        _, reset_token = email_service.send_password_reset_email.await_args.args

        with patch.object(
            revocation_store, "revoke_all_user_tokens", wraps=revocation_store.revoke_all_user_tokens
        ) as revoke_all:
            result = await auth_flow.reset_password(identifier_for(None), reset_token, NEW_PASSWORD)

        assert isinstance(result, Accepted)
        revoke_all.assert_awaited_once_with(user.email)
        assert not await revocation_store.validate_refresh_token(user.email, tokens.refresh_token)
        assert await revocation_store.is_blacklisted(reset_token)

        db_session.expire_all()
        updated = await repos.UserRepo(db_session).get_by_email(user.email)
        assert verify_password(NEW_PASSWORD, updated.hashed_password)

    @pytest.mark.anyio
    async def test_reset_token_is_single_use(
        self, auth_flow: AuthenticationFlow, email_service: AsyncMock, user: User
    ):
        await auth_flow.request_password_reset(identifier_for(user.email), user.email)
        _, reset_token = email_service.send_password_reset_email.await_args.args
        await auth_flow.reset_password(identifier_for(None), reset_token, NEW_PASSWORD)

        result = await auth_flow.reset_password(identifier_for(None), reset_token, NEW_PASSWORD)

        assert isinstance(result, Invalid)

    @pytest.mark.anyio
    async def test_concurrent_resets_accept_one(
        self,
        auth_flow: AuthenticationFlow,
        session_factory: async_sessionmaker[AsyncSession],
        revocation_store: RevocationStore,
        attempt_limiter: AttemptLimiter,
        cache_manager: CacheManager,
        captcha_verifier: AsyncMock,
        email_service: AsyncMock,
        user: User,
    ):
        """Test two confirms racing with one token set the password only once."""
        await auth_flow.request_password_reset(identifier_for(user.email), user.email)
        _, reset_token = email_service.send_password_reset_email.await_args.args

        async with session_factory() as first, session_factory() as second:
            flows = [
                AuthenticationFlow(
                    user_repo=repos.UserRepo(session),
                    token_codec=auth_flow.token_codec,
                    revocation_store=revocation_store,
                    attempt_limiter=attempt_limiter,
                    captcha_verifier=captcha_verifier,
                    email_service=email_service,
                    cache_manager=cache_manager,
                )
                for session in (first, second)
            ]
            results = await asyncio.gather(
                flows[0].reset_password(identifier_for(None), reset_token, "F1rstP@ssword!"),
                flows[1].reset_password(identifier_for(None), reset_token, "S3condP@ssword!"),
            )

        assert sum(isinstance(result, Accepted) for result in results) == 1
        assert sum(isinstance(result, Invalid) for result in results) == 1

    @pytest.mark.anyio
    async def test_reset_with_invalid_token_counts_attempt(
        self, auth_flow: AuthenticationFlow, attempt_limiter: AttemptLimiter
    ):
        identifier = identifier_for(None)

        result = await auth_flow.reset_password(identifier, "garbage", NEW_PASSWORD)

        assert result == Invalid(requires_captcha=False)
        assert await attempt_limiter.get_attempt_count(identifier, OperationType.PASSWORD_RESET) == 1

    @pytest.mark.anyio
    async def test_reset_with_access_token_rejected(
        self, auth_flow: AuthenticationFlow, user: User, default_password: str
    ):
        tokens = (await issue_login(auth_flow, user, default_password)).tokens

        result = await auth_flow.reset_password(
            identifier_for(None), tokens.access_token, NEW_PASSWORD
        )

        assert isinstance(result, Invalid)
