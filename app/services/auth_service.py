import uuid
from datetime import timedelta
from typing import Any

from loguru import logger
from sqlalchemy.exc import IntegrityError

from app.core.auth import get_password_hash, verify_password
from app.core.config import settings
from app.core.constants import KeyPrefix, OperationType, TokenType
from app.core.exceptions.domain import DuplicateResourceError, ResourceNotFoundError
from app.core.exceptions.security import (
    AuthenticationFailedError,
    TokenError,
    TokenInvalidError,
)
from app.core.logger import redact_email
from app.core.types import JWTPayloadDict
from app.repos.user import UserRepo
from app.schemas import (
    Accepted,
    Invalid,
    LoginResult,
    NeedsCaptcha,
    PasswordResetConfirmResult,
    PasswordResetRequestResult,
    RateLimited,
    Token,
    TokenClaims,
    TokensIssued,
    UserCreate,
    UserResponse,
    UserSignup,
    UserUpdate,
)
from app.security.tokens import TokenCodec
from app.services.cache.attempt_limiter import AttemptLimiter
from app.services.cache.manager import CacheManager
from app.services.cache.revocation import RevocationStore
from app.services.captcha import CaptchaVerifier
from app.services.email import EmailService

# Pre-computed dummy hash for timing attack prevention
# Reference: https://cheatsheetseries.owasp.org/cheatsheets/Authentication_Cheat_Sheet.html
_DUMMY_HASH = get_password_hash("dummy_password_for_timing_attack_prevention")

GENERIC_REGISTRATION_ERROR = "Unable to complete registration. Please check your input and try again."


class AuthenticationFlow:
    """
    Orchestrates login, registration, refresh, logout, password reset and
    email verification on top of the token codec, the revocation store and
    the attempt limiter.

    Soft failures (captcha needed, cooldown running, bad credentials) come back
    as tagged results; callers must handle each ``kind``. Hard failures raise:
    token errors, AuthenticationFailedError, domain errors and
    StoreUnavailableError.
    """

    def __init__(
        self,
        user_repo: UserRepo,
        token_codec: TokenCodec,
        revocation_store: RevocationStore,
        attempt_limiter: AttemptLimiter,
        captcha_verifier: CaptchaVerifier,
        email_service: EmailService,
        cache_manager: CacheManager,
    ):
        self.user_repo = user_repo
        self.token_codec = token_codec
        self.revocation_store = revocation_store
        self.attempt_limiter = attempt_limiter
        self.captcha_verifier = captcha_verifier
        self.email_service = email_service
        self.cache_manager = cache_manager

    # ==================== Login / tokens ====================

    async def login(
        self,
        identifier: str,
        email: str,
        password: str,
        captcha_token: str | None = None,
        remote_ip: str | None = None,
    ) -> LoginResult:
        """
        Authenticate by email and password.

        Gating happens before any password hash is computed: a running cooldown
        yields RateLimited, a tripped captcha threshold without a solved captcha
        yields NeedsCaptcha. A wrong password is counted and yields Invalid,
        with ``requires_captcha`` set once the threshold is reached.

        Args:
            identifier: Attempt key, usually ``ip:<ip>|user:<email>``
            email: Login email
            password: Plain password
            captcha_token: Solved captcha response, needed past the threshold
            remote_ip: Client IP forwarded to the captcha provider
        """
        operation = OperationType.LOGIN

        if await self.attempt_limiter.is_rate_limited(identifier, operation):
            remaining = await self.attempt_limiter.remaining_cooldown_seconds(identifier, operation)
            return RateLimited(remaining_seconds=remaining)

        if await self.attempt_limiter.is_captcha_required(identifier, operation):
            if not await self.captcha_verifier.verify(captcha_token, remote_ip):
                logger.info(f"Login blocked pending captcha - identifier: {identifier}")
                return NeedsCaptcha()

        user = await self.user_repo.get_by_email(email.lower())

        # Always verify a hash so unknown emails take as long as wrong passwords
        hash_to_verify = user.hashed_password if user else _DUMMY_HASH
        password_valid = verify_password(password, hash_to_verify)

        if user is None or not password_valid or not user.is_active:
            count = await self.attempt_limiter.record_attempt(identifier, operation)
            max_attempts = self.attempt_limiter.policy(operation).max_attempts
            return Invalid(requires_captcha=count >= max_attempts)

        await self.attempt_limiter.record_success(identifier, operation)
        logger.info(f"Login succeeded for {redact_email(user.email)}")

        return TokensIssued(tokens=await self.issue_tokens(user.email, user.role))

    async def issue_tokens(self, subject: str, role: str) -> Token:
        """Mint an access token and register a new refresh token for ``subject``."""
        refresh_token = await self.revocation_store.issue_refresh_token(subject)

        return Token(
            access_token=self._issue_access_token(subject, role),
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_seconds,
        )

    async def refresh(self, subject: str, refresh_token: str) -> Token:
        """
        Issue a new access token for a live refresh token.

        The refresh token is not rotated: the same value stays valid until it
        expires or is revoked.

        Raises:
            AuthenticationFailedError: Unknown, revoked or foreign refresh token,
                or the user no longer exists or is inactive
        """
        subject = subject.lower()

        if not await self.revocation_store.validate_refresh_token(subject, refresh_token):
            raise AuthenticationFailedError("Invalid refresh token")

        user = await self._load_user(subject)
        if user is None or not user.is_active:
            await self.revocation_store.revoke_refresh_token(subject, refresh_token)
            raise AuthenticationFailedError("Invalid refresh token")

        return Token(
            access_token=self._issue_access_token(user.email, user.role),
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_seconds,
        )

    async def logout(self, access_token: str, refresh_token: str | None = None) -> None:
        """
        Blacklist ``access_token`` and revoke ``refresh_token`` when given.

        The refresh token is revoked for the subject of the access token, a
        caller cannot revoke someone else's refresh token.
        """
        claims = self.token_codec.verify_signature(access_token)
        await self.revocation_store.blacklist_access_token(access_token)

        if refresh_token:
            await self.revocation_store.revoke_refresh_token(claims["sub"], refresh_token)

        logger.info(f"Logout for {redact_email(claims['sub'])}")

    async def validate_access_token(self, token: str) -> TokenClaims:
        """
        Raises:
            TokenInvalidError: Bad signature, wrong type or revoked token
            TokenExpiredError: Token past its expiry
            StoreUnavailableError: Revocation state cannot be read (fail closed)
        """
        claims = self.token_codec.parse(token)

        if claims.get("type") != TokenType.ACCESS:
            raise TokenInvalidError("Token has invalid claims")

        if await self.revocation_store.is_blacklisted(token):
            raise TokenInvalidError("Token has been revoked")

        # Tokens without iat_ms count from the start of their second
        issued_at_ms = claims.get("iat_ms", claims["iat"] * 1000)
        if await self.revocation_store.is_revoked_globally(claims["sub"], issued_at_ms):
            raise TokenInvalidError("Token has been revoked")

        return TokenClaims(
            subject=claims["sub"],
            issued_at=claims["iat"],
            expires_at=claims["exp"],
            jti=claims.get("jti"),
            authorities=claims.get("authorities", []),
        )

    async def get_current_user(self, claims: TokenClaims) -> UserResponse:
        user = await self._load_user(claims.subject)

        if user is None or not user.is_active:
            raise AuthenticationFailedError("Could not validate credentials")

        return user

    # ==================== Registration / verification ====================

    async def register(self, signup_data: UserSignup) -> Token:
        """
        Create the account, mail an email verification link and sign the user in.

        Raises:
            DuplicateResourceError: If the email or username is taken. The
                message does not say which.
        """
        email = signup_data.email.lower()

        if await self.user_repo.get_by_email(email) or await self.user_repo.get_by_username(
            signup_data.username
        ):
            raise DuplicateResourceError(GENERIC_REGISTRATION_ERROR)

        try:
            user = await self.user_repo.create_one(
                UserCreate(
                    username=signup_data.username,
                    email=email,
                    hashed_password=get_password_hash(signup_data.password.get_secret_value()),
                    first_name=signup_data.first_name,
                    last_name=signup_data.last_name,
                )
            )
        except IntegrityError as e:
            raise DuplicateResourceError(GENERIC_REGISTRATION_ERROR, e)

        logger.info(f"User registered: {redact_email(user.email)}")
        await self._send_verification_email(user.email)

        return await self.issue_tokens(user.email, user.role)

    async def verify_email(self, token: str) -> UserResponse:
        """
        Raises:
            TokenInvalidError | TokenExpiredError: Unusable verification token
            ResourceNotFoundError: The account no longer exists
        """
        claims = self._parse_typed(token, TokenType.EMAIL_VERIFICATION)

        user = await self.user_repo.get_by_email(claims["sub"])
        if user is None:
            raise ResourceNotFoundError("User not found")

        if not user.email_verified:
            user = await self.user_repo.update_by_id(user.id, UserUpdate(email_verified=True))
            await self._invalidate_user(claims["sub"])
            logger.info(f"Email verified for {redact_email(claims['sub'])}")

        return UserResponse.model_validate(user)

    async def resend_verification(self, email: str) -> None:
        """Send a new verification link. Silent for unknown or verified emails."""
        user = await self.user_repo.get_by_email(email.lower())

        if user is None or user.email_verified:
            return

        await self._send_verification_email(user.email)

    # ==================== Password reset ====================

    async def request_password_reset(
        self,
        identifier: str,
        email: str,
        captcha_token: str | None = None,
        remote_ip: str | None = None,
    ) -> PasswordResetRequestResult:
        """
        Mail a password reset link if the account exists.

        Known and unknown emails get the same Accepted answer and both start
        the cooldown, so responses do not reveal which accounts exist. Unknown
        emails also count as a failed attempt.
        """
        operation = OperationType.PASSWORD_RESET

        if await self.attempt_limiter.is_rate_limited(identifier, operation):
            remaining = await self.attempt_limiter.remaining_cooldown_seconds(identifier, operation)
            return RateLimited(remaining_seconds=remaining)

        if await self.attempt_limiter.is_captcha_required(identifier, operation):
            if not await self.captcha_verifier.verify(captcha_token, remote_ip):
                return NeedsCaptcha()

        user = await self.user_repo.get_by_email(email.lower())

        if user is None or not user.is_active:
            await self.attempt_limiter.record_attempt(identifier, operation)
            await self.attempt_limiter.start_cooldown(identifier, operation)
            logger.info(f"Password reset requested for unknown account - identifier: {identifier}")
            return Accepted()

        token = self.token_codec.issue(
            subject=user.email,
            claims={"type": TokenType.PASSWORD_RESET.value, "jti": uuid.uuid4().hex},
            validity=timedelta(seconds=settings.password_reset_expire_seconds),
        )
        await self.email_service.send_password_reset_email(user.email, token)
        await self.attempt_limiter.record_success(identifier, operation)

        return Accepted()

    async def reset_password(
        self,
        identifier: str,
        token: str,
        new_password: str,
        captcha_token: str | None = None,
        remote_ip: str | None = None,
    ) -> PasswordResetConfirmResult:
        """
        Set a new password with a single-use reset token.

        The reset token is consumed with one atomic claim before the user is
        loaded, so it works at most once even under concurrent confirms. On
        success every token previously issued to the user is revoked.
        """
        operation = OperationType.PASSWORD_RESET

        if await self.attempt_limiter.is_captcha_required(identifier, operation):
            if not await self.captcha_verifier.verify(captcha_token, remote_ip):
                return NeedsCaptcha()

        try:
            claims = self._parse_typed(token, TokenType.PASSWORD_RESET)
        except TokenError as e:
            logger.info(f"Password reset rejected: {e.message} - identifier: {identifier}")
            return await self._record_invalid(identifier, operation)

        # Must be claimed before the first database await
        if not await self.revocation_store.claim_token(token):
            logger.info(f"Password reset rejected: token already used - identifier: {identifier}")
            return await self._record_invalid(identifier, operation)

        user = await self.user_repo.get_by_email(claims["sub"])
        if user is None or not user.is_active:
            return await self._record_invalid(identifier, operation)

        await self.user_repo.update_by_id(
            user.id, UserUpdate(hashed_password=get_password_hash(new_password))
        )
        await self.revocation_store.revoke_all_user_tokens(user.email)
        await self._invalidate_user(user.email)
        await self.attempt_limiter.clear_attempts(identifier, operation)

        logger.info(f"Password reset completed for {redact_email(user.email)}")
        return Accepted()

    # ==================== Helpers ====================

    def _issue_access_token(self, subject: str, role: str) -> str:
        claims: dict[str, Any] = {
            "type": TokenType.ACCESS.value,
            "jti": uuid.uuid4().hex,
            "authorities": [f"ROLE_{role}"],
        }
        return self.token_codec.issue(
            subject=subject,
            claims=claims,
            validity=timedelta(seconds=settings.access_token_expire_seconds),
        )

    def _parse_typed(self, token: str, token_type: TokenType) -> JWTPayloadDict:
        claims = self.token_codec.parse(token)

        if claims.get("type") != token_type:
            raise TokenInvalidError("Token has invalid claims")

        return claims

    async def _record_invalid(self, identifier: str, operation: OperationType) -> Invalid:
        count = await self.attempt_limiter.record_attempt(identifier, operation)
        return Invalid(requires_captcha=count >= self.attempt_limiter.policy(operation).max_attempts)

    async def _send_verification_email(self, email: str) -> None:
        token = self.token_codec.issue(
            subject=email,
            claims={"type": TokenType.EMAIL_VERIFICATION.value, "jti": uuid.uuid4().hex},
            validity=timedelta(seconds=settings.email_verification_expire_seconds),
        )
        await self.email_service.send_verification_email(email, token)

    async def _load_user(self, email: str) -> UserResponse | None:
        async def load() -> UserResponse | None:
            user = await self.user_repo.get_by_email(email)
            return UserResponse.model_validate(user) if user else None

        return await self.cache_manager.get_or_load(
            key=f"{KeyPrefix.USER_CACHE}{email}",
            model=UserResponse,
            loader=load,
        )

    async def _invalidate_user(self, email: str) -> None:
        await self.cache_manager.invalidate(f"{KeyPrefix.USER_CACHE}{email}")
