import re
import secrets
import time

from loguru import logger
from redis.asyncio import Redis

from app.core.constants import KeyPrefix
from app.core.exceptions.security import StoreUnavailableError
from app.core.utils import token_fingerprint
from app.security.tokens import TokenCodec
from app.services.cache.base import BaseRedisClient

MIN_BLACKLIST_TTL_SECONDS = 1
REFRESH_TOKEN_BYTES = 48
REVOKED_MARKER = "1"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RevocationStore(BaseRedisClient):
    """
    Redis-backed revocation state for bearer tokens.

    Tracks three kinds of entries, each written with a TTL:

    - ``jwt:blacklist:<sha256(token)>``: access tokens revoked before expiry,
      kept exactly as long as the token would have lived
    - ``refresh:<subject>:<token>``: live opaque refresh tokens
    - ``jwt:revoke_all:<subject>``: time in milliseconds before which every
      access token of the subject is rejected

    Token contents are never stored, only identity and expiry.

    Reference: https://cheatsheetseries.owasp.org/cheatsheets/JSON_Web_Token_for_Java_Cheat_Sheet.html
    """

    def __init__(
        self,
        token_codec: TokenCodec,
        refresh_token_ttl_seconds: int,
        redis_client: Redis | None = None,
    ):
        super().__init__(redis_client)
        self.token_codec = token_codec
        self.refresh_token_ttl_seconds = refresh_token_ttl_seconds

    # ==================== Access token blacklist ====================

    async def blacklist_access_token(self, token: str) -> int:
        """
        Revoke an access token until its natural expiry.

        Args:
            token: Signed access token. Its signature must verify, expiry is ignored.

        Returns:
            int: TTL of the revocation marker in seconds

        Raises:
            TokenInvalidError: If the token signature does not verify
            StoreUnavailableError: If Redis cannot be reached
        """
        claims = self.token_codec.verify_signature(token)
        ttl = max(self.token_codec.remaining_seconds(claims), MIN_BLACKLIST_TTL_SECONDS)
        key = self._blacklist_key(token)

        async with self._store_call("setex", key):
            await self._require_client().setex(key, ttl, REVOKED_MARKER)

        logger.info(f"Access token revoked for {claims['sub']} (TTL: {ttl}s)")
        return ttl

    async def is_blacklisted(self, token: str) -> bool:
        key = self._blacklist_key(token)

        try:
            async with self._store_call("exists", key):
                return await self._require_client().exists(key) > 0
        except StoreUnavailableError as e:
            return self._fail_open_or_raise(e, default=False)

    async def claim_token(self, token: str) -> bool:
        """
        Consume a single-use token by writing its blacklist marker if absent.

        A single ``SET NX EX`` decides the winner, so of several concurrent
        callers with the same token exactly one gets True.

        Returns:
            bool: True if this call consumed the token, False if it was already used

        Raises:
            TokenInvalidError: If the token signature does not verify
            StoreUnavailableError: If Redis cannot be reached
        """
        claims = self.token_codec.verify_signature(token)
        ttl = max(self.token_codec.remaining_seconds(claims), MIN_BLACKLIST_TTL_SECONDS)
        key = self._blacklist_key(token)

        async with self._store_call("set", key):
            claimed = await self._require_client().set(key, REVOKED_MARKER, ex=ttl, nx=True)

        if not claimed:
            logger.info(f"Single-use token for {claims['sub']} was already consumed")
        return bool(claimed)

    # ==================== Refresh tokens ====================

    async def issue_refresh_token(self, subject: str) -> str:
        """
        Create an opaque refresh token bound to ``subject``.

        Returns:
            str: URL-safe random token
        """
        token = secrets.token_urlsafe(REFRESH_TOKEN_BYTES)
        key = self._refresh_key(subject, token)

        async with self._store_call("set", key):
            await self._require_client().set(key, REVOKED_MARKER, ex=self.refresh_token_ttl_seconds)

        logger.debug(f"Refresh token issued for {subject}")
        return token

    async def validate_refresh_token(self, subject: str, token: str) -> bool:
        if not subject or not token:
            return False

        key = self._refresh_key(subject, token)
        async with self._store_call("exists", key):
            return await self._require_client().exists(key) > 0

    async def revoke_refresh_token(self, subject: str, token: str) -> bool:
        """
        Delete a refresh token.

        Returns:
            bool: True if the token existed
        """
        key = self._refresh_key(subject, token)

        async with self._store_call("delete", key):
            deleted = await self._require_client().delete(key)

        if deleted:
            logger.info(f"Refresh token revoked for {subject}")
        return deleted > 0

    # ==================== Subject-wide revocation ====================

    async def revoke_all_user_tokens(self, subject: str) -> int:
        """
        Reject every token issued to ``subject`` up to now.

        Records the revocation timestamp for access tokens and deletes all
        refresh tokens of the subject. Used after a password change.

        Returns:
            int: Number of refresh tokens deleted
        """
        key = f"{KeyPrefix.REVOKE_ALL}{subject}"
        escaped_subject = _GLOB_SPECIAL.sub(r"\\\1", subject)
        pattern = f"{KeyPrefix.REFRESH}{escaped_subject}:*"
        client = self._require_client()

        async with self._store_call("revoke_all", key):
            await client.set(key, str(int(time.time() * 1000)), ex=self.refresh_token_ttl_seconds)

            refresh_keys = [k async for k in client.scan_iter(match=pattern)]
            deleted = await client.delete(*refresh_keys) if refresh_keys else 0

        logger.info(f"All tokens revoked for {subject} ({deleted} refresh tokens deleted)")
        return deleted

    async def get_user_revocation_time(self, subject: str) -> int | None:
        """
        Get the time all tokens were revoked for a subject.

        Returns:
            int | None: Unix time of revocation in milliseconds, or None if not revoked
        """
        key = f"{KeyPrefix.REVOKE_ALL}{subject}"

        async with self._store_call("get", key):
            value = await self._require_client().get(key)

        return int(value) if value else None

    async def is_revoked_globally(self, subject: str, issued_at_ms: int) -> bool:
        """True when the token was issued before the subject's last revoke-all (milliseconds)."""
        try:
            revocation_time = await self.get_user_revocation_time(subject)
        except StoreUnavailableError as e:
            return self._fail_open_or_raise(e, default=False)

        return revocation_time is not None and issued_at_ms < revocation_time

    @staticmethod
    def _blacklist_key(token: str) -> str:
        return f"{KeyPrefix.BLACKLIST}{token_fingerprint(token)}"

    @staticmethod
    def _refresh_key(subject: str, token: str) -> str:
        return f"{KeyPrefix.REFRESH}{subject}:{token}"
