from dataclasses import dataclass

from loguru import logger
from redis.asyncio import Redis

from app.core.config import settings
from app.core.constants import KeyPrefix, OperationType
from app.core.exceptions.security import StoreUnavailableError
from app.core.types import AttemptStatisticsDict
from app.services.cache.base import BaseRedisClient


@dataclass(frozen=True)
class OperationPolicy:
    """Thresholds applied to one operation type"""

    max_attempts: int
    window_seconds: int
    cooldown_seconds: int = 0


def default_policies() -> dict[OperationType, OperationPolicy]:
    """Policies built from settings."""
    return {
        OperationType.LOGIN: OperationPolicy(
            max_attempts=settings.attempt_max_before_captcha,
            window_seconds=settings.attempt_window_seconds,
            cooldown_seconds=settings.login_cooldown_seconds,
        ),
        OperationType.PASSWORD_RESET: OperationPolicy(
            max_attempts=settings.attempt_max_before_captcha,
            window_seconds=settings.attempt_window_seconds,
            cooldown_seconds=settings.password_reset_cooldown_seconds,
        ),
        OperationType.EMAIL_SEND: OperationPolicy(
            max_attempts=settings.attempt_max_before_captcha,
            window_seconds=settings.attempt_window_seconds,
            cooldown_seconds=settings.email_send_cooldown_seconds,
        ),
    }


class AttemptLimiter(BaseRedisClient):
    """
    Brute-force control per (identifier, operation).

    Two independent counters escalate an identifier from NORMAL to
    CAPTCHA_REQUIRED to RATE_LIMITED:

    - ``attempts:<identifier>:<operation>`` counts failures inside a window.
      Reaching ``max_attempts`` demands a captcha.
    - ``cooldown:<identifier>:<operation>`` is a marker that hard-blocks the
      operation until its TTL runs out.

    Counters are incremented with Redis primitives only. Reads never write.

    Example:
        ```python
        identifier = AttemptLimiter.create_identifier("1.2.3.4", "a@a.com")
        count = await attempt_limiter.record_attempt(identifier, OperationType.LOGIN)
        if await attempt_limiter.is_captcha_required(identifier, OperationType.LOGIN):
            ...
        ```
    """

    def __init__(
        self,
        policies: dict[OperationType, OperationPolicy] | None = None,
        redis_client: Redis | None = None,
    ):
        super().__init__(redis_client)
        self.policies = policies or default_policies()

    @staticmethod
    def create_identifier(ip_address: str, subject: str | None = None) -> str:
        """Build the ``ip:<ip>|user:<subject>`` identifier used by auth flows."""
        return f"ip:{ip_address}|user:{(subject or 'anonymous').strip().lower()}"

    def policy(self, operation: OperationType) -> OperationPolicy:
        return self.policies[operation]

    # ==================== Attempt counter ====================

    async def record_attempt(self, identifier: str, operation: OperationType) -> int:
        """
        Atomically count one failed attempt.

        The window TTL is set by the first increment and is not extended by
        later ones.

        Returns:
            int: Attempt count after this increment
        """
        key = self._attempts_key(identifier, operation)
        policy = self.policy(operation)

        async with self._store_call("incr", key):
            pipe = self._require_client().pipeline(transaction=True)
            pipe.set(key, 0, ex=policy.window_seconds, nx=True)
            pipe.incr(key)
            results = await pipe.execute()

        count = int(results[1])

        if count == policy.max_attempts:
            logger.warning(
                f"Captcha required for {operation} - identifier: {identifier} "
                f"after {count} attempts"
            )
        else:
            logger.info(f"Attempt {count} recorded for {operation} - identifier: {identifier}")

        return count

    async def get_attempt_count(self, identifier: str, operation: OperationType) -> int:
        key = self._attempts_key(identifier, operation)

        async with self._store_call("get", key):
            value = await self._require_client().get(key)

        return int(value) if value else 0

    async def is_captcha_required(self, identifier: str, operation: OperationType) -> bool:
        try:
            count = await self.get_attempt_count(identifier, operation)
        except StoreUnavailableError as e:
            return self._fail_open_or_raise(e, default=False)

        return count >= self.policy(operation).max_attempts

    async def remaining_attempts(self, identifier: str, operation: OperationType) -> int:
        count = await self.get_attempt_count(identifier, operation)
        return max(0, self.policy(operation).max_attempts - count)

    async def clear_attempts(self, identifier: str, operation: OperationType) -> None:
        key = self._attempts_key(identifier, operation)

        async with self._store_call("delete", key):
            await self._require_client().delete(key)

        logger.debug(f"Attempts cleared for {operation} - identifier: {identifier}")

    async def record_success(self, identifier: str, operation: OperationType) -> None:
        """
        Reset the attempt counter after a successful operation.

        Operations with a cooldown (password reset, email sending) also start it,
        so the next request of the same kind is held back.
        """
        await self.clear_attempts(identifier, operation)

        if self.policy(operation).cooldown_seconds > 0:
            await self.start_cooldown(identifier, operation)

    # ==================== Cooldown ====================

    async def start_cooldown(self, identifier: str, operation: OperationType) -> bool:
        """
        Start the cooldown window if none is running.

        Returns:
            bool: True if this call started it, False if one was already active
        """
        policy = self.policy(operation)
        if policy.cooldown_seconds <= 0:
            return True

        key = self._cooldown_key(identifier, operation)

        async with self._store_call("set", key):
            started = await self._require_client().set(
                key, 1, ex=policy.cooldown_seconds, nx=True
            )

        if started:
            logger.info(
                f"Cooldown of {policy.cooldown_seconds}s started for {operation} - "
                f"identifier: {identifier}"
            )
        return bool(started)

    async def is_rate_limited(self, identifier: str, operation: OperationType) -> bool:
        key = self._cooldown_key(identifier, operation)

        try:
            async with self._store_call("exists", key):
                return await self._require_client().exists(key) > 0
        except StoreUnavailableError as e:
            return self._fail_open_or_raise(e, default=False)

    async def remaining_cooldown_seconds(self, identifier: str, operation: OperationType) -> int:
        """
        Returns:
            int: Seconds left on the cooldown, 0 when not limited
        """
        key = self._cooldown_key(identifier, operation)

        async with self._store_call("ttl", key):
            ttl = await self._require_client().ttl(key)

        # -2 missing key, -1 no expiry
        return max(0, ttl)

    async def get_statistics(
        self, identifier: str, operation: OperationType
    ) -> AttemptStatisticsDict:
        policy = self.policy(operation)
        attempts_key = self._attempts_key(identifier, operation)
        cooldown_key = self._cooldown_key(identifier, operation)

        async with self._store_call("statistics", attempts_key):
            pipe = self._require_client().pipeline(transaction=False)
            pipe.get(attempts_key)
            pipe.ttl(attempts_key)
            pipe.ttl(cooldown_key)
            raw_count, window_ttl, cooldown_ttl = await pipe.execute()

        attempts = int(raw_count) if raw_count else 0
        cooldown = max(0, cooldown_ttl)

        statistics = AttemptStatisticsDict(
            identifier=identifier,
            operation=operation.value,
            attempts=attempts,
            max_attempts=policy.max_attempts,
            remaining_attempts=max(0, policy.max_attempts - attempts),
            captcha_required=attempts >= policy.max_attempts,
            rate_limited=cooldown > 0,
            cooldown_seconds=cooldown,
        )
        if window_ttl > 0:
            statistics["window_ttl_seconds"] = window_ttl

        return statistics

    @staticmethod
    def _attempts_key(identifier: str, operation: OperationType) -> str:
        return f"{KeyPrefix.ATTEMPTS}{identifier}:{operation.value}"

    @staticmethod
    def _cooldown_key(identifier: str, operation: OperationType) -> str:
        return f"{KeyPrefix.COOLDOWN}{identifier}:{operation.value}"
