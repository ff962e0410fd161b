from enum import StrEnum


class TokenType(StrEnum):
    """Value of the ``type`` claim carried by every signed token."""

    ACCESS = "access"
    REFRESH = "refresh"
    CSRF = "csrf"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class OperationType(StrEnum):
    """Operations guarded by the attempt limiter."""

    LOGIN = "login"
    PASSWORD_RESET = "password_reset"
    EMAIL_SEND = "email_send"


class KeyPrefix:
    """
    Centralized registry of the Redis key namespaces used by the security stores.

    Keys follow the pattern ``<namespace>:<identifier>[:<operation>]`` and
    every one of them is written with a TTL.

    Example:
        ```python
        key = f"{KeyPrefix.ATTEMPTS}{identifier}:{OperationType.LOGIN}"
        # Result: "attempts:ip:1.2.3.4|user:a@a.com:login"
        ```
    """

    BLACKLIST = "jwt:blacklist:"
    REVOKE_ALL = "jwt:revoke_all:"
    REFRESH = "refresh:"
    ATTEMPTS = "attempts:"
    COOLDOWN = "cooldown:"
    USER_CACHE = "cache:user:"


class RateLimitPrefix:
    """
    Registry of sliding-window rate limit key prefixes.

    All rate limit keys follow the pattern: ratelimit:{category}:{identifier}
    where identifier is typically an IP address or user ID.

    Example:
        ```python
        key = f"{RateLimitPrefix.AUTH}{ip_address}"
        # Result: "ratelimit:auth:192.168.1.1"
        ```
    """

    # Every route of the auth router, keyed by client IP
    AUTH = "ratelimit:auth:"


class FieldSizes:
    # Common string lengths
    TINY = 20
    SHORT = 50
    MEDIUM = 255
    LONG = 1000

    # Specific field sizes
    EMAIL = MEDIUM
    USERNAME = MEDIUM
    PASSWORD = SHORT
    PASSWORD_HASH = LONG
    FIRST_NAME = SHORT
    LAST_NAME = SHORT
    ROLE = TINY
