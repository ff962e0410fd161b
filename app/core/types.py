from typing import NotRequired, TypedDict


class JWTPayloadDict(TypedDict, total=False):
    """JWT payload structure for encoding/decoding."""

    sub: str  # Subject (user email)
    exp: int  # Expiration timestamp
    iat: int  # Issued at timestamp
    iat_ms: int  # Issued at, milliseconds
    iss: str  # Issuer
    type: str  # TokenType value
    jti: str  # JWT ID
    authorities: list[str]


class RateLimitInfoDict(TypedDict):
    """Rate limit information for headers."""

    limit: int
    remaining: int
    reset_time: int
    window: int


class AttemptStatisticsDict(TypedDict):
    """Snapshot of the attempt limiter state for one identifier and operation."""

    identifier: str
    operation: str
    attempts: int
    max_attempts: int
    remaining_attempts: int
    captcha_required: bool
    rate_limited: bool
    cooldown_seconds: int
    window_ttl_seconds: NotRequired[int]
