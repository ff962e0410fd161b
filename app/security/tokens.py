import time
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import jwt
from jose.exceptions import JWTClaimsError, JWTError

from app.core.exceptions.security import TokenExpiredError, TokenInvalidError
from app.core.types import JWTPayloadDict
from app.security.keys import KeyProvider

RESERVED_CLAIMS = frozenset({"sub", "iat", "iat_ms", "exp", "iss"})


class TokenCodec:
    """
    Issues and parses RS256 bearer tokens signed by a KeyProvider.

    The codec does not know about token lifetimes: callers pass an explicit
    ``validity`` for every token they mint. Signature and expiry are checked
    as two separate steps so callers can inspect the claims of an expired
    token (for example to compute a blacklist TTL).
    """

    ALGORITHM = "RS256"

    def __init__(self, key_provider: KeyProvider, issuer: str):
        self.key_provider = key_provider
        self.issuer = issuer

    def issue(
        self,
        subject: str,
        claims: dict[str, Any] | None = None,
        validity: timedelta = timedelta(hours=1),
    ) -> str:
        """
        Build and sign a token.

        Args:
            subject: Identity the token is issued for, e.g. an email
            claims: Extra claims such as ``type`` or ``authorities``.
                ``sub``, ``iat``, ``iat_ms``, ``exp`` and ``iss`` cannot be
                overridden.
            validity: Lifetime of the token, must be positive

        Returns:
            Compact JWS string
        """
        if validity.total_seconds() <= 0:
            raise ValueError(f"Token validity must be positive, got {validity}")

        issued_at = datetime.now(UTC)
        to_encode: dict[str, Any] = {
            key: value for key, value in (claims or {}).items() if key not in RESERVED_CLAIMS
        }
        to_encode.update(
            {
                "sub": subject,
                "iat": issued_at,
                "iat_ms": int(issued_at.timestamp() * 1000),
                "exp": issued_at + validity,
                "iss": self.issuer,
            }
        )

        return jwt.encode(to_encode, self.key_provider.private_key_pem, algorithm=self.ALGORITHM)

    def parse(self, token: str, verify_expiry: bool = True) -> JWTPayloadDict:
        """
        Verify the signature of ``token`` and return its claims.

        Args:
            token: Compact JWS string
            verify_expiry: Reject the token once ``exp`` has passed

        Raises:
            TokenInvalidError: Malformed token, bad signature, algorithm or issuer mismatch
            TokenExpiredError: Valid signature but ``exp`` is in the past
        """
        claims = self.verify_signature(token)

        if verify_expiry and self.is_expired(claims):
            raise TokenExpiredError()

        return claims

    def verify_signature(self, token: str) -> JWTPayloadDict:
        """Check signature, algorithm and issuer only. Expiry is not evaluated."""
        if not token:
            raise TokenInvalidError("Token is empty")

        try:
            claims = jwt.decode(
                token,
                self.key_provider.public_key_pem,
                algorithms=[self.ALGORITHM],
                issuer=self.issuer,
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTClaimsError as e:
            raise TokenInvalidError("Token has invalid claims", e)
        except JWTError as e:
            raise TokenInvalidError("Could not validate token", e)

        if not isinstance(claims.get("sub"), str) or not isinstance(claims.get("exp"), int):
            raise TokenInvalidError("Token is missing required claims")

        return claims  # type: ignore[return-value]

    @staticmethod
    def is_expired(claims: JWTPayloadDict) -> bool:
        return int(time.time()) > claims["exp"]

    @staticmethod
    def remaining_seconds(claims: JWTPayloadDict) -> int:
        """Seconds until ``exp``; negative once the token has expired."""
        return claims["exp"] - int(time.time())
