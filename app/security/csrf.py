import uuid
from datetime import timedelta

from fastapi import Request, Response
from loguru import logger

from app.core.constants import TokenType
from app.core.exceptions.security import TokenError
from app.schemas.csrf import CsrfToken
from app.security.tokens import TokenCodec

CSRF_SUBJECT = "csrf"


class CsrfTokenRepository:
    """
    Stateless CSRF tokens: a short-lived RS256 JWT carried in a request header.

    Nothing is stored server side. A token is valid exactly when its signature
    verifies, it has not expired and its claims mark it as a CSRF token.
    """

    def __init__(
        self,
        token_codec: TokenCodec,
        validity: timedelta,
        header_name: str = "X-CSRF-TOKEN",
        parameter_name: str = "_csrf",
    ):
        self.token_codec = token_codec
        self.validity = validity
        self.header_name = header_name
        self.parameter_name = parameter_name

    def generate(self) -> CsrfToken:
        token = self.token_codec.issue(
            subject=CSRF_SUBJECT,
            claims={"type": TokenType.CSRF.value, "jti": uuid.uuid4().hex},
            validity=self.validity,
        )
        return self._wrap(token)

    def load(self, request: Request) -> CsrfToken | None:
        """
        Read and validate the token sent in the CSRF header.

        Returns:
            CsrfToken | None: None when the header is missing, the signature is
            wrong, the token expired or it is not a CSRF token
        """
        value = request.headers.get(self.header_name)
        if not value:
            return None

        try:
            claims = self.token_codec.parse(value)
        except TokenError as e:
            logger.debug(f"Rejected CSRF token: {e.message}")
            return None

        if claims.get("sub") != CSRF_SUBJECT or claims.get("type") != TokenType.CSRF:
            logger.debug("Rejected CSRF token: wrong subject or type")
            return None

        return self._wrap(value)

    def save(self, token: CsrfToken | None, request: Request, response: Response) -> None:
        """No-op: the token is self-contained and never persisted."""
        return None

    def _wrap(self, token: str) -> CsrfToken:
        return CsrfToken(
            header_name=self.header_name,
            parameter_name=self.parameter_name,
            token=token,
        )
