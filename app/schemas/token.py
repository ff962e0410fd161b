from pydantic import EmailStr, Field

from app.schemas.base import BaseSchema


class Token(BaseSchema):
    """Token response schema"""

    access_token: str
    token_type: str = "Bearer"
    refresh_token: str | None = None
    expires_in: int | None = None

    def __str__(self):
        return self.token_type + " " + self.access_token


class TokenClaims(BaseSchema):
    """Claims of a validated access token"""

    subject: str
    issued_at: int
    expires_at: int
    jti: str | None = None
    authorities: list[str] = Field(default_factory=list)


class RefreshTokenRequest(BaseSchema):
    """Refresh tokens are opaque and bound to the subject they were issued for"""

    email: EmailStr
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseSchema):
    """Optional refresh token to revoke together with the access token"""

    refresh_token: str | None = None
