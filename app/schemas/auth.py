from typing import Annotated, Literal

from pydantic import EmailStr, Field, SecretStr, field_validator

from app.core.constants import FieldSizes
from app.schemas.base import BaseSchema
from app.schemas.token import Token
from app.schemas.user import validate_password_complexity

# ==================== Tagged outcomes ====================


class TokensIssued(BaseSchema):
    """Credentials accepted, tokens minted"""

    kind: Literal["tokens_issued"] = "tokens_issued"
    tokens: Token


class NeedsCaptcha(BaseSchema):
    """Too many failures in the current window: a solved captcha is required"""

    kind: Literal["needs_captcha"] = "needs_captcha"
    requires_captcha: bool = True


class RateLimited(BaseSchema):
    """Operation is cooling down"""

    kind: Literal["rate_limited"] = "rate_limited"
    remaining_seconds: int


class Invalid(BaseSchema):
    """Credentials or token rejected"""

    kind: Literal["invalid"] = "invalid"
    requires_captcha: bool = False


class Accepted(BaseSchema):
    """Request taken into account, response intentionally carries no detail"""

    kind: Literal["accepted"] = "accepted"


LoginResult = Annotated[
    TokensIssued | NeedsCaptcha | RateLimited | Invalid,
    Field(discriminator="kind"),
]

PasswordResetRequestResult = Annotated[
    Accepted | NeedsCaptcha | RateLimited,
    Field(discriminator="kind"),
]

PasswordResetConfirmResult = Annotated[
    Accepted | NeedsCaptcha | Invalid,
    Field(discriminator="kind"),
]

# ==================== Requests ====================


class PasswordResetRequest(BaseSchema):
    """Ask for a password reset email"""

    email: EmailStr
    captcha_token: str | None = None


class PasswordResetConfirm(BaseSchema):
    """Set a new password with a password reset token"""

    token: str = Field(min_length=1)
    new_password: Annotated[SecretStr, Field(min_length=8, max_length=FieldSizes.PASSWORD)]
    captcha_token: str | None = None

    @field_validator("new_password")
    def validate_new_password(cls, value: SecretStr) -> SecretStr:
        return validate_password_complexity(value)


class ResendVerificationRequest(BaseSchema):
    email: EmailStr


class MessageResponse(BaseSchema):
    detail: str
