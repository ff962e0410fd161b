from .base import BaseSchema, BaseTimestampSchema
from .health_check import HealthCheckResponse
from .user import UserResponse, UserCreate, UserUpdate, UserSignup
from .token import Token, TokenClaims, RefreshTokenRequest, LogoutRequest
from .csrf import CsrfToken
from .auth import (
    Accepted,
    Invalid,
    LoginResult,
    MessageResponse,
    NeedsCaptcha,
    PasswordResetConfirm,
    PasswordResetConfirmResult,
    PasswordResetRequest,
    PasswordResetRequestResult,
    RateLimited,
    ResendVerificationRequest,
    TokensIssued,
)

__all__ = [
    "BaseSchema",
    "BaseTimestampSchema",
    "HealthCheckResponse",
    "UserCreate",
    "UserUpdate",
    "UserSignup",
    "UserResponse",
    "Token",
    "TokenClaims",
    "RefreshTokenRequest",
    "LogoutRequest",
    "CsrfToken",
    "Accepted",
    "Invalid",
    "LoginResult",
    "MessageResponse",
    "NeedsCaptcha",
    "PasswordResetConfirm",
    "PasswordResetConfirmResult",
    "PasswordResetRequest",
    "PasswordResetRequestResult",
    "RateLimited",
    "ResendVerificationRequest",
    "TokensIssued",
]
