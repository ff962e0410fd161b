from typing import Annotated

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from app.api.v1.deps.services import get_auth_flow
from app.core.exceptions import http_exceptions
from app.core.exceptions.security import (
    AuthenticationFailedError,
    TokenExpiredError,
    TokenInvalidError,
)
from app.schemas import TokenClaims, UserResponse
from app.services.auth_service import AuthenticationFlow

# OAuth2 password bearer scheme for token authentication
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

BEARER_HEADERS = {"WWW-Authenticate": "Bearer"}


async def get_token_claims(
    token: Annotated[str, Depends(oauth2_scheme)],
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
) -> TokenClaims:
    """
    Validate the bearer token of the request

    Raises:
        UnauthorizedException: If the token is invalid, expired or revoked
    """
    try:
        return await auth_flow.validate_access_token(token)
    except TokenExpiredError:
        raise http_exceptions.UnauthorizedException(
            detail="Token has expired", headers=BEARER_HEADERS
        )
    except TokenInvalidError:
        raise http_exceptions.UnauthorizedException(
            detail="Could not validate credentials", headers=BEARER_HEADERS
        )


async def get_current_user(
    claims: Annotated[TokenClaims, Depends(get_token_claims)],
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
) -> UserResponse:
    """
    Get current authenticated user from the validated token

    Raises:
        UnauthorizedException: If the user no longer exists or is inactive
    """
    try:
        return await auth_flow.get_current_user(claims)
    except AuthenticationFailedError:
        raise http_exceptions.UnauthorizedException(
            detail="Could not validate credentials", headers=BEARER_HEADERS
        )
