from typing import Annotated

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger

from app.api.v1.deps.auth import BEARER_HEADERS, get_current_user, get_token_claims, oauth2_scheme
from app.api.v1.deps.services import get_auth_flow, get_csrf_repository
from app.core import responses
from app.core.exceptions import http_exceptions
from app.core.exceptions.domain import DuplicateResourceError, ResourceNotFoundError
from app.core.exceptions.security import AuthenticationFailedError, TokenError
from app.core.utils import get_client_ip
from app.schemas import (
    Invalid,
    LogoutRequest,
    MessageResponse,
    NeedsCaptcha,
    PasswordResetConfirm,
    PasswordResetRequest,
    RateLimited,
    RefreshTokenRequest,
    ResendVerificationRequest,
    Token,
    TokenClaims,
    TokensIssued,
    UserResponse,
    UserSignup,
)
from app.schemas.csrf import CsrfToken
from app.security.csrf import CsrfTokenRepository
from app.services.auth_service import AuthenticationFlow
from app.services.cache.attempt_limiter import AttemptLimiter

router = APIRouter()

INVALID_CREDENTIALS = "Incorrect email or password"
CAPTCHA_REQUIRED = "Captcha verification required"
RESET_LINK_SENT = "If the account exists, a password reset link has been sent."
VERIFICATION_LINK_SENT = "If the account exists and is not verified, a verification link has been sent."


def _soft_failure_response(
    result: Invalid | NeedsCaptcha | RateLimited, invalid_detail: str
) -> JSONResponse:
    """Translate a non-success outcome of the authentication flow into an HTTP response"""
    if isinstance(result, RateLimited):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "detail": "Too many attempts. Please try again later.",
                "remaining_seconds": result.remaining_seconds,
            },
            headers={"Retry-After": str(result.remaining_seconds)},
        )

    detail = CAPTCHA_REQUIRED if isinstance(result, NeedsCaptcha) else invalid_detail

    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"detail": detail, "requires_captcha": result.requires_captcha},
        headers=BEARER_HEADERS,
    )


@router.post(
    "/login",
    response_model=Token,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": responses.UnauthorizedResponse},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": responses.TooManyRequestsResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": responses.ServiceUnavailableResponse},
    },
    summary="Login for access token",
    description="Authenticate with email and password and return access and refresh tokens.",
)
async def login_for_access_token(
    request: Request,
    user_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
    captcha_token: Annotated[str | None, Form()] = None,
):
    """
    OAuth2 compatible token login. The ``username`` field carries the email.
    """
    client_ip = get_client_ip(request)
    identifier = AttemptLimiter.create_identifier(client_ip, user_data.username)

    result = await auth_flow.login(
        identifier=identifier,
        email=user_data.username,
        password=user_data.password,
        captcha_token=captcha_token,
        remote_ip=client_ip,
    )

    if isinstance(result, TokensIssued):
        return result.tokens

    return _soft_failure_response(result, INVALID_CREDENTIALS)


@router.post(
    "/signup",
    response_model=Token,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": responses.BadRequestResponse},
        status.HTTP_409_CONFLICT: {"model": responses.ConflictResponse},
    },
    summary="User signup",
    description="Create a new user, send the verification email and return tokens.",
)
async def signup(
    user_in: Annotated[UserSignup, Form()],
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
):
    try:
        return await auth_flow.register(user_in)
    except DuplicateResourceError as e:
        raise http_exceptions.ConflictException(detail=e.message)


@router.post(
    "/refresh-token",
    response_model=Token,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": responses.UnauthorizedResponse},
    },
    summary="Refresh access token",
    description="Issue a new access token. The refresh token is returned unchanged.",
)
async def refresh_token(
    token_request: RefreshTokenRequest,
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
):
    try:
        return await auth_flow.refresh(token_request.email, token_request.refresh_token)
    except AuthenticationFailedError as e:
        raise http_exceptions.UnauthorizedException(detail=e.message, headers=BEARER_HEADERS)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": responses.UnauthorizedResponse},
        status.HTTP_403_FORBIDDEN: {"model": responses.ForbiddenResponse},
    },
    summary="Logout",
    description="Revoke the current access token and, when given, the refresh token.",
)
async def logout(
    token: Annotated[str, Depends(oauth2_scheme)],
    _: Annotated[TokenClaims, Depends(get_token_claims)],
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
    logout_request: LogoutRequest | None = None,
):
    refresh = logout_request.refresh_token if logout_request else None

    try:
        await auth_flow.logout(token, refresh)
    except TokenError:
        raise http_exceptions.UnauthorizedException(
            detail="Could not validate credentials", headers=BEARER_HEADERS
        )


@router.get(
    "/csrf",
    response_model=CsrfToken,
    summary="Get CSRF token",
    description="Issue a signed CSRF token to send in the X-CSRF-TOKEN header.",
)
async def get_csrf_token(
    csrf_repository: Annotated[CsrfTokenRepository, Depends(get_csrf_repository)],
):
    return csrf_repository.generate()


@router.post(
    "/password-reset/request",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": responses.UnauthorizedResponse},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": responses.TooManyRequestsResponse},
    },
    summary="Request password reset",
    description="Send a password reset link. The answer does not reveal whether the account exists.",
)
async def request_password_reset(
    request: Request,
    reset_request: PasswordResetRequest,
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
):
    client_ip = get_client_ip(request)

    result = await auth_flow.request_password_reset(
        identifier=AttemptLimiter.create_identifier(client_ip, reset_request.email),
        email=reset_request.email,
        captcha_token=reset_request.captcha_token,
        remote_ip=client_ip,
    )

    if isinstance(result, (NeedsCaptcha, RateLimited)):
        return _soft_failure_response(result, CAPTCHA_REQUIRED)

    return MessageResponse(detail=RESET_LINK_SENT)


@router.post(
    "/password-reset/confirm",
    response_model=MessageResponse,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": responses.UnauthorizedResponse},
    },
    summary="Confirm password reset",
    description="Set a new password with a reset token. All existing sessions are revoked.",
)
async def confirm_password_reset(
    request: Request,
    reset_confirm: PasswordResetConfirm,
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
):
    client_ip = get_client_ip(request)

    result = await auth_flow.reset_password(
        identifier=AttemptLimiter.create_identifier(client_ip),
        token=reset_confirm.token,
        new_password=reset_confirm.new_password.get_secret_value(),
        captcha_token=reset_confirm.captcha_token,
        remote_ip=client_ip,
    )

    if isinstance(result, (Invalid, NeedsCaptcha)):
        return _soft_failure_response(result, "Invalid or expired password reset token")

    return MessageResponse(detail="Password has been reset.")


@router.get(
    "/verify-email",
    response_model=UserResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": responses.BadRequestResponse},
        status.HTTP_404_NOT_FOUND: {"model": responses.NotFoundResponse},
    },
    summary="Verify email",
    description="Mark the email of the account as verified using the emailed token.",
)
async def verify_email(
    token: Annotated[str, Query(min_length=1)],
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
):
    try:
        return await auth_flow.verify_email(token)
    except TokenError as e:
        logger.info(f"Email verification rejected: {e.message}")
        raise http_exceptions.BadRequestException(detail="Invalid or expired verification token")
    except ResourceNotFoundError as e:
        raise http_exceptions.NotFoundException(detail=e.message)


@router.post(
    "/verify-email/resend",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Resend verification email",
)
async def resend_verification_email(
    resend_request: ResendVerificationRequest,
    auth_flow: Annotated[AuthenticationFlow, Depends(get_auth_flow)],
):
    await auth_flow.resend_verification(resend_request.email)
    return MessageResponse(detail=VERIFICATION_LINK_SENT)


@router.get(
    "/me",
    response_model=UserResponse,
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": responses.UnauthorizedResponse},
    },
    summary="Current user",
)
async def read_current_user(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
):
    return current_user
