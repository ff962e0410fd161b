from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.repos.user import UserRepo
from app.security.csrf import CsrfTokenRepository
from app.services.auth_service import AuthenticationFlow


def get_csrf_repository(request: Request) -> CsrfTokenRepository:
    return request.app.state.csrf_repository


async def get_auth_flow(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> AuthenticationFlow:
    """
    Build the authentication flow for one request.

    Stateless collaborators are created once in the application lifespan and
    read from ``app.state``; the user repository is bound to the request session.
    """
    state = request.app.state

    return AuthenticationFlow(
        user_repo=UserRepo(db),
        token_codec=state.token_codec,
        revocation_store=state.revocation_store,
        attempt_limiter=state.attempt_limiter,
        captcha_verifier=state.captcha_verifier,
        email_service=state.email_service,
        cache_manager=state.cache_manager,
    )
