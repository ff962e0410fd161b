from fastapi import APIRouter, Depends, status

from app.api.v1.deps.rate_limit import rate_limit_auth
from app.api.v1.endpoints import auth
from app.core import responses
from app.core.config import settings

api_v1_router = APIRouter(prefix="/api/v1")


api_v1_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Auth"],
    dependencies=([Depends(rate_limit_auth)]),
    responses={
        status.HTTP_429_TOO_MANY_REQUESTS: {
            "model": responses.TooManyRequestsResponse,
            "headers": {
                "X-RateLimit-Limit": {
                    "description": f"Maximum requests allowed ({settings.rate_limit_strict}/window)",
                    "schema": {"type": "integer", "example": settings.rate_limit_strict},
                },
                "X-RateLimit-Remaining": {
                    "description": "Requests remaining in current window",
                    "schema": {"type": "integer", "example": settings.rate_limit_strict - 1},
                },
                "X-RateLimit-Reset": {
                    "description": "Unix timestamp when limit resets",
                    "schema": {"type": "integer", "example": 1765525115},
                },
            },
        },
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": responses.ServiceUnavailableResponse},
    },
)
