from fastapi import APIRouter, Request

from app.api.v1.router import api_v1_router
from app.schemas.health_check import HealthCheckResponse

api_router = APIRouter()


@api_router.get(
    "/health",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health Check",
)
async def health_check(request: Request):
    redis_healthy = await request.app.state.cache_manager.health_check()
    return {"status": "healthy" if redis_healthy else "degraded", "redis": redis_healthy}


api_router.include_router(
    api_v1_router,
)
