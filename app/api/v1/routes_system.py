from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_app_settings, get_session
from app.core.config import Settings
from app.core.logging import get_logger

from .schemas import HealthResponse, ReadinessResponse


router = APIRouter(tags=["system"])
logger = get_logger(component="system")


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health(request: Request, settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(
        environment=settings.environment,
        video_storage=request.app.state.video_storage.backend,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
    summary="Readiness probe (metadata database reachable)",
)
async def ready(session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("readiness_check_failed", error=str(exc))
        payload = ReadinessResponse(status="unavailable", database=False)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload.model_dump())
    return ReadinessResponse(status="ok", database=True)


__all__ = ["router"]
