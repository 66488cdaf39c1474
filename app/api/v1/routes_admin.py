from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.deps import AuthDependency, get_tool_runner
from app.core.config import Settings, get_settings
from app.ingest.runner import SubprocessRunner, ToolInvocationError

from .schemas import EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])


class DevTokenRequest(BaseModel):
    user_id: str = Field(..., examples=["0b9f6c1e-6f8e-4f0e-9a59-7f4b3c0a1d22"])
    scopes: list[str] = Field(default_factory=list)


class DevTokenResponse(BaseModel):
    token: str


def _binary_available(runner: SubprocessRunner, binary: str) -> bool:
    try:
        return runner.run([binary, "-version"], timeout=10).ok
    except ToolInvocationError:
        return False


@router.get("/env-check", response_model=EnvCheckResponse, summary="Validate ffmpeg toolchain")
async def env_check(
    context: AuthDependency,
    settings: Settings = Depends(get_settings),
    runner: SubprocessRunner = Depends(get_tool_runner),
) -> EnvCheckResponse:
    if "admin" not in context.scopes:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin_scope_required")

    ffmpeg, ffprobe = await asyncio.gather(
        asyncio.to_thread(_binary_available, runner, settings.ffmpeg_binary),
        asyncio.to_thread(_binary_available, runner, settings.ffprobe_binary),
    )
    return EnvCheckResponse(ffmpeg=ffmpeg, ffprobe=ffprobe)


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint development JWT")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in {"development", "dev"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")

    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(hours=1)
    claims: dict[str, object] = {
        "sub": payload.user_id,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if payload.scopes:
        claims["scopes"] = payload.scopes
    if settings.jwt_issuer:
        claims["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience

    token = jwt.encode(claims, settings.secrets.jwt_secret, algorithm=settings.jwt_algorithm)
    return DevTokenResponse(token=token)


__all__ = ["router"]
