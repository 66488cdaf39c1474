from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    environment: Optional[str] = None
    video_storage: Optional[str] = Field(default=None, description="Backend holding uploaded videos (local or s3).")


class ReadinessResponse(BaseModel):
    status: str
    database: bool


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class VideoCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, json_schema_extra={"example": "Boots in the rain"})
    description: str = Field(default="", json_schema_extra={"example": "Shot on a phone, 1080p."})


class VideoResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    description: str
    thumbnail_url: Optional[str] = None
    video_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
    status_code: int


__all__ = [
    "HealthResponse",
    "ReadinessResponse",
    "EnvCheckResponse",
    "VideoCreateRequest",
    "VideoResponse",
    "ErrorResponse",
]
