from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status

from app.api import deps
from app.core.errors import BadRequest, NotFound
from app.db.models import Video

from . import schemas


router = APIRouter(prefix="/videos", tags=["videos"])


async def _load_owned(store, video_id: str, user_id: str) -> Video:
    try:
        UUID(video_id)
    except ValueError as exc:
        raise BadRequest("couldn't parse video id") from exc
    video = await store.get_video(video_id)
    # Other users' drafts are indistinguishable from missing ones.
    if video is None or video.user_id != user_id:
        raise NotFound("video not found")
    return video


@router.post("", response_model=schemas.VideoResponse, status_code=status.HTTP_201_CREATED)
async def create_video(
    payload: schemas.VideoCreateRequest,
    store: deps.VideoStoreDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    video = await store.create_video(user_id=context.user_id, title=payload.title, description=payload.description)
    return schemas.VideoResponse.model_validate(video)


@router.get("", response_model=list[schemas.VideoResponse])
async def list_videos(store: deps.VideoStoreDependency, context: deps.AuthDependency) -> list[schemas.VideoResponse]:
    videos = await store.list_videos(context.user_id)
    return [schemas.VideoResponse.model_validate(video) for video in videos]


@router.get("/{video_id}", response_model=schemas.VideoResponse)
async def get_video(
    video_id: str,
    store: deps.VideoStoreDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    video = await _load_owned(store, video_id, context.user_id)
    return schemas.VideoResponse.model_validate(video)


__all__ = ["router"]
