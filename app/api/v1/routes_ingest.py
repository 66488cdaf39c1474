from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException
from starlette.requests import ClientDisconnect
from starlette.types import Message, Receive

from app.api import deps
from app.core.config import Settings
from app.core.errors import BadRequest, PayloadTooLarge, StagingFailed
from app.core.logging import bind_request_context
from app.services.ingest_service import UploadOpener, thumbnail_flow, video_flow

from . import schemas


router = APIRouter(tags=["ingest"])

_ERROR_RESPONSES = {
    400: {"model": schemas.ErrorResponse},
    401: {"model": schemas.ErrorResponse},
    404: {"model": schemas.ErrorResponse},
    413: {"model": schemas.ErrorResponse},
    415: {"model": schemas.ErrorResponse},
}


def _enforce_content_length(request: Request, limit_bytes: int, settings: Settings) -> None:
    """Reject oversized bodies from the declared length, before any byte is read."""
    raw = request.headers.get("content-length")
    if raw is None:
        return
    try:
        declared = int(raw)
    except ValueError as exc:
        raise BadRequest("invalid Content-Length header") from exc
    if declared > limit_bytes + settings.multipart_overhead_bytes:
        raise PayloadTooLarge(limit_bytes)


def _bounded_receive(receive: Receive, limit_bytes: int, ceiling_bytes: int) -> Receive:
    """Wrap the ASGI receive channel so the body is cut off once it passes ``ceiling_bytes``.

    Covers chunked requests that declare no Content-Length.
    """
    received = 0

    async def _receive() -> Message:
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > ceiling_bytes:
                raise PayloadTooLarge(limit_bytes)
        return message

    return _receive


def _form_file_opener(request: Request, field_name: str, limit_bytes: int, settings: Settings) -> UploadOpener:
    bounded = Request(
        request.scope,
        receive=_bounded_receive(request.receive, limit_bytes, limit_bytes + settings.multipart_overhead_bytes),
    )

    @asynccontextmanager
    async def _open() -> AsyncIterator[UploadFile]:
        try:
            form = await bounded.form(max_files=1, max_fields=16)
        except ClientDisconnect as exc:
            raise StagingFailed("client disconnected during upload") from exc
        except (MultiPartException, StarletteHTTPException) as exc:
            raise BadRequest("couldn't parse multipart form") from exc
        try:
            upload = form.get(field_name)
            if not isinstance(upload, UploadFile):
                raise BadRequest(f"form file {field_name!r} is required")
            yield upload
        finally:
            await form.close()

    return _open


@router.post(
    "/thumbnail_upload/{video_id}",
    response_model=schemas.VideoResponse,
    responses=_ERROR_RESPONSES,
    summary="Upload a thumbnail image for a video",
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
    settings: Settings = Depends(deps.get_app_settings),
) -> schemas.VideoResponse:
    flow = thumbnail_flow(settings)
    bind_request_context(video_id=video_id)
    _enforce_content_length(request, flow.size_limit_bytes, settings)
    video = await service.ingest(
        flow,
        video_id=video_id,
        user_id=context.user_id,
        open_upload=_form_file_opener(request, flow.form_field, flow.size_limit_bytes, settings),
    )
    return schemas.VideoResponse.model_validate(video)


@router.post(
    "/video_upload/{video_id}",
    response_model=schemas.VideoResponse,
    responses={**_ERROR_RESPONSES, 422: {"model": schemas.ErrorResponse}, 502: {"model": schemas.ErrorResponse}},
    summary="Upload, classify and fast-start remux a video",
)
async def upload_video(
    video_id: str,
    request: Request,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
    settings: Settings = Depends(deps.get_app_settings),
) -> schemas.VideoResponse:
    flow = video_flow(settings)
    bind_request_context(video_id=video_id)
    _enforce_content_length(request, flow.size_limit_bytes, settings)
    video = await service.ingest(
        flow,
        video_id=video_id,
        user_id=context.user_id,
        open_upload=_form_file_opener(request, flow.form_field, flow.size_limit_bytes, settings),
    )
    return schemas.VideoResponse.model_validate(video)


__all__ = ["router"]
