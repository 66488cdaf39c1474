from __future__ import annotations

import asyncio
import enum
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncContextManager, Callable, Literal, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings
from app.core.errors import (
    BadRequest,
    IngestError,
    NotFound,
    PersistenceFailed,
    Unauthorized,
    UploadFailed,
)
from app.core.logging import get_logger
from app.core.storage import Storage, StorageError
from app.db.models import Video
from app.ingest import (
    THUMBNAIL_CONTENT_TYPES,
    VIDEO_CONTENT_TYPES,
    InboundFile,
    MediaAsset,
    StorageKey,
    SubprocessRunner,
    derive_storage_key,
    extension_for,
    generate_identifier,
    negotiate,
    probe_container,
    remux_faststart,
    stage_upload,
)

from .video_store import VideoStore

UploadOpener = Callable[[], AsyncContextManager[InboundFile]]


class IngestState(str, enum.Enum):
    received = "received"
    authorized = "authorized"
    validated = "validated"
    staged = "staged"
    probed = "probed"
    remuxed = "remuxed"
    uploaded = "uploaded"
    persisted = "persisted"
    complete = "complete"
    failed = "failed"


_TRANSITIONS: dict[IngestState, frozenset[IngestState]] = {
    IngestState.received: frozenset({IngestState.authorized}),
    IngestState.authorized: frozenset({IngestState.validated}),
    IngestState.validated: frozenset({IngestState.staged}),
    IngestState.staged: frozenset({IngestState.probed, IngestState.uploaded}),
    IngestState.probed: frozenset({IngestState.remuxed}),
    IngestState.remuxed: frozenset({IngestState.uploaded}),
    IngestState.uploaded: frozenset({IngestState.persisted}),
    IngestState.persisted: frozenset({IngestState.complete}),
    IngestState.complete: frozenset(),
    IngestState.failed: frozenset(),
}


@dataclass(frozen=True, slots=True)
class IngestFlow:
    """Static description of one ingestion flow."""

    name: Literal["thumbnail", "video"]
    form_field: str
    allowed_types: frozenset[str]
    size_limit_bytes: int
    url_field: Literal["thumbnail_url", "video_url"]
    classify: bool = False
    remux: bool = False


def thumbnail_flow(settings: Settings) -> IngestFlow:
    return IngestFlow(
        name="thumbnail",
        form_field="thumbnail",
        allowed_types=THUMBNAIL_CONTENT_TYPES,
        size_limit_bytes=settings.max_thumbnail_bytes,
        url_field="thumbnail_url",
    )


def video_flow(settings: Settings) -> IngestFlow:
    return IngestFlow(
        name="video",
        form_field="video",
        allowed_types=VIDEO_CONTENT_TYPES,
        size_limit_bytes=settings.max_video_bytes,
        url_field="video_url",
        classify=True,
        remux=True,
    )


@dataclass
class IngestRun:
    """State of a single ingestion request plus the resources it owns."""

    flow: IngestFlow
    video_id: str
    state: IngestState = IngestState.received
    history: list[IngestState] = field(default_factory=lambda: [IngestState.received])
    failure_code: Optional[str] = None
    storage_key: Optional[StorageKey] = None
    resources: AsyncExitStack = field(default_factory=AsyncExitStack)

    def advance(self, target: IngestState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal ingest transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self, code: str) -> None:
        if self.state in {IngestState.complete, IngestState.failed}:
            raise RuntimeError(f"cannot fail a run that is already {self.state.value}")
        self.state = IngestState.failed
        self.failure_code = code
        self.history.append(IngestState.failed)


class IngestService:
    """Sequences authorization, validation, staging, tooling, upload and persistence."""

    def __init__(
        self,
        settings: Settings,
        store: VideoStore,
        *,
        thumbnail_storage: Storage,
        video_storage: Storage,
        runner: SubprocessRunner,
    ):
        self.settings = settings
        self.store = store
        self.thumbnail_storage = thumbnail_storage
        self.video_storage = video_storage
        self.runner = runner
        self.logger = get_logger(component="ingest_service")

    async def ingest_thumbnail(self, *, video_id: str, user_id: str, open_upload: UploadOpener) -> Video:
        return await self.ingest(thumbnail_flow(self.settings), video_id=video_id, user_id=user_id, open_upload=open_upload)

    async def ingest_video(self, *, video_id: str, user_id: str, open_upload: UploadOpener) -> Video:
        return await self.ingest(video_flow(self.settings), video_id=video_id, user_id=user_id, open_upload=open_upload)

    async def ingest(
        self,
        flow: IngestFlow,
        *,
        video_id: str,
        user_id: str,
        open_upload: UploadOpener,
        run: IngestRun | None = None,
    ) -> Video:
        run = run or IngestRun(flow=flow, video_id=video_id)
        logger = self.logger.bind(flow=flow.name, video_id=video_id)
        try:
            async with run.resources:
                video = await self._drive(run, logger, user_id=user_id, open_upload=open_upload)
        except IngestError as exc:
            # Scoped resources are already released at this point.
            run.fail(exc.code)
            logger.warning("ingest_failed", error=exc.code, detail=exc.message, history=[s.value for s in run.history])
            raise
        except asyncio.CancelledError:
            run.fail("cancelled")
            logger.warning("ingest_cancelled", history=[s.value for s in run.history])
            raise
        except Exception:
            run.fail("internal_error")
            logger.exception("ingest_crashed", history=[s.value for s in run.history])
            raise
        logger.info("ingest_complete", storage_key=str(run.storage_key))
        return video

    async def _drive(self, run: IngestRun, logger, *, user_id: str, open_upload: UploadOpener) -> Video:
        flow = run.flow

        video = await self._authorize(run.video_id, user_id)
        self._transition(run, logger, IngestState.authorized)

        upload = await run.resources.enter_async_context(open_upload())
        content_type = negotiate(upload.content_type, flow.allowed_types)
        asset = MediaAsset(
            owner_id=user_id,
            declared_content_type=content_type,
            source=upload,
            size_limit_bytes=flow.size_limit_bytes,
            filename=upload.filename,
        )
        self._transition(run, logger, IngestState.validated)

        staged = await run.resources.enter_async_context(
            stage_upload(
                asset.source,
                asset.size_limit_bytes,
                directory=self.settings.staging_dir,
                suffix=f".{extension_for(content_type)}",
                chunk_size=self.settings.upload_chunk_size,
            )
        )
        self._transition(run, logger, IngestState.staged, size_bytes=staged.byte_length)

        final_path: Path = staged.path
        orientation = None
        if flow.classify:
            profile = await asyncio.to_thread(
                probe_container,
                staged.path,
                self.runner,
                binary=self.settings.ffprobe_binary,
                timeout=self.settings.tool_timeout_s,
            )
            orientation = profile.orientation
            self._transition(run, logger, IngestState.probed, width=profile.width, height=profile.height)
        if flow.remux:
            processed = await asyncio.to_thread(
                remux_faststart,
                staged.path,
                self.runner,
                binary=self.settings.ffmpeg_binary,
                timeout=self.settings.tool_timeout_s,
            )
            run.resources.callback(processed.unlink, missing_ok=True)
            final_path = processed
            self._transition(run, logger, IngestState.remuxed)

        key = derive_storage_key(content_type, generate_identifier(), orientation)
        run.storage_key = key
        storage = self._storage_for(flow)
        if final_path == staged.path:
            staged.handle.seek(0)
            stream = staged.handle
        else:
            stream = run.resources.enter_context(final_path.open("rb"))
        await self._upload(storage, key, stream, content_type)
        self._transition(run, logger, IngestState.uploaded, storage_key=key.path)

        setattr(video, flow.url_field, storage.public_url(key.path))
        video = await self._persist(video, storage, key)
        self._transition(run, logger, IngestState.persisted)
        self._transition(run, logger, IngestState.complete)
        return video

    async def _authorize(self, video_id: str, user_id: str) -> Video:
        try:
            UUID(video_id)
        except ValueError as exc:
            raise BadRequest("couldn't parse video id") from exc
        video = await self.store.get_video(video_id)
        if video is None:
            raise NotFound("video not found")
        if video.user_id != user_id:
            raise Unauthorized("not video owner")
        return video

    async def _upload(self, storage: Storage, key: StorageKey, stream, content_type: str) -> None:
        try:
            await asyncio.to_thread(storage.put, key.path, stream, content_type=content_type)
        except (StorageError, ValueError) as exc:
            raise UploadFailed(f"couldn't store {key.path}: {exc}") from exc

    async def _persist(self, video: Video, storage: Storage, key: StorageKey) -> Video:
        video_id = video.id
        try:
            return await self.store.update_video(video)
        except SQLAlchemyError as exc:
            await self._record_orphan(video_id, storage, key, exc)
            raise PersistenceFailed("couldn't update video data", storage_key=key.path) from exc

    async def _record_orphan(self, video_id: str, storage: Storage, key: StorageKey, cause: Exception) -> None:
        try:
            await self.store.rollback()
            await self.store.record_orphan(
                video_id=video_id,
                backend=storage.backend,
                storage_key=key.path,
                reason=str(cause),
            )
        except SQLAlchemyError as exc:
            self.logger.error(
                "orphan_record_failed",
                video_id=video_id,
                backend=storage.backend,
                storage_key=key.path,
                error=str(exc),
            )
            return
        self.logger.warning("orphan_recorded", video_id=video_id, backend=storage.backend, storage_key=key.path)

    def _storage_for(self, flow: IngestFlow) -> Storage:
        if flow.name == "video":
            return self.video_storage
        return self.thumbnail_storage

    @staticmethod
    def _transition(run: IngestRun, logger, state: IngestState, **details) -> None:
        run.advance(state)
        logger.info("ingest_transition", state=state.value, **details)


__all__ = [
    "IngestFlow",
    "IngestRun",
    "IngestService",
    "IngestState",
    "UploadOpener",
    "thumbnail_flow",
    "video_flow",
]
