from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.auth import AuthContext, get_auth_context
from app.core.config import Settings, get_settings
from app.core.storage import Storage
from app.ingest.runner import LocalSubprocessRunner, SubprocessRunner
from app.services.ingest_service import IngestService
from app.services.video_store import VideoStore


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover - misconfigured app
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_thumbnail_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.thumbnail_storage
    return storage


def get_video_storage(request: Request) -> Storage:
    storage: Storage = request.app.state.video_storage
    return storage


def get_app_settings() -> Settings:
    return get_settings()


def get_tool_runner() -> SubprocessRunner:
    return LocalSubprocessRunner()


def get_video_store(session: AsyncSession = Depends(get_session)) -> VideoStore:
    return VideoStore(session)


async def get_ingest_service(
    store: VideoStore = Depends(get_video_store),
    settings: Settings = Depends(get_app_settings),
    thumbnail_storage: Storage = Depends(get_thumbnail_storage),
    video_storage: Storage = Depends(get_video_storage),
    runner: SubprocessRunner = Depends(get_tool_runner),
) -> AsyncIterator[IngestService]:
    service = IngestService(
        settings,
        store,
        thumbnail_storage=thumbnail_storage,
        video_storage=video_storage,
        runner=runner,
    )
    yield service


IngestServiceDependency = Annotated[IngestService, Depends(get_ingest_service)]
VideoStoreDependency = Annotated[VideoStore, Depends(get_video_store)]
AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]


__all__ = [
    "get_session",
    "get_thumbnail_storage",
    "get_video_storage",
    "get_app_settings",
    "get_tool_runner",
    "get_video_store",
    "get_ingest_service",
    "IngestServiceDependency",
    "VideoStoreDependency",
    "AuthDependency",
]
