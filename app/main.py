from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.api.v1 import get_api_router
from app.api.v1.schemas import ErrorResponse
from app.core.config import get_settings
from app.core.db import create_engine, create_session_factory
from app.core.errors import IngestError
from app.core.logging import clear_request_context, configure_logging, get_logger
from app.core.storage import get_thumbnail_storage, get_video_storage

logger = get_logger(component="api")


async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    payload = ErrorResponse(error=exc.code, detail=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=payload.model_dump())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(level=settings.log_level)
    assets_root = Path(settings.assets_root)
    assets_root.mkdir(parents=True, exist_ok=True)
    thumbnail_storage = get_thumbnail_storage(settings)
    video_storage = get_video_storage(settings)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.thumbnail_storage = thumbnail_storage
        app.state.video_storage = video_storage
        app.state.engine = engine
        app.state.session_factory = session_factory
        logger.info(
            "app_started",
            environment=settings.environment,
            video_storage=video_storage.backend,
            assets_root=str(assets_root),
        )
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    @app.middleware("http")
    async def reset_log_context(request: Request, call_next):
        clear_request_context()
        return await call_next(request)

    app.add_exception_handler(IngestError, ingest_error_handler)
    app.include_router(get_api_router())
    app.mount("/assets", StaticFiles(directory=str(assets_root)), name="assets")
    return app


app = create_app()


__all__ = ["app", "create_app"]
