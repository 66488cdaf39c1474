from __future__ import annotations

import asyncio
import os
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Optional, Protocol

from starlette.requests import ClientDisconnect

from app.core.errors import PayloadTooLarge, StagingFailed
from app.core.logging import get_logger

STAGING_PREFIX = "tubely-upload-"

logger = get_logger(component="staging")


class ByteSource(Protocol):
    """Single-pass async byte stream; Starlette's ``UploadFile`` satisfies it."""

    async def read(self, size: int = -1) -> bytes: ...


class InboundFile(ByteSource, Protocol):
    """A multipart file part: bytes plus the client's declared metadata."""

    content_type: Optional[str]
    filename: Optional[str]


@dataclass(slots=True)
class MediaAsset:
    """An inbound upload, consumed exactly once by staging."""

    owner_id: str
    declared_content_type: Optional[str]
    source: ByteSource
    size_limit_bytes: int
    filename: Optional[str] = None


@dataclass(slots=True)
class StagedFile:
    path: Path
    byte_length: int
    handle: BinaryIO


@asynccontextmanager
async def stage_upload(
    source: ByteSource,
    limit_bytes: int,
    *,
    directory: Optional[Path] = None,
    suffix: str = "",
    chunk_size: int = 1 << 20,
) -> AsyncIterator[StagedFile]:
    """Copy ``source`` into a uniquely named temp file and yield it rewound to byte 0.

    The ceiling is checked as each chunk arrives, so an oversized upload is
    rejected after at most ``limit_bytes + chunk_size`` bytes. The temp file
    is closed and unlinked when the context exits, whatever the outcome.
    """
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
    try:
        fd, raw_path = tempfile.mkstemp(prefix=STAGING_PREFIX, suffix=suffix, dir=directory)
    except OSError as exc:
        raise StagingFailed(f"couldn't create staging file: {exc}") from exc

    path = Path(raw_path)
    handle = os.fdopen(fd, "w+b")
    logger.debug("staging_file_created", path=str(path))
    try:
        written = 0
        while True:
            try:
                chunk = await source.read(chunk_size)
            except ClientDisconnect as exc:
                raise StagingFailed("client disconnected during upload") from exc
            if not chunk:
                break
            written += len(chunk)
            if written > limit_bytes:
                raise PayloadTooLarge(limit_bytes)
            try:
                await asyncio.to_thread(handle.write, chunk)
            except OSError as exc:
                raise StagingFailed(f"couldn't copy upload: {exc}") from exc
        try:
            handle.flush()
            handle.seek(0)
        except OSError as exc:
            raise StagingFailed(f"couldn't rewind staged file: {exc}") from exc

        yield StagedFile(path=path, byte_length=written, handle=handle)
    finally:
        handle.close()
        try:
            path.unlink(missing_ok=True)
            logger.debug("staging_file_removed", path=str(path))
        except OSError as cleanup_error:
            logger.warning("staging_file_cleanup_failed", path=str(path), error=str(cleanup_error))


__all__ = ["ByteSource", "InboundFile", "MediaAsset", "StagedFile", "STAGING_PREFIX", "stage_upload"]
