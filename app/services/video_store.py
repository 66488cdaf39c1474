from __future__ import annotations

from typing import Sequence
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models import OrphanedObject, Video


class VideoStore:
    """Metadata store for video records, keyed by video id."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(component="video_store")

    async def create_video(self, *, user_id: str, title: str, description: str = "") -> Video:
        video = Video(id=str(uuid4()), user_id=user_id, title=title, description=description)
        self.session.add(video)
        await self.session.commit()
        await self.session.refresh(video)
        return video

    async def get_video(self, video_id: str) -> Video | None:
        return await self.session.get(Video, video_id)

    async def list_videos(self, user_id: str) -> Sequence[Video]:
        stmt = select(Video).where(Video.user_id == user_id).order_by(Video.created_at.desc(), Video.id)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def update_video(self, video: Video) -> Video:
        """Write the record in a single commit; last writer wins."""
        self.session.add(video)
        await self.session.commit()
        await self.session.refresh(video)
        return video

    async def rollback(self) -> None:
        await self.session.rollback()

    async def record_orphan(self, *, video_id: str, backend: str, storage_key: str, reason: str | None) -> OrphanedObject:
        orphan = OrphanedObject(video_id=video_id, backend=backend, storage_key=storage_key, reason=reason)
        self.session.add(orphan)
        await self.session.commit()
        return orphan

    async def list_orphans(self) -> Sequence[OrphanedObject]:
        result = await self.session.execute(select(OrphanedObject).order_by(OrphanedObject.id))
        return result.scalars().all()

    async def forget_orphan(self, orphan: OrphanedObject) -> None:
        await self.session.delete(orphan)
        await self.session.commit()


__all__ = ["VideoStore"]
