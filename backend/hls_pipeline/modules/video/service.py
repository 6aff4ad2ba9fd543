"""Status record service.

Each call runs in its own session and commits before returning, so the
dispatcher and the job never hold a transaction across external calls.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hls_pipeline.modules.video.models import VideoRecord
from hls_pipeline.modules.video.repository import (
    OwnerOverlayRepository,
    VideoRecordRepository,
)


class VideoStatusService:
    """Reads and writes status records."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, video_id: str) -> Optional[VideoRecord]:
        async with self.session_maker() as session:
            return await VideoRecordRepository(session).get_by_id(video_id)

    async def create_pending(
        self,
        video_id: str,
        owner: Optional[str] = None,
        title: Optional[str] = None,
        source_bucket: Optional[str] = None,
        source_key: Optional[str] = None,
        output_prefix: Optional[str] = None,
    ) -> VideoRecord:
        async with self.session_maker() as session:
            record = await VideoRecordRepository(session).create_pending(
                video_id,
                owner=owner,
                title=title,
                source_bucket=source_bucket,
                source_key=source_key,
                output_prefix=output_prefix,
            )
            await session.commit()
            return record

    async def record_launch(self, video_id: str, task_ref: str) -> VideoRecord:
        async with self.session_maker() as session:
            record = await VideoRecordRepository(session).record_launch(video_id, task_ref)
            await session.commit()
            return record

    async def mark_processing(
        self,
        video_id: str,
        source_bucket: Optional[str] = None,
        source_key: Optional[str] = None,
        output_prefix: Optional[str] = None,
    ) -> VideoRecord:
        async with self.session_maker() as session:
            record = await VideoRecordRepository(session).mark_processing(
                video_id,
                source_bucket=source_bucket,
                source_key=source_key,
                output_prefix=output_prefix,
            )
            await session.commit()
            return record

    async def mark_completed(
        self,
        video_id: str,
        thumbnail_url: Optional[str],
        master_playlist_url: Optional[str],
    ) -> VideoRecord:
        async with self.session_maker() as session:
            record = await VideoRecordRepository(session).complete(
                video_id, thumbnail_url, master_playlist_url
            )
            await session.commit()
            return record

    async def mark_failed(self, video_id: str, error_message: str) -> VideoRecord:
        async with self.session_maker() as session:
            record = await VideoRecordRepository(session).fail(video_id, error_message)
            await session.commit()
            return record


class OwnerOverlayService:
    """Looks up per-owner overlay images."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get_overlay_key(self, owner: str) -> Optional[str]:
        async with self.session_maker() as session:
            return await OwnerOverlayRepository(session).get_overlay_key(owner)

    async def set_overlay_key(self, owner: str, overlay_key: str) -> None:
        async with self.session_maker() as session:
            await OwnerOverlayRepository(session).set_overlay_key(owner, overlay_key)
            await session.commit()
