"""Repository for video status records and owner overlays.

Status writes are upserts: a job started without the dispatcher (or a
redelivered one) still produces a record, and the last write wins.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hls_pipeline.modules.video.models import OwnerOverlay, VideoRecord, VideoStatus


class VideoRecordRepository:
    """Repository for VideoRecord operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, video_id: str) -> Optional[VideoRecord]:
        """Get a status record by video ID."""
        result = await self.session.execute(
            select(VideoRecord).where(VideoRecord.video_id == video_id)
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, video_id: str) -> VideoRecord:
        record = await self.get_by_id(video_id)
        if record is None:
            record = VideoRecord(video_id=video_id, status=VideoStatus.PENDING.value)
            self.session.add(record)
        return record

    async def create_pending(
        self,
        video_id: str,
        owner: Optional[str] = None,
        title: Optional[str] = None,
        source_bucket: Optional[str] = None,
        source_key: Optional[str] = None,
        output_prefix: Optional[str] = None,
    ) -> VideoRecord:
        """Create a PENDING record.

        An existing record keeps its status; only missing identity fields
        are filled in.

        Returns:
            The new or existing record
        """
        record = await self._get_or_create(video_id)
        record.owner = record.owner or owner
        record.title = record.title or title
        record.source_bucket = record.source_bucket or source_bucket
        record.source_key = record.source_key or source_key
        record.output_prefix = record.output_prefix or output_prefix
        await self.session.flush()
        return record

    async def record_launch(self, video_id: str, task_ref: str) -> VideoRecord:
        """Store the launcher's reference to the job task."""
        record = await self._get_or_create(video_id)
        record.task_ref = task_ref
        record.updated_at = datetime.utcnow()
        await self.session.flush()
        return record

    async def mark_processing(
        self,
        video_id: str,
        source_bucket: Optional[str] = None,
        source_key: Optional[str] = None,
        output_prefix: Optional[str] = None,
    ) -> VideoRecord:
        """Mark a record as PROCESSING, creating it if needed."""
        record = await self._get_or_create(video_id)
        record.status = VideoStatus.PROCESSING.value
        record.source_bucket = source_bucket or record.source_bucket
        record.source_key = source_key or record.source_key
        record.output_prefix = output_prefix or record.output_prefix
        record.thumbnail_url = None
        record.master_playlist_url = None
        record.error_message = None
        record.completed_at = None
        record.updated_at = datetime.utcnow()
        await self.session.flush()
        return record

    async def complete(
        self,
        video_id: str,
        thumbnail_url: Optional[str],
        master_playlist_url: Optional[str],
    ) -> VideoRecord:
        """Mark a record as COMPLETED with its output URLs."""
        now = datetime.utcnow()
        record = await self._get_or_create(video_id)
        record.status = VideoStatus.COMPLETED.value
        record.thumbnail_url = thumbnail_url
        record.master_playlist_url = master_playlist_url
        record.error_message = None
        record.completed_at = now
        record.updated_at = now
        await self.session.flush()
        return record

    async def fail(self, video_id: str, error_message: str) -> VideoRecord:
        """Mark a record as FAILED."""
        now = datetime.utcnow()
        record = await self._get_or_create(video_id)
        record.status = VideoStatus.FAILED.value
        record.error_message = error_message
        record.thumbnail_url = None
        record.master_playlist_url = None
        record.completed_at = now
        record.updated_at = now
        await self.session.flush()
        return record


class OwnerOverlayRepository:
    """Repository for OwnerOverlay lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_overlay_key(self, owner: str) -> Optional[str]:
        """Get the overlay object key registered for an owner."""
        result = await self.session.execute(
            select(OwnerOverlay.overlay_key).where(OwnerOverlay.owner == owner)
        )
        return result.scalar_one_or_none()

    async def set_overlay_key(self, owner: str, overlay_key: str) -> OwnerOverlay:
        """Register or replace the overlay of an owner."""
        result = await self.session.execute(
            select(OwnerOverlay).where(OwnerOverlay.owner == owner)
        )
        overlay = result.scalar_one_or_none()
        if overlay is None:
            overlay = OwnerOverlay(owner=owner, overlay_key=overlay_key)
            self.session.add(overlay)
        else:
            overlay.overlay_key = overlay_key
            overlay.updated_at = datetime.utcnow()
        await self.session.flush()
        return overlay
