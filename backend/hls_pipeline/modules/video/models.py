"""Database models for video status records.

A status record is keyed by the video ID and follows one upload through
the pipeline. Records are never deleted here.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, String, Text

from hls_pipeline.core.database import Base


class VideoStatus(str, Enum):
    """Lifecycle status of a video."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_STATUSES = frozenset({VideoStatus.COMPLETED, VideoStatus.FAILED})


class VideoRecord(Base):
    """Status record of one pipeline run."""
    __tablename__ = "video_records"

    video_id = Column(String(512), primary_key=True)

    # Identity
    owner = Column(String(255), nullable=True, index=True)
    title = Column(String(512), nullable=True)

    # Source and output locations
    source_bucket = Column(String(255), nullable=True)
    source_key = Column(String(1024), nullable=True)
    output_prefix = Column(String(1024), nullable=True)

    status = Column(String(20), nullable=False, default=VideoStatus.PENDING.value, index=True)

    # Results
    thumbnail_url = Column(String(2048), nullable=True)
    master_playlist_url = Column(String(2048), nullable=True)
    error_message = Column(Text, nullable=True)

    # Launcher task reference (ECS task ARN or Celery task id)
    task_ref = Column(String(512), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<VideoRecord(video_id={self.video_id}, status={self.status})>"


class OwnerOverlay(Base):
    """Watermark image registered for an owner."""
    __tablename__ = "owner_overlays"

    owner = Column(String(255), primary_key=True)
    overlay_key = Column(String(1024), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
