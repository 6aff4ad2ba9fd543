"""Tests for status record persistence against SQLite."""

import pytest

from hls_pipeline.modules.video.models import VideoStatus
from hls_pipeline.modules.video.repository import OwnerOverlayRepository, VideoRecordRepository
from hls_pipeline.modules.video.service import OwnerOverlayService, VideoStatusService

VIDEO_ID = "alice###trip-1"


class TestVideoRecordRepository:

    @pytest.mark.asyncio
    async def test_lifecycle(self, session_maker) -> None:
        service = VideoStatusService(session_maker)

        await service.create_pending(VIDEO_ID, owner="alice", title="trip.mp4", source_bucket="uploads",
                                     source_key="alice###trip.mp4", output_prefix="processed/alice###trip-1/")
        await service.record_launch(VIDEO_ID, "task-1")
        await service.mark_processing(VIDEO_ID)
        processing = await service.get(VIDEO_ID)
        await service.mark_completed(VIDEO_ID, "https://cdn/sprite.jpg#xywh=0,0,160,90", "https://cdn/master.m3u8")
        completed = await service.get(VIDEO_ID)

        assert processing.status == VideoStatus.PROCESSING.value
        assert completed.status == VideoStatus.COMPLETED.value
        assert completed.owner == "alice"
        assert completed.source_key == "alice###trip.mp4"
        assert completed.task_ref == "task-1"
        assert completed.master_playlist_url == "https://cdn/master.m3u8"
        assert completed.completed_at is not None

    @pytest.mark.asyncio
    async def test_pending_never_regresses_status(self, session_maker) -> None:
        service = VideoStatusService(session_maker)
        await service.mark_processing(VIDEO_ID, source_bucket="uploads", source_key="alice###trip.mp4")

        record = await service.create_pending(VIDEO_ID, owner="alice", title="trip.mp4")

        assert record.status == VideoStatus.PROCESSING.value
        assert record.owner == "alice"

    @pytest.mark.asyncio
    async def test_job_without_dispatcher_creates_record(self, session_maker) -> None:
        service = VideoStatusService(session_maker)

        await service.mark_failed(VIDEO_ID, "download failed")
        record = await service.get(VIDEO_ID)

        assert record.status == VideoStatus.FAILED.value
        assert record.error_message == "download failed"

    @pytest.mark.asyncio
    async def test_failure_after_completion_replaces_result(self, session_maker) -> None:
        service = VideoStatusService(session_maker)
        await service.mark_completed(VIDEO_ID, "thumb", "master")

        await service.mark_failed(VIDEO_ID, "ffmpeg 720p failed")
        record = await service.get(VIDEO_ID)

        assert record.status == VideoStatus.FAILED.value
        assert record.thumbnail_url is None
        assert record.master_playlist_url is None

    @pytest.mark.asyncio
    async def test_missing_record(self, session_maker) -> None:
        async with session_maker() as session:
            assert await VideoRecordRepository(session).get_by_id("nobody###x-1") is None


class TestOwnerOverlays:

    @pytest.mark.asyncio
    async def test_lookup_and_replace(self, session_maker) -> None:
        service = OwnerOverlayService(session_maker)

        assert await service.get_overlay_key("alice") is None
        await service.set_overlay_key("alice", "overlays/alice-v1.png")
        await service.set_overlay_key("alice", "overlays/alice-v2.png")

        async with session_maker() as session:
            assert await OwnerOverlayRepository(session).get_overlay_key("alice") == "overlays/alice-v2.png"
