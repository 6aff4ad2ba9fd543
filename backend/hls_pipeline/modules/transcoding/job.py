"""Transcoding job: one source video in, one HLS package out.

Stages run in order: download, encode (all renditions and the sprite
sheet concurrently), assemble (master playlist and thumbnail index),
upload. The work directory is removed on every exit path.
"""

import asyncio
import logging
import os
import shutil
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from hls_pipeline.core.logging import (
    bind_correlation_id,
    bind_log_context,
    log_error,
    log_info,
    log_warning,
)
from hls_pipeline.core.metrics import (
    JOB_RUNS_TOTAL,
    JOB_STAGE_DURATION_SECONDS,
    JOB_UPLOADED_FILES_TOTAL,
)
from hls_pipeline.core.storage import ObjectStorage, ObjectStorageError
from hls_pipeline.core.tracing import record_failure, stage_span, video_span
from hls_pipeline.modules.transcoding.ffmpeg import Encoder
from hls_pipeline.modules.transcoding.manifest import (
    MASTER_PLAYLIST_NAME,
    render_master_playlist,
)
from hls_pipeline.modules.transcoding.renditions import (
    DEFAULT_RENDITION_CATALOG,
    RenditionPlan,
    RenditionProfile,
    load_rendition_catalog,
    plan_renditions,
)
from hls_pipeline.modules.transcoding.schemas import JobSpec, ResultFile
from hls_pipeline.modules.transcoding.sprite import (
    SpriteLayout,
    TimelineEntry,
    build_sprite_timeline,
    fit_layout,
    render_timeline_vtt,
    tile_fragment,
    validate_sprite_layout,
)
from hls_pipeline.modules.video.models import VideoStatus

logger = logging.getLogger(__name__)


class JobStage(str, Enum):
    """Stages of a transcoding job."""
    DOWNLOADING = "DOWNLOADING"
    ENCODING = "ENCODING"
    ASSEMBLING = "ASSEMBLING"
    UPLOADING = "UPLOADING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CLEANUP = "CLEANUP"


class PipelineError(Exception):
    """A stage failed; the job ends as FAILED."""

    def __init__(self, stage: JobStage, message: str):
        super().__init__(message)
        self.stage = stage


class DownloadError(PipelineError):
    def __init__(self, message: str):
        super().__init__(JobStage.DOWNLOADING, message)


class EncodeStageError(PipelineError):
    def __init__(self, message: str):
        super().__init__(JobStage.ENCODING, message)


class AssembleError(PipelineError):
    def __init__(self, message: str):
        super().__init__(JobStage.ASSEMBLING, message)


class UploadError(PipelineError):
    def __init__(self, message: str):
        super().__init__(JobStage.UPLOADING, message)


@dataclass(frozen=True)
class JobConfig:
    """Job tuning, built once from settings."""
    work_dir: str = tempfile.gettempdir()
    segment_seconds: int = 10
    sprite_layout: SpriteLayout = field(default_factory=SpriteLayout)
    profiles: tuple[RenditionProfile, ...] = DEFAULT_RENDITION_CATALOG
    upload_concurrency: int = 8
    result_file_name: str = "manifest.json"
    overlay_bucket: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "JobConfig":
        return cls(
            work_dir=settings.WORK_DIR,
            segment_seconds=settings.HLS_SEGMENT_SECONDS,
            sprite_layout=SpriteLayout(
                interval_seconds=settings.SPRITE_INTERVAL_SECONDS,
                tile_width=settings.SPRITE_TILE_WIDTH,
                tile_height=settings.SPRITE_TILE_HEIGHT,
                columns=settings.SPRITE_COLUMNS,
                rows=settings.SPRITE_ROWS,
            ),
            profiles=load_rendition_catalog(settings.RENDITION_PROFILES),
            upload_concurrency=settings.UPLOAD_CONCURRENCY,
            result_file_name=settings.RESULT_FILE_NAME,
            overlay_bucket=settings.OVERLAY_BUCKET,
        )


@dataclass
class JobOutcome:
    """Terminal result of a job run."""
    status: VideoStatus
    video_id: str
    master_playlist_key: Optional[str] = None
    master_playlist_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[JobStage] = None
    uploaded_keys: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 0 if self.status == VideoStatus.COMPLETED else 1


@contextmanager
def _track_stage(video_id: str, stage: JobStage):
    """Time a stage, trace it and tag its log lines."""
    start = time.monotonic()
    with stage_span(video_id, stage.value), bind_log_context(stage=stage.value):
        try:
            yield
        finally:
            JOB_STAGE_DURATION_SECONDS.labels(stage=stage.value).observe(time.monotonic() - start)


def collect_output_files(output_dir: str) -> list[tuple[str, str]]:
    """List every file under the output tree.

    Returns:
        Sorted (absolute path, path relative to output_dir) pairs
    """
    files = []
    for root, _dirs, names in os.walk(output_dir):
        for name in names:
            path = os.path.join(root, name)
            files.append((path, os.path.relpath(path, output_dir)))
    return sorted(files, key=lambda item: item[1])


def first_failure(results: Iterable, labels: Iterable[str]) -> Optional[str]:
    """Describe the first failed task of a gather, in submission order."""
    for label, result in zip(labels, results):
        if isinstance(result, BaseException):
            return f"{label}: {result}"
    return None


class TranscodingJob:
    """Runs the pipeline for one JobSpec."""

    def __init__(
        self,
        spec: JobSpec,
        config: JobConfig,
        storage: ObjectStorage,
        encoder: Encoder,
        status_service=None,
    ):
        """Initialize a job.

        Args:
            spec: Parameters of this run
            config: Job tuning
            storage: Object storage for source and destination buckets
            encoder: Encoder backend
            status_service: Status record writer; optional
        """
        self.spec = spec
        self.config = config
        self.storage = storage
        self.encoder = encoder
        self.status_service = status_service
        self.stage: Optional[JobStage] = None

    async def run(self) -> JobOutcome:
        """Run the job to a terminal status. Failures end as FAILED and never raise."""
        spec = self.spec
        with bind_correlation_id(spec.video_id), video_span(
            "transcode_job", spec.video_id, source=spec.source_uri
        ):
            os.makedirs(self.config.work_dir, exist_ok=True)
            workdir = tempfile.mkdtemp(prefix="hls-job-", dir=self.config.work_dir)
            try:
                log_info(logger, "Transcoding job started", video_id=spec.video_id, workdir=workdir)
                await self._write_status(
                    "mark_processing",
                    spec.video_id,
                    source_bucket=spec.source_bucket,
                    source_key=spec.video_key,
                    output_prefix=spec.output_prefix,
                )
                try:
                    outcome = await self._execute(workdir)
                except PipelineError as e:
                    record_failure(e, stage=e.stage.value)
                    log_error(
                        logger,
                        f"Transcoding job failed during {e.stage.value}",
                        exception=e,
                        video_id=spec.video_id,
                        stage=e.stage.value,
                    )
                    outcome = JobOutcome(
                        status=VideoStatus.FAILED,
                        video_id=spec.video_id,
                        error=str(e),
                        failed_stage=e.stage,
                    )
                except Exception as e:
                    stage = self.stage.value if self.stage else "PLANNING"
                    record_failure(e, stage=stage)
                    log_error(
                        logger,
                        f"Transcoding job failed unexpectedly during {stage}",
                        exception=e,
                        video_id=spec.video_id,
                        stage=stage,
                    )
                    outcome = JobOutcome(
                        status=VideoStatus.FAILED,
                        video_id=spec.video_id,
                        error=f"{type(e).__name__}: {e}",
                        failed_stage=self.stage,
                    )
                await self._finish(outcome)
            finally:
                self._cleanup(workdir)

        JOB_RUNS_TOTAL.labels(status=outcome.status.value).inc()
        log_info(
            logger,
            f"Transcoding job finished with {outcome.status.value}",
            video_id=spec.video_id,
            status=outcome.status.value,
        )
        return outcome

    async def _execute(self, workdir: str) -> JobOutcome:
        spec = self.spec
        try:
            plans = plan_renditions(self.config.profiles, self.config.segment_seconds)
        except ValueError as e:
            raise EncodeStageError(f"Invalid rendition catalog: {e}") from e
        is_valid, errors = validate_sprite_layout(self.config.sprite_layout)
        if not is_valid:
            raise EncodeStageError(f"Invalid sprite layout: {'; '.join(errors)}")

        input_dir = os.path.join(workdir, "input")
        output_dir = os.path.join(workdir, "output")
        os.makedirs(input_dir)
        os.makedirs(output_dir)

        self.stage = JobStage.DOWNLOADING
        with _track_stage(spec.video_id, JobStage.DOWNLOADING):
            source_path, overlay_path = await self._download(input_dir)

        self.stage = JobStage.ENCODING
        with _track_stage(spec.video_id, JobStage.ENCODING):
            layout, duration = await self._encode(source_path, overlay_path, output_dir, plans)

        self.stage = JobStage.ASSEMBLING
        with _track_stage(spec.video_id, JobStage.ASSEMBLING):
            timeline = self._assemble(output_dir, plans, layout, duration)

        self.stage = JobStage.UPLOADING
        with _track_stage(spec.video_id, JobStage.UPLOADING):
            uploaded_keys = await self._upload(output_dir)

        master_key = spec.output_key(MASTER_PLAYLIST_NAME)
        sprite_url = self.storage.get_url(
            spec.destination_bucket, spec.output_key(layout.image_name)
        )
        thumbnail_url = f"{sprite_url}{tile_fragment(timeline[0])}" if timeline else sprite_url

        return JobOutcome(
            status=VideoStatus.COMPLETED,
            video_id=spec.video_id,
            master_playlist_key=master_key,
            master_playlist_url=self.storage.get_url(spec.destination_bucket, master_key),
            thumbnail_url=thumbnail_url,
            uploaded_keys=uploaded_keys,
        )

    async def _download(self, input_dir: str) -> tuple[str, Optional[str]]:
        spec = self.spec
        source_path = os.path.join(input_dir, os.path.basename(spec.video_key) or "source")
        try:
            size = await asyncio.to_thread(
                self.storage.download, spec.source_bucket, spec.video_key, source_path
            )
        except ObjectStorageError as e:
            raise DownloadError(str(e)) from e
        log_info(logger, "Source video downloaded", video_id=spec.video_id, file_size=size)

        if not spec.watermark_key:
            return source_path, None

        overlay_bucket = self.config.overlay_bucket or spec.source_bucket
        overlay_path = os.path.join(
            input_dir, f"overlay{os.path.splitext(spec.watermark_key)[1] or '.png'}"
        )
        try:
            await asyncio.to_thread(
                self.storage.download, overlay_bucket, spec.watermark_key, overlay_path
            )
        except ObjectStorageError as e:
            raise DownloadError(str(e)) from e
        return source_path, overlay_path

    async def _render_sprite(
        self,
        source_path: str,
        output_dir: str,
    ) -> tuple[SpriteLayout, float]:
        duration = await self.encoder.probe_duration(source_path)
        layout = fit_layout(self.config.sprite_layout, duration)
        await self.encoder.generate_sprite(source_path, layout, output_dir)
        return layout, duration

    async def _encode(
        self,
        source_path: str,
        overlay_path: Optional[str],
        output_dir: str,
        plans: list[RenditionPlan],
    ) -> tuple[SpriteLayout, float]:
        tasks = [
            self.encoder.encode_rendition(source_path, plan, output_dir, overlay_path)
            for plan in plans
        ]
        tasks.append(self._render_sprite(source_path, output_dir))
        labels = [f"rendition {plan.name}" for plan in plans] + ["sprite"]

        results = await asyncio.gather(*tasks, return_exceptions=True)
        failure = first_failure(results, labels)
        if failure:
            raise EncodeStageError(failure)
        return results[-1]

    def _assemble(
        self,
        output_dir: str,
        plans: list[RenditionPlan],
        layout: SpriteLayout,
        duration: float,
    ) -> list[TimelineEntry]:
        try:
            with open(os.path.join(output_dir, MASTER_PLAYLIST_NAME), "w", encoding="utf-8") as f:
                f.write(render_master_playlist(plans))

            timeline = build_sprite_timeline(duration, layout)
            with open(os.path.join(output_dir, layout.index_name), "w", encoding="utf-8") as f:
                f.write(render_timeline_vtt(timeline, layout.image_name))
        except (OSError, ValueError) as e:
            raise AssembleError(f"Cannot write playlists: {e}") from e
        return timeline

    async def _upload(self, output_dir: str) -> list[str]:
        spec = self.spec
        files = collect_output_files(output_dir)
        semaphore = asyncio.Semaphore(max(1, self.config.upload_concurrency))

        async def upload_one(path: str, relative_path: str):
            async with semaphore:
                return await asyncio.to_thread(
                    self.storage.upload_file,
                    path,
                    spec.destination_bucket,
                    spec.output_key(relative_path),
                )

        results = await asyncio.gather(
            *(upload_one(path, rel) for path, rel in files),
            return_exceptions=True,
        )

        failure = first_failure(results, [rel for _, rel in files])
        if failure:
            raise UploadError(f"Upload failed for {failure}")
        for (_, rel), result in zip(files, results):
            if not result.success:
                raise UploadError(f"Upload failed for {rel}: {result.error_message}")

        JOB_UPLOADED_FILES_TOTAL.inc(len(files))
        log_info(logger, f"Uploaded {len(files)} files", video_id=spec.video_id)
        return [result.key for result in results]

    async def _write_status(self, method: str, *args, **kwargs) -> None:
        """Write a status record; failures are logged and never change the outcome."""
        if self.status_service is None:
            return
        try:
            await getattr(self.status_service, method)(*args, **kwargs)
        except Exception as e:
            log_error(
                logger,
                f"Status write {method} failed",
                exception=e,
                video_id=self.spec.video_id,
            )

    async def _finish(self, outcome: JobOutcome) -> None:
        spec = self.spec
        if outcome.status == VideoStatus.COMPLETED:
            self.stage = JobStage.COMPLETED
            await self._write_status(
                "mark_completed",
                spec.video_id,
                thumbnail_url=outcome.thumbnail_url,
                master_playlist_url=outcome.master_playlist_url,
            )
        else:
            self.stage = JobStage.FAILED
            await self._write_status("mark_failed", spec.video_id, outcome.error or "unknown error")

        result = ResultFile(
            status=outcome.status.value,
            source_video=spec.source_uri,
            output_prefix=spec.output_prefix,
            master_playlist=outcome.master_playlist_key,
            thumbnail_url=outcome.thumbnail_url,
            master_playlist_url=outcome.master_playlist_url,
            timestamp=datetime.utcnow(),
            error=outcome.error,
        )
        stored = await asyncio.to_thread(
            self.storage.put_json,
            spec.destination_bucket,
            spec.output_key(self.config.result_file_name),
            result.to_document(),
        )
        if not stored.success:
            log_warning(
                logger,
                f"Result file upload failed: {stored.error_message}",
                video_id=spec.video_id,
            )

    def _cleanup(self, workdir: str) -> None:
        self.stage = JobStage.CLEANUP
        try:
            shutil.rmtree(workdir)
        except OSError as e:
            log_error(logger, "Failed to remove work directory", exception=e, workdir=workdir)
