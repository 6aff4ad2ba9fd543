"""Builds a transcoding job from settings and runs it.

Shared by the container entry point and the Celery task.
"""

import logging
from typing import Mapping, Optional

from hls_pipeline.core.aws import AWSConfig
from hls_pipeline.core.database import create_engine, create_session_maker
from hls_pipeline.core.storage import ObjectStorage
from hls_pipeline.modules.transcoding.ffmpeg import Encoder, FFmpegEncoder
from hls_pipeline.modules.transcoding.job import JobConfig, JobOutcome, TranscodingJob
from hls_pipeline.modules.transcoding.schemas import JobSpec
from hls_pipeline.modules.video.service import VideoStatusService

logger = logging.getLogger(__name__)


async def run_transcoding_job(
    environment: Mapping[str, str],
    settings,
    storage: Optional[ObjectStorage] = None,
    encoder: Optional[Encoder] = None,
) -> JobOutcome:
    """Run one job for a job environment.

    Raises:
        JobSpecError: If the environment lacks required variables
    """
    spec = JobSpec.from_environment(environment, root_prefix=settings.OUTPUT_ROOT_PREFIX)
    storage = storage or ObjectStorage(
        AWSConfig.from_settings(settings),
        cdn_domain=settings.CDN_DOMAIN,
    )
    encoder = encoder or FFmpegEncoder(settings.FFMPEG_PATH, settings.FFPROBE_PATH)

    engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    try:
        job = TranscodingJob(
            spec=spec,
            config=JobConfig.from_settings(settings),
            storage=storage,
            encoder=encoder,
            status_service=VideoStatusService(create_session_maker(engine)),
        )
        return await job.run()
    finally:
        await engine.dispose()
