"""Celery task running a transcoding job on a worker.

The dispatcher's Celery launcher sends the job environment; the worker
runs the same job code as the container entry point.
"""

import asyncio
import logging

from hls_pipeline.core.celery_app import TRANSCODE_TASK_NAME, celery_app
from hls_pipeline.core.config import settings
from hls_pipeline.modules.transcoding.service import run_transcoding_job

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name=TRANSCODE_TASK_NAME)
def transcode_video_task(self, environment: dict) -> dict:
    """Run a transcoding job.

    Args:
        environment: Job environment (see JobSpec.to_environment)

    Returns:
        Summary of the job outcome
    """
    logger.info(f"Celery task {self.request.id} transcoding {environment.get('VIDEO_KEY')}")
    outcome = asyncio.run(run_transcoding_job(environment, settings))
    return {
        "video_id": outcome.video_id,
        "status": outcome.status.value,
        "master_playlist_url": outcome.master_playlist_url,
        "error": outcome.error,
    }
