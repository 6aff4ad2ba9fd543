"""Celery application configuration.

Used when the dispatcher runs with ``LAUNCHER_BACKEND=celery``: jobs are
sent to a Celery worker instead of an ECS task.
"""

from celery import Celery

from hls_pipeline.core.config import settings

# Name the dispatcher sends jobs under
TRANSCODE_TASK_NAME = "hls_pipeline.transcode_video"

celery_app = Celery(
    "hls_pipeline",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=6 * 3600,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.autodiscover_tasks(["hls_pipeline.modules.transcoding"])
