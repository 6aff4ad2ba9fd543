"""Process entry points.

``hls-dispatcher`` runs the long-lived queue consumer. ``hls-transcode-job``
runs one transcoding job from its environment and exits with 0 on
COMPLETED, 1 on FAILED.
"""

import asyncio
import logging
import os
import signal
import sys

from hls_pipeline.core.aws import AWSConfig
from hls_pipeline.core.config import settings
from hls_pipeline.core.database import create_engine, create_session_maker
from hls_pipeline.core.logging import setup_logging
from hls_pipeline.core.metrics import push_job_metrics, set_app_info, start_metrics_server
from hls_pipeline.core.tracing import setup_tracing, shutdown_tracing
from hls_pipeline.modules.dispatcher.launcher import get_task_launcher
from hls_pipeline.modules.dispatcher.overlay import OverlayPolicy, OverlayResolver
from hls_pipeline.modules.dispatcher.queue import SqsQueue
from hls_pipeline.modules.dispatcher.service import Dispatcher, DispatcherConfig
from hls_pipeline.modules.transcoding.schemas import JobSpecError
from hls_pipeline.modules.transcoding.service import run_transcoding_job
from hls_pipeline.modules.video.service import OwnerOverlayService, VideoStatusService

logger = logging.getLogger(__name__)


def _setup_observability(component: str) -> None:
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON, component=component)
    setup_tracing(
        component,
        settings.VERSION,
        environment=settings.ENVIRONMENT,
        otlp_endpoint=settings.OTLP_ENDPOINT,
    )
    set_app_info(settings.VERSION, settings.ENVIRONMENT, component)


async def _run_dispatcher() -> None:
    config = DispatcherConfig.from_settings(settings)
    aws_config = AWSConfig.from_settings(settings)
    engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    session_maker = create_session_maker(engine)

    overlay_resolver = None
    if config.overlay_policy != OverlayPolicy.DISABLED:
        overlay_resolver = OverlayResolver(OwnerOverlayService(session_maker), config.overlay_policy)

    dispatcher = Dispatcher(
        config=config,
        queue=SqsQueue(
            settings.SQS_QUEUE_URL,
            aws_config,
            max_messages=settings.SQS_MAX_MESSAGES,
            wait_time_seconds=settings.SQS_WAIT_TIME_SECONDS,
            visibility_timeout=settings.SQS_VISIBILITY_TIMEOUT,
        ),
        launcher=get_task_launcher(settings),
        status_service=VideoStatusService(session_maker),
        overlay_resolver=overlay_resolver,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await dispatcher.run_forever(stop_event)
    finally:
        await engine.dispose()


def dispatcher_main() -> None:
    """Run the dispatcher until SIGINT or SIGTERM."""
    _setup_observability("dispatcher")
    start_metrics_server(settings.METRICS_PORT)
    try:
        asyncio.run(_run_dispatcher())
    finally:
        shutdown_tracing()


def job_main() -> None:
    """Run one transcoding job from the process environment."""
    _setup_observability("job")
    try:
        outcome = asyncio.run(run_transcoding_job(os.environ, settings))
    except JobSpecError as e:
        logger.error(f"Invalid job environment: {e}")
        shutdown_tracing()
        sys.exit(1)

    push_job_metrics(
        settings.PUSHGATEWAY_URL,
        {"video_id": outcome.video_id, "status": outcome.status.value},
    )
    shutdown_tracing()
    sys.exit(outcome.exit_code)


if __name__ == "__main__":
    job_main()
