"""Prometheus metrics for the dispatcher and transcoding jobs.

The dispatcher is long-running and serves these from an HTTP endpoint; a
transcoding job is a short-lived container and pushes them to a
Pushgateway before exiting.
"""

import logging
import os
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    multiprocess,
    push_to_gateway,
    start_http_server,
)

logger = logging.getLogger(__name__)

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., several celery workers)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "hls_pipeline_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Dispatcher Metrics
# ============================================
DISPATCHER_MESSAGES_TOTAL = Counter(
    "dispatcher_messages_total",
    "Queue messages handled, by final disposition",
    ["disposition"],
    registry=REGISTRY,
)

DISPATCHER_RECORDS_TOTAL = Counter(
    "dispatcher_records_total",
    "Object-creation records handled, by outcome",
    ["outcome"],
    registry=REGISTRY,
)

DISPATCHER_LOOP_ERRORS_TOTAL = Counter(
    "dispatcher_loop_errors_total",
    "Unhandled errors caught by the dispatcher poll loop",
    registry=REGISTRY,
)


# ============================================
# Transcoding Job Metrics
# ============================================
JOB_STAGE_DURATION_SECONDS = Histogram(
    "transcode_job_stage_duration_seconds",
    "Duration of each transcoding job stage",
    ["stage"],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1200, 3600],
    registry=REGISTRY,
)

JOB_RUNS_TOTAL = Counter(
    "transcode_job_runs_total",
    "Transcoding job runs by terminal status",
    ["status"],
    registry=REGISTRY,
)

JOB_UPLOADED_FILES_TOTAL = Counter(
    "transcode_job_uploaded_files_total",
    "Files uploaded by transcoding jobs",
    registry=REGISTRY,
)


def set_app_info(version: str, environment: str, component: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
        component: dispatcher or job
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
        "component": component,
    })


def start_metrics_server(port: Optional[int]) -> bool:
    """Expose the registry over HTTP when a port is configured."""
    if not port:
        return False
    start_http_server(port, registry=REGISTRY)
    logger.info(f"Metrics endpoint listening on :{port}")
    return True


def push_job_metrics(gateway_url: Optional[str], grouping_key: dict[str, str]) -> bool:
    """Push job metrics to a Pushgateway.

    Failures are logged; losing one job's metrics must not fail the job.
    """
    if not gateway_url:
        return False
    try:
        push_to_gateway(
            gateway_url,
            job="hls_transcode_job",
            registry=REGISTRY,
            grouping_key=grouping_key,
        )
        return True
    except Exception as e:
        logger.warning(f"Failed to push job metrics to {gateway_url}: {e}")
        return False
