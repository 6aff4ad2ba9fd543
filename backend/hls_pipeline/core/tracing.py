"""OpenTelemetry tracing for the dispatcher and transcoding jobs.

Every span belongs to one video: ``video_span`` opens the root span of a
dispatch decision or a job run, ``stage_span`` opens a child span per job
stage. The dispatcher is long-lived and batches span export; a job exits
right after its run, so its spans are exported as they end.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import trace
from opentelemetry.propagate import set_global_textmap
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

logger = logging.getLogger(__name__)

TRACER_NAME = "hls_pipeline"

COMPONENT_DISPATCHER = "dispatcher"
COMPONENT_JOB = "job"
COMPONENTS = (COMPONENT_DISPATCHER, COMPONENT_JOB)

# Span attribute names
ATTR_COMPONENT = "pipeline.component"
ATTR_VIDEO_ID = "video.id"
ATTR_VIDEO_SOURCE = "video.source"
ATTR_JOB_STAGE = "job.stage"

_provider: Optional[TracerProvider] = None


def _otlp_exporter(endpoint: str) -> Optional[SpanExporter]:
    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    except ImportError:
        logger.warning("OTLP exporter not installed; spans will not leave the process")
        return None
    return OTLPSpanExporter(endpoint=endpoint)


def span_processor(component: str, exporter: SpanExporter) -> SpanProcessor:
    """Pick the export strategy for a pipeline component."""
    if component == COMPONENT_JOB:
        return SimpleSpanProcessor(exporter)
    return BatchSpanProcessor(exporter)


def setup_tracing(
    component: str,
    version: str,
    environment: str = "development",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> TracerProvider:
    """Install the tracer provider for one pipeline component.

    Args:
        component: ``dispatcher`` or ``job``
        version: Pipeline version
        environment: Deployment environment
        otlp_endpoint: OTLP collector endpoint; spans are kept local without it
        console_export: Also print finished spans to stdout

    Returns:
        The installed provider
    """
    global _provider

    if component not in COMPONENTS:
        raise ValueError(f"Unknown pipeline component: {component}")

    provider = TracerProvider(resource=Resource.create({
        SERVICE_NAME: f"hls-{component}",
        SERVICE_VERSION: version,
        "deployment.environment": environment,
        ATTR_COMPONENT: component,
    }))

    if otlp_endpoint:
        exporter = _otlp_exporter(otlp_endpoint)
        if exporter is not None:
            provider.add_span_processor(span_processor(component, exporter))
            logger.info(f"Exporting {component} spans to {otlp_endpoint}")
    if console_export:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    set_global_textmap(TraceContextTextMapPropagator())
    _provider = provider
    return provider


def current_trace_ids() -> tuple[Optional[str], Optional[str]]:
    """Trace and span ID of the active span as hex strings, or (None, None)."""
    context = trace.get_current_span().get_span_context()
    if not context.is_valid:
        return None, None
    return format(context.trace_id, "032x"), format(context.span_id, "016x")


@contextmanager
def video_span(name: str, video_id: str, source: Optional[str] = None) -> Iterator[Span]:
    """Root span for the work done on one video."""
    attributes = {ATTR_VIDEO_ID: video_id}
    if source:
        attributes[ATTR_VIDEO_SOURCE] = source
    with trace.get_tracer(TRACER_NAME).start_as_current_span(name, attributes=attributes) as span:
        yield span


@contextmanager
def stage_span(video_id: str, stage: str) -> Iterator[Span]:
    """Child span for one stage of a transcoding job."""
    with trace.get_tracer(TRACER_NAME).start_as_current_span(
        f"transcode_job.{stage.lower()}",
        attributes={ATTR_VIDEO_ID: video_id, ATTR_JOB_STAGE: stage},
    ) as span:
        yield span


def record_failure(exception: BaseException, stage: Optional[str] = None) -> None:
    """Mark the active span as failed."""
    span = trace.get_current_span()
    attributes = {ATTR_JOB_STAGE: stage} if stage else None
    span.record_exception(exception, attributes=attributes)
    span.set_status(Status(StatusCode.ERROR, str(exception)))


def shutdown_tracing() -> None:
    """Flush pending spans and release the provider."""
    global _provider
    if _provider is not None:
        _provider.force_flush()
        _provider.shutdown()
        _provider = None
