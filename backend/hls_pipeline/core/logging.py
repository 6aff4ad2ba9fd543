"""JSON logging keyed by video.

While a dispatch decision or a transcoding job is in progress its video ID
is bound as the correlation ID; job stages bind their name on top. Every
line written inside the binding carries both, so one video's history can
be pulled out of the dispatcher and job streams alike. Outside any binding
the active trace ID stands in.
"""

import json
import logging
import sys
import traceback
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, ContextManager, Iterator, Mapping, Optional

from hls_pipeline.core.tracing import current_trace_ids

_log_context: ContextVar[Mapping[str, Any]] = ContextVar(
    "log_context", default=MappingProxyType({})
)

# LogRecord attributes that are never copied into "extra"
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "correlation_id", "taskName"}


@contextmanager
def bind_log_context(**fields: Any) -> Iterator[None]:
    """Add fields to every log line written in the enclosed block.

    Bindings nest; inner values shadow outer ones until the block exits.
    """
    token = _log_context.set(MappingProxyType({**_log_context.get(), **fields}))
    try:
        yield
    finally:
        _log_context.reset(token)


def bind_correlation_id(video_id: str) -> ContextManager[None]:
    """Use a video ID as the correlation ID for the enclosed block."""
    return bind_log_context(correlation_id=video_id, video_id=video_id)


def get_log_context() -> Mapping[str, Any]:
    return _log_context.get()


def get_correlation_id() -> Optional[str]:
    """Bound video ID, else the active trace ID."""
    bound = _log_context.get().get("correlation_id")
    if bound is not None:
        return bound
    trace_id, _ = current_trace_ids()
    return trace_id


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Bound context fields sit at the top level next to the correlation ID;
    ``extra=`` fields passed at the call site go under ``extra``.
    """

    def __init__(self, component: Optional[str] = None, include_stack_trace: bool = True):
        super().__init__()
        self.component = component
        self.include_stack_trace = include_stack_trace

    def format(self, record: logging.LogRecord) -> str:
        context = get_log_context()
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        if self.component:
            line["component"] = self.component
        for key, value in context.items():
            if key != "correlation_id":
                line[key] = _json_safe(value)

        trace_id, span_id = current_trace_ids()
        if trace_id:
            line["trace_id"] = trace_id
            line["span_id"] = span_id

        if record.exc_info and record.exc_info[1] is not None:
            error = record.exc_info[1]
            line["exception"] = {"type": type(error).__name__, "message": str(error)}
            if self.include_stack_trace:
                line["exception"]["stack_trace"] = traceback.format_exception(*record.exc_info)

        extra = {
            key: _json_safe(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
        }
        if extra:
            line["extra"] = extra

        return json.dumps(line, default=str)


class CorrelationIdFilter(logging.Filter):
    """Expose the correlation ID to plain-text format strings."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    component: Optional[str] = None,
) -> None:
    """Send all logging to stdout for a pipeline component.

    Args:
        level: Root log level name
        json_format: JSON lines when True, a plain format otherwise
        component: ``dispatcher`` or ``job``, stamped on every JSON line
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationIdFilter())
    if json_format:
        handler.setFormatter(StructuredFormatter(component=component))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"
        ))
    root.addHandler(handler)

    for noisy in ("botocore", "boto3", "urllib3", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def log_error(
    logger: logging.Logger,
    message: str,
    exception: Optional[BaseException] = None,
    **extra: Any,
) -> None:
    """Log an error, with the exception's traceback when one is given."""
    logger.error(message, exc_info=exception, extra=extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    logger.warning(message, extra=extra)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    logger.info(message, extra=extra)
