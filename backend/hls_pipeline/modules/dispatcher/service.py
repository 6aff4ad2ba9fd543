"""Dispatcher: consumes object-creation events and launches transcoding jobs.

A message is acknowledged only once every record in it reached a
decision (rejected, dropped, duplicate or launched). When a launch fails
the message stays on the queue and is redelivered after the visibility
timeout; records launched on an earlier delivery are recognised by their
status record and not launched twice.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from hls_pipeline.core.logging import bind_correlation_id, log_error, log_info, log_warning
from hls_pipeline.core.metrics import (
    DISPATCHER_LOOP_ERRORS_TOTAL,
    DISPATCHER_MESSAGES_TOTAL,
    DISPATCHER_RECORDS_TOTAL,
)
from hls_pipeline.core.tracing import record_failure, video_span
from hls_pipeline.modules.dispatcher.launcher import TaskLauncher, TaskLaunchError
from hls_pipeline.modules.dispatcher.overlay import OverlayPolicy, OverlayResolver
from hls_pipeline.modules.dispatcher.queue import QueueMessage, SqsQueue
from hls_pipeline.modules.ingest.events import IngestionEvent, MessageKind, parse_message_body
from hls_pipeline.modules.ingest.validator import build_output_prefix, validate_object_key
from hls_pipeline.modules.transcoding.schemas import JobSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatcherConfig:
    """Dispatch policy, built once from settings."""
    destination_bucket: str
    output_root_prefix: str = "processed/"
    overlay_policy: OverlayPolicy = OverlayPolicy.DISABLED
    deduplicate_redeliveries: bool = True
    error_backoff_seconds: float = 5.0

    @classmethod
    def from_settings(cls, settings) -> "DispatcherConfig":
        return cls(
            destination_bucket=settings.DESTINATION_BUCKET,
            output_root_prefix=settings.OUTPUT_ROOT_PREFIX,
            overlay_policy=OverlayPolicy(settings.OVERLAY_POLICY.lower()),
            deduplicate_redeliveries=settings.DEDUPLICATE_REDELIVERIES,
            error_backoff_seconds=settings.DISPATCHER_ERROR_BACKOFF_SECONDS,
        )


class RecordOutcome(str, Enum):
    """Decision taken for one record."""
    REJECTED = "rejected"
    DROPPED = "dropped"
    DUPLICATE = "duplicate"
    LAUNCHED = "launched"
    LAUNCH_FAILED = "launch_failed"


class Dispatcher:
    """Polls the ingestion queue and starts one job per valid upload."""

    def __init__(
        self,
        config: DispatcherConfig,
        queue: SqsQueue,
        launcher: TaskLauncher,
        status_service,
        overlay_resolver: Optional[OverlayResolver] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the dispatcher.

        Args:
            config: Dispatch policy
            queue: Ingestion queue
            launcher: Job launcher
            status_service: Status record store
            overlay_resolver: Required unless the overlay policy is disabled
            clock: Seconds since the epoch; used when an event has no time
        """
        if config.overlay_policy != OverlayPolicy.DISABLED and overlay_resolver is None:
            raise ValueError(f"Overlay policy '{config.overlay_policy.value}' needs an overlay resolver")
        self.config = config
        self.queue = queue
        self.launcher = launcher
        self.status_service = status_service
        self.overlay_resolver = overlay_resolver
        self.clock = clock

    async def run_forever(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set; errors back off and never escape."""
        logger.info("Dispatcher started")
        while not stop_event.is_set():
            try:
                await self.poll_once()
            except Exception as e:
                DISPATCHER_LOOP_ERRORS_TOTAL.inc()
                log_error(logger, "Dispatcher poll failed", exception=e)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.config.error_backoff_seconds)
                except asyncio.TimeoutError:
                    pass
        logger.info("Dispatcher stopped")

    async def poll_once(self) -> int:
        """Receive one batch and handle every message in it.

        Returns:
            Number of messages received
        """
        messages = await asyncio.to_thread(self.queue.receive)
        for message in messages:
            await self.handle_message(message)
        return len(messages)

    async def handle_message(self, message: QueueMessage) -> bool:
        """Handle one message.

        Returns:
            True if the message was acknowledged
        """
        try:
            disposition = await self._process(message)
        except Exception as e:
            log_error(
                logger,
                "Failed to handle message; leaving it for redelivery",
                exception=e,
                message_id=message.message_id,
            )
            disposition = "error"

        DISPATCHER_MESSAGES_TOTAL.labels(disposition=disposition).inc()
        if disposition in ("error", "retry"):
            return False

        try:
            await self._acknowledge(message)
        except Exception as e:
            log_error(
                logger,
                "Failed to acknowledge message; it will be redelivered",
                exception=e,
                message_id=message.message_id,
            )
            return False
        return True

    async def _process(self, message: QueueMessage) -> str:
        parsed = parse_message_body(message.body)

        if parsed.kind == MessageKind.EMPTY:
            logger.info(f"Message {message.message_id} has an empty body")
            return "empty"

        if parsed.kind == MessageKind.TEST_EVENT:
            logger.info(f"Message {message.message_id} is a storage test event")
            return "test_event"

        if parsed.kind == MessageKind.MALFORMED:
            log_warning(
                logger,
                f"Rejecting malformed message: {parsed.error}",
                message_id=message.message_id,
            )
            return "rejected"

        outcomes = []
        for event in parsed.events:
            outcome = await self.dispatch_record(event)
            DISPATCHER_RECORDS_TOTAL.labels(outcome=outcome.value).inc()
            outcomes.append(outcome)

        if RecordOutcome.LAUNCH_FAILED in outcomes:
            return "retry"
        return "processed"

    async def _acknowledge(self, message: QueueMessage) -> None:
        await asyncio.to_thread(self.queue.acknowledge, message.receipt_handle)

    def derive_video_id(self, event: IngestionEvent, identity) -> str:
        """Video ID from the event time, falling back to the clock.

        Redeliveries of the same event carry the same event time and so
        map to the same video ID.
        """
        disambiguator = event.event_time_ms
        if disambiguator is None:
            disambiguator = int(self.clock() * 1000)
        return identity.video_id(disambiguator)

    async def dispatch_record(self, event: IngestionEvent) -> RecordOutcome:
        """Decide on one record and launch its job.

        Overlay store and status store errors before the launch propagate.
        """
        result = validate_object_key(event.object_key)
        if not result.is_valid:
            log_warning(
                logger,
                f"Rejected object key: {result.reason}",
                object_key=event.object_key,
                bucket=event.source_bucket,
            )
            return RecordOutcome.REJECTED

        identity = result.identity
        video_id = self.derive_video_id(event, identity)

        with bind_correlation_id(video_id), video_span(
            "dispatch_record", video_id, source=f"s3://{event.source_bucket}/{event.object_key}"
        ):
            overlay_key = None
            if self.overlay_resolver is not None:
                decision = await self.overlay_resolver.resolve(identity.owner)
                if not decision.proceed:
                    log_warning(
                        logger,
                        f"Dropping upload: {decision.reason}",
                        video_id=video_id,
                        owner=identity.owner,
                    )
                    return RecordOutcome.DROPPED
                overlay_key = decision.overlay_key

            if self.config.deduplicate_redeliveries:
                existing = await self.status_service.get(video_id)
                if existing is not None and existing.task_ref:
                    log_info(
                        logger,
                        "Job already launched for this upload",
                        video_id=video_id,
                        task_ref=existing.task_ref,
                    )
                    return RecordOutcome.DUPLICATE

            spec = JobSpec(
                source_bucket=event.source_bucket,
                video_key=event.object_key,
                destination_bucket=self.config.destination_bucket,
                output_prefix=build_output_prefix(video_id, self.config.output_root_prefix),
                video_id=video_id,
                watermark_key=overlay_key,
            )

            await self.status_service.create_pending(
                video_id,
                owner=identity.owner,
                title=identity.title,
                source_bucket=spec.source_bucket,
                source_key=spec.video_key,
                output_prefix=spec.output_prefix,
            )

            try:
                task_ref = await self.launcher.launch(spec)
            except TaskLaunchError as e:
                record_failure(e)
                log_error(logger, "Failed to launch transcoding job", exception=e, video_id=video_id)
                return RecordOutcome.LAUNCH_FAILED

            # The job is running; the record stays decided even if the reference is lost
            try:
                await self.status_service.record_launch(video_id, task_ref)
            except Exception as e:
                record_failure(e)
                log_error(
                    logger,
                    "Failed to record task reference for launched job",
                    exception=e,
                    video_id=video_id,
                    task_ref=task_ref,
                )
            log_info(logger, "Transcoding job launched", video_id=video_id, task_ref=task_ref)
            return RecordOutcome.LAUNCHED
