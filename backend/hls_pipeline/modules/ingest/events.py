"""Parsing of queue message bodies into ingestion events."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from hls_pipeline.modules.ingest.schemas import (
    TEST_EVENT_NAME,
    S3Notification,
    S3TestEvent,
)
from hls_pipeline.modules.ingest.validator import decode_object_key


class MessageKind(str, Enum):
    """What a queue message body turned out to be."""
    EMPTY = "empty"
    TEST_EVENT = "test_event"
    NOTIFICATION = "notification"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class IngestionEvent:
    """A single object creation, with the key already URL-decoded."""
    source_bucket: str
    object_key: str
    raw_key: str
    event_name: Optional[str] = None
    event_time: Optional[datetime] = None
    object_size: Optional[int] = None

    @property
    def event_time_ms(self) -> Optional[int]:
        """Event time as epoch milliseconds, if the record carried one."""
        if self.event_time is None:
            return None
        return int(self.event_time.timestamp() * 1000)


@dataclass
class ParsedMessage:
    """Result of parsing one queue message body."""
    kind: MessageKind
    events: list[IngestionEvent] = field(default_factory=list)
    error: Optional[str] = None


def parse_message_body(body: Optional[str]) -> ParsedMessage:
    """Parse a queue message body.

    Args:
        body: Raw message body

    Returns:
        ParsedMessage; malformed bodies are reported, never raised, since
        they can never become valid on redelivery
    """
    if not body or not body.strip():
        return ParsedMessage(kind=MessageKind.EMPTY)

    try:
        payload = json.loads(body)
    except json.JSONDecodeError as e:
        return ParsedMessage(kind=MessageKind.MALFORMED, error=f"body is not JSON: {e}")

    if not isinstance(payload, dict):
        return ParsedMessage(kind=MessageKind.MALFORMED, error="body is not a JSON object")

    if "Event" in payload:
        try:
            test_event = S3TestEvent.model_validate(payload)
        except ValidationError as e:
            return ParsedMessage(kind=MessageKind.MALFORMED, error=str(e))
        if test_event.event == TEST_EVENT_NAME:
            return ParsedMessage(kind=MessageKind.TEST_EVENT)

    if "Records" not in payload:
        return ParsedMessage(kind=MessageKind.MALFORMED, error="body has no Records")

    try:
        notification = S3Notification.model_validate(payload)
    except ValidationError as e:
        return ParsedMessage(kind=MessageKind.MALFORMED, error=str(e))

    events = [
        IngestionEvent(
            source_bucket=record.s3.bucket.name,
            object_key=decode_object_key(record.s3.object_.key),
            raw_key=record.s3.object_.key,
            event_name=record.event_name,
            event_time=record.event_time,
            object_size=record.s3.object_.size,
        )
        for record in notification.records
    ]
    return ParsedMessage(kind=MessageKind.NOTIFICATION, events=events)
