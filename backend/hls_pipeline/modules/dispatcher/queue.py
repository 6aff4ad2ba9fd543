"""SQS adapter for the ingestion queue."""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from hls_pipeline.core.aws import AWSConfig, create_client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueMessage:
    """A received message."""
    message_id: str
    receipt_handle: str
    body: Optional[str]


class SqsQueue:
    """Long-polling consumer of one SQS queue.

    Calls are blocking; the dispatcher runs them in worker threads.
    """

    def __init__(
        self,
        queue_url: str,
        aws_config: AWSConfig,
        max_messages: int = 1,
        wait_time_seconds: int = 20,
        visibility_timeout: int = 60,
        client: Any = None,
    ):
        self.queue_url = queue_url
        self.aws_config = aws_config
        self.max_messages = max_messages
        self.wait_time_seconds = wait_time_seconds
        self.visibility_timeout = visibility_timeout
        self._client = client

    def _get_client(self):
        """Get or create SQS client."""
        if self._client is None:
            self._client = create_client("sqs", self.aws_config)
        return self._client

    def receive(self) -> list[QueueMessage]:
        """Long-poll for messages; returns an empty list on timeout."""
        response = self._get_client().receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=self.max_messages,
            WaitTimeSeconds=self.wait_time_seconds,
            VisibilityTimeout=self.visibility_timeout,
        )
        return [
            QueueMessage(
                message_id=message["MessageId"],
                receipt_handle=message["ReceiptHandle"],
                body=message.get("Body"),
            )
            for message in response.get("Messages", [])
        ]

    def acknowledge(self, receipt_handle: str) -> None:
        """Delete a message so it is not redelivered."""
        self._get_client().delete_message(
            QueueUrl=self.queue_url,
            ReceiptHandle=receipt_handle,
        )
