"""Pydantic schemas for storage notifications delivered through the queue."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

TEST_EVENT_NAME = "s3:TestEvent"


class S3Bucket(BaseModel):
    """Bucket section of a notification record."""
    model_config = ConfigDict(extra="ignore")

    name: str


class S3Object(BaseModel):
    """Object section of a notification record. The key is URL-encoded."""
    model_config = ConfigDict(extra="ignore")

    key: str
    size: Optional[int] = None


class S3Entity(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    bucket: S3Bucket
    object_: S3Object = Field(..., alias="object")


class S3EventRecord(BaseModel):
    """One object-creation record."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_name: Optional[str] = Field(None, alias="eventName")
    event_time: Optional[datetime] = Field(None, alias="eventTime")
    s3: S3Entity


class S3Notification(BaseModel):
    """Notification body carrying object-creation records."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    records: list[S3EventRecord] = Field(default_factory=list, alias="Records")


class S3TestEvent(BaseModel):
    """Synthetic connectivity test sent when notifications are configured."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event: str = Field(..., alias="Event")
