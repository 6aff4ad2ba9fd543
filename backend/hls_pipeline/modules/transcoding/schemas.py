"""Pydantic schemas for the transcoding job.

``JobSpec`` is the parameter set bound to one job run; it travels as the
job's environment. ``ResultFile`` is the JSON document uploaded next to
the outputs.
"""

import os
import time
from datetime import datetime
from typing import Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from hls_pipeline.modules.ingest.validator import (
    build_output_prefix,
    validate_object_key,
)

ENV_SOURCE_BUCKET = "SOURCE_BUCKET"
ENV_DESTINATION_BUCKET = "DESTINATION_BUCKET"
ENV_VIDEO_KEY = "VIDEO_KEY"
ENV_OUTPUT_PREFIX = "OUTPUT_PREFIX"
ENV_WATERMARK_KEY = "WATERMARK_KEY"
ENV_VIDEO_ID = "VIDEO_ID"


class JobSpecError(ValueError):
    """Raised when a job environment is incomplete."""
    pass


class JobSpec(BaseModel):
    """Immutable parameters of one transcoding run."""
    model_config = ConfigDict(frozen=True)

    source_bucket: str
    video_key: str
    destination_bucket: str
    output_prefix: str
    video_id: str
    watermark_key: Optional[str] = None

    @property
    def source_uri(self) -> str:
        return f"s3://{self.source_bucket}/{self.video_key}"

    def output_key(self, relative_path: str) -> str:
        """Destination key of a file under the output tree."""
        return f"{self.output_prefix}{relative_path.replace(os.sep, '/')}"

    def to_environment(self) -> dict[str, str]:
        """Serialize to the job's environment variables."""
        env = {
            ENV_SOURCE_BUCKET: self.source_bucket,
            ENV_DESTINATION_BUCKET: self.destination_bucket,
            ENV_VIDEO_KEY: self.video_key,
            ENV_OUTPUT_PREFIX: self.output_prefix,
            ENV_VIDEO_ID: self.video_id,
        }
        if self.watermark_key:
            env[ENV_WATERMARK_KEY] = self.watermark_key
        return env

    @classmethod
    def from_environment(
        cls,
        env: Mapping[str, str],
        clock: Callable[[], float] = time.time,
        root_prefix: str = "processed/",
    ) -> "JobSpec":
        """Parse a job environment.

        ``VIDEO_ID`` and ``OUTPUT_PREFIX`` are derived from the video key
        and the current time when absent.

        Raises:
            JobSpecError: If a required variable is missing
        """
        missing = [
            name for name in (ENV_SOURCE_BUCKET, ENV_DESTINATION_BUCKET, ENV_VIDEO_KEY)
            if not env.get(name)
        ]
        if missing:
            raise JobSpecError(f"Missing job environment: {', '.join(missing)}")

        video_key = env[ENV_VIDEO_KEY]
        video_id = env.get(ENV_VIDEO_ID) or derive_video_id(video_key, int(clock() * 1000))
        output_prefix = env.get(ENV_OUTPUT_PREFIX) or build_output_prefix(video_id, root_prefix)
        if not output_prefix.endswith("/"):
            output_prefix = f"{output_prefix}/"

        return cls(
            source_bucket=env[ENV_SOURCE_BUCKET],
            video_key=video_key,
            destination_bucket=env[ENV_DESTINATION_BUCKET],
            output_prefix=output_prefix,
            video_id=video_id,
            watermark_key=env.get(ENV_WATERMARK_KEY) or None,
        )


def derive_video_id(video_key: str, disambiguator: int) -> str:
    """Video ID for a key that did not come through the dispatcher.

    Keys that follow the filename contract yield the same ID the
    dispatcher would derive for the same disambiguator.
    """
    result = validate_object_key(video_key)
    if result.is_valid:
        return result.identity.video_id(disambiguator)
    stem = os.path.splitext(video_key.rsplit("/", 1)[-1])[0]
    return f"{stem}-{disambiguator}"


class ResultFile(BaseModel):
    """Result document uploaded with the job outputs."""
    model_config = ConfigDict(populate_by_name=True)

    status: str
    source_video: str = Field(alias="sourceVideo")
    output_prefix: str = Field(alias="outputPrefix")
    master_playlist: Optional[str] = Field(default=None, alias="masterPlaylist")
    thumbnail_url: Optional[str] = Field(default=None, alias="thumbnailUrl")
    master_playlist_url: Optional[str] = Field(default=None, alias="masterPlaylistUrl")
    timestamp: datetime
    error: Optional[str] = None

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
