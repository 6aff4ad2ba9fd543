"""S3 object storage for source videos and HLS outputs."""

import json
import mimetypes
import os
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

from hls_pipeline.core.aws import AWSConfig, create_client


# Content types for the files an HLS package is made of
CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".vtt": "text/vtt",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".json": "application/json",
    ".mp4": "video/mp4",
}


class ObjectStorageError(Exception):
    """Raised when an object cannot be fetched from storage."""
    pass


@dataclass
class StorageResult:
    """Result of a storage operation."""
    success: bool
    bucket: str
    key: str
    url: str
    file_size: int = 0
    etag: Optional[str] = None
    error_message: Optional[str] = None


def guess_content_type(path: str) -> str:
    """Get the content type for a file name."""
    extension = os.path.splitext(path)[1].lower()
    if extension in CONTENT_TYPES:
        return CONTENT_TYPES[extension]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


class ObjectStorage:
    """S3-backed storage.

    Buckets are passed per call: a job reads from the source bucket and
    writes to the destination bucket with the same client.
    """

    def __init__(
        self,
        aws_config: AWSConfig,
        cdn_domain: Optional[str] = None,
        client: Any = None,
    ):
        self.aws_config = aws_config
        self.cdn_domain = cdn_domain
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            self._client = create_client("s3", self.aws_config)
        return self._client

    def get_url(self, bucket: str, key: str) -> str:
        """Get the public URL of an object.

        Keys are percent-encoded; video keys carry the ``###`` separator
        which would otherwise start a URL fragment.
        """
        encoded_key = quote(key, safe="/")
        if self.cdn_domain:
            return f"https://{self.cdn_domain}/{encoded_key}"
        if self.aws_config.endpoint_url:
            return f"{self.aws_config.endpoint_url.rstrip('/')}/{bucket}/{encoded_key}"
        return f"https://{bucket}.s3.{self.aws_config.region}.amazonaws.com/{encoded_key}"

    def download(self, bucket: str, key: str, destination: str) -> int:
        """Download an object to a local path.

        Returns:
            Size of the downloaded file in bytes

        Raises:
            ObjectStorageError: If the object cannot be fetched
        """
        try:
            self._get_client().download_file(bucket, key, destination)
            return os.path.getsize(destination)
        except Exception as e:
            raise ObjectStorageError(f"Failed to download s3://{bucket}/{key}: {e}") from e

    def upload_file(
        self,
        file_path: str,
        bucket: str,
        key: str,
        content_type: Optional[str] = None,
    ) -> StorageResult:
        """Upload a local file."""
        try:
            client = self._get_client()
            file_size = os.path.getsize(file_path)

            with open(file_path, "rb") as f:
                response = client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type or guess_content_type(file_path),
                )

            return StorageResult(
                success=True,
                bucket=bucket,
                key=key,
                url=self.get_url(bucket, key),
                file_size=file_size,
                etag=response.get("ETag", "").strip('"'),
            )
        except Exception as e:
            return StorageResult(
                success=False,
                bucket=bucket,
                key=key,
                url="",
                error_message=str(e),
            )

    def put_json(self, bucket: str, key: str, document: dict) -> StorageResult:
        """Serialize a document and store it as a JSON object."""
        body = json.dumps(document, indent=2).encode("utf-8")
        try:
            response = self._get_client().put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType="application/json",
            )
            return StorageResult(
                success=True,
                bucket=bucket,
                key=key,
                url=self.get_url(bucket, key),
                file_size=len(body),
                etag=response.get("ETag", "").strip('"'),
            )
        except Exception as e:
            return StorageResult(
                success=False,
                bucket=bucket,
                key=key,
                url="",
                error_message=str(e),
            )
