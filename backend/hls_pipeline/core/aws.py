"""boto3 client construction shared by S3, SQS and ECS adapters."""

from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.config import Config as BotoConfig


@dataclass(frozen=True)
class AWSConfig:
    """Connection settings for AWS (or an S3/SQS-compatible emulator)."""
    region: str = "us-east-1"
    endpoint_url: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    max_attempts: int = 5

    @classmethod
    def from_settings(cls, settings) -> "AWSConfig":
        return cls(
            region=settings.AWS_REGION,
            endpoint_url=settings.AWS_ENDPOINT_URL,
            access_key=settings.AWS_ACCESS_KEY_ID,
            secret_key=settings.AWS_SECRET_ACCESS_KEY,
        )


def create_client(service_name: str, config: AWSConfig) -> Any:
    """Create a boto3 client for a service.

    Credentials fall back to the default provider chain (task role, env,
    profile) unless static keys are configured.
    """
    client_kwargs = {
        "service_name": service_name,
        "region_name": config.region,
        "config": BotoConfig(
            retries={"max_attempts": config.max_attempts, "mode": "standard"},
            signature_version="s3v4" if service_name == "s3" else None,
            s3={"addressing_style": "path"} if config.endpoint_url else None,
        ),
    }

    if config.endpoint_url:
        client_kwargs["endpoint_url"] = config.endpoint_url

    if config.access_key and config.secret_key:
        client_kwargs["aws_access_key_id"] = config.access_key
        client_kwargs["aws_secret_access_key"] = config.secret_key

    return boto3.client(**client_kwargs)
