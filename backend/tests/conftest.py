"""Shared fixtures: in-memory object store, fake encoder, SQLite metadata store."""

import os
from typing import Optional

import pytest
import pytest_asyncio

from hls_pipeline.core.aws import AWSConfig
from hls_pipeline.core.database import create_all, create_engine, create_session_maker
from hls_pipeline.core.storage import ObjectStorage
from hls_pipeline.modules.transcoding.ffmpeg import Encoder, EncoderError
from hls_pipeline.modules.transcoding.renditions import RenditionPlan
from hls_pipeline.modules.transcoding.sprite import SpriteLayout
from hls_pipeline.modules.video import models  # noqa: F401


class FakeS3Client:
    """Stands in for a boto3 S3 client, keeping objects in a dict."""

    def __init__(self, objects: Optional[dict] = None, fail_put_keys: tuple = ()):
        self.objects: dict[tuple[str, str], bytes] = dict(objects or {})
        self.content_types: dict[tuple[str, str], str] = {}
        self.fail_put_keys = fail_put_keys

    def download_file(self, bucket: str, key: str, filename: str) -> None:
        if (bucket, key) not in self.objects:
            raise RuntimeError(f"NoSuchKey: {key}")
        with open(filename, "wb") as f:
            f.write(self.objects[(bucket, key)])

    def put_object(self, Bucket: str, Key: str, Body, ContentType: str) -> dict:
        if any(Key.endswith(suffix) for suffix in self.fail_put_keys):
            raise RuntimeError("SlowDown")
        data = Body if isinstance(Body, bytes) else Body.read()
        self.objects[(Bucket, Key)] = data
        self.content_types[(Bucket, Key)] = ContentType
        return {"ETag": '"etag"'}

    def keys(self, bucket: str) -> list[str]:
        return sorted(key for b, key in self.objects if b == bucket)


class FakeEncoder(Encoder):
    """Writes placeholder outputs instead of running ffmpeg."""

    def __init__(self, duration: float = 12.0, fail_renditions: tuple = (), fail_sprite: bool = False):
        self.duration = duration
        self.fail_renditions = fail_renditions
        self.fail_sprite = fail_sprite
        self.overlays: list[Optional[str]] = []
        self.sprite_layouts: list[SpriteLayout] = []

    async def probe_duration(self, input_path: str) -> float:
        return self.duration

    async def encode_rendition(
        self,
        input_path: str,
        plan: RenditionPlan,
        output_dir: str,
        overlay_path: Optional[str] = None,
    ) -> str:
        self.overlays.append(overlay_path)
        if plan.name in self.fail_renditions:
            raise EncoderError(f"ffmpeg {plan.name} failed with exit code 1: Conversion failed!")
        rendition_dir = os.path.join(output_dir, plan.name)
        os.makedirs(rendition_dir, exist_ok=True)
        with open(os.path.join(rendition_dir, "segment000.ts"), "wb") as f:
            f.write(b"\x47" * 188)
        playlist = os.path.join(output_dir, plan.playlist_path)
        with open(playlist, "w") as f:
            f.write("#EXTM3U\n#EXTINF:10.0,\nsegment000.ts\n#EXT-X-ENDLIST\n")
        return playlist

    async def generate_sprite(self, input_path: str, layout: SpriteLayout, output_dir: str) -> str:
        self.sprite_layouts.append(layout)
        if self.fail_sprite:
            raise EncoderError("ffmpeg sprite failed with exit code 1")
        path = os.path.join(output_dir, layout.image_name)
        with open(path, "wb") as f:
            f.write(b"\xff\xd8\xff")
        return path


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client({
        ("uploads", "alice###trip.mp4"): b"source-video",
        ("uploads", "overlays/alice.png"): b"png",
    })


@pytest.fixture
def storage(s3_client) -> ObjectStorage:
    return ObjectStorage(AWSConfig(region="eu-west-1"), client=s3_client)


@pytest.fixture
def encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}")
    await create_all(engine)
    yield create_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def encoder_factory():
    return FakeEncoder
