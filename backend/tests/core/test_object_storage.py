"""Tests for S3 object storage URLs and transfers."""

import json

import pytest

from hls_pipeline.core.aws import AWSConfig
from hls_pipeline.core.storage import ObjectStorage, ObjectStorageError, guess_content_type


class TestUrls:

    def test_regional_url_encodes_separator(self) -> None:
        storage = ObjectStorage(AWSConfig(region="eu-west-1"), client=object())

        url = storage.get_url("media", "processed/alice###trip-1/master.m3u8")

        assert url == "https://media.s3.eu-west-1.amazonaws.com/processed/alice%23%23%23trip-1/master.m3u8"

    def test_cdn_domain_wins(self) -> None:
        storage = ObjectStorage(AWSConfig(endpoint_url="http://localhost:4566"), cdn_domain="cdn.example.com")

        assert storage.get_url("media", "a b.m3u8") == "https://cdn.example.com/a%20b.m3u8"

    def test_endpoint_url_uses_path_style(self) -> None:
        storage = ObjectStorage(AWSConfig(endpoint_url="http://localhost:4566/"))

        assert storage.get_url("media", "x/sprite.jpg") == "http://localhost:4566/media/x/sprite.jpg"


class TestContentTypes:

    @pytest.mark.parametrize("name, expected", [
        ("master.m3u8", "application/vnd.apple.mpegurl"),
        ("360p/segment000.ts", "video/mp2t"),
        ("thumbnails.vtt", "text/vtt"),
        ("sprite.jpg", "image/jpeg"),
        ("manifest.json", "application/json"),
        ("unknown.zzz", "application/octet-stream"),
    ])
    def test_guess(self, name, expected) -> None:
        assert guess_content_type(name) == expected


class TestTransfers:

    def test_download_missing_object_raises(self, storage, tmp_path) -> None:
        with pytest.raises(ObjectStorageError, match="s3://uploads/missing.mp4"):
            storage.download("uploads", "missing.mp4", str(tmp_path / "in.mp4"))

    def test_download_returns_size(self, storage, tmp_path) -> None:
        assert storage.download("uploads", "alice###trip.mp4", str(tmp_path / "in.mp4")) == len(b"source-video")

    def test_upload_failure_is_reported(self, storage, s3_client, tmp_path) -> None:
        path = tmp_path / "sprite.jpg"
        path.write_bytes(b"jpg")
        s3_client.fail_put_keys = ("sprite.jpg",)

        result = storage.upload_file(str(path), "media", "x/sprite.jpg")

        assert not result.success
        assert result.error_message == "SlowDown"

    def test_put_json(self, storage, s3_client) -> None:
        result = storage.put_json("media", "x/manifest.json", {"status": "COMPLETED"})

        assert result.success
        assert json.loads(s3_client.objects[("media", "x/manifest.json")]) == {"status": "COMPLETED"}
        assert s3_client.content_types[("media", "x/manifest.json")] == "application/json"
