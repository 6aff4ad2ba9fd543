"""Tests for FFmpeg command construction and subprocess handling."""

import os
from unittest.mock import AsyncMock, patch

import pytest

from hls_pipeline.modules.transcoding.ffmpeg import EncoderError, FFmpegEncoder
from hls_pipeline.modules.transcoding.renditions import plan_renditions
from hls_pipeline.modules.transcoding.sprite import SpriteLayout


@pytest.fixture
def encoder() -> FFmpegEncoder:
    return FFmpegEncoder(ffmpeg_path="/usr/bin/ffmpeg", ffprobe_path="/usr/bin/ffprobe")


@pytest.fixture
def plan():
    return plan_renditions(segment_seconds=6)[0]


class TestRenditionCommand:

    def test_plain_rendition(self, encoder, plan) -> None:
        cmd = encoder.build_rendition_command("/work/in.mp4", plan, "/work/out")

        assert cmd[:4] == ["/usr/bin/ffmpeg", "-y", "-i", "/work/in.mp4"]
        assert cmd[cmd.index("-vf") + 1] == "scale=640:360"
        assert cmd[cmd.index("-hls_time") + 1] == "6"
        assert cmd[cmd.index("-hls_list_size") + 1] == "0"
        assert cmd[cmd.index("-hls_segment_filename") + 1] == os.path.join("/work/out", "360p/segment%03d.ts")
        assert cmd[-1] == os.path.join("/work/out", "360p/playlist.m3u8")
        assert "-filter_complex" not in cmd

    def test_overlay_rendition(self, encoder, plan) -> None:
        cmd = encoder.build_rendition_command("/work/in.mp4", plan, "/work/out", "/work/overlay.png")

        assert cmd.count("-i") == 2
        assert "/work/overlay.png" in cmd
        graph = cmd[cmd.index("-filter_complex") + 1]
        assert "scale=640:360" in graph
        assert "overlay=main_w-overlay_w-10:main_h-overlay_h-10" in graph
        assert "-vf" not in cmd

    def test_rate_arguments(self, encoder, plan) -> None:
        cmd = encoder.build_rendition_command("/work/in.mp4", plan, "/work/out")

        assert cmd[cmd.index("-b:v") + 1] == "800000"
        assert cmd[cmd.index("-b:a") + 1] == "96000"


class TestSpriteCommand:

    def test_single_sheet(self, encoder) -> None:
        layout = SpriteLayout(interval_seconds=5, columns=10, rows=3)

        cmd = encoder.build_sprite_command("/work/in.mp4", layout, "/work/out")

        assert cmd[cmd.index("-vf") + 1] == layout.filter_graph()
        assert cmd[cmd.index("-frames:v") + 1] == "1"
        assert "-an" in cmd
        assert cmd[-1] == os.path.join("/work/out", "sprite.jpg")


def _process(returncode: int, stdout: bytes = b"", stderr: bytes = b""):
    process = AsyncMock()
    process.returncode = returncode
    process.communicate.return_value = (stdout, stderr)
    return process


class TestSubprocess:

    @pytest.mark.asyncio
    async def test_probe_duration(self, encoder) -> None:
        process = _process(0, stdout=b'{"format": {"duration": "12.480000"}}')
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            assert await encoder.probe_duration("/work/in.mp4") == pytest.approx(12.48)

    @pytest.mark.asyncio
    async def test_probe_without_duration_fails(self, encoder) -> None:
        process = _process(0, stdout=b'{"format": {}}')
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(EncoderError):
                await encoder.probe_duration("/work/in.mp4")

    @pytest.mark.asyncio
    async def test_non_zero_exit_raises_with_stderr(self, encoder, plan, tmp_path) -> None:
        process = _process(1, stderr=b"Invalid data found when processing input")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(EncoderError, match="Invalid data found"):
                await encoder.encode_rendition("/work/in.mp4", plan, str(tmp_path))

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, encoder, tmp_path) -> None:
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            with pytest.raises(EncoderError, match="cannot start"):
                await encoder.generate_sprite("/work/in.mp4", SpriteLayout(), str(tmp_path))

    @pytest.mark.asyncio
    async def test_encode_creates_rendition_directory(self, encoder, plan, tmp_path) -> None:
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=_process(0))):
            playlist = await encoder.encode_rendition("/work/in.mp4", plan, str(tmp_path))

        assert (tmp_path / "360p").is_dir()
        assert playlist == os.path.join(str(tmp_path), "360p/playlist.m3u8")
