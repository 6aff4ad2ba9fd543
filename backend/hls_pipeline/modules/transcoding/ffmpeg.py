"""FFmpeg encoder for HLS renditions and thumbnail sprites.

The job only depends on the ``Encoder`` interface; ``FFmpegEncoder`` backs
it with ffmpeg/ffprobe subprocesses.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

from hls_pipeline.modules.transcoding.renditions import RenditionPlan
from hls_pipeline.modules.transcoding.sprite import SpriteLayout

logger = logging.getLogger(__name__)

# Overlay position: bottom-right corner with a 10px margin
OVERLAY_POSITION = "main_w-overlay_w-10:main_h-overlay_h-10"

# Keep only the tail of stderr in error messages
_STDERR_TAIL_CHARS = 2000


class EncoderError(Exception):
    """Raised when ffmpeg or ffprobe fails."""
    pass


class Encoder(ABC):
    """Capability interface of the external encoder."""

    @abstractmethod
    async def probe_duration(self, input_path: str) -> float:
        """Return the duration of a media file in seconds."""

    @abstractmethod
    async def encode_rendition(
        self,
        input_path: str,
        plan: RenditionPlan,
        output_dir: str,
        overlay_path: Optional[str] = None,
    ) -> str:
        """Encode one rendition into ``output_dir``; return its playlist path."""

    @abstractmethod
    async def generate_sprite(
        self,
        input_path: str,
        layout: SpriteLayout,
        output_dir: str,
    ) -> str:
        """Render the sprite sheet into ``output_dir``; return the image path."""


class FFmpegEncoder(Encoder):
    """FFmpeg-based encoder."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        """Initialize encoder.

        Args:
            ffmpeg_path: Path to ffmpeg binary
            ffprobe_path: Path to ffprobe binary
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def build_probe_command(self, input_path: str) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            input_path,
        ]

    def build_rendition_command(
        self,
        input_path: str,
        plan: RenditionPlan,
        output_dir: str,
        overlay_path: Optional[str] = None,
    ) -> list[str]:
        """Build the FFmpeg command for one HLS rendition.

        Args:
            input_path: Source video
            plan: Rendition plan
            output_dir: Output root; the rendition writes under ``<name>/``
            overlay_path: Optional image composited over the video

        Returns:
            FFmpeg command as list of arguments
        """
        width, height = plan.profile.width, plan.profile.height
        scale = f"scale={width}:{height}"

        cmd = [self.ffmpeg_path, "-y", "-i", input_path]
        if overlay_path:
            cmd.extend(["-i", overlay_path])
            cmd.extend([
                "-filter_complex",
                f"[0:v]{scale}[base];[base][1:v]overlay={OVERLAY_POSITION}[v]",
                "-map", "[v]",
                "-map", "0:a?",
            ])
        else:
            cmd.extend(["-vf", scale])

        cmd.extend(plan.encoder_args())
        cmd.extend([
            "-f", "hls",
            "-hls_time", str(plan.segment_seconds),
            "-hls_list_size", "0",
            "-hls_segment_filename", os.path.join(output_dir, plan.segment_pattern),
            os.path.join(output_dir, plan.playlist_path),
        ])
        return cmd

    def build_sprite_command(
        self,
        input_path: str,
        layout: SpriteLayout,
        output_dir: str,
    ) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-i", input_path,
            "-vf", layout.filter_graph(),
            "-an",
            "-frames:v", "1",
            os.path.join(output_dir, layout.image_name),
        ]

    async def _run(self, cmd: list[str], label: str) -> str:
        """Run a command and return its stdout.

        Raises:
            EncoderError: If the binary is missing or exits non-zero
        """
        logger.debug(f"Running {label}: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EncoderError(f"{label}: cannot start {cmd[0]}: {e}") from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL_CHARS:].strip()
            raise EncoderError(f"{label} failed with exit code {process.returncode}: {tail}")
        return stdout.decode("utf-8", errors="replace")

    async def probe_duration(self, input_path: str) -> float:
        output = await self._run(self.build_probe_command(input_path), "ffprobe")
        try:
            info = json.loads(output)
            duration = float(info["format"]["duration"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise EncoderError(f"ffprobe returned no usable duration for {input_path}: {e}") from e
        if duration <= 0:
            raise EncoderError(f"ffprobe reported a non-positive duration for {input_path}")
        return duration

    async def encode_rendition(
        self,
        input_path: str,
        plan: RenditionPlan,
        output_dir: str,
        overlay_path: Optional[str] = None,
    ) -> str:
        os.makedirs(os.path.join(output_dir, plan.name), exist_ok=True)
        logger.info(f"Starting HLS transcode for {plan.name}")
        await self._run(
            self.build_rendition_command(input_path, plan, output_dir, overlay_path),
            f"ffmpeg {plan.name}",
        )
        logger.info(f"Finished HLS transcode for {plan.name}")
        return os.path.join(output_dir, plan.playlist_path)

    async def generate_sprite(
        self,
        input_path: str,
        layout: SpriteLayout,
        output_dir: str,
    ) -> str:
        os.makedirs(output_dir, exist_ok=True)
        await self._run(self.build_sprite_command(input_path, layout, output_dir), "ffmpeg sprite")
        return os.path.join(output_dir, layout.image_name)
