"""Rendition catalog and planning for adaptive bitrate (HLS) output.

Planning is pure: it turns an ordered list of rendition profiles into the
encoder arguments and manifest bandwidth of each rendition, without
touching the filesystem.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional


_BITRATE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmM]?)\s*$")
_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

_UNIT_MULTIPLIERS = {"": 1, "k": 1_000, "m": 1_000_000}


@dataclass(frozen=True)
class RenditionProfile:
    """A single entry of the rendition catalog."""
    name: str
    width: int
    height: int
    video_bitrate: str  # e.g. "800k"
    audio_bitrate: str  # e.g. "96k"


# Default catalog, lowest to highest quality
DEFAULT_RENDITION_CATALOG: tuple[RenditionProfile, ...] = (
    RenditionProfile(name="360p", width=640, height=360, video_bitrate="800k", audio_bitrate="96k"),
    RenditionProfile(name="480p", width=854, height=480, video_bitrate="1400k", audio_bitrate="128k"),
    RenditionProfile(name="720p", width=1280, height=720, video_bitrate="2800k", audio_bitrate="128k"),
)


@dataclass(frozen=True)
class RenditionPlan:
    """Everything needed to encode one rendition and list it in the manifest."""
    profile: RenditionProfile
    video_bps: int
    audio_bps: int
    segment_seconds: int

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def bandwidth(self) -> int:
        """Declared manifest bandwidth: video plus audio bit rate."""
        return self.video_bps + self.audio_bps

    @property
    def resolution(self) -> str:
        return f"{self.profile.width}x{self.profile.height}"

    @property
    def playlist_path(self) -> str:
        """Rendition playlist, relative to the output root."""
        return f"{self.profile.name}/playlist.m3u8"

    @property
    def segment_pattern(self) -> str:
        """Segment file pattern, relative to the output root."""
        return f"{self.profile.name}/segment%03d.ts"

    def encoder_args(self) -> list[str]:
        """Encoder arguments for this rendition (codec and rate settings)."""
        return get_ffmpeg_args_for_rendition(self)


def parse_bitrate(value) -> int:
    """Parse a compact bit rate such as "800k" or "2.5M" into bits per second.

    Args:
        value: Bit rate string or integer

    Returns:
        Bit rate in bps

    Raises:
        ValueError: If the value is not a positive bit rate
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid bitrate: {value!r}")
    if isinstance(value, int):
        bps = value
    else:
        match = _BITRATE_RE.match(str(value))
        if not match:
            raise ValueError(f"Invalid bitrate: {value!r}")
        number, unit = match.groups()
        bps = int(round(float(number) * _UNIT_MULTIPLIERS[unit.lower()]))

    if bps <= 0:
        raise ValueError(f"Bitrate must be positive: {value!r}")
    return bps


def calculate_bandwidth(profile: RenditionProfile) -> int:
    """Manifest bandwidth of a profile (video + audio bit rate)."""
    return parse_bitrate(profile.video_bitrate) + parse_bitrate(profile.audio_bitrate)


def validate_rendition_catalog(profiles: Iterable[RenditionProfile]) -> tuple[bool, list[str]]:
    """Validate a rendition catalog.

    Args:
        profiles: Catalog to validate

    Returns:
        Tuple of (is_valid, error_messages)
    """
    profiles = list(profiles)
    errors = []

    if not profiles:
        errors.append("Rendition catalog must have at least one profile")

    seen_names = set()
    for profile in profiles:
        if not _SAFE_NAME_RE.match(profile.name):
            errors.append(f"Rendition name '{profile.name}' is not a safe directory name")
        if profile.name in seen_names:
            errors.append(f"Duplicate rendition name '{profile.name}'")
        seen_names.add(profile.name)

        if profile.width <= 0 or profile.height <= 0:
            errors.append(f"Dimensions must be positive for {profile.name}")

        for label, value in (("video", profile.video_bitrate), ("audio", profile.audio_bitrate)):
            try:
                parse_bitrate(value)
            except ValueError:
                errors.append(f"Invalid {label} bitrate '{value}' for {profile.name}")

    return len(errors) == 0, errors


def plan_renditions(
    profiles: Iterable[RenditionProfile] = DEFAULT_RENDITION_CATALOG,
    segment_seconds: int = 10,
) -> list[RenditionPlan]:
    """Plan every rendition of a catalog, preserving catalog order.

    Raises:
        ValueError: If the catalog is invalid
    """
    profiles = list(profiles)
    is_valid, errors = validate_rendition_catalog(profiles)
    if not is_valid:
        raise ValueError("; ".join(errors))
    if segment_seconds < 1:
        raise ValueError("Segment duration must be at least 1 second")

    return [
        RenditionPlan(
            profile=profile,
            video_bps=parse_bitrate(profile.video_bitrate),
            audio_bps=parse_bitrate(profile.audio_bitrate),
            segment_seconds=segment_seconds,
        )
        for profile in profiles
    ]


def load_rendition_catalog(raw_profiles: Optional[list[dict]]) -> tuple[RenditionProfile, ...]:
    """Build a catalog from configuration, or return the default one."""
    if not raw_profiles:
        return DEFAULT_RENDITION_CATALOG
    return tuple(
        RenditionProfile(
            name=str(item["name"]),
            width=int(item["width"]),
            height=int(item["height"]),
            video_bitrate=str(item["video_bitrate"]),
            audio_bitrate=str(item["audio_bitrate"]),
        )
        for item in raw_profiles
    )


def get_ffmpeg_args_for_rendition(plan: RenditionPlan) -> list[str]:
    """Get FFmpeg codec and rate arguments for a rendition.

    Scaling is not included here: it depends on whether an overlay is
    composited, so the encoder builds the filter graph.
    """
    return [
        "-c:v", "libx264",
        "-b:v", str(plan.video_bps),
        "-maxrate", str(int(plan.video_bps * 1.5)),
        "-bufsize", str(plan.video_bps * 2),
        "-c:a", "aac",
        "-b:a", str(plan.audio_bps),
        "-ac", "2",
    ]
