"""Thumbnail sprite sheet layout and WebVTT timeline index.

The sheet is a grid of fixed-size tiles, one per sampling interval, laid
out in row-major order. The timeline maps each interval to its tile so a
player can show a preview while scrubbing.
"""

import math
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class SpriteLayout:
    """Sampling interval and tile grid of a sprite sheet."""
    interval_seconds: int = 5
    tile_width: int = 160
    tile_height: int = 90
    columns: int = 10
    rows: int = 10
    image_name: str = "sprite.jpg"
    index_name: str = "thumbnails.vtt"

    @property
    def capacity(self) -> int:
        return self.columns * self.rows

    def tile_count(self, duration: float) -> int:
        """Number of tiles needed to cover a duration."""
        if duration <= 0:
            return 0
        count = math.ceil(duration / self.interval_seconds)
        # Correct float rounding at exact multiples of the interval
        while count > 1 and (count - 1) * self.interval_seconds >= duration:
            count -= 1
        while count * self.interval_seconds < duration:
            count += 1
        return count

    def filter_graph(self) -> str:
        """FFmpeg filter that samples, scales and tiles frames in one pass."""
        w, h = self.tile_width, self.tile_height
        return (
            f"fps=1/{self.interval_seconds},"
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,"
            f"tile={self.columns}x{self.rows}"
        )


@dataclass(frozen=True)
class TimelineEntry:
    """One interval of the timeline and the tile that previews it."""
    index: int
    start: float
    end: float
    x: int
    y: int
    width: int
    height: int


def validate_sprite_layout(layout: SpriteLayout) -> tuple[bool, list[str]]:
    """Validate a sprite layout.

    Returns:
        Tuple of (is_valid, error_messages)
    """
    errors = []
    if layout.interval_seconds < 1:
        errors.append("Sprite interval must be at least 1 second")
    if layout.tile_width <= 0 or layout.tile_height <= 0:
        errors.append("Tile dimensions must be positive")
    if layout.columns < 1 or layout.rows < 1:
        errors.append("Sprite grid must have at least one column and one row")
    return len(errors) == 0, errors


def fit_layout(layout: SpriteLayout, duration: float) -> SpriteLayout:
    """Grow the sheet by rows when the duration needs more tiles than fit.

    The column count never changes, so tile positions of the first
    ``capacity`` tiles stay the same.
    """
    needed = layout.tile_count(duration)
    if needed <= layout.capacity:
        return layout
    return replace(layout, rows=math.ceil(needed / layout.columns))


def build_sprite_timeline(duration: float, layout: SpriteLayout) -> list[TimelineEntry]:
    """Map each sampling interval of a video to its sprite tile.

    Args:
        duration: Source duration in seconds
        layout: Sprite layout

    Returns:
        Entries in chronological order; ``ceil(duration / interval)`` of them
    """
    interval = layout.interval_seconds
    entries = []
    for i in range(layout.tile_count(duration)):
        entries.append(
            TimelineEntry(
                index=i,
                start=float(i * interval),
                end=float(min((i + 1) * interval, duration)),
                x=(i % layout.columns) * layout.tile_width,
                y=(i // layout.columns) * layout.tile_height,
                width=layout.tile_width,
                height=layout.tile_height,
            )
        )
    return entries


def format_timestamp(total_seconds: float) -> str:
    """Format seconds as a zero-padded ``HH:MM:SS.mmm`` timestamp."""
    total_ms = int(round(total_seconds * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    seconds, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def tile_fragment(entry: TimelineEntry) -> str:
    """Media fragment addressing one tile of the sheet."""
    return f"#xywh={entry.x},{entry.y},{entry.width},{entry.height}"


def render_timeline_vtt(entries: list[TimelineEntry], sprite_name: str = "sprite.jpg") -> str:
    """Render the WebVTT thumbnail index for a timeline."""
    lines = ["WEBVTT\n\n"]
    for entry in entries:
        lines.append(f"{format_timestamp(entry.start)} --> {format_timestamp(entry.end)}\n")
        lines.append(f"{sprite_name}{tile_fragment(entry)}\n\n")
    return "".join(lines)
