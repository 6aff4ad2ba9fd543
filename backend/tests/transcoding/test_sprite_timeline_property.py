"""Property-based tests for the sprite timeline.

**Feature: hls-pipeline, Property: Sprite Timeline Coverage**
"""

from hypothesis import given, settings, strategies as st

from hls_pipeline.modules.transcoding.sprite import (
    SpriteLayout,
    build_sprite_timeline,
    fit_layout,
    format_timestamp,
    render_timeline_vtt,
    validate_sprite_layout,
)


duration_strategy = st.floats(min_value=0.001, max_value=6 * 3600, allow_nan=False, allow_infinity=False)
layout_strategy = st.builds(
    SpriteLayout,
    interval_seconds=st.integers(min_value=1, max_value=60),
    tile_width=st.integers(min_value=16, max_value=320),
    tile_height=st.integers(min_value=9, max_value=180),
    columns=st.integers(min_value=1, max_value=20),
    rows=st.integers(min_value=1, max_value=20),
)


class TestTimelineExample:

    def test_twelve_seconds_at_five_second_interval(self) -> None:
        layout = SpriteLayout(interval_seconds=5, tile_width=160, tile_height=90, columns=10, rows=10)

        entries = build_sprite_timeline(12, layout)

        assert [(e.start, e.end) for e in entries] == [(0, 5), (5, 10), (10, 12)]
        assert [(e.x, e.y) for e in entries] == [(0, 0), (160, 0), (320, 0)]

    def test_vtt_rendering(self) -> None:
        layout = SpriteLayout(interval_seconds=5, tile_width=160, tile_height=90, columns=10, rows=10)

        text = render_timeline_vtt(build_sprite_timeline(12, layout), "sprite.jpg")

        assert text == (
            "WEBVTT\n\n"
            "00:00:00.000 --> 00:00:05.000\nsprite.jpg#xywh=0,0,160,90\n\n"
            "00:00:05.000 --> 00:00:10.000\nsprite.jpg#xywh=160,0,160,90\n\n"
            "00:00:10.000 --> 00:00:12.000\nsprite.jpg#xywh=320,0,160,90\n\n"
        )

    def test_zero_duration_has_no_entries(self) -> None:
        assert build_sprite_timeline(0, SpriteLayout()) == []


class TestTimelineProperties:

    @given(duration=duration_strategy, layout=layout_strategy)
    @settings(max_examples=200, deadline=None)
    def test_entries_cover_duration(self, duration: float, layout: SpriteLayout) -> None:
        """For any duration, entries SHALL tile [0, D) contiguously in order."""
        entries = build_sprite_timeline(duration, layout)

        count = len(entries)
        assert (count - 1) * layout.interval_seconds < duration <= count * layout.interval_seconds
        assert entries[0].start == 0
        assert entries[-1].end == duration
        for previous, current in zip(entries, entries[1:]):
            assert previous.end == current.start
        for entry in entries:
            assert entry.start < entry.end

    @given(duration=duration_strategy, layout=layout_strategy)
    @settings(max_examples=200, deadline=None)
    def test_tile_positions_are_row_major(self, duration: float, layout: SpriteLayout) -> None:
        """For any entry i, x = (i mod cols) * w and y = floor(i / cols) * h."""
        for entry in build_sprite_timeline(duration, layout):
            assert entry.x == (entry.index % layout.columns) * layout.tile_width
            assert entry.y == (entry.index // layout.columns) * layout.tile_height
            assert (entry.width, entry.height) == (layout.tile_width, layout.tile_height)

    @given(duration=duration_strategy, layout=layout_strategy)
    @settings(max_examples=200, deadline=None)
    def test_fitted_layout_holds_every_tile(self, duration: float, layout: SpriteLayout) -> None:
        """A fitted layout SHALL never be smaller than the tile count and keeps its columns."""
        fitted = fit_layout(layout, duration)

        assert fitted.capacity >= layout.tile_count(duration)
        assert fitted.columns == layout.columns
        assert fitted.rows >= layout.rows

    @given(duration=duration_strategy, layout=layout_strategy)
    @settings(max_examples=50, deadline=None)
    def test_rendering_is_deterministic(self, duration: float, layout: SpriteLayout) -> None:
        first = render_timeline_vtt(build_sprite_timeline(duration, layout))
        second = render_timeline_vtt(build_sprite_timeline(duration, layout))

        assert first == second


class TestTimestampFormat:

    def test_formats(self) -> None:
        assert format_timestamp(0) == "00:00:00.000"
        assert format_timestamp(5) == "00:00:05.000"
        assert format_timestamp(61.5) == "00:01:01.500"
        assert format_timestamp(3723.042) == "01:02:03.042"

    @given(ms=st.integers(min_value=0, max_value=99 * 3_600_000))
    @settings(max_examples=200, deadline=None)
    def test_round_trips_integer_milliseconds(self, ms: int) -> None:
        text = format_timestamp(ms / 1000)
        hours, minutes, rest = text.split(":")
        seconds, millis = rest.split(".")

        assert len(hours) >= 2 and len(minutes) == 2 and len(seconds) == 2 and len(millis) == 3
        assert ((int(hours) * 60 + int(minutes)) * 60 + int(seconds)) * 1000 + int(millis) == ms


class TestLayout:

    def test_filter_graph(self) -> None:
        layout = SpriteLayout(interval_seconds=5, tile_width=160, tile_height=90, columns=10, rows=10)

        assert layout.filter_graph().startswith("fps=1/5,scale=160:90")
        assert layout.filter_graph().endswith("tile=10x10")

    def test_overflowing_duration_grows_rows(self) -> None:
        layout = SpriteLayout(interval_seconds=5, columns=10, rows=10)

        fitted = fit_layout(layout, 1000)

        assert fitted.rows == 20
        assert build_sprite_timeline(1000, fitted)[-1].y == 19 * layout.tile_height

    def test_invalid_layout(self) -> None:
        is_valid, errors = validate_sprite_layout(SpriteLayout(interval_seconds=0, columns=0))

        assert not is_valid
        assert len(errors) == 2
