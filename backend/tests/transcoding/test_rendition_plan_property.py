"""Property-based tests for rendition planning.

**Feature: hls-pipeline, Property: Rendition Bandwidth**
"""

import pytest
from hypothesis import given, settings, strategies as st

from hls_pipeline.modules.transcoding.renditions import (
    DEFAULT_RENDITION_CATALOG,
    RenditionProfile,
    calculate_bandwidth,
    load_rendition_catalog,
    parse_bitrate,
    plan_renditions,
    validate_rendition_catalog,
)


kbps_strategy = st.integers(min_value=1, max_value=50_000)
name_strategy = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_-", min_size=1, max_size=12)


@st.composite
def profile_strategy(draw, name=None):
    return RenditionProfile(
        name=name or draw(name_strategy),
        width=draw(st.integers(min_value=16, max_value=7680)),
        height=draw(st.integers(min_value=16, max_value=4320)),
        video_bitrate=f"{draw(kbps_strategy)}k",
        audio_bitrate=f"{draw(st.integers(min_value=1, max_value=512))}k",
    )


@st.composite
def catalog_strategy(draw):
    names = draw(st.lists(name_strategy, min_size=1, max_size=6, unique=True))
    return [draw(profile_strategy(name=name)) for name in names]


class TestParseBitrate:

    @given(kbps=kbps_strategy)
    @settings(max_examples=100)
    def test_kilobit_suffix(self, kbps: int) -> None:
        """For any 'Nk' bit rate, the parsed value SHALL be N * 1000."""
        assert parse_bitrate(f"{kbps}k") == kbps * 1000
        assert parse_bitrate(f"{kbps}K") == kbps * 1000

    def test_megabit_suffix(self) -> None:
        assert parse_bitrate("2M") == 2_000_000
        assert parse_bitrate("2.5m") == 2_500_000

    def test_plain_numbers(self) -> None:
        assert parse_bitrate("128000") == 128000
        assert parse_bitrate(96000) == 96000

    @pytest.mark.parametrize("value", ["", "fast", "-5k", "0k", "12x", True, 0])
    def test_invalid_values(self, value) -> None:
        with pytest.raises(ValueError):
            parse_bitrate(value)


class TestBandwidth:

    def test_example_bandwidth(self) -> None:
        profile = RenditionProfile("360p", 640, 360, "800k", "96k")

        assert calculate_bandwidth(profile) == 896000
        assert plan_renditions([profile])[0].bandwidth == 896000

    @given(profile=profile_strategy())
    @settings(max_examples=100)
    def test_bandwidth_is_video_plus_audio(self, profile: RenditionProfile) -> None:
        """For any profile, bandwidth SHALL equal video plus audio bit rate."""
        plan = plan_renditions([profile])[0]

        assert plan.bandwidth == plan.video_bps + plan.audio_bps
        assert plan.bandwidth == calculate_bandwidth(profile)


class TestPlanning:

    @given(catalog=catalog_strategy(), segment_seconds=st.integers(min_value=1, max_value=30))
    @settings(max_examples=100)
    def test_plans_preserve_catalog_order(self, catalog, segment_seconds: int) -> None:
        """For any catalog, plans SHALL follow catalog order with per-name paths."""
        plans = plan_renditions(catalog, segment_seconds)

        assert [plan.name for plan in plans] == [profile.name for profile in catalog]
        for plan in plans:
            assert plan.playlist_path == f"{plan.name}/playlist.m3u8"
            assert plan.segment_pattern == f"{plan.name}/segment%03d.ts"
            assert plan.segment_seconds == segment_seconds
            assert plan.resolution == f"{plan.profile.width}x{plan.profile.height}"

    @given(catalog=catalog_strategy())
    @settings(max_examples=50)
    def test_planning_is_pure(self, catalog) -> None:
        assert plan_renditions(catalog) == plan_renditions(catalog)

    def test_default_catalog(self) -> None:
        plans = plan_renditions()

        assert [plan.name for plan in plans] == ["360p", "480p", "720p"]
        assert [plan.bandwidth for plan in plans] == [896000, 1528000, 2928000]

    def test_encoder_args_carry_bit_rates(self) -> None:
        plan = plan_renditions(DEFAULT_RENDITION_CATALOG)[0]
        args = plan.encoder_args()

        assert args[args.index("-b:v") + 1] == "800000"
        assert args[args.index("-b:a") + 1] == "96000"
        assert args[args.index("-maxrate") + 1] == "1200000"

    def test_empty_catalog_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            plan_renditions([])

    def test_invalid_segment_duration_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            plan_renditions(DEFAULT_RENDITION_CATALOG, segment_seconds=0)


class TestCatalogValidation:

    def test_duplicate_names(self) -> None:
        profile = RenditionProfile("360p", 640, 360, "800k", "96k")

        is_valid, errors = validate_rendition_catalog([profile, profile])

        assert not is_valid
        assert any("Duplicate" in error for error in errors)

    def test_unsafe_name(self) -> None:
        is_valid, errors = validate_rendition_catalog([RenditionProfile("../x", 640, 360, "800k", "96k")])

        assert not is_valid

    def test_non_positive_dimensions(self) -> None:
        is_valid, _ = validate_rendition_catalog([RenditionProfile("x", 0, 360, "800k", "96k")])

        assert not is_valid

    def test_bad_bitrate(self) -> None:
        is_valid, errors = validate_rendition_catalog([RenditionProfile("x", 640, 360, "fast", "96k")])

        assert not is_valid
        assert "video bitrate" in errors[0]

    def test_load_catalog_from_configuration(self) -> None:
        catalog = load_rendition_catalog([
            {"name": "1080p", "width": 1920, "height": 1080, "video_bitrate": "5000k", "audio_bitrate": "192k"},
        ])

        assert catalog == (RenditionProfile("1080p", 1920, 1080, "5000k", "192k"),)
        assert load_rendition_catalog(None) == DEFAULT_RENDITION_CATALOG
