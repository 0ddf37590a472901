"""
Tests for variant selection: muxed lowest quality first, then any video.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from conftest import make_variant
from variant_selector import VariantNotFound, first_video, lowest_combined, select


def test_picks_lowest_combined():
    variants = [make_variant("22", 720), make_variant("18", 360), make_variant("160", 144, audio=False)]
    assert select(variants).format_id == "18"


def test_tie_goes_to_first_encountered():
    variants = [make_variant("a", 360), make_variant("b", 360)]
    assert select(variants).format_id == "a"


def test_unknown_height_counts_as_lowest():
    variants = [make_variant("a", 360), make_variant("b", 0)]
    assert select(variants).format_id == "b"


def test_falls_back_to_first_video_only():
    variants = [
        make_variant("140", 0, video=False, audio=True),
        make_variant("137", 1080, audio=False),
        make_variant("160", 144, audio=False),
    ]
    assert select(variants).format_id == "137"


def test_audio_only_is_not_found():
    with pytest.raises(VariantNotFound):
        select([make_variant("140", 0, video=False)])


def test_empty_is_not_found():
    with pytest.raises(VariantNotFound):
        select([])


def test_mp4_muxed_preferred_over_lower_webm():
    variants = [
        make_variant("17", 144, container="3gp"),
        make_variant("43", 144, container="webm"),
        make_variant("22", 720),
        make_variant("18", 360),
    ]
    assert select(variants).format_id == "18"


def test_non_mp4_muxed_used_when_no_mp4_muxed():
    variants = [make_variant("43", 360, container="webm"), make_variant("17", 144, container="3gp")]
    assert select(variants).format_id == "17"


def test_custom_policy_order():
    variants = [make_variant("137", 1080, audio=False), make_variant("18", 360)]
    assert select(variants, policies=[first_video, lowest_combined]).format_id == "137"


# =============================================================================
# Properties
# =============================================================================

variant_shapes = st.lists(
    st.tuples(
        st.booleans(),
        st.booleans(),
        st.integers(min_value=0, max_value=4320),
        st.sampled_from(["mp4", "webm", "3gp"]),
    ),
    max_size=15,
)


def build(shapes):
    return [make_variant(i, h, video=v, audio=a, container=c) for i, (v, a, h, c) in enumerate(shapes)]


@given(shapes=variant_shapes)
def test_selection_properties(shapes):
    variants = build(shapes)
    combined = [v for v in variants if v.has_video and v.has_audio]
    video = [v for v in variants if v.has_video]

    if combined:
        pool = [v for v in combined if v.container == "mp4"] or combined
        lowest = min(v.height for v in pool)
        expected = next(v for v in pool if v.height == lowest)
        assert select(variants) == expected
    elif video:
        assert select(variants) == video[0]
    else:
        with pytest.raises(VariantNotFound):
            select(variants)


@given(shapes=variant_shapes, data=st.data())
def test_combined_height_independent_of_order(shapes, data):
    variants = build(shapes)
    if not any(v.has_video and v.has_audio for v in variants):
        return
    shuffled = data.draw(st.permutations(variants))
    assert select(shuffled).height == select(variants).height
    assert select(list(variants)) == select(variants)
