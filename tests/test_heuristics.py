"""Tests for bucket classification and the heuristics adapter."""

from __future__ import annotations

import math

import pytest

from refgrade.core.config import MatchParams, clamp_match_param
from refgrade.heuristics.adapter import (
    HeuristicsBucket,
    MatchContext,
    ParamHeuristics,
    apply_heuristics_to_match,
    exposure_weights,
    parse_learned_heuristics,
    regularise_count,
)
from refgrade.heuristics.buckets import (
    bucket_for_ref_color,
    bucket_for_ref_exposure,
    bucket_for_source_exposure,
    exposure_score,
    source_type_bucket,
)
from refgrade.utils.stats import ChromaDistribution, ExposureLevel, ImageStats


@pytest.mark.parametrize(
    "median, expected",
    [(0.2, "exposure:under"), (0.5, "exposure:normal"), (0.8, "exposure:over")],
)
def test_source_exposure_bucket(median: float, expected: str) -> None:
    assert bucket_for_source_exposure(ExposureLevel(median_l=median)) == expected


def test_unknown_exposure_buckets() -> None:
    assert bucket_for_source_exposure(None) == "exposure:unknown"
    assert bucket_for_ref_exposure(ExposureLevel(median_l=math.nan)) == "ref_exposure:unknown"
    assert bucket_for_ref_exposure(ExposureLevel(median_l=0.7)) == "ref_exposure:over"


@pytest.mark.parametrize(
    "a, b, c, expected",
    [
        (0.0, 0.0, 0.01, "ref_color:neutral"),
        (-0.03, 0.02, 0.05, "ref_color:foliage"),
        (0.03, 0.02, 0.05, "ref_color:brick"),
        (0.0, 0.03, 0.05, "ref_color:warm"),
        (0.0, -0.03, 0.05, "ref_color:cool"),
        (0.03, 0.0, 0.05, "ref_color:neutral"),
        (math.nan, 0.0, 0.05, "ref_color:unknown"),
    ],
)
def test_ref_color_bucket(a: float, b: float, c: float, expected: str) -> None:
    assert bucket_for_ref_color(ChromaDistribution(mean_a=a, mean_b=b, mean_c=c)) == expected


def test_ref_color_bucket_missing() -> None:
    assert bucket_for_ref_color(None) == "ref_color:unknown"


def test_source_type_bucket() -> None:
    assert source_type_bucket("portrait") == "source_type:portrait"
    assert source_type_bucket(None) is None
    assert source_type_bucket("") is None


def test_exposure_score() -> None:
    assert exposure_score(ExposureLevel(median_l=0.5)) == pytest.approx(0.0)
    assert exposure_score(ExposureLevel(median_l=0.65)) == pytest.approx(1.0)
    assert exposure_score(ExposureLevel(median_l=0.35)) == pytest.approx(-1.0)
    assert exposure_score(ExposureLevel(median_l=0.95)) == 1.0
    assert exposure_score(None) is None


def test_regularise_count() -> None:
    assert regularise_count(3) == pytest.approx(0.5)
    assert regularise_count(0) == 0.0
    assert regularise_count(-2) == 0.0
    assert regularise_count(math.nan) == 0.0


def test_exposure_weights_are_normalised() -> None:
    names = ("exposure:under", "exposure:normal", "exposure:over")
    weights = dict(exposure_weights(0.0, names))
    assert sum(weights.values()) == pytest.approx(1.0)
    assert weights["exposure:under"] == pytest.approx(weights["exposure:over"])
    assert weights["exposure:normal"] > weights["exposure:over"]

    high = dict(exposure_weights(1.0, names))
    assert high["exposure:over"] > high["exposure:normal"] > high["exposure:under"]


def test_exposure_weights_without_score() -> None:
    names = ("a", "b", "c")
    assert exposure_weights(None, names, "b") == [("b", 1.0)]
    assert exposure_weights(math.nan, names) == [(n, pytest.approx(1 / 3)) for n in names]


def test_empty_table_is_identity() -> None:
    base = MatchParams(luma_strength=1.3)
    assert apply_heuristics_to_match(base, {}, MatchContext()) is base
    assert apply_heuristics_to_match(base, None, MatchContext()) is base


def test_global_and_colour_bucket_deltas() -> None:
    table = parse_learned_heuristics(
        {
            "lumaStrength": {
                "global": {"meanDelta": 0.2, "count": 3},
                "buckets": {"ref_color:warm": {"meanDelta": 0.6, "count": 1}},
            }
        }
    )
    ctx = MatchContext(ref_color_bucket="ref_color:warm")
    adjusted = apply_heuristics_to_match(MatchParams(), table, ctx)
    # 0.2 * 3/6 + (0.6 - 0.2) * 1/4
    assert adjusted.luma_strength == pytest.approx(1.2)
    assert adjusted.color_strength == 1.0


def test_exposure_axis_is_soft_weighted() -> None:
    table = parse_learned_heuristics(
        {"colorStrength": {"buckets": {"exposure:over": {"meanDelta": 0.5, "count": 3}}}}
    )
    ctx = MatchContext(source_exposure_bucket="exposure:over", source_exposure_score=1.0)
    adjusted = apply_heuristics_to_match(MatchParams(), table, ctx)

    w_over = dict(
        exposure_weights(1.0, ("exposure:under", "exposure:normal", "exposure:over"))
    )["exposure:over"]
    assert adjusted.color_strength == pytest.approx(1.0 + w_over * 0.25)


def test_adjusted_values_are_clamped() -> None:
    table = parse_learned_heuristics({"lumaStrength": {"global": {"meanDelta": 5.0, "count": 100}}})
    adjusted = apply_heuristics_to_match(MatchParams(), table, MatchContext())
    assert adjusted.luma_strength == 2.0


def test_excluded_keys_are_untouched() -> None:
    table = parse_learned_heuristics(
        {
            "lumaStrength": {"global": {"meanDelta": 0.4, "count": 3}},
            "blackStrength": {"global": {"meanDelta": 0.4, "count": 3}},
        }
    )
    adjusted = apply_heuristics_to_match(
        MatchParams(), table, MatchContext(), exclude=("blackStrength",)
    )
    assert adjusted.luma_strength == pytest.approx(1.2)
    assert adjusted.black_strength == 1.0


def test_parse_skips_malformed_entries() -> None:
    table = parse_learned_heuristics(
        {
            "lumaStrength": {
                "global": {"meanDelta": "nope"},
                "buckets": {"a": {"meanDelta": 0.1, "count": 2}, "b": 5},
            },
            "broken": 3,
        }
    )
    assert set(table) == {"lumaStrength"}
    assert table["lumaStrength"].global_bucket is None
    assert set(table["lumaStrength"].buckets) == {"a"}
    assert parse_learned_heuristics(None) == {}


def test_non_finite_global_mean_is_ignored() -> None:
    raw = {
        "lumaStrength": {
            "global": {"meanDelta": math.nan, "count": 5},
            "buckets": {"exposure:normal": {"meanDelta": 0.2, "count": 5}},
        }
    }
    table = parse_learned_heuristics(raw)
    assert table["lumaStrength"].global_bucket is None

    ctx = MatchContext(source_exposure_bucket="exposure:normal")
    # 0.2 * 5/8 from the bucket alone
    assert apply_heuristics_to_match(MatchParams(), table, ctx).luma_strength == pytest.approx(1.125)

    built = {
        "lumaStrength": ParamHeuristics(
            buckets={"exposure:normal": HeuristicsBucket(0.2, 5)},
            global_bucket=HeuristicsBucket(math.nan, 5),
        )
    }
    assert apply_heuristics_to_match(MatchParams(), built, ctx).luma_strength == pytest.approx(1.125)


def test_non_finite_bucket_mean_adds_nothing() -> None:
    table = {
        "lumaStrength": ParamHeuristics(buckets={"exposure:normal": HeuristicsBucket(math.nan, 5)})
    }
    ctx = MatchContext(source_exposure_bucket="exposure:normal")
    assert apply_heuristics_to_match(MatchParams(), table, ctx).luma_strength == 1.0

    parsed = parse_learned_heuristics(
        {"lumaStrength": {"buckets": {"exposure:normal": {"meanDelta": math.inf, "count": 1}}}}
    )
    assert parsed["lumaStrength"].buckets == {}


def test_clamp_match_param_default_for_nan() -> None:
    assert clamp_match_param("lumaStrength", math.nan, 1.3) == 1.3
    assert clamp_match_param("lumaStrength", math.nan) == 0.0
    assert clamp_match_param("lumaStrength", 5.0, 1.3) == 2.0


def test_context_from_stats() -> None:
    source = ImageStats(exposure_level=ExposureLevel(median_l=0.2))
    reference = ImageStats(
        exposure_level=ExposureLevel(median_l=0.5),
        chroma_distribution=ChromaDistribution(mean_a=0.0, mean_b=0.03, mean_c=0.05),
    )
    ctx = MatchContext.from_stats(source, reference, "landscape")

    assert ctx.source_exposure_bucket == "exposure:under"
    assert ctx.source_exposure_score == -1.0
    assert ctx.ref_exposure_bucket == "ref_exposure:normal"
    assert ctx.ref_exposure_score == pytest.approx(0.0)
    assert ctx.ref_color_bucket == "ref_color:warm"
    assert ctx.source_type_bucket == "source_type:landscape"

    bare = MatchContext.from_stats(source)
    assert bare.ref_exposure_bucket is None and bare.ref_color_bucket is None
