"""
Blend learned correction deltas into match parameters.

Deltas are weighted by context: soft Gaussian weights along the source
and reference exposure axes, one-hot weights for source type and
reference colour, and count-based regularisation so a single recorded
correction cannot dominate.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from refgrade.core.config import MatchParams, to_camel, clamp_match_param
from refgrade.heuristics.buckets import (
    bucket_for_ref_color,
    bucket_for_ref_exposure,
    bucket_for_source_exposure,
    exposure_score,
    source_type_bucket,
)
from refgrade.utils.stats import ImageStats

logger = logging.getLogger(__name__)

REGULARISATION_K = 3.0
EXPOSURE_SIGMA = 0.7

SOURCE_EXPOSURE_BUCKETS = ("exposure:under", "exposure:normal", "exposure:over")
REF_EXPOSURE_BUCKETS = ("ref_exposure:under", "ref_exposure:normal", "ref_exposure:over")
EXPOSURE_CENTERS = (-1.0, 0.0, 1.0)


@dataclass
class HeuristicsBucket:
    mean_delta: float
    count: float

    def to_dict(self) -> Dict[str, float]:
        return {"meanDelta": self.mean_delta, "count": self.count}


@dataclass
class ParamHeuristics:
    """Learned deltas for one match parameter."""

    buckets: Dict[str, HeuristicsBucket] = field(default_factory=dict)
    global_bucket: Optional[HeuristicsBucket] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"buckets": {k: v.to_dict() for k, v in self.buckets.items()}}
        if self.global_bucket is not None:
            data["global"] = self.global_bucket.to_dict()
        return data


LearnedHeuristics = Dict[str, ParamHeuristics]


def _parse_bucket(data: Any) -> Optional[HeuristicsBucket]:
    if not isinstance(data, Mapping):
        return None
    try:
        mean_delta = float(data.get("meanDelta"))
        count = float(data.get("count", 0))
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(mean_delta) and math.isfinite(count)):
        return None
    return HeuristicsBucket(mean_delta, count)


def parse_learned_heuristics(data: Optional[Mapping[str, Any]]) -> LearnedHeuristics:
    """
    Parse the learned-heuristics JSON table.

    Malformed buckets are skipped rather than rejected.
    """

    table: LearnedHeuristics = {}
    if not data:
        return table
    for key, entry in data.items():
        if not isinstance(entry, Mapping):
            continue
        buckets: Dict[str, HeuristicsBucket] = {}
        for name, raw in (entry.get("buckets") or {}).items():
            bucket = _parse_bucket(raw)
            if bucket is not None:
                buckets[name] = bucket
        table[key] = ParamHeuristics(buckets=buckets, global_bucket=_parse_bucket(entry.get("global")))
    return table


@dataclass
class MatchContext:
    """Bucket names and continuous scores describing one grading call."""

    source_exposure_bucket: Optional[str] = None
    source_exposure_score: Optional[float] = None
    source_type_bucket: Optional[str] = None
    ref_exposure_bucket: Optional[str] = None
    ref_exposure_score: Optional[float] = None
    ref_color_bucket: Optional[str] = None

    @classmethod
    def from_stats(
        cls,
        source: Optional[ImageStats] = None,
        reference: Optional[ImageStats] = None,
        source_type: Optional[str] = None,
    ) -> "MatchContext":
        ctx = cls(source_type_bucket=source_type_bucket(source_type))
        if source is not None:
            ctx.source_exposure_bucket = bucket_for_source_exposure(source.exposure_level)
            ctx.source_exposure_score = exposure_score(source.exposure_level)
        if reference is not None:
            ctx.ref_exposure_bucket = bucket_for_ref_exposure(reference.exposure_level)
            ctx.ref_exposure_score = exposure_score(reference.exposure_level)
            ctx.ref_color_bucket = bucket_for_ref_color(reference.chroma_distribution)
        return ctx


def regularise_count(count: float, k: float = REGULARISATION_K) -> float:
    """count / (count + k); 0 for non-positive or non-finite counts."""

    if count is None or not math.isfinite(count) or count <= 0:
        return 0.0
    return count / (count + k)


def exposure_weights(
    score: Optional[float],
    buckets: Sequence[str],
    fallback: Optional[str] = None,
    sigma: float = EXPOSURE_SIGMA,
) -> List[Tuple[str, float]]:
    """
    Soft weights over under/normal/over buckets for a continuous score.

    Without a usable score the fallback bucket gets the full weight, or
    the weight is split evenly when there is no fallback.
    """

    def hard() -> List[Tuple[str, float]]:
        if fallback is not None and fallback in buckets:
            return [(fallback, 1.0)]
        return [(name, 1.0 / len(buckets)) for name in buckets]

    if score is None or not math.isfinite(score):
        return hard()

    d = (score - np.asarray(EXPOSURE_CENTERS)) / sigma
    raw = np.exp(-0.5 * d * d)
    total = float(raw.sum())
    if not math.isfinite(total) or total < 1e-6:
        return hard()
    return [(name, float(w) / total) for name, w in zip(buckets, raw)]


def _bucket_delta(param: ParamHeuristics, name: str, global_mean: float) -> float:
    bucket = param.buckets.get(name)
    if bucket is None or not math.isfinite(bucket.mean_delta):
        return 0.0
    return (bucket.mean_delta - global_mean) * regularise_count(bucket.count)


def _total_delta(param: ParamHeuristics, ctx: MatchContext) -> float:
    glob = param.global_bucket
    total = 0.0
    global_mean = 0.0
    if glob is not None and math.isfinite(glob.mean_delta):
        total = glob.mean_delta * regularise_count(glob.count)
        global_mean = glob.mean_delta

    axes = (
        (ctx.source_exposure_score, ctx.source_exposure_bucket, SOURCE_EXPOSURE_BUCKETS),
        (ctx.ref_exposure_score, ctx.ref_exposure_bucket, REF_EXPOSURE_BUCKETS),
    )
    for score, bucket, names in axes:
        if bucket is None and score is None:
            continue
        for name, weight in exposure_weights(score, names, bucket):
            if weight > 0:
                total += weight * _bucket_delta(param, name, global_mean)

    for name in (ctx.source_type_bucket, ctx.ref_color_bucket):
        if name:
            total += _bucket_delta(param, name, global_mean)
    return total


def apply_heuristics_to_match(
    base: MatchParams,
    heuristics: Optional[LearnedHeuristics],
    ctx: MatchContext,
    exclude: Iterable[str] = (),
) -> MatchParams:
    """
    Add context-weighted learned deltas to each numeric match parameter.

    Parameters
    ----------
    base : MatchParams
        Analytic starting point
    heuristics : LearnedHeuristics or None
        Parsed table; an empty or missing table returns ``base`` unchanged
    ctx : MatchContext
        Buckets/scores for this call
    exclude : iterable of str
        camelCase keys left untouched

    Returns
    -------
    MatchParams
        New parameter set, each adjusted value clamped into its range.
    """

    if not heuristics:
        return base

    skipped = set(exclude)
    changes: Dict[str, float] = {}
    for f in fields(base):
        key = to_camel(f.name)
        value = getattr(base, f.name)
        if key in skipped or value is None:
            continue
        param = heuristics.get(key)
        if param is None:
            continue
        delta = _total_delta(param, ctx)
        changes[f.name] = clamp_match_param(key, value + delta, default=clamp_match_param(key, value))
        logger.debug("Heuristics %s: %.4f -> %.4f", key, value, changes[f.name])
    return replace(base, **changes)
