"""Learned correction heuristics: bucket classifier, adapter and learner."""

from refgrade.heuristics.adapter import (
    MatchContext,
    apply_heuristics_to_match,
    parse_learned_heuristics,
)
from refgrade.heuristics.buckets import (
    bucket_for_ref_color,
    bucket_for_ref_exposure,
    bucket_for_source_exposure,
    exposure_score,
)
from refgrade.heuristics.learn import CorrectionRecord, learn_heuristics

__all__ = [
    "MatchContext",
    "apply_heuristics_to_match",
    "parse_learned_heuristics",
    "bucket_for_source_exposure",
    "bucket_for_ref_exposure",
    "bucket_for_ref_color",
    "exposure_score",
    "CorrectionRecord",
    "learn_heuristics",
]
