"""
Offline learner: turn recorded user corrections into a heuristics table.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from refgrade.core.config import MatchParams
from refgrade.heuristics.adapter import HeuristicsBucket, ParamHeuristics
from refgrade.heuristics.buckets import (
    GLOBAL_BUCKET,
    bucket_for_ref_color,
    bucket_for_ref_exposure,
    bucket_for_source_exposure,
    source_type_bucket,
)
from refgrade.utils.stats import ChromaDistribution, ExposureLevel

logger = logging.getLogger(__name__)

MIN_BUCKET_COUNT = 1
MIN_ABS_DELTA = 0.001


@dataclass
class CorrectionRecord:
    """One stored correction: what the engine proposed and what the user kept."""

    auto_match: MatchParams
    corrected_match: MatchParams
    source_exposure: Optional[ExposureLevel] = None
    reference_exposure: Optional[ExposureLevel] = None
    reference_chroma: Optional[ChromaDistribution] = None
    source_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorrectionRecord":
        return cls(
            auto_match=MatchParams.from_dict(data.get("autoMatch") or {}),
            corrected_match=MatchParams.from_dict(data.get("correctedMatch") or {}),
            source_exposure=ExposureLevel.from_dict(data.get("sourceExposure")),
            reference_exposure=ExposureLevel.from_dict(data.get("referenceExposure")),
            reference_chroma=ChromaDistribution.from_dict(data.get("referenceChromaDistribution")),
            source_type=data.get("sourceType"),
        )


class _Aggregate:
    __slots__ = ("total", "count")

    def __init__(self) -> None:
        self.total = 0.0
        self.count = 0

    def add(self, delta: float) -> None:
        self.total += delta
        self.count += 1

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count > 0 else 0.0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def learn_heuristics(records: Iterable[CorrectionRecord]) -> Dict[str, Any]:
    """
    Aggregate ``corrected - auto`` per numeric match key and bucket.

    Returns a JSON-ready mapping with ``totalCorrections``, ``thresholds``,
    the raw per-bucket ``learned`` summary and the compact ``heuristics``
    table accepted by :func:`parse_learned_heuristics`.
    """

    stats: Dict[str, Dict[str, _Aggregate]] = {}
    total = 0

    for record in records:
        total += 1
        buckets = [
            GLOBAL_BUCKET,
            bucket_for_source_exposure(record.source_exposure),
            bucket_for_ref_exposure(record.reference_exposure),
            bucket_for_ref_color(record.reference_chroma),
        ]
        typed = source_type_bucket(record.source_type)
        if typed:
            buckets.append(typed)

        corrected = record.corrected_match.to_dict()
        for key, auto_value in record.auto_match.to_dict().items():
            corrected_value = corrected.get(key)
            if not (_is_number(auto_value) and _is_number(corrected_value)):
                continue
            delta = corrected_value - auto_value
            if not math.isfinite(delta) or delta == 0:
                continue
            by_bucket = stats.setdefault(key, {})
            for name in buckets:
                by_bucket.setdefault(name, _Aggregate()).add(delta)

    learned = {
        key: {
            "buckets": {
                name: {"meanDelta": agg.mean, "count": agg.count} for name, agg in by_bucket.items()
            }
        }
        for key, by_bucket in stats.items()
    }

    heuristics: Dict[str, Any] = {}
    for key, by_bucket in stats.items():
        kept = {
            name: HeuristicsBucket(agg.mean, agg.count)
            for name, agg in by_bucket.items()
            if agg.count >= MIN_BUCKET_COUNT and abs(agg.mean) >= MIN_ABS_DELTA
        }
        if not kept:
            continue
        heuristics[key] = ParamHeuristics(buckets=kept, global_bucket=kept.get(GLOBAL_BUCKET)).to_dict()

    logger.info("Learned heuristics for %d parameters from %d corrections", len(heuristics), total)
    return {
        "totalCorrections": total,
        "thresholds": {"minBucketCount": MIN_BUCKET_COUNT, "minAbsDelta": MIN_ABS_DELTA},
        "learned": learned,
        "heuristics": heuristics,
    }
