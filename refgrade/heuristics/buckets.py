"""
Coarse context buckets shared by the correction learner and the runtime
heuristics adapter.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from refgrade.utils.stats import ChromaDistribution, ExposureLevel

GLOBAL_BUCKET = "global"

UNDER_EXPOSED_L = 0.35
OVER_EXPOSED_L = 0.65


def _is_number(value: Optional[float]) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def _exposure_bucket(prefix: str, exposure: Optional[ExposureLevel]) -> str:
    median_l = exposure.median_l if exposure is not None else None
    if not _is_number(median_l):
        return f"{prefix}:unknown"
    if median_l < UNDER_EXPOSED_L:
        return f"{prefix}:under"
    if median_l > OVER_EXPOSED_L:
        return f"{prefix}:over"
    return f"{prefix}:normal"


def bucket_for_source_exposure(exposure: Optional[ExposureLevel]) -> str:
    """``exposure:under|normal|over|unknown`` from the source median L."""

    return _exposure_bucket("exposure", exposure)


def bucket_for_ref_exposure(exposure: Optional[ExposureLevel]) -> str:
    """``ref_exposure:under|normal|over|unknown`` from the reference median L."""

    return _exposure_bucket("ref_exposure", exposure)


def bucket_for_ref_color(chroma: Optional[ChromaDistribution]) -> str:
    """
    Classify the reference colour character from its global mean a/b/C.

    Checked in order: unknown, neutral (low chroma), foliage, brick, warm,
    cool, and neutral as the fallback.
    """

    if chroma is None:
        return "ref_color:unknown"
    a, b, c = chroma.mean_a, chroma.mean_b, chroma.mean_c
    if not (_is_number(a) and _is_number(b) and _is_number(c)):
        return "ref_color:unknown"

    if abs(c) < 0.02:
        return "ref_color:neutral"
    if a < -0.02 and b > 0.01:
        return "ref_color:foliage"
    if a > 0.02 and b > 0.01:
        return "ref_color:brick"
    if b > 0.01:
        return "ref_color:warm"
    if b < -0.01:
        return "ref_color:cool"
    return "ref_color:neutral"


def source_type_bucket(source_type: Optional[str]) -> Optional[str]:
    return f"source_type:{source_type}" if source_type else None


def exposure_score(exposure: Optional[ExposureLevel]) -> Optional[float]:
    """
    Continuous exposure score in [-1, 1].

    The under/over thresholds (0.35 and 0.65) map to -1 and +1.
    """

    if exposure is None or not _is_number(exposure.median_l):
        return None
    return float(np.clip((exposure.median_l - 0.5) / 0.15, -1.0, 1.0))
