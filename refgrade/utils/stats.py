"""
Image statistics: lightness percentiles and chroma distribution in OKLab.

Used as correction context for the learned heuristics and as matching
targets. Transparent pixels never contribute.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from refgrade.utils.bands import BAND_COUNT, band_sums
from refgrade.utils.color import chroma
from refgrade.utils.frame import LabPlanes


def percentile_sorted(sorted_values: np.ndarray, p: float, default: float) -> float:
    """Percentile as ``sorted[floor(n * p)]``; ``default`` for empty input."""

    n = sorted_values.size
    if n == 0:
        return default
    idx = min(int(np.floor(n * p)), n - 1)
    return float(sorted_values[idx])


def percentile_inclusive(values: np.ndarray, p: float, default: float) -> float:
    """Percentile as ``sorted[floor(p * (n - 1))]`` with p clamped to [0, 1]."""

    n = values.size
    if n == 0:
        return default
    idx = int(np.floor(min(1.0, max(0.0, p)) * (n - 1)))
    return float(np.partition(values, idx)[idx])


@dataclass
class ExposureLevel:
    median_l: float = 0.5
    p05_l: float = 0.05
    p95_l: float = 0.95

    def to_dict(self) -> Dict[str, float]:
        return {"medianL": self.median_l, "p05L": self.p05_l, "p95L": self.p95_l}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, float]]) -> Optional["ExposureLevel"]:
        if not data:
            return None
        return cls(
            median_l=float(data.get("medianL", 0.5)),
            p05_l=float(data.get("p05L", 0.05)),
            p95_l=float(data.get("p95L", 0.95)),
        )


@dataclass
class ChromaBand:
    mean_a: float = 0.0
    mean_b: float = 0.0
    mean_c: float = 0.0
    weight: float = 0.0


def _neutral_bands() -> List[ChromaBand]:
    return [ChromaBand() for _ in range(BAND_COUNT)]


@dataclass
class ChromaDistribution:
    mean_a: float = 0.0
    mean_b: float = 0.0
    mean_c: float = 0.0
    bands: List[ChromaBand] = field(default_factory=_neutral_bands)

    def to_dict(self) -> Dict[str, object]:
        return {
            "meanA": self.mean_a,
            "meanB": self.mean_b,
            "meanC": self.mean_c,
            "bands": [
                {"meanA": b.mean_a, "meanB": b.mean_b, "meanC": b.mean_c, "weight": b.weight}
                for b in self.bands
            ],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, object]]) -> Optional["ChromaDistribution"]:
        if not data:
            return None
        bands = [
            ChromaBand(
                mean_a=float(b.get("meanA", 0.0)),
                mean_b=float(b.get("meanB", 0.0)),
                mean_c=float(b.get("meanC", 0.0)),
                weight=float(b.get("weight", 0.0)),
            )
            for b in data.get("bands", [])  # type: ignore[union-attr]
        ]
        return cls(
            mean_a=float(data.get("meanA", 0.0)),  # type: ignore[arg-type]
            mean_b=float(data.get("meanB", 0.0)),  # type: ignore[arg-type]
            mean_c=float(data.get("meanC", 0.0)),  # type: ignore[arg-type]
            bands=bands,
        )


@dataclass
class ImageStats:
    exposure_level: ExposureLevel = field(default_factory=ExposureLevel)
    chroma_distribution: ChromaDistribution = field(default_factory=ChromaDistribution)

    def to_dict(self) -> Dict[str, object]:
        return {
            "exposureLevel": self.exposure_level.to_dict(),
            "chromaDistribution": self.chroma_distribution.to_dict(),
        }


def compute_image_stats(planes: LabPlanes) -> ImageStats:
    """
    Compute exposure and chroma statistics over opaque pixels.

    Returns neutral defaults when the frame has no opaque pixels.
    """

    L = planes.L[planes.mask]
    if L.size == 0:
        return ImageStats()

    a = planes.a[planes.mask]
    b = planes.b[planes.mask]
    c = chroma(a, b)

    L_sorted = np.sort(L)
    exposure = ExposureLevel(
        median_l=percentile_sorted(L_sorted, 0.5, 0.5),
        p05_l=percentile_sorted(L_sorted, 0.05, 0.05),
        p95_l=percentile_sorted(L_sorted, 0.95, 0.95),
    )

    sum_a, sum_b, sum_c, sum_w = band_sums(L, a, b)
    bands = []
    for k in range(BAND_COUNT):
        w = float(sum_w[k])
        if w > 1e-9:
            bands.append(ChromaBand(float(sum_a[k] / w), float(sum_b[k] / w), float(sum_c[k] / w), w))
        else:
            bands.append(ChromaBand(weight=w))

    chroma_dist = ChromaDistribution(
        mean_a=float(np.mean(a)),
        mean_b=float(np.mean(b)),
        mean_c=float(np.mean(c)),
        bands=bands,
    )
    return ImageStats(exposure_level=exposure, chroma_distribution=chroma_dist)
