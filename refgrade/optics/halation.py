"""
Halation / highlight fill: veiling bloom on the brightest, textured highlights.

Highlights are gated to the top L percentile and weighted by local
(specular) variance on a downscaled grid, then the weight is upsampled
and used to lift L, warm the colour and collapse chroma.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.ndimage import uniform_filter

from refgrade.core.config import HighlightFill, clamp
from refgrade.utils.color import OklabTransform
from refgrade.utils.frame import LabPlanes, PixelFrame
from refgrade.utils.stats import percentile_inclusive

logger = logging.getLogger(__name__)


@dataclass
class HalationParameters:
    """Configuration for the halation stage."""

    highlight_percentile: float = 0.95
    min_highlight_l: float = 0.85
    lift_amount: float = 0.04
    saturation_collapse: float = 0.4
    warmth_a: float = 0.02
    warmth_b: float = 0.025
    max_downscale: int = 4
    min_downscale_dim: int = 64
    variance_kernel: int = 3
    specular_base: float = 0.3  # weight of any highlight; the rest comes from variance


class HalationStage:
    """
    Highlight bloom driven by :class:`HighlightFill` (strength, warmth).
    """

    def __init__(
        self,
        params: Optional[HalationParameters] = None,
        transform: Optional[OklabTransform] = None,
    ) -> None:
        self.params = params or HalationParameters()
        self.transform = transform or OklabTransform()

    def apply(self, frame: PixelFrame, fill: Optional[HighlightFill]) -> PixelFrame:
        if fill is None or not fill.strength > 0:
            return frame

        strength = clamp(fill.strength, 0.0, 1.0, 0.0)
        warmth = clamp(fill.warmth, -1.0, 1.0, 0.0)
        planes = LabPlanes.from_frame(frame, self.transform)

        weight = self.highlight_weight(planes.L, planes.mask)
        effect = np.minimum(1.0, strength * weight)
        active = planes.mask & (effect > 1e-6)
        logger.debug(
            "Halation: strength %.3f warmth %.3f, %d px affected",
            strength, warmth, int(np.count_nonzero(active)),
        )
        if not np.any(active):
            return frame.copy()

        p = self.params
        e = effect[active]
        L = planes.L[active] + e * p.lift_amount
        a = planes.a[active] + e * warmth * p.warmth_a
        b = planes.b[active] + e * warmth * p.warmth_b

        C = np.sqrt(a * a + b * b)
        ratio = np.where(C > 1e-6, 1.0 - e * p.saturation_collapse, 1.0)
        lab = np.stack([np.clip(L, 0.0, 1.0), a * ratio, b * ratio], axis=-1)

        out = frame.data.copy()
        out[active, :3] = self.transform.oklab_to_srgb8(lab)
        return PixelFrame(frame.width, frame.height, out)

    def highlight_weight(self, L: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Full-resolution bloom weight in [0, 1]; zero outside highlights."""

        height, width = L.shape
        L_down, mask_down = self._downscale(L, mask)
        p = self.params

        p95 = percentile_inclusive(L_down[mask_down], p.highlight_percentile, 1.0)
        L_hi = max(p.min_highlight_l, p95)

        variance = self._local_variance(L_down, mask_down)
        gate = mask_down & (L_down >= L_hi)
        max_var = float(variance[gate].max()) if np.any(gate) else 0.0
        var_scale = 1.0 / max_var if max_var > 1e-6 else 0.0

        highlights = mask_down & (L_down > L_hi)
        norm_var = np.minimum(1.0, variance * var_scale)
        weight_down = np.where(
            highlights, p.specular_base + (1.0 - p.specular_base) * norm_var, 0.0
        )
        return self._upsample(weight_down, width, height)

    def _downscale(self, L: np.ndarray, mask: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Masked box average over scale x scale blocks (partial edge blocks dropped)."""

        height, width = L.shape
        p = self.params
        scale = max(
            1,
            min(p.max_downscale, width // p.min_downscale_dim, height // p.min_downscale_dim),
        )
        if scale == 1:
            return np.where(mask, L, 0.0), mask.copy()

        sh, sw = max(1, height // scale), max(1, width // scale)
        crop_L = np.where(mask, L, 0.0)[: sh * scale, : sw * scale]
        crop_m = mask[: sh * scale, : sw * scale].astype(float)
        sums = crop_L.reshape(sh, scale, sw, scale).sum(axis=(1, 3))
        counts = crop_m.reshape(sh, scale, sw, scale).sum(axis=(1, 3))
        mask_down = counts > 0
        L_down = np.where(mask_down, sums / np.where(mask_down, counts, 1.0), 0.0)
        return L_down, mask_down

    def _local_variance(self, L: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Masked k x k variance with edge replication; zero where fewer than two samples."""

        k = self.params.variance_kernel
        m = mask.astype(float)
        v = np.where(mask, L, 0.0)
        area = float(k * k)
        n = uniform_filter(m, size=k, mode="nearest") * area
        s = uniform_filter(v, size=k, mode="nearest") * area
        sq = uniform_filter(v * v, size=k, mode="nearest") * area
        n = np.rint(n)
        valid = n > 1
        safe_n = np.where(valid, n, 1.0)
        mean = s / safe_n
        return np.where(valid, np.maximum(0.0, sq / safe_n - mean * mean), 0.0)

    @staticmethod
    def _upsample(src: np.ndarray, width: int, height: int) -> np.ndarray:
        """Bilinear upsample with corner-aligned sampling."""

        sh, sw = src.shape
        sx = np.arange(width) * ((sw - 1) / (width - 1)) if sw > 1 and width > 1 else np.zeros(width)
        sy = np.arange(height) * ((sh - 1) / (height - 1)) if sh > 1 and height > 1 else np.zeros(height)
        x0 = np.floor(sx).astype(int)
        y0 = np.floor(sy).astype(int)
        x1 = np.minimum(sw - 1, x0 + 1)
        y1 = np.minimum(sh - 1, y0 + 1)
        tx = (sx - x0)[np.newaxis, :]
        ty = (sy - y0)[:, np.newaxis]

        top = src[y0][:, x0] * (1.0 - tx) + src[y0][:, x1] * tx
        bottom = src[y1][:, x0] * (1.0 - tx) + src[y1][:, x1] * tx
        return top * (1.0 - ty) + bottom * ty
