"""
Reference fitting: derive a parametric look from a single reference image.

All statistics run over opaque pixels in OKLab. The fitted look carries
three colour descriptions (global tints, a 16-band tint curve and 5-band
reference statistics); the applier picks the richest one available.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from refgrade.core.config import MatchParams, clamp
from refgrade.core.look import (
    ColorMatchBands,
    LookParams,
    SaturationCurve,
    SaturationShape,
    TintAB,
    TintCurve,
    Tone,
    ToneCurve,
)
from refgrade.heuristics.adapter import LearnedHeuristics, MatchContext, apply_heuristics_to_match
from refgrade.heuristics.buckets import bucket_for_ref_color, bucket_for_ref_exposure
from refgrade.preprocessing.blur import mid_detail_rms
from refgrade.utils.bands import BAND_COUNT, band_sums
from refgrade.utils.color import OklabTransform, chroma
from refgrade.utils.frame import LabPlanes, PixelFrame
from refgrade.utils.stats import ChromaDistribution, ExposureLevel, percentile_sorted

logger = logging.getLogger(__name__)

TONE_ANCHORS = (0.0, 0.05, 0.15, 0.3, 0.5, 0.7, 0.85, 1.0)
TONE_PERCENTILES = (0.02, 0.05, 0.15, 0.3, 0.5, 0.7, 0.85, 0.98)

L_BINS = 10
TINT_BANDS = 16
TINT_LOCAL_SCALE = 1.1
TINT_MAX_DELTA = 0.22
NEUTRAL_CHROMA = 0.10

# (black threshold, shadow spread threshold, blackStrength, blackRange)
# Deep, tight shadows get an aggressive black pull; lifted blacks a gentle one.
BLACK_REGIMES = (
    (0.015, 0.08, 4.5, 0.9),
    (0.03, 0.12, 3.5, 0.85),
    (0.03, None, 2.5, 0.8),
    (0.06, None, 1.8, 0.7),
)
LIFTED_BLACK_L = 0.09
LIFTED_BLACK_MATCH = (0.7, 0.45)
DEFAULT_BLACK_MATCH = (1.0, 0.6)


def tint_band_edges(n: int = TINT_BANDS) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Centres and inclusive [lo, hi] edges of the tint bands."""

    anchors = (np.arange(n) + 0.5) / n
    mids = (anchors[:-1] + anchors[1:]) / 2.0
    lo = np.concatenate([[0.0], mids])
    hi = np.concatenate([mids, [1.0]])
    return anchors, lo, hi


def black_match_for(ref_black: float, shadow_spread: float) -> Tuple[float, float]:
    """Pick (blackStrength, blackRange) from the reference black level and p25."""

    for black_max, spread_max, strength, black_range in BLACK_REGIMES:
        if ref_black < black_max and (spread_max is None or shadow_spread < spread_max):
            return strength, black_range
    if ref_black > LIFTED_BLACK_L:
        return LIFTED_BLACK_MATCH
    return DEFAULT_BLACK_MATCH


class ReferenceFitter:
    """
    Fit :class:`LookParams` from a reference frame.

    Parameters
    ----------
    heuristics : LearnedHeuristics, optional
        When present, reference-side buckets adjust blackStrength and
        blackRange after the analytic fit.
    """

    def __init__(
        self,
        heuristics: Optional[LearnedHeuristics] = None,
        transform: Optional[OklabTransform] = None,
    ) -> None:
        self.heuristics = heuristics
        self.transform = transform or OklabTransform()

    def fit(self, frame: PixelFrame) -> LookParams:
        return self.fit_planes(LabPlanes.from_frame(frame, self.transform))

    def fit_planes(self, planes: LabPlanes) -> LookParams:
        mask = planes.mask
        L = planes.L[mask]
        m = L.size
        if m == 0:
            logger.warning("Reference has no opaque pixels; returning neutral look")
            return LookParams.neutral()

        a = planes.a[mask]
        b = planes.b[mask]
        C = chroma(a, b)
        L_sorted = np.sort(L)

        p02 = percentile_sorted(L_sorted, 0.02, 0.02)
        p05 = percentile_sorted(L_sorted, 0.05, 0.05)
        p25 = percentile_sorted(L_sorted, 0.25, 0.25)
        p75 = percentile_sorted(L_sorted, 0.75, 0.75)
        p95 = percentile_sorted(L_sorted, 0.95, 0.95)
        ref_mid = percentile_sorted(L_sorted, 0.5, 0.5)
        # 2nd percentile is a truer black anchor than the 5th.
        ref_black = min(p02, p05)

        mean_a = float(np.mean(a))
        mean_b = float(np.mean(b))
        logger.debug(
            "Reference: %d px, p25=%.3f p50=%.3f p75=%.3f p95=%.3f mean a/b=(%.4f, %.4f)",
            m, p25, ref_mid, p75, p95, mean_a, mean_b,
        )

        tone = self._fit_tone(p25, p75, p95)
        saturation, shadow_tint, highlight_tint = self._fit_shadow_highlight(L, a, b, C, mean_b)
        shadow_contrast = clamp(0.15 / p25, 0.5, 2.0) if p25 > 0.05 else 1.0
        tone_curve = self._fit_tone_curve(L_sorted, p95)
        tint_curve, saturation_curve, mid_chroma = self._fit_tint_curves(L, a, b, C, mean_a, mean_b)
        match_bands = self._fit_match_bands(L, a, b, mean_a, mean_b, mid_chroma)

        median_c = float(np.sort(C)[m // 2])
        ref_saturation = (
            1.0 if median_c <= 1e-6 else clamp(median_c / NEUTRAL_CHROMA, 0.1, 2.5)
        )
        micro_contrast = mid_detail_rms(planes.L, mask)

        black_strength, black_range = black_match_for(ref_black, p25)
        if self.heuristics:
            ctx = MatchContext(
                ref_exposure_bucket=bucket_for_ref_exposure(ExposureLevel(ref_mid, p05, p95)),
                ref_color_bucket=bucket_for_ref_color(
                    ChromaDistribution(mean_a, mean_b, float(np.mean(C)))
                ),
            )
            adjusted = apply_heuristics_to_match(
                MatchParams(black_strength=black_strength, black_range=black_range),
                self.heuristics,
                ctx,
            )
            black_strength, black_range = adjusted.black_strength, adjusted.black_range
            logger.debug("Heuristics black match: strength=%.3f range=%.3f", black_strength, black_range)

        return LookParams(
            tone=tone,
            saturation=saturation,
            warmth=clamp(mean_b * 1.1, -0.35, 0.35),
            tint=clamp(mean_a * 0.7, -0.2, 0.2),
            shadow_tint=shadow_tint,
            highlight_tint=highlight_tint,
            shadow_contrast=shadow_contrast,
            tone_curve=tone_curve,
            tint_by_l=tint_curve,
            saturation_by_l=saturation_curve,
            color_match_bands=match_bands,
            ref_saturation=ref_saturation,
            micro_contrast_mid=micro_contrast,
            ref_mid_l=ref_mid,
            ref_black_l=ref_black,
            black_strength=black_strength,
            black_range=black_range,
        ).clamped()

    # ------------------------------------------------------------------
    # Tone
    # ------------------------------------------------------------------

    @staticmethod
    def _fit_tone(p25: float, p75: float, p95: float) -> Tone:
        lift = clamp(0.4 * (p25 - 0.25), -0.2, 0.2)
        gamma = clamp(1.0 + 0.6 * (0.5 - (p75 - p25)), 0.5, 2.0)
        gain = clamp(0.85 + 0.3 * (p75 / 0.75), 0.5, 2.0)
        if p95 > 0.92:
            gain = min(gain, 1.15)
        return Tone(lift=lift, gamma=gamma, gain=gain)

    @staticmethod
    def _fit_tone_curve(L_sorted: np.ndarray, p95: float) -> ToneCurve:
        m = L_sorted.size
        # Blown reference highlights cap the curve.
        max_l = 0.95 if p95 > 0.92 else 1.0
        L_out = []
        for p in TONE_PERCENTILES:
            idx = min(int(np.floor(p * m)), m - 1)
            L_out.append(min(float(L_sorted[idx]), max_l))
        return ToneCurve(L_in=list(TONE_ANCHORS), L_out=L_out)

    # ------------------------------------------------------------------
    # Colour
    # ------------------------------------------------------------------

    @staticmethod
    def _fit_shadow_highlight(
        L: np.ndarray, a: np.ndarray, b: np.ndarray, C: np.ndarray, mean_b: float
    ) -> Tuple[SaturationShape, TintAB, TintAB]:
        bins = np.clip(np.floor(L * L_BINS).astype(int), 0, L_BINS - 1)
        counts = np.bincount(bins, minlength=L_BINS).astype(float)
        sum_c = np.bincount(bins, weights=C, minlength=L_BINS)
        sum_a = np.bincount(bins, weights=a, minlength=L_BINS)
        sum_b = np.bincount(bins, weights=b, minlength=L_BINS)

        mid = slice(int(L_BINS * 0.3), int(L_BINS * 0.7) + 1)
        mid_count = counts[mid].sum()
        c_mid = float(sum_c[mid].sum() / mid_count) if mid_count > 0 else 0.0

        def bin_mean(sums: np.ndarray, k: int) -> float:
            return float(sums[k] / counts[k]) if counts[k] > 0 else 0.0

        lo, hi = 0, L_BINS - 1
        c_shadow = bin_mean(sum_c, lo)
        c_high = bin_mean(sum_c, hi)

        if c_mid > 1e-6:
            shadow_rolloff = clamp(1.0 - c_shadow / c_mid, 0.0, 1.0)
            highlight_rolloff = clamp(1.0 - c_high / c_mid, 0.0, 1.0)
        else:
            shadow_rolloff = highlight_rolloff = 0.0
        shadow_density = clamp(c_shadow / c_mid, 0.5, 2.0) if c_mid > 1e-6 and c_shadow > 1e-6 else 1.0
        highlight_density = clamp(c_high / c_mid, 0.5, 1.0) if c_mid > 1e-6 and c_high > 1e-6 else 1.0

        shadow_tint = TintAB(
            clamp(bin_mean(sum_a, lo) * 0.95, -0.22, 0.22),
            clamp((bin_mean(sum_b, lo) - mean_b) * 0.95, -0.22, 0.22),
        )
        highlight_tint = TintAB(
            clamp(bin_mean(sum_a, hi) * 0.95, -0.22, 0.22),
            clamp((bin_mean(sum_b, hi) - mean_b) * 0.95, -0.22, 0.22),
        )
        shape = SaturationShape(shadow_rolloff, highlight_rolloff, shadow_density, highlight_density)
        return shape, shadow_tint, highlight_tint

    @staticmethod
    def _fit_tint_curves(
        L: np.ndarray,
        a: np.ndarray,
        b: np.ndarray,
        C: np.ndarray,
        mean_a: float,
        mean_b: float,
    ) -> Tuple[TintCurve, SaturationCurve, float]:
        anchors, lo, hi = tint_band_edges()

        raw_a, raw_b, sum_c, count_c = [], [], [], []
        for k in range(TINT_BANDS):
            inside = (L >= lo[k]) & (L <= hi[k])
            n = int(np.count_nonzero(inside))
            if n > 0:
                raw_a.append(float(a[inside].mean()))
                raw_b.append(float(b[inside].mean()))
            else:
                # Empty band inherits its lower neighbour.
                raw_a.append(raw_a[-1] if k > 0 else mean_a)
                raw_b.append(raw_b[-1] if k > 0 else mean_b)
            sum_c.append(float(C[inside].sum()))
            count_c.append(n)

        tint_a, tint_b = [], []
        for v_a, v_b in zip(raw_a, raw_b):
            d_a = v_a - mean_a
            d_b = v_b - mean_b
            # Keep a band on the same side of the warm/cool axis as the reference.
            if mean_b > 0.03 and v_b > 0.01 and d_b * mean_b < 0:
                d_b *= 0.25
            if mean_b < -0.03 and v_b < -0.01 and d_b * mean_b < 0:
                d_b *= 0.25
            length = float(np.hypot(d_a, d_b))
            if length > TINT_MAX_DELTA and length > 1e-6:
                d_a *= TINT_MAX_DELTA / length
                d_b *= TINT_MAX_DELTA / length
            tint_a.append(clamp(d_a * TINT_LOCAL_SCALE, -0.35, 0.35))
            tint_b.append(clamp(d_b * TINT_LOCAL_SCALE, -0.45, 0.45))

        mid = slice(int(TINT_BANDS * 0.25), int(TINT_BANDS * 0.75) + 1)
        mid_n = sum(count_c[mid])
        mid_chroma = sum(sum_c[mid]) / mid_n if mid_n > 0 else NEUTRAL_CHROMA

        scale = [
            clamp(s / n / mid_chroma, 0.2, 2.0) if n > 0 and mid_chroma > 1e-6 else 1.0
            for s, n in zip(sum_c, count_c)
        ]
        anchor_list = [float(x) for x in anchors]
        return (
            TintCurve(L_anchors=anchor_list, a=tint_a, b=tint_b),
            SaturationCurve(L_anchors=list(anchor_list), scale=scale),
            float(mid_chroma),
        )

    @staticmethod
    def _fit_match_bands(
        L: np.ndarray,
        a: np.ndarray,
        b: np.ndarray,
        mean_a: float,
        mean_b: float,
        mid_chroma: float,
    ) -> ColorMatchBands:
        sum_a, sum_b, sum_c, sum_w = band_sums(L, a, b)
        ref_a, ref_b, ref_c = [], [], []
        for k in range(BAND_COUNT):
            w = float(sum_w[k])
            if w > 1e-4:
                ref_a.append(float(sum_a[k] / w))
                ref_b.append(float(sum_b[k] / w))
                ref_c.append(float(sum_c[k] / w))
            else:
                # Almost no support: fall back to global means.
                ref_a.append(mean_a)
                ref_b.append(mean_b)
                ref_c.append(mid_chroma or NEUTRAL_CHROMA)
        return ColorMatchBands(ref_a=ref_a, ref_b=ref_b, ref_c=ref_c)


def fit_look_params(
    reference: PixelFrame, heuristics: Optional[LearnedHeuristics] = None
) -> LookParams:
    """Convenience wrapper around :meth:`ReferenceFitter.fit`."""

    return ReferenceFitter(heuristics=heuristics).fit(reference)
