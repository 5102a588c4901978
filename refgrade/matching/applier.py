"""
Render a source frame under a fitted look.

Stage A (lightness only):
    A0. Exposure match toward the reference median
    A1. Tone mapping (reference curve, or toe power + lift/gamma/gain)
    A3. Luma-strength blend between exposed source and toned L
    A4. Black alignment with normalisation against over-crushing
    A5. Mid-tone micro-contrast matching

Stage B (chroma, on the final L):
    B.  Saturation shaping, then band match / tint curve / global tint
    B2. Colour-strength blend against the source chroma
    B3. Manual per-band hue, saturation and luma overrides
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from refgrade.core.config import MatchParams, clamp
from refgrade.core.look import ColorModel, LookParams, ToneModel, merge_match
from refgrade.preprocessing.blur import film_blur, mid_detail_rms
from refgrade.utils.bands import (
    BAND_COUNT,
    band_sums,
    band_weights,
    interpolate_tint,
    region_strength_factor,
)
from refgrade.utils.color import OklabTransform
from refgrade.utils.frame import LabPlanes, PixelFrame
from refgrade.utils.stats import percentile_inclusive, percentile_sorted

logger = logging.getLogger(__name__)

MAX_EXPOSURE_DELTA = 0.6
MAX_OVERSHOOT = 0.3  # strengths above 1 extend at most 30 % beyond the ideal
SHADOW_TOE = 0.4
BLACK_NORMALISE_SLACK = 0.03
BAND_MATCH_MAX_DELTA = 0.16
MAX_HUE_ROTATION = np.deg2rad(30.0)
MAX_LUMA_OFFSET = 0.2


def _overshoot(strength: float) -> float:
    """Map a 0..2 strength to a blend factor: linear to 1, then +30 % at 2."""

    if strength <= 1.0:
        return strength
    return 1.0 + MAX_OVERSHOOT * (strength - 1.0)


def apply_shadow_contrast(L: np.ndarray, shadow_contrast: float) -> np.ndarray:
    """Power curve on the toe (L < 0.4) before lift/gamma/gain."""

    if shadow_contrast == 1.0:
        return L
    toe = np.power(np.clip(L, 0.0, None) / SHADOW_TOE, shadow_contrast) * SHADOW_TOE
    return np.where(L < SHADOW_TOE, toe, L)


def apply_lift_gamma_gain(L: np.ndarray, lift: float, gamma: float, gain: float) -> np.ndarray:
    return np.power(np.clip(L * gain + lift, 0.001, 1.0), gamma)


class LookApplier:
    """
    Apply :class:`LookParams` to a source frame.

    The input frame is never modified. Transparent pixels (alpha < 128)
    come out with RGB zero and their original alpha.
    """

    def __init__(self, transform: Optional[OklabTransform] = None) -> None:
        self.transform = transform or OklabTransform()

    def apply(self, frame: PixelFrame, look: LookParams) -> PixelFrame:
        # Externally supplied looks are never trusted unclamped.
        look = look.clamped()
        planes = LabPlanes.from_frame(frame, self.transform)
        if planes.opaque_count == 0:
            logger.warning("Source has no opaque pixels; nothing to grade")
            return planes.to_frame(self.transform, planes.L, planes.a, planes.b)

        logger.debug(
            "Applying look: tone=%s color=%s", look.tone_model.value, look.color_model.value
        )
        L_exposed = self._stage_exposure(planes, look)
        L_tone = self._stage_tone(L_exposed, planes.mask, look)
        L_luma = self._stage_luma_blend(L_exposed, L_tone, look)
        L_luma = self._stage_black_alignment(L_luma, planes, look)
        L_final = self._stage_micro_contrast(L_luma, planes.mask, look)

        a, b = self._stage_color(L_final, planes, look)
        a, b = self._stage_color_strength(a, b, planes, look)
        L_out, a, b = self._stage_overrides(L_final, a, b, look)
        return planes.to_frame(self.transform, L_out, a, b)

    # ------------------------------------------------------------------
    # Stage A: lightness
    # ------------------------------------------------------------------

    def _stage_exposure(self, planes: LabPlanes, look: LookParams) -> np.ndarray:
        if look.ref_mid_l is None:
            return planes.L.copy()

        src_sorted = np.sort(planes.L[planes.mask])
        src_mid = percentile_sorted(src_sorted, 0.5, 0.5)
        ref_mid = clamp(look.ref_mid_l, 0.0, 1.0, 0.5)
        strength = clamp(look.exposure_strength, 0.0, 2.0, 1.0)
        ideal = clamp(ref_mid - src_mid, -MAX_EXPOSURE_DELTA, MAX_EXPOSURE_DELTA)
        delta = ideal * _overshoot(strength)

        logger.debug("A0 exposure: src mid %.4f -> ref mid %.4f, delta %.4f", src_mid, ref_mid, delta)
        return np.where(planes.mask, np.clip(planes.L + delta, 0.0, 1.0), 0.0)

    def _stage_tone(self, L: np.ndarray, mask: np.ndarray, look: LookParams) -> np.ndarray:
        if look.tone_model is ToneModel.CURVE:
            curve = look.tone_curve
            toned = np.clip(np.interp(L, curve.L_in, curve.L_out), 0.0, 1.0)
        else:
            toned = apply_shadow_contrast(L, look.shadow_contrast)
            toned = apply_lift_gamma_gain(toned, look.tone.lift, look.tone.gamma, look.tone.gain)
        logger.debug("A1 tone (%s)", look.tone_model.value)
        return np.where(mask, toned, 0.0)

    def _stage_luma_blend(
        self, L_exposed: np.ndarray, L_tone: np.ndarray, look: LookParams
    ) -> np.ndarray:
        # 0 keeps the exposed source luma, 1 takes the toned luma.
        blend = _overshoot(clamp(look.luma_strength, 0.0, 2.0, 1.0))
        logger.debug("A3 luma blend %.3f", blend)
        return np.clip(L_exposed + blend * (L_tone - L_exposed), 0.0, 1.0)

    def _stage_black_alignment(
        self, L: np.ndarray, planes: LabPlanes, look: LookParams
    ) -> np.ndarray:
        if look.ref_black_l is None:
            return L

        mask = planes.mask
        src_black = percentile_sorted(np.sort(planes.L[mask]), 0.05, 0.05)
        ref_black = clamp(look.ref_black_l, 0.0, 0.2, 0.05)
        delta = clamp(look.black_strength, 0.0, 8.0, 1.0) * (ref_black - src_black)
        if abs(delta) <= 1e-3:
            return L

        ceiling = clamp(look.black_range, 0.1, 0.95, 0.6)
        # Pulling toward a near-zero black widens the range with a linear falloff.
        wide = delta < 0 and ref_black < 0.02
        if wide:
            ceiling = min(0.95, ceiling + 0.2)

        t = L / ceiling
        weight = 1.0 - t if wide else (1.0 - t) ** 2
        pulled = np.clip(L + delta * weight, 0.0, 1.0)
        after = np.where(mask & (L <= ceiling), pulled, L)

        p5_before = percentile_inclusive(L[mask], 0.05, 0.0)
        p5_after = percentile_inclusive(after[mask], 0.05, 0.0)
        # Shadows may end up at most a little deeper than the reference.
        min_allowed = max(0.0, ref_black - BLACK_NORMALISE_SLACK)
        if p5_after < min_allowed < p5_before and abs(p5_after - p5_before) > 1e-5:
            alpha = clamp((min_allowed - p5_before) / (p5_after - p5_before), 0.0, 1.0)
            after = np.where(mask, np.clip(L + alpha * (after - L), 0.0, 1.0), L)
            logger.debug("A4 black normalisation alpha %.3f", alpha)

        logger.debug(
            "A4 black alignment: src %.4f -> ref %.4f, delta %.4f, ceiling %.2f",
            src_black, ref_black, delta, ceiling,
        )
        return after

    def _stage_micro_contrast(self, L: np.ndarray, mask: np.ndarray, look: LookParams) -> np.ndarray:
        if look.micro_contrast_mid <= 0:
            return L

        blurred = film_blur(L)
        src_rms = mid_detail_rms(L, mask, blurred)
        gain = clamp(look.micro_contrast_mid / src_rms, 0.5, 2.0) if src_rms > 1e-6 else 1.0
        logger.debug("A5 micro-contrast: src rms %.5f, ref %.5f, gain %.3f", src_rms, look.micro_contrast_mid, gain)
        return np.where(mask, np.clip(blurred + gain * (L - blurred), 0.0, 1.0), 0.0)

    # ------------------------------------------------------------------
    # Stage B: colour
    # ------------------------------------------------------------------

    def _saturation_scale(self, L: np.ndarray, C: np.ndarray, look: LookParams) -> np.ndarray:
        sat = look.saturation
        shadow_w = (1.0 - L) ** 2
        highlight_w = L ** 2
        rolloff = np.maximum(0.0, 1.0 - sat.shadow_rolloff * shadow_w - sat.highlight_rolloff * highlight_w)
        density = (
            1.0
            + (sat.shadow_color_density - 1.0) * shadow_w
            + (sat.highlight_color_density - 1.0) * highlight_w
        )
        if look.uses_saturation_curve:
            curve = look.saturation_by_l
            band_scale = np.interp(L, curve.L_anchors, curve.scale)
            if look.ref_saturation < 1.0:
                # Desaturated reference: never boost a band.
                band_scale = np.minimum(band_scale, 1.0)
        else:
            band_scale = 1.0
        scale = rolloff * density * look.color_density * band_scale * look.ref_saturation
        return np.where(C > 1e-8, scale, 0.0)

    def _stage_color(self, L: np.ndarray, planes: LabPlanes, look: LookParams) -> Tuple[np.ndarray, np.ndarray]:
        a_src, b_src = planes.a, planes.b
        C = np.sqrt(a_src * a_src + b_src * b_src)
        scale = self._saturation_scale(L, C, look)
        a = a_src * scale
        b = b_src * scale

        model = look.color_model
        strengths = look.color_band_strengths.as_tuple()
        if model is ColorModel.BAND_MATCH:
            a, b = self._band_match(L, planes, look, a, b, C, strengths)
            a = a + look.tint * 0.25
            b = b + look.warmth * 0.25
        elif model is ColorModel.TINT_CURVE:
            curve = look.tint_by_l
            t_a, t_b = interpolate_tint(L, curve.L_anchors, curve.a, curve.b)
            factor = (
                region_strength_factor(L, strengths)
                * (1.0 + 0.25 * np.minimum(1.0, C / 0.08))  # local contrast
                * (1.0 - 0.15 * L * L)  # highlight fade
                * (1.0 + 0.75 * (1.0 - L) ** 0.585)  # shadow/mid boost
            )
            a = a + factor * t_a + look.tint * 0.35
            b = b + factor * t_b + look.warmth * 0.35
        else:
            shadow_w = (1.0 - L) ** 2
            highlight_w = L ** 2
            a = a + look.tint + look.shadow_tint.a * shadow_w + look.highlight_tint.a * highlight_w
            b = b + look.warmth + look.shadow_tint.b * shadow_w + look.highlight_tint.b * highlight_w

        logger.debug("B colour (%s)", model.value)
        return a, b

    def _band_match(
        self,
        L: np.ndarray,
        planes: LabPlanes,
        look: LookParams,
        a: np.ndarray,
        b: np.ndarray,
        C: np.ndarray,
        strengths: Tuple[float, ...],
    ) -> Tuple[np.ndarray, np.ndarray]:
        mask = planes.mask
        a_src, b_src = planes.a, planes.b
        ref = look.color_match_bands

        sum_a, sum_b, sum_c, sum_w = band_sums(L[mask], a_src[mask], b_src[mask])
        delta_a = np.zeros(BAND_COUNT)
        delta_b = np.zeros(BAND_COUNT)
        scale_c = np.ones(BAND_COUNT)
        for k in range(BAND_COUNT):
            w = sum_w[k]
            if w <= 1e-4:
                continue
            a_s, b_s, c_s = sum_a[k] / w, sum_b[k] / w, sum_c[k] / w
            a_r, b_r, c_r = ref.ref_a[k], ref.ref_b[k], ref.ref_c[k]
            d_a, d_b = a_r - a_s, b_r - b_s
            length = float(np.hypot(d_a, d_b))
            if length > BAND_MATCH_MAX_DELTA and length > 1e-6:
                d_a *= BAND_MATCH_MAX_DELTA / length
                d_b *= BAND_MATCH_MAX_DELTA / length
            # Warm in both: damp deltas that would pull toward blue.
            if a_s > -0.02 and b_s > 0.02 and a_r > -0.02 and b_r > 0.02 and d_b < 0:
                d_b *= 0.4
            delta_a[k], delta_b[k] = d_a, d_b
            if c_s > 1e-4 and c_r > 1e-4:
                scale_c[k] = clamp(c_r / c_s, 0.5, 1.8)
        logger.debug("Band match deltas a=%s b=%s kC=%s", delta_a, delta_b, scale_c)

        weights = band_weights(L) * np.asarray(strengths)
        den = weights.sum(axis=-1)
        safe = np.where(den > 1e-4, den, 1.0)
        d_a = (weights @ delta_a) / safe
        d_b = (weights @ delta_b) / safe
        k_c = (weights @ scale_c) / safe

        a_match = a_src + d_a
        b_match = b_src + d_b
        c_match = np.sqrt(a_match * a_match + b_match * b_match)
        # Chroma scaling along the matched hue direction.
        rescale = (C > 1e-5) & (c_match > 1e-5)
        ratio = np.clip(C * k_c / np.where(rescale, c_match, 1.0), 0.4, 2.2)
        ratio = np.where(rescale, ratio, 1.0)
        a_match = a_match * ratio
        b_match = b_match * ratio

        matched = den > 1e-4
        return np.where(matched, a_match, a), np.where(matched, b_match, b)

    def _stage_color_strength(
        self, a: np.ndarray, b: np.ndarray, planes: LabPlanes, look: LookParams
    ) -> Tuple[np.ndarray, np.ndarray]:
        strength = clamp(look.color_strength, 0.0, 2.0, 1.0)
        if abs(strength - 1.0) <= 1e-3:
            return a, b
        logger.debug("B2 colour strength %.3f", strength)
        return planes.a + strength * (a - planes.a), planes.b + strength * (b - planes.b)

    def _stage_overrides(
        self, L: np.ndarray, a: np.ndarray, b: np.ndarray, look: LookParams
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        overrides = look.color_band_overrides
        if overrides is None:
            return L, a, b

        weights = band_weights(L)
        hue = weights @ np.asarray(overrides.hue.as_tuple())
        sat = weights @ (np.asarray(overrides.sat.as_tuple()) - 1.0)
        luma = weights @ np.asarray(overrides.luma.as_tuple())

        theta = np.clip(hue, -1.0, 1.0) * MAX_HUE_ROTATION
        rotate = np.abs(theta) > 1e-4
        cos_t, sin_t = np.cos(theta), np.sin(theta)
        a, b = (
            np.where(rotate, a * cos_t - b * sin_t, a),
            np.where(rotate, a * sin_t + b * cos_t, b),
        )

        sat_mul = np.clip(1.0 + sat, 0.2, 2.5)
        C = np.sqrt(a * a + b * b)
        scale = np.where((C > 1e-6) & (np.abs(sat_mul - 1.0) > 1e-3), sat_mul, 1.0)
        a, b = a * scale, b * scale

        offset = np.clip(luma, -MAX_LUMA_OFFSET, MAX_LUMA_OFFSET)
        L = np.where(np.abs(luma) > 1e-4, np.clip(L + offset, 0.0, 1.0), L)
        logger.debug("B3 band overrides applied")
        return L, a, b


def apply_look(
    frame: PixelFrame,
    look: LookParams,
    match: Optional[MatchParams] = None,
) -> PixelFrame:
    """
    Convenience wrapper: merge optional match parameters, then apply.

    Parameters
    ----------
    frame : PixelFrame
        Source image
    look : LookParams
        Fitted or loaded look
    match : MatchParams, optional
        UI strengths and overrides layered on top of the look
    """

    if match is not None:
        look = merge_match(look, match)
    return LookApplier().apply(frame, look)
