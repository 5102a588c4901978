"""Tests for the reference fitter."""

from __future__ import annotations

import numpy as np
import pytest

from refgrade.core.look import ColorModel, LookParams, ToneModel
from refgrade.heuristics.adapter import parse_learned_heuristics
from refgrade.matching.fitter import ReferenceFitter, black_match_for, fit_look_params, tint_band_edges
from refgrade.utils.color import to_perceptual
from refgrade.utils.frame import PixelFrame


def _gray(value: int, size: int = 16, alpha: int = 255) -> PixelFrame:
    data = np.full((size, size, 4), value, dtype=np.uint8)
    data[..., 3] = alpha
    return PixelFrame.from_array(data)


def _warm_gradient(height: int = 32, width: int = 64) -> PixelFrame:
    v = np.linspace(20, 235, width).astype(int)
    rgb = np.stack([np.minimum(255, v + 30), v + 5, np.maximum(0, v - 40)], axis=-1)
    data = np.zeros((height, width, 4), dtype=np.uint8)
    data[..., :3] = rgb[np.newaxis, :, :]
    data[..., 3] = 255
    return PixelFrame.from_array(data)


def test_uniform_gray_reference() -> None:
    look = fit_look_params(_gray(128))
    L_gray = to_perceptual(128, 128, 128)[0]

    assert look.ref_mid_l == pytest.approx(L_gray)
    # Black anchor is clamped into its declared range.
    assert look.ref_black_l == 0.2
    assert abs(look.warmth) < 1e-6
    assert abs(look.tint) < 1e-6
    assert look.tone_curve.L_in == [0.0, 0.05, 0.15, 0.3, 0.5, 0.7, 0.85, 1.0]
    np.testing.assert_allclose(look.tone_curve.L_out, L_gray)
    assert look.micro_contrast_mid < 1e-9
    # Neutral chroma: no saturation reference.
    assert look.ref_saturation == 1.0
    assert look.tone_model is ToneModel.CURVE
    assert look.color_model is ColorModel.BAND_MATCH
    # Lifted black (L ~ 0.6) selects the gentle black regime.
    assert (look.black_strength, look.black_range) == (0.7, 0.45)


def test_transparent_reference_gives_neutral_look() -> None:
    look = fit_look_params(_gray(200, alpha=0))
    assert look == LookParams.neutral()


def test_warm_reference_fits_positive_warmth() -> None:
    look = ReferenceFitter().fit(_warm_gradient())

    assert look.warmth > 0.02
    assert 0 < look.warmth <= 0.35
    assert len(look.tint_by_l.L_anchors) == 16
    assert len(look.saturation_by_l.scale) == 16
    assert all(0.2 <= s <= 2.0 for s in look.saturation_by_l.scale)
    assert all(-0.35 <= a <= 0.35 for a in look.tint_by_l.a)
    assert all(-0.45 <= b <= 0.45 for b in look.tint_by_l.b)
    assert all(b > 0 for b in look.color_match_bands.ref_b)
    assert look.tone_curve.L_out == sorted(look.tone_curve.L_out)
    assert 0.5 <= look.tone.gamma <= 2.0
    assert 0.5 <= look.tone.gain <= 2.0
    assert -0.2 <= look.tone.lift <= 0.2
    assert 0.1 <= look.ref_saturation <= 2.5


def test_blown_highlights_cap_tone_curve() -> None:
    data = np.full((20, 20, 4), 255, dtype=np.uint8)
    data[:10, :, :3] = 90
    look = fit_look_params(PixelFrame.from_array(data))
    assert max(look.tone_curve.L_out) <= 0.95
    assert look.tone.gain <= 1.15


def test_black_regimes() -> None:
    assert black_match_for(0.01, 0.05) == (4.5, 0.9)
    assert black_match_for(0.02, 0.10) == (3.5, 0.85)
    assert black_match_for(0.02, 0.30) == (2.5, 0.8)
    assert black_match_for(0.05, 0.30) == (1.8, 0.7)
    assert black_match_for(0.10, 0.30) == (0.7, 0.45)
    assert black_match_for(0.07, 0.30) == (1.0, 0.6)


def test_tint_band_edges_cover_unit_interval() -> None:
    anchors, lo, hi = tint_band_edges()
    assert lo[0] == 0.0 and hi[-1] == 1.0
    np.testing.assert_allclose(lo[1:], hi[:-1])
    assert ((anchors > lo) & (anchors < hi)).all()


def test_heuristics_adjust_black_match() -> None:
    table = parse_learned_heuristics(
        {"blackStrength": {"global": {"meanDelta": 1.0, "count": 3}, "buckets": {}}}
    )
    look = ReferenceFitter(heuristics=table).fit(_gray(128))
    # 0.7 from the lifted-black regime plus 1.0 * 3 / (3 + 3).
    assert look.black_strength == pytest.approx(1.2)
    assert look.black_range == 0.45


def test_textured_reference_has_micro_contrast() -> None:
    y, x = np.mgrid[0:32, 0:32]
    value = np.where((x + y) % 2 == 0, 110, 150).astype(np.uint8)
    data = np.zeros((32, 32, 4), dtype=np.uint8)
    data[..., :3] = value[..., np.newaxis]
    data[..., 3] = 255
    look = fit_look_params(PixelFrame.from_array(data))
    assert look.micro_contrast_mid > 0.01


def test_fitted_look_is_within_declared_ranges() -> None:
    look = fit_look_params(_warm_gradient())
    assert look == look.clamped()

    bright = fit_look_params(_gray(230))
    assert bright.ref_black_l == 0.2
    assert 0.0 <= bright.micro_contrast_mid <= 0.5
