"""Tests for band kernels, percentile helpers, image statistics and blurs."""

from __future__ import annotations

import numpy as np
import pytest

from refgrade.preprocessing.blur import film_blur, gaussian_blur5, mid_detail_rms
from refgrade.utils.bands import (
    COLOR_BAND_ANCHORS,
    band_sums,
    band_weights,
    interpolate_tint,
    region_strength_factor,
)
from refgrade.utils.color import OklabTransform
from refgrade.utils.frame import LabPlanes, PixelFrame
from refgrade.utils.stats import compute_image_stats, percentile_inclusive, percentile_sorted


def test_band_weights_are_normalised() -> None:
    L = np.linspace(0.0, 1.0, 1001)
    weights = band_weights(L)
    assert weights.shape == (1001, 5)
    assert (weights >= 0).all()
    np.testing.assert_allclose(weights.sum(axis=-1), 1.0, atol=1e-6)


def test_band_weight_peaks_at_anchor() -> None:
    for k, anchor in enumerate(COLOR_BAND_ANCHORS):
        assert int(np.argmax(band_weights(np.array(anchor)))) == k


def test_band_sums_single_lightness() -> None:
    L = np.full(10, 0.5)
    a = np.full(10, 0.02)
    b = np.full(10, -0.01)
    sum_a, sum_b, sum_c, sum_w = band_sums(L, a, b)
    np.testing.assert_allclose(sum_w.sum(), 10.0)
    mid = int(np.argmax(sum_w))
    assert sum_a[mid] / sum_w[mid] == pytest.approx(0.02)
    assert sum_c[mid] / sum_w[mid] == pytest.approx(np.hypot(0.02, 0.01))


def test_interpolate_tint_hits_anchor_values() -> None:
    anchors = (np.arange(16) + 0.5) / 16
    tint_a = np.linspace(-0.1, 0.1, 16)
    tint_b = np.linspace(0.05, -0.05, 16)
    a, b = interpolate_tint(anchors, anchors, tint_a, tint_b)
    np.testing.assert_allclose(a, tint_a, atol=1e-12)
    np.testing.assert_allclose(b, tint_b, atol=1e-12)


def test_interpolate_tint_falls_back_to_edges() -> None:
    a, b = interpolate_tint(np.array([0.0, 0.5, 1.0]), [0.4, 0.6], [0.1, 0.3], [-0.1, -0.3])
    np.testing.assert_allclose(a, [0.1, 0.2, 0.3])
    np.testing.assert_allclose(b, [-0.1, -0.2, -0.3])


def test_region_strength_factor() -> None:
    L = np.linspace(0, 1, 51)
    np.testing.assert_allclose(region_strength_factor(L, [1.0] * 5), 1.0)
    boosted = region_strength_factor(np.array([0.5]), [1.0, 1.0, 2.0, 1.0, 1.0])
    assert boosted[0] == pytest.approx(2.0)


def test_percentile_conventions() -> None:
    values = np.arange(10, dtype=float)
    assert percentile_sorted(values, 0.5, -1.0) == 5.0
    assert percentile_sorted(values, 0.999, -1.0) == 9.0
    assert percentile_inclusive(values[::-1].copy(), 0.5, -1.0) == 4.0
    assert percentile_sorted(np.array([]), 0.5, 0.25) == 0.25
    assert percentile_inclusive(np.array([]), 0.95, 1.0) == 1.0


def test_image_stats_of_uniform_gray() -> None:
    data = np.full((8, 8, 4), 128, dtype=np.uint8)
    data[..., 3] = 255
    planes = LabPlanes.from_frame(PixelFrame.from_array(data), OklabTransform())
    stats = compute_image_stats(planes)

    L_gray = planes.L[0, 0]
    assert stats.exposure_level.median_l == pytest.approx(L_gray)
    assert stats.exposure_level.p05_l == pytest.approx(L_gray)
    assert stats.chroma_distribution.mean_c < 1e-6
    assert len(stats.chroma_distribution.bands) == 5
    assert sum(band.weight for band in stats.chroma_distribution.bands) == pytest.approx(64.0)
    assert set(stats.to_dict()) == {"exposureLevel", "chromaDistribution"}


def test_image_stats_without_opaque_pixels() -> None:
    data = np.zeros((4, 4, 4), dtype=np.uint8)
    planes = LabPlanes.from_frame(PixelFrame.from_array(data), OklabTransform())
    stats = compute_image_stats(planes)
    assert stats.exposure_level.median_l == 0.5
    assert stats.exposure_level.p05_l == 0.05
    assert stats.exposure_level.p95_l == 0.95
    assert stats.chroma_distribution.mean_c == 0.0


def test_blur_preserves_constant_grid() -> None:
    grid = np.full((7, 9), 0.4)
    np.testing.assert_allclose(gaussian_blur5(grid), grid)
    np.testing.assert_allclose(film_blur(grid), grid)
    assert mid_detail_rms(grid, np.ones_like(grid, dtype=bool)) == 0.0


def test_blur_replicates_edges() -> None:
    grid = np.zeros((5, 5))
    grid[:, 0] = 1.0
    blurred = gaussian_blur5(grid)
    # Left column sees itself through two clamped taps: (1 + 4 + 6) / 16.
    np.testing.assert_allclose(blurred[:, 0], 11.0 / 16.0)


def test_mid_detail_rms_detects_texture() -> None:
    y, x = np.mgrid[0:32, 0:32]
    checker = np.where((x + y) % 2 == 0, 0.4, 0.6)
    mask = np.ones_like(checker, dtype=bool)
    assert mid_detail_rms(checker, mask) > 0.05
    assert mid_detail_rms(checker, np.zeros_like(mask)) == 0.0
