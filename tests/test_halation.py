"""Tests for the halation (highlight fill) stage."""

from __future__ import annotations

import numpy as np
import pytest

from refgrade.core.config import HighlightFill
from refgrade.optics.halation import HalationParameters, HalationStage
from refgrade.utils.color import OklabTransform
from refgrade.utils.frame import LabPlanes, PixelFrame


def _random_gray(seed: int = 0, size: int = 64) -> PixelFrame:
    rng = np.random.default_rng(seed)
    value = rng.integers(0, 256, size=(size, size), dtype=np.uint8)
    data = np.empty((size, size, 4), dtype=np.uint8)
    data[..., :3] = value[..., np.newaxis]
    data[..., 3] = 255
    return PixelFrame.from_array(data)


def _uniform(value: int, size: int = 32) -> PixelFrame:
    data = np.full((size, size, 4), value, dtype=np.uint8)
    data[..., 3] = 255
    return PixelFrame.from_array(data)


def test_disabled_fill_returns_same_frame() -> None:
    frame = _random_gray()
    stage = HalationStage()
    assert stage.apply(frame, None) is frame
    assert stage.apply(frame, HighlightFill(0.0, 0.5)) is frame


@pytest.mark.parametrize("value", [100, 250])
def test_uniform_frame_unchanged(value: int) -> None:
    frame = _uniform(value)
    out = HalationStage().apply(frame, HighlightFill(1.0, 0.0))
    np.testing.assert_array_equal(out.data, frame.data)


def test_only_highlights_are_lifted() -> None:
    frame = _random_gray()
    out = HalationStage().apply(frame, HighlightFill(1.0, 0.0))

    src = frame.data[..., :3].astype(int)
    dst = out.data[..., :3].astype(int)
    changed = (dst != src).any(axis=-1)
    assert changed.any()
    assert (dst >= src).all()
    assert src[changed].min() >= 200
    np.testing.assert_array_equal(out.data[..., 3], frame.data[..., 3])


def test_warm_fill_warms_highlights() -> None:
    frame = _random_gray(seed=2)
    out = HalationStage().apply(frame, HighlightFill(1.0, 1.0))

    changed = (out.data[..., :3] != frame.data[..., :3]).any(axis=-1)
    b = LabPlanes.from_frame(out, OklabTransform()).b
    assert b[changed].mean() > 0.002


def test_transparent_pixels_untouched() -> None:
    frame = _random_gray(seed=4)
    data = frame.data.copy()
    data[:, :16, 3] = 0
    frame = PixelFrame.from_array(data)

    out = HalationStage().apply(frame, HighlightFill(1.0, 0.5))
    np.testing.assert_array_equal(out.data[:, :16], data[:, :16])


def test_highlight_weight_range() -> None:
    frame = _random_gray(seed=6)
    planes = LabPlanes.from_frame(frame, OklabTransform())
    weight = HalationStage().highlight_weight(planes.L, planes.mask)

    assert weight.shape == planes.L.shape
    assert weight.min() >= 0.0 and weight.max() <= 1.0
    assert (weight[planes.L < 0.85] == 0.0).all()


def test_downscale_is_masked_block_mean() -> None:
    stage = HalationStage(HalationParameters(min_downscale_dim=8))
    L = np.zeros((32, 32))
    L[:4, :4] = 0.8
    mask = np.ones((32, 32), dtype=bool)
    mask[:4, :2] = False

    L_down, mask_down = stage._downscale(L, mask)
    assert L_down.shape == (8, 8)
    assert L_down[0, 0] == pytest.approx(0.8)
    assert mask_down.all()

    mask[:4, :4] = False
    L_down, mask_down = stage._downscale(L, mask)
    assert not mask_down[0, 0]
    assert L_down[0, 0] == 0.0


def test_upsample_is_corner_aligned() -> None:
    src = np.array([[0.0, 1.0], [1.0, 2.0]])
    up = HalationStage._upsample(src, 3, 3)
    np.testing.assert_allclose(up, [[0.0, 0.5, 1.0], [0.5, 1.0, 1.5], [1.0, 1.5, 2.0]])


def test_local_variance_flat_is_zero() -> None:
    stage = HalationStage()
    L = np.full((8, 8), 0.9)
    mask = np.ones((8, 8), dtype=bool)
    np.testing.assert_allclose(stage._local_variance(L, mask), 0.0, atol=1e-12)
