"""Tests for the OKLab converter and RGBA frame containers."""

from __future__ import annotations

import numpy as np
import pytest

from refgrade.utils.color import OklabTransform, chroma, to_perceptual, to_srgb
from refgrade.utils.frame import FrameError, LabPlanes, PixelFrame


def test_white_and_black_reference_points() -> None:
    L, a, b = to_perceptual(255, 255, 255)
    assert L == pytest.approx(1.0, abs=1e-4)
    assert a == pytest.approx(0.0, abs=1e-4)
    assert b == pytest.approx(0.0, abs=1e-4)

    assert to_perceptual(0, 0, 0) == pytest.approx((0.0, 0.0, 0.0), abs=1e-12)
    assert to_srgb(0.0, 0.0, 0.0) == (0, 0, 0)


def test_round_trip_within_one_code() -> None:
    transform = OklabTransform()
    steps = np.append(np.arange(0, 256, 5), 255)
    grid = np.stack(np.meshgrid(steps, steps, steps, indexing="ij"), axis=-1).reshape(-1, 3)
    rng = np.random.default_rng(0)
    codes = np.concatenate([grid, rng.integers(0, 256, size=(5000, 3))]).astype(np.uint8)

    back = transform.oklab_to_srgb8(transform.srgb8_to_oklab(codes))

    assert back.dtype == np.uint8
    assert np.abs(back.astype(int) - codes.astype(int)).max() <= 1


def test_scalar_and_vector_paths_agree() -> None:
    transform = OklabTransform()
    lab = transform.srgb8_to_oklab(np.array([200, 120, 40]))
    np.testing.assert_allclose(to_perceptual(200, 120, 40), lab, atol=1e-12)
    assert to_srgb(*lab) == (200, 120, 40)


def test_warm_colour_has_positive_b() -> None:
    _, a, b = to_perceptual(230, 150, 60)
    assert b > 0.05
    assert chroma(np.array(a), np.array(b)) == pytest.approx(np.hypot(a, b))


def test_out_of_gamut_is_clamped() -> None:
    rgb = to_srgb(0.7, 0.4, 0.4)
    assert all(0 <= c <= 255 for c in rgb)
    assert to_srgb(1.5, 0.0, 0.0) == (255, 255, 255)


def test_zero_pixel_frame_raises() -> None:
    with pytest.raises(FrameError):
        PixelFrame.from_buffer(0, 10, b"")
    with pytest.raises(FrameError):
        PixelFrame(4, 0, np.zeros((0, 4, 4), dtype=np.uint8))


def test_malformed_buffer_raises() -> None:
    with pytest.raises(FrameError):
        PixelFrame.from_buffer(2, 2, bytes(15))
    with pytest.raises(ValueError):
        PixelFrame.from_array(np.zeros((4, 4, 3), dtype=np.uint8))
    with pytest.raises(FrameError):
        PixelFrame(2, 2, np.zeros((2, 2, 4), dtype=np.float32))


def test_from_buffer_layout_is_row_major_rgba() -> None:
    buf = bytes([1, 2, 3, 255, 4, 5, 6, 0, 7, 8, 9, 128, 10, 11, 12, 127])
    frame = PixelFrame.from_buffer(2, 2, buf)
    assert frame.data.shape == (2, 2, 4)
    assert tuple(frame.data[0, 1]) == (4, 5, 6, 0)
    assert frame.to_bytes() == buf
    np.testing.assert_array_equal(frame.opaque_mask, [[True, False], [True, False]])


def test_lab_planes_zero_transparent_pixels() -> None:
    data = np.full((2, 3, 4), 200, dtype=np.uint8)
    data[0, 0, 3] = 10
    planes = LabPlanes.from_frame(PixelFrame.from_array(data), OklabTransform())

    assert planes.opaque_count == 5
    assert planes.L[0, 0] == 0.0 and planes.a[0, 0] == 0.0 and planes.b[0, 0] == 0.0
    assert planes.L[1, 2] > 0.5

    out = planes.to_frame(OklabTransform(), planes.L, planes.a, planes.b)
    assert tuple(out.data[0, 0]) == (0, 0, 0, 10)
    assert np.abs(out.data[1, 2, :3].astype(int) - 200).max() <= 1
