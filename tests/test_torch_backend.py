"""
Checks for the torch backend. Skipped automatically when torch is unavailable.
"""

from __future__ import annotations

import numpy as np
import pytest

torch = pytest.importorskip("torch")

from refgrade.preprocessing.blur import gaussian_blur5, mid_detail_rms  # noqa: E402
from refgrade.torch import TorchOklabTransform  # noqa: E402
from refgrade.torch import gaussian_blur5 as torch_blur5  # noqa: E402
from refgrade.torch import mid_detail_rms as torch_mid_detail_rms  # noqa: E402
from refgrade.utils.color import OklabTransform  # noqa: E402


def test_torch_oklab_matches_numpy():
    rng = np.random.default_rng(0)
    codes = rng.integers(0, 256, size=(16, 16, 3), dtype=np.uint8)

    reference = OklabTransform().srgb8_to_oklab(codes)
    transform = TorchOklabTransform(device=torch.device("cpu"), dtype=torch.float64)
    lab = transform.srgb8_to_oklab(torch.from_numpy(codes))
    np.testing.assert_allclose(lab.numpy(), reference, atol=1e-9)

    back = transform.oklab_to_srgb8(lab).numpy().astype(int)
    assert np.abs(back - codes.astype(int)).max() <= 1


def test_torch_blur_matches_numpy():
    rng = np.random.default_rng(1)
    grid = rng.random((12, 17))

    expected = gaussian_blur5(grid)
    result = torch_blur5(torch.from_numpy(grid))
    np.testing.assert_allclose(result.numpy(), expected, atol=1e-12)


def test_torch_mid_detail_rms_matches_numpy():
    rng = np.random.default_rng(2)
    L = 0.25 + 0.5 * rng.random((20, 20))
    mask = np.ones_like(L, dtype=bool)
    mask[:5] = False

    expected = mid_detail_rms(L, mask)
    result = torch_mid_detail_rms(torch.from_numpy(L), torch.from_numpy(mask))
    assert result == pytest.approx(expected, rel=1e-9)
