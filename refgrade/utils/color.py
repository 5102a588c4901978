"""
OKLab colour space conversion for 8-bit sRGB data.

Formulas follow Björn Ottosson's published reference implementation.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

# Linear sRGB -> LMS
SRGB_TO_LMS = np.array(
    [
        [0.4122214708, 0.5363325363, 0.0514459929],
        [0.2119034982, 0.6806995451, 0.1073969566],
        [0.0883024619, 0.2817188376, 0.6299787005],
    ]
)

# Cube-root LMS -> Lab
LMS_TO_OKLAB = np.array(
    [
        [0.2104542553, 0.7936177850, -0.0040720468],
        [1.9779984951, -2.4285922050, 0.4505937099],
        [0.0259040371, 0.7827717662, -0.8086757660],
    ]
)

# Lab -> cube-root LMS
OKLAB_TO_LMS = np.array(
    [
        [1.0, 0.3963377774, 0.2158037573],
        [1.0, -0.1055613458, -0.0638541728],
        [1.0, -0.0894841775, -1.2914855480],
    ]
)

# LMS -> linear sRGB
LMS_TO_SRGB = np.array(
    [
        [4.0767416621, -3.3077115913, 0.2309699292],
        [-1.2684380046, 2.6097574011, -0.3413193965],
        [-0.0041960863, -0.7034186147, 1.7076147010],
    ]
)


def _srgb8_lut() -> np.ndarray:
    c = np.arange(256, dtype=float) / 255.0
    return np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)


# Every 8-bit code decodes to one of 256 linear values.
SRGB8_TO_LINEAR = _srgb8_lut()


class OklabTransform:
    """Vectorised sRGB (8-bit) <-> OKLab conversion."""

    def srgb8_to_oklab(self, rgb: np.ndarray) -> np.ndarray:
        """
        Convert 8-bit sRGB to OKLab.

        Parameters
        ----------
        rgb : np.ndarray
            Integer sRGB codes 0-255, shape (..., 3)

        Returns
        -------
        np.ndarray
            OKLab values (L, a, b), float64, shape (..., 3)
        """

        codes = np.clip(np.asarray(rgb), 0, 255).astype(np.intp)
        linear = SRGB8_TO_LINEAR[codes]
        lms = np.dot(linear, SRGB_TO_LMS.T)
        return np.dot(np.cbrt(lms), LMS_TO_OKLAB.T)

    def oklab_to_srgb8(self, lab: np.ndarray) -> np.ndarray:
        """
        Convert OKLab to 8-bit sRGB codes, clamping out-of-gamut values.

        Returns a uint8 array of shape (..., 3).
        """

        lms_ = np.dot(np.asarray(lab, dtype=float), OKLAB_TO_LMS.T)
        linear = np.dot(lms_ ** 3, LMS_TO_SRGB.T)
        return self.linear_to_srgb8(linear)

    @staticmethod
    def linear_to_srgb8(linear: np.ndarray) -> np.ndarray:
        """Encode linear RGB (0-1) to rounded, clamped 8-bit codes."""

        encoded = np.where(
            linear <= 0.0031308,
            linear * 12.92,
            1.055 * np.maximum(linear, 0.0031308) ** (1.0 / 2.4) - 0.055,
        )
        # Round half up, matching the reference encoder.
        return np.floor(np.clip(encoded * 255.0, 0.0, 255.0) + 0.5).astype(np.uint8)


_TRANSFORM = OklabTransform()


def to_perceptual(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """Convert a single 8-bit sRGB triple to OKLab (L, a, b)."""

    lab = _TRANSFORM.srgb8_to_oklab(np.array([r, g, b]))
    return float(lab[0]), float(lab[1]), float(lab[2])


def to_srgb(L: float, a: float, b: float) -> Tuple[int, int, int]:
    """Convert a single OKLab triple to 8-bit sRGB (r, g, b)."""

    rgb = _TRANSFORM.oklab_to_srgb8(np.array([L, a, b], dtype=float))
    return int(rgb[0]), int(rgb[1]), int(rgb[2])


def chroma(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """OKLab chroma, C = sqrt(a^2 + b^2)."""

    return np.sqrt(a * a + b * b)
