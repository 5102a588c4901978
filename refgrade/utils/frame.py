"""
RGBA pixel frames and the per-call OKLab working planes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np

from refgrade.utils.color import OklabTransform

# Pixels below this alpha are fully transparent for every stage.
ALPHA_THRESHOLD = 128


class FrameError(ValueError):
    """Raised when a buffer cannot be graded (zero pixels or malformed)."""


@dataclass
class PixelFrame:
    """
    Decoded image: row-major RGBA, 8-bit sRGB channels.

    ``data`` has shape (height, width, 4) and dtype uint8.
    """

    width: int
    height: int
    data: np.ndarray

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise FrameError(
                f"Cannot grade a zero-pixel frame ({self.width}x{self.height})"
            )
        data = np.asarray(self.data)
        if data.shape != (self.height, self.width, 4):
            raise FrameError(
                f"Expected RGBA buffer of shape {(self.height, self.width, 4)}, got {data.shape}"
            )
        if data.dtype != np.uint8:
            raise FrameError(f"Expected uint8 pixel data, got {data.dtype}")
        self.data = data

    @classmethod
    def from_buffer(
        cls, width: int, height: int, buffer: Union[bytes, bytearray, memoryview, np.ndarray]
    ) -> "PixelFrame":
        """Wrap a flat RGBA byte buffer (4 bytes per pixel)."""

        flat = np.frombuffer(buffer, dtype=np.uint8) if not isinstance(buffer, np.ndarray) else buffer.ravel()
        expected = width * height * 4
        if width <= 0 or height <= 0:
            raise FrameError(f"Cannot grade a zero-pixel frame ({width}x{height})")
        if flat.size != expected:
            raise FrameError(
                f"Malformed RGBA buffer: expected {expected} bytes for {width}x{height}, got {flat.size}"
            )
        return cls(width, height, flat.astype(np.uint8, copy=True).reshape(height, width, 4))

    @classmethod
    def from_array(cls, data: np.ndarray) -> "PixelFrame":
        """Wrap an (H, W, 4) uint8 array."""

        data = np.asarray(data)
        if data.ndim != 3 or data.shape[2] != 4:
            raise FrameError(f"Expected H×W×4 RGBA array, got shape {data.shape}")
        return cls(int(data.shape[1]), int(data.shape[0]), data)

    def to_bytes(self) -> bytes:
        return self.data.tobytes()

    def copy(self) -> "PixelFrame":
        return PixelFrame(self.width, self.height, self.data.copy())

    @property
    def opaque_mask(self) -> np.ndarray:
        return self.data[:, :, 3] >= ALPHA_THRESHOLD


@dataclass
class LabPlanes:
    """
    Float working planes for one grading call.

    Transparent pixels hold zeros in L, a and b and are excluded by ``mask``.
    """

    L: np.ndarray
    a: np.ndarray
    b: np.ndarray
    mask: np.ndarray
    alpha: np.ndarray

    @classmethod
    def from_frame(cls, frame: PixelFrame, transform: OklabTransform) -> "LabPlanes":
        alpha = frame.data[:, :, 3].copy()
        mask = alpha >= ALPHA_THRESHOLD
        lab = transform.srgb8_to_oklab(frame.data[:, :, :3])
        lab[~mask] = 0.0
        return cls(
            L=lab[:, :, 0].copy(),
            a=lab[:, :, 1].copy(),
            b=lab[:, :, 2].copy(),
            mask=mask,
            alpha=alpha,
        )

    @property
    def opaque_count(self) -> int:
        return int(np.count_nonzero(self.mask))

    def to_frame(
        self,
        transform: OklabTransform,
        L: np.ndarray,
        a: np.ndarray,
        b: np.ndarray,
    ) -> PixelFrame:
        """Encode graded planes back to RGBA; transparent pixels become zero RGB."""

        height, width = self.alpha.shape
        out = np.zeros((height, width, 4), dtype=np.uint8)
        lab = np.stack([L, a, b], axis=-1)
        rgb = transform.oklab_to_srgb8(lab)
        out[:, :, :3] = np.where(self.mask[:, :, np.newaxis], rgb, 0)
        out[:, :, 3] = self.alpha
        return PixelFrame(width, height, out)
