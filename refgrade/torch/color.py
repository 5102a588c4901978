"""
OKLab transforms implemented with torch tensors.
"""

from __future__ import annotations

import torch

from refgrade.utils.color import (
    LMS_TO_OKLAB,
    LMS_TO_SRGB,
    OKLAB_TO_LMS,
    SRGB8_TO_LINEAR,
    SRGB_TO_LMS,
)


class TorchOklabTransform:
    """Torch equivalent of :class:`refgrade.utils.color.OklabTransform`."""

    def __init__(self, device: torch.device = torch.device("cpu"), dtype: torch.dtype = torch.float32) -> None:
        self.device = device
        self.dtype = dtype

        def as_tensor(array) -> torch.Tensor:
            return torch.as_tensor(array, dtype=dtype, device=device)

        self.srgb_to_lms = as_tensor(SRGB_TO_LMS)
        self.lms_to_oklab = as_tensor(LMS_TO_OKLAB)
        self.oklab_to_lms = as_tensor(OKLAB_TO_LMS)
        self.lms_to_srgb = as_tensor(LMS_TO_SRGB)
        self.decode_lut = as_tensor(SRGB8_TO_LINEAR)

    def srgb8_to_oklab(self, rgb: torch.Tensor) -> torch.Tensor:
        """8-bit sRGB codes (..., 3) to OKLab (..., 3)."""

        codes = rgb.to(self.device).long().clamp(0, 255)
        linear = self.decode_lut[codes]
        lms = linear @ self.srgb_to_lms.T
        # torch.pow does not take real cube roots of negatives.
        lms_ = torch.sign(lms) * lms.abs().pow(1.0 / 3.0)
        return lms_ @ self.lms_to_oklab.T

    def oklab_to_srgb8(self, lab: torch.Tensor) -> torch.Tensor:
        """OKLab (..., 3) to clamped, rounded 8-bit sRGB (uint8)."""

        lms_ = lab.to(self.device, self.dtype) @ self.oklab_to_lms.T
        linear = (lms_ ** 3) @ self.lms_to_srgb.T
        encoded = torch.where(
            linear <= 0.0031308,
            linear * 12.92,
            1.055 * linear.clamp(min=0.0031308).pow(1.0 / 2.4) - 0.055,
        )
        return torch.floor((encoded * 255.0).clamp(0.0, 255.0) + 0.5).to(torch.uint8)
