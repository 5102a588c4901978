"""
Binomial blurs and mid-tone detail energy on torch tensors.
"""

from __future__ import annotations

from typing import Optional

import torch
import torch.nn.functional as F

from refgrade.preprocessing.blur import BINOMIAL_5, MID_HIGH, MID_LOW


def gaussian_blur5(grid: torch.Tensor) -> torch.Tensor:
    """Separable 5-tap binomial blur of an (H, W) tensor with edge replication."""

    kernel = torch.as_tensor(BINOMIAL_5, dtype=grid.dtype, device=grid.device)
    x = grid.unsqueeze(0).unsqueeze(0)
    x = F.conv2d(F.pad(x, (2, 2, 0, 0), mode="replicate"), kernel.view(1, 1, 1, 5))
    x = F.conv2d(F.pad(x, (0, 0, 2, 2), mode="replicate"), kernel.view(1, 1, 5, 1))
    return x[0, 0]


def film_blur(grid: torch.Tensor) -> torch.Tensor:
    return gaussian_blur5(gaussian_blur5(grid))


def mid_detail_rms(L: torch.Tensor, mask: torch.Tensor, blurred: Optional[torch.Tensor] = None) -> float:
    """RMS of (L - film_blur(L)) over opaque midtone pixels; 0 when none."""

    if L.numel() == 0:
        return 0.0
    if blurred is None:
        blurred = film_blur(L)
    mids = mask.bool() & (L >= MID_LOW) & (L <= MID_HIGH)
    if not bool(mids.any()):
        return 0.0
    detail = L[mids] - blurred[mids]
    return float(torch.sqrt(torch.mean(detail * detail)))
