"""
GPU-accelerated OKLab conversion and film blur backed by PyTorch.
"""

from refgrade.torch.color import TorchOklabTransform
from refgrade.torch.filters import film_blur, gaussian_blur5, mid_detail_rms

__all__ = ["TorchOklabTransform", "film_blur", "gaussian_blur5", "mid_detail_rms"]
