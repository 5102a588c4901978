"""Reference-based colour grading (refgrade).

Fits a compact parametric look from a single reference photograph in
OKLab and renders a source photograph under it.
"""

from refgrade.core.config import (
    BandOverrides,
    BandValues,
    ColorBand,
    GradingConfig,
    HighlightFill,
    MatchParams,
)
from refgrade.core.look import ColorModel, LookParams, ToneModel, merge_match
from refgrade.core.pipeline import GradingPipeline, grade_image
from refgrade.matching.applier import LookApplier, apply_look
from refgrade.matching.fitter import ReferenceFitter, fit_look_params
from refgrade.utils.frame import FrameError, PixelFrame

__all__ = [
    "GradingPipeline",
    "GradingConfig",
    "LookParams",
    "MatchParams",
    "ColorBand",
    "BandValues",
    "BandOverrides",
    "HighlightFill",
    "ToneModel",
    "ColorModel",
    "ReferenceFitter",
    "LookApplier",
    "PixelFrame",
    "FrameError",
    "fit_look_params",
    "apply_look",
    "merge_match",
    "grade_image",
]

try:  # Optional PyTorch acceleration
    from refgrade.torch import TorchOklabTransform  # type: ignore

    __all__.append("TorchOklabTransform")
except Exception:  # pragma: no cover - torch not installed
    TorchOklabTransform = None  # type: ignore

__version__ = "0.1.0"
