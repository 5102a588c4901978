"""Reference fitting and look application."""

from refgrade.matching.applier import LookApplier, apply_look
from refgrade.matching.fitter import ReferenceFitter, fit_look_params

__all__ = ["ReferenceFitter", "fit_look_params", "LookApplier", "apply_look"]
