"""Optical post-processing stages."""

from refgrade.optics.halation import HalationParameters, HalationStage

__all__ = ["HalationParameters", "HalationStage"]
