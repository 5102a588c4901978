"""
Configuration primitives for refgrade.

Defines the colour band enum, the flat UI-facing match parameter set with
its declared ranges, and the pipeline configuration dataclass.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple


class ColorBand(Enum):
    """Fixed lightness bands for 5-band colour matching."""

    LOWER_SHADOW = "lowerShadow"  # deepest shadows, anchor 0.08
    UPPER_SHADOW = "upperShadow"  # toe / low mids, anchor 0.25
    MID = "mid"  # true midtones, anchor 0.5
    LOWER_HIGH = "lowerHigh"  # lower highlights, anchor 0.7
    UPPER_HIGH = "upperHigh"  # brightest highlights, anchor 0.9


# Declared valid ranges; out-of-range values are clamped, never rejected.
MATCH_PARAM_RANGES: Dict[str, Tuple[float, float]] = {
    "lumaStrength": (0.0, 2.0),
    "colorStrength": (0.0, 2.0),
    "exposureStrength": (0.0, 2.0),
    "colorDensity": (0.1, 3.0),
    "blackStrength": (0.0, 8.0),
    "blackRange": (0.0, 1.0),
    "blackPoint": (0.0, 0.6),
    "highlightFillStrength": (0.0, 1.0),
    "highlightFillWarmth": (-1.0, 1.0),
}
for _band in ("LowerShadow", "UpperShadow", "Mid", "LowerHigh", "UpperHigh"):
    MATCH_PARAM_RANGES[f"band{_band}"] = (0.0, 3.0)
    MATCH_PARAM_RANGES[f"band{_band}Hue"] = (-1.0, 1.0)
    MATCH_PARAM_RANGES[f"band{_band}Sat"] = (0.0, 2.0)
    MATCH_PARAM_RANGES[f"band{_band}Luma"] = (-0.5, 0.5)


def clamp(value: float, low: float, high: float, default: Optional[float] = None) -> float:
    """Clamp ``value`` into [low, high]; non-finite values become ``default``."""

    if value is None or not math.isfinite(value):
        return low if default is None else default
    return min(high, max(low, float(value)))


def clamp_match_param(key: str, value: float, default: Optional[float] = None) -> float:
    """
    Clamp a numeric match parameter into its declared range (unknown keys pass through).

    Non-finite values become ``default`` when one is given.
    """

    bounds = MATCH_PARAM_RANGES.get(key)
    if bounds is None:
        return value
    return clamp(value, bounds[0], bounds[1], default)


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass(frozen=True)
class BandValues:
    """One value per colour band."""

    lower_shadow: float = 1.0
    upper_shadow: float = 1.0
    mid: float = 1.0
    lower_high: float = 1.0
    upper_high: float = 1.0

    @classmethod
    def filled(cls, value: float) -> "BandValues":
        return cls(value, value, value, value, value)

    def as_tuple(self) -> Tuple[float, float, float, float, float]:
        return (self.lower_shadow, self.upper_shadow, self.mid, self.lower_high, self.upper_high)

    def clamped(self, low: float, high: float, default: float) -> "BandValues":
        return BandValues(*(clamp(v, low, high, default) for v in self.as_tuple()))

    def to_dict(self) -> Dict[str, float]:
        return {band.value: value for band, value in zip(ColorBand, self.as_tuple())}

    @classmethod
    def from_dict(cls, data: Mapping[str, float], default: float = 1.0) -> "BandValues":
        return cls(*(float(data.get(band.value, default)) for band in ColorBand))


@dataclass(frozen=True)
class BandOverrides:
    """Manual per-band hue/saturation/luma nudges applied after matching."""

    hue: BandValues = BandValues.filled(0.0)  # -1..1, mapped to ±30°
    sat: BandValues = BandValues.filled(1.0)  # 0..2, 1 = neutral
    luma: BandValues = BandValues.filled(0.0)  # -0.5..0.5, ±0.2 applied

    @property
    def is_neutral(self) -> bool:
        return (
            all(v == 0.0 for v in self.hue.as_tuple())
            and all(v == 1.0 for v in self.sat.as_tuple())
            and all(v == 0.0 for v in self.luma.as_tuple())
        )

    def clamped(self) -> "BandOverrides":
        return BandOverrides(
            hue=self.hue.clamped(-1.0, 1.0, 0.0),
            sat=self.sat.clamped(0.0, 2.0, 1.0),
            luma=self.luma.clamped(-0.5, 0.5, 0.0),
        )

    def to_dict(self) -> Dict[str, Dict[str, float]]:
        return {"hue": self.hue.to_dict(), "sat": self.sat.to_dict(), "luma": self.luma.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, float]]) -> "BandOverrides":
        return cls(
            hue=BandValues.from_dict(data.get("hue", {}), 0.0),
            sat=BandValues.from_dict(data.get("sat", {}), 1.0),
            luma=BandValues.from_dict(data.get("luma", {}), 0.0),
        )


@dataclass(frozen=True)
class HighlightFill:
    """Halation (highlight bloom) controls."""

    strength: float = 0.0  # 0..1
    warmth: float = 0.0  # -1..1

    def clamped(self) -> "HighlightFill":
        return HighlightFill(clamp(self.strength, 0.0, 1.0, 0.0), clamp(self.warmth, -1.0, 1.0, 0.0))

    def to_dict(self) -> Dict[str, float]:
        return {"strength": self.strength, "warmth": self.warmth}

    @classmethod
    def from_dict(cls, data: Mapping[str, float]) -> "HighlightFill":
        return cls(float(data.get("strength", 0.0)), float(data.get("warmth", 0.0) or 0.0))


@dataclass(frozen=True)
class MatchParams:
    """
    UI-facing match strengths and manual overrides.

    Serialises to a flat camelCase mapping (``lumaStrength``,
    ``bandMidHue`` ...), which is also the key space of learned heuristics.
    """

    luma_strength: float = 1.0
    color_strength: float = 1.0
    color_density: float = 1.0
    exposure_strength: float = 1.0
    black_strength: float = 1.0
    black_range: float = 0.6
    black_point: Optional[float] = None  # overrides the fitted black anchor

    band_lower_shadow: float = 1.0
    band_upper_shadow: float = 1.0
    band_mid: float = 1.0
    band_lower_high: float = 1.0
    band_upper_high: float = 1.0

    band_lower_shadow_hue: float = 0.0
    band_upper_shadow_hue: float = 0.0
    band_mid_hue: float = 0.0
    band_lower_high_hue: float = 0.0
    band_upper_high_hue: float = 0.0

    band_lower_shadow_sat: float = 1.0
    band_upper_shadow_sat: float = 1.0
    band_mid_sat: float = 1.0
    band_lower_high_sat: float = 1.0
    band_upper_high_sat: float = 1.0

    band_lower_shadow_luma: float = 0.0
    band_upper_shadow_luma: float = 0.0
    band_mid_luma: float = 0.0
    band_lower_high_luma: float = 0.0
    band_upper_high_luma: float = 0.0

    highlight_fill_strength: float = 0.0
    highlight_fill_warmth: float = 0.0

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {to_camel(name): value for name, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Optional[float]]) -> "MatchParams":
        known = {to_camel(f.name): f.name for f in fields(cls)}
        kwargs = {known[key]: value for key, value in data.items() if key in known}
        return cls(**kwargs)

    def clamped(self) -> "MatchParams":
        defaults = MatchParams()
        changes = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if not math.isfinite(value):
                default = getattr(defaults, f.name)
                value = 0.0 if default is None else default
            changes[f.name] = clamp_match_param(to_camel(f.name), value)
        return replace(self, **changes)

    @property
    def band_strengths(self) -> BandValues:
        return BandValues(
            self.band_lower_shadow,
            self.band_upper_shadow,
            self.band_mid,
            self.band_lower_high,
            self.band_upper_high,
        )

    @property
    def band_overrides(self) -> BandOverrides:
        return BandOverrides(
            hue=BandValues(
                self.band_lower_shadow_hue,
                self.band_upper_shadow_hue,
                self.band_mid_hue,
                self.band_lower_high_hue,
                self.band_upper_high_hue,
            ),
            sat=BandValues(
                self.band_lower_shadow_sat,
                self.band_upper_shadow_sat,
                self.band_mid_sat,
                self.band_lower_high_sat,
                self.band_upper_high_sat,
            ),
            luma=BandValues(
                self.band_lower_shadow_luma,
                self.band_upper_shadow_luma,
                self.band_mid_luma,
                self.band_lower_high_luma,
                self.band_upper_high_luma,
            ),
        )

    @property
    def highlight_fill(self) -> HighlightFill:
        return HighlightFill(self.highlight_fill_strength, self.highlight_fill_warmth)


@dataclass
class GradingConfig:
    """
    Pipeline switches for :class:`refgrade.core.pipeline.GradingPipeline`.

    Grading parameters are clamped; pipeline configuration is validated.
    """

    strength: float = 1.0  # final blend, 0 = source, 1 = graded
    use_halation: bool = True
    apply_heuristics: bool = True

    def validate(self) -> None:
        """Validate configuration parameters."""

        if not (0.0 <= self.strength <= 1.0):
            raise ValueError(f"Strength {self.strength} out of range [0, 1]")
