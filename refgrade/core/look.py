"""
Serializable grading model fitted from a reference and applied to a source.

The JSON shape is versioned by field presence: optional curves that are
absent make the applier fall back to the simpler global model.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from refgrade.core.config import (
    BandOverrides,
    BandValues,
    HighlightFill,
    MatchParams,
    clamp,
)
from refgrade.utils.bands import BAND_COUNT


class ToneModel(Enum):
    """How lightness is remapped."""

    CURVE = "curve"  # piecewise-linear reference curve
    LIFT_GAMMA_GAIN = "lift_gamma_gain"  # toe power + lift/gamma/gain


class ColorModel(Enum):
    """How chroma is matched, in order of preference."""

    BAND_MATCH = "band_match"  # literal 5-band reference statistics
    TINT_CURVE = "tint_curve"  # 16-band fitted tint curve
    GLOBAL_TINT = "global_tint"  # flat warmth/tint + shadow/highlight tint


def _floats(values: Sequence[float], low: float, high: float, default: float) -> List[float]:
    return [clamp(v, low, high, default) for v in values]


@dataclass
class Tone:
    lift: float = 0.0
    gamma: float = 1.0
    gain: float = 1.0


@dataclass
class SaturationShape:
    shadow_rolloff: float = 0.0
    highlight_rolloff: float = 0.0
    shadow_color_density: float = 1.0
    highlight_color_density: float = 1.0


@dataclass
class TintAB:
    a: float = 0.0
    b: float = 0.0


@dataclass
class ToneCurve:
    """Piecewise-linear lightness remap, L_in -> L_out."""

    L_in: List[float]
    L_out: List[float]

    def clamped(self) -> "ToneCurve":
        n = min(len(self.L_in), len(self.L_out))
        pairs = sorted(
            zip(_floats(self.L_in[:n], 0.0, 1.0, 0.0), _floats(self.L_out[:n], 0.0, 1.0, 0.0))
        )
        return ToneCurve([p[0] for p in pairs], [p[1] for p in pairs])


@dataclass
class TintCurve:
    """Local (a, b) bias per lightness band."""

    L_anchors: List[float]
    a: List[float]
    b: List[float]

    def clamped(self) -> "TintCurve":
        n = min(len(self.L_anchors), len(self.a), len(self.b))
        return TintCurve(
            _floats(self.L_anchors[:n], 0.0, 1.0, 0.5),
            _floats(self.a[:n], -0.35, 0.35, 0.0),
            _floats(self.b[:n], -0.45, 0.45, 0.0),
        )


@dataclass
class SaturationCurve:
    """Chroma multiplier per lightness band (1 = neutral)."""

    L_anchors: List[float]
    scale: List[float]

    def clamped(self) -> "SaturationCurve":
        n = min(len(self.L_anchors), len(self.scale))
        return SaturationCurve(
            _floats(self.L_anchors[:n], 0.0, 1.0, 0.5),
            _floats(self.scale[:n], 0.2, 2.0, 1.0),
        )


@dataclass
class ColorMatchBands:
    """Reference-side mean (a, b, C) for each of the five colour bands."""

    ref_a: List[float]
    ref_b: List[float]
    ref_c: List[float]

    @property
    def is_complete(self) -> bool:
        return len(self.ref_a) == BAND_COUNT and len(self.ref_b) == BAND_COUNT and len(self.ref_c) == BAND_COUNT

    def clamped(self) -> "ColorMatchBands":
        return ColorMatchBands(
            _floats(self.ref_a, -0.5, 0.5, 0.0),
            _floats(self.ref_b, -0.5, 0.5, 0.0),
            _floats(self.ref_c, 0.0, 0.5, 0.1),
        )


@dataclass
class LookParams:
    """
    Parametric look.

    Fitted reference descriptors (tone, curves, band statistics, targets)
    plus the modulation knobs layered on top of them (strengths, band
    strengths, overrides, highlight fill).
    """

    tone: Tone = field(default_factory=Tone)
    saturation: SaturationShape = field(default_factory=SaturationShape)
    warmth: float = 0.0
    tint: float = 0.0
    shadow_tint: TintAB = field(default_factory=TintAB)
    highlight_tint: TintAB = field(default_factory=TintAB)
    shadow_contrast: float = 1.0

    tone_curve: Optional[ToneCurve] = None
    tint_by_l: Optional[TintCurve] = None
    saturation_by_l: Optional[SaturationCurve] = None
    color_match_bands: Optional[ColorMatchBands] = None

    ref_saturation: float = 1.0
    color_density: float = 1.0
    micro_contrast_mid: float = 0.0
    ref_mid_l: Optional[float] = None
    ref_black_l: Optional[float] = None

    luma_strength: float = 1.0
    color_strength: float = 1.0
    exposure_strength: float = 1.0
    black_strength: float = 1.0
    black_range: float = 0.6

    color_band_strengths: BandValues = field(default_factory=BandValues)
    color_band_overrides: Optional[BandOverrides] = None
    highlight_fill: Optional[HighlightFill] = None

    @classmethod
    def neutral(cls) -> "LookParams":
        """Identity look: no curves, no reference targets."""

        return cls()

    # ------------------------------------------------------------------
    # Model selection
    # ------------------------------------------------------------------

    @property
    def tone_model(self) -> ToneModel:
        if self.tone_curve is not None and self.tone_curve.L_in and self.tone_curve.L_out:
            return ToneModel.CURVE
        return ToneModel.LIFT_GAMMA_GAIN

    @property
    def color_model(self) -> ColorModel:
        if self.color_match_bands is not None and self.color_match_bands.is_complete:
            return ColorModel.BAND_MATCH
        if self.tint_by_l is not None and self.tint_by_l.L_anchors:
            return ColorModel.TINT_CURVE
        return ColorModel.GLOBAL_TINT

    @property
    def uses_saturation_curve(self) -> bool:
        return (
            self.saturation_by_l is not None
            and len(self.saturation_by_l.L_anchors) > 0
            and len(self.saturation_by_l.scale) > 0
        )

    # ------------------------------------------------------------------
    # Range enforcement
    # ------------------------------------------------------------------

    def clamped(self) -> "LookParams":
        """Return a copy with every numeric field inside its declared range."""

        sat = self.saturation
        return LookParams(
            tone=Tone(
                lift=clamp(self.tone.lift, -0.2, 0.2, 0.0),
                gamma=clamp(self.tone.gamma, 0.5, 2.0, 1.0),
                gain=clamp(self.tone.gain, 0.5, 2.0, 1.0),
            ),
            saturation=SaturationShape(
                shadow_rolloff=clamp(sat.shadow_rolloff, 0.0, 1.0, 0.0),
                highlight_rolloff=clamp(sat.highlight_rolloff, 0.0, 1.0, 0.0),
                shadow_color_density=clamp(sat.shadow_color_density, 0.5, 2.0, 1.0),
                highlight_color_density=clamp(sat.highlight_color_density, 0.5, 2.0, 1.0),
            ),
            warmth=clamp(self.warmth, -0.35, 0.35, 0.0),
            tint=clamp(self.tint, -0.2, 0.2, 0.0),
            shadow_tint=TintAB(
                clamp(self.shadow_tint.a, -0.22, 0.22, 0.0),
                clamp(self.shadow_tint.b, -0.22, 0.22, 0.0),
            ),
            highlight_tint=TintAB(
                clamp(self.highlight_tint.a, -0.22, 0.22, 0.0),
                clamp(self.highlight_tint.b, -0.22, 0.22, 0.0),
            ),
            shadow_contrast=clamp(self.shadow_contrast, 0.5, 2.0, 1.0),
            tone_curve=self.tone_curve.clamped() if self.tone_curve is not None else None,
            tint_by_l=self.tint_by_l.clamped() if self.tint_by_l is not None else None,
            saturation_by_l=(
                self.saturation_by_l.clamped() if self.saturation_by_l is not None else None
            ),
            color_match_bands=(
                self.color_match_bands.clamped() if self.color_match_bands is not None else None
            ),
            ref_saturation=clamp(self.ref_saturation, 0.1, 2.5, 1.0),
            color_density=clamp(self.color_density, 0.5, 2.0, 1.0),
            micro_contrast_mid=clamp(self.micro_contrast_mid, 0.0, 0.5, 0.0),
            ref_mid_l=None if self.ref_mid_l is None else clamp(self.ref_mid_l, 0.0, 1.0, 0.5),
            ref_black_l=(
                None if self.ref_black_l is None else clamp(self.ref_black_l, 0.0, 0.2, 0.05)
            ),
            luma_strength=clamp(self.luma_strength, 0.0, 2.0, 1.0),
            color_strength=clamp(self.color_strength, 0.0, 2.0, 1.0),
            exposure_strength=clamp(self.exposure_strength, 0.0, 2.0, 1.0),
            black_strength=clamp(self.black_strength, 0.0, 8.0, 1.0),
            black_range=clamp(self.black_range, 0.0, 1.0, 0.6),
            color_band_strengths=self.color_band_strengths.clamped(0.0, 3.0, 1.0),
            color_band_overrides=(
                self.color_band_overrides.clamped()
                if self.color_band_overrides is not None
                else None
            ),
            highlight_fill=self.highlight_fill.clamped() if self.highlight_fill is not None else None,
        )

    # ------------------------------------------------------------------
    # JSON round trip
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "tone": {"lift": self.tone.lift, "gamma": self.tone.gamma, "gain": self.tone.gain},
            "saturation": {
                "shadowRolloff": self.saturation.shadow_rolloff,
                "highlightRolloff": self.saturation.highlight_rolloff,
                "shadowColorDensity": self.saturation.shadow_color_density,
                "highlightColorDensity": self.saturation.highlight_color_density,
            },
            "warmth": self.warmth,
            "tint": self.tint,
            "shadowTint": {"a": self.shadow_tint.a, "b": self.shadow_tint.b},
            "highlightTint": {"a": self.highlight_tint.a, "b": self.highlight_tint.b},
            "shadowContrast": self.shadow_contrast,
            "refSaturation": self.ref_saturation,
            "colorDensity": self.color_density,
            "microContrastMid": self.micro_contrast_mid,
            "lumaStrength": self.luma_strength,
            "colorStrength": self.color_strength,
            "exposureStrength": self.exposure_strength,
            "blackStrength": self.black_strength,
            "blackRange": self.black_range,
            "colorBandStrengths": self.color_band_strengths.to_dict(),
        }
        if self.tone_curve is not None:
            data["toneCurve"] = {"L_in": list(self.tone_curve.L_in), "L_out": list(self.tone_curve.L_out)}
        if self.tint_by_l is not None:
            data["tintByL"] = {
                "L_anchors": list(self.tint_by_l.L_anchors),
                "a": list(self.tint_by_l.a),
                "b": list(self.tint_by_l.b),
            }
        if self.saturation_by_l is not None:
            data["saturationByL"] = {
                "L_anchors": list(self.saturation_by_l.L_anchors),
                "scale": list(self.saturation_by_l.scale),
            }
        if self.color_match_bands is not None:
            data["colorMatchBands"] = {
                "refA": list(self.color_match_bands.ref_a),
                "refB": list(self.color_match_bands.ref_b),
                "refC": list(self.color_match_bands.ref_c),
            }
        if self.ref_mid_l is not None:
            data["refMidL"] = self.ref_mid_l
        if self.ref_black_l is not None:
            data["refBlackL"] = self.ref_black_l
        if self.color_band_overrides is not None:
            data["colorBandOverrides"] = self.color_band_overrides.to_dict()
        if self.highlight_fill is not None:
            data["highlightFill"] = self.highlight_fill.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LookParams":
        """Build from the JSON shape; absent fields take neutral defaults."""

        tone = data.get("tone", {})
        sat = data.get("saturation", {})
        shadow_tint = data.get("shadowTint", {})
        highlight_tint = data.get("highlightTint", {})

        look = cls(
            tone=Tone(
                float(tone.get("lift", 0.0)),
                float(tone.get("gamma", 1.0)),
                float(tone.get("gain", 1.0)),
            ),
            saturation=SaturationShape(
                float(sat.get("shadowRolloff", 0.0)),
                float(sat.get("highlightRolloff", 0.0)),
                float(sat.get("shadowColorDensity", 1.0)),
                float(sat.get("highlightColorDensity", 1.0)),
            ),
            warmth=float(data.get("warmth", 0.0)),
            tint=float(data.get("tint", 0.0)),
            shadow_tint=TintAB(float(shadow_tint.get("a", 0.0)), float(shadow_tint.get("b", 0.0))),
            highlight_tint=TintAB(
                float(highlight_tint.get("a", 0.0)), float(highlight_tint.get("b", 0.0))
            ),
            shadow_contrast=float(data.get("shadowContrast", 1.0)),
            ref_saturation=float(data.get("refSaturation", 1.0)),
            color_density=float(data.get("colorDensity", 1.0)),
            micro_contrast_mid=float(data.get("microContrastMid", 0.0)),
            luma_strength=float(data.get("lumaStrength", 1.0)),
            color_strength=float(data.get("colorStrength", 1.0)),
            exposure_strength=float(data.get("exposureStrength", 1.0)),
            black_strength=float(data.get("blackStrength", 1.0)),
            black_range=float(data.get("blackRange", 0.6)),
            color_band_strengths=BandValues.from_dict(data.get("colorBandStrengths", {}), 1.0),
        )

        if "toneCurve" in data and data["toneCurve"] is not None:
            curve = data["toneCurve"]
            look.tone_curve = ToneCurve([float(v) for v in curve["L_in"]], [float(v) for v in curve["L_out"]])
        if "tintByL" in data and data["tintByL"] is not None:
            curve = data["tintByL"]
            look.tint_by_l = TintCurve(
                [float(v) for v in curve["L_anchors"]],
                [float(v) for v in curve["a"]],
                [float(v) for v in curve["b"]],
            )
        if "saturationByL" in data and data["saturationByL"] is not None:
            curve = data["saturationByL"]
            look.saturation_by_l = SaturationCurve(
                [float(v) for v in curve["L_anchors"]], [float(v) for v in curve["scale"]]
            )
        if "colorMatchBands" in data and data["colorMatchBands"] is not None:
            bands = data["colorMatchBands"]
            look.color_match_bands = ColorMatchBands(
                [float(v) for v in bands["refA"]],
                [float(v) for v in bands["refB"]],
                [float(v) for v in bands["refC"]],
            )
        if data.get("refMidL") is not None:
            look.ref_mid_l = float(data["refMidL"])
        if data.get("refBlackL") is not None:
            look.ref_black_l = float(data["refBlackL"])
        if data.get("colorBandOverrides") is not None:
            look.color_band_overrides = BandOverrides.from_dict(data["colorBandOverrides"])
        if data.get("highlightFill") is not None:
            look.highlight_fill = HighlightFill.from_dict(data["highlightFill"])
        return look


def match_from_look(look: LookParams) -> MatchParams:
    """Seed UI match parameters from a look (fitted black strength/range)."""

    fill = look.highlight_fill or HighlightFill()
    strengths = look.color_band_strengths
    return MatchParams(
        luma_strength=look.luma_strength,
        color_strength=look.color_strength,
        color_density=look.color_density,
        exposure_strength=look.exposure_strength,
        black_strength=look.black_strength,
        black_range=look.black_range,
        band_lower_shadow=strengths.lower_shadow,
        band_upper_shadow=strengths.upper_shadow,
        band_mid=strengths.mid,
        band_lower_high=strengths.lower_high,
        band_upper_high=strengths.upper_high,
        highlight_fill_strength=fill.strength,
        highlight_fill_warmth=fill.warmth,
    )


def merge_match(look: LookParams, match: MatchParams) -> LookParams:
    """
    Layer UI match parameters onto a look and clamp the result.

    This is the single configuration-merge step at the boundary of the
    core: everything downstream works on a fully populated, clamped look.
    The match always decides the highlight fill; zero strength turns it off.
    """

    match = match.clamped()
    overrides = match.band_overrides
    fill = match.highlight_fill
    merged = replace(
        look,
        luma_strength=match.luma_strength,
        color_strength=match.color_strength,
        color_density=match.color_density,
        exposure_strength=match.exposure_strength,
        black_strength=match.black_strength,
        black_range=match.black_range,
        ref_black_l=match.black_point if match.black_point is not None else look.ref_black_l,
        color_band_strengths=match.band_strengths,
        color_band_overrides=None if overrides.is_neutral else overrides,
        highlight_fill=fill if fill.strength > 0 else None,
    )
    return merged.clamped()

