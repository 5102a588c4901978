"""
Main refgrade processing pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np

from refgrade.core.config import GradingConfig, MatchParams
from refgrade.core.look import LookParams, match_from_look, merge_match
from refgrade.heuristics.adapter import (
    LearnedHeuristics,
    MatchContext,
    ParamHeuristics,
    apply_heuristics_to_match,
    parse_learned_heuristics,
)
from refgrade.matching.applier import LookApplier
from refgrade.matching.fitter import ReferenceFitter
from refgrade.optics.halation import HalationStage
from refgrade.utils.color import OklabTransform
from refgrade.utils.frame import FrameError, LabPlanes, PixelFrame
from refgrade.utils.stats import ImageStats, compute_image_stats

logger = logging.getLogger(__name__)

FrameLike = Union[PixelFrame, np.ndarray]

# Black match keys are adapted at fit time from reference buckets only.
FIT_TIME_KEYS = ("blackStrength", "blackRange")


def _as_frame(frame: FrameLike, name: str) -> PixelFrame:
    if isinstance(frame, PixelFrame):
        return frame
    if isinstance(frame, np.ndarray):
        return PixelFrame.from_array(frame)
    raise FrameError(f"Unsupported {name} type {type(frame).__name__}; expected PixelFrame or H×W×4 array")


def blend_frames(source: PixelFrame, graded: PixelFrame, strength: float) -> PixelFrame:
    """Per-channel sRGB blend, 0 = source and 1 = graded, rounded half up."""

    s = min(1.0, max(0.0, strength))
    if s == 1.0:
        return graded
    mixed = (1.0 - s) * source.data.astype(float) + s * graded.data.astype(float)
    out = np.floor(mixed + 0.5).clip(0, 255).astype(np.uint8)
    return PixelFrame(source.width, source.height, out)


class GradingPipeline:
    """
    Reference-based colour grading pipeline.

    Pipeline stages:
        1. Input validation
        2. Reference fit (when no explicit look is given)
        3. Match parameters (explicit, or seeded from the look and adapted
           with learned heuristics)
        4. Merge match into look
        5. Look application (tone, then colour)
        6. Strength blend against the source
        7. Halation (highlight fill)
    """

    def __init__(
        self,
        config: Optional[GradingConfig] = None,
        heuristics: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.config = config or GradingConfig()
        self.config.validate()
        self.heuristics = self._load_heuristics(heuristics)

        logger.info("Initializing refgrade pipeline")
        logger.info("  Strength: %.2f", self.config.strength)
        logger.info("  Halation: %s", self.config.use_halation)
        logger.info("  Heuristics: %d parameters", len(self.heuristics))

        self._init_components()

    @staticmethod
    def _load_heuristics(heuristics: Optional[Mapping[str, Any]]) -> LearnedHeuristics:
        if not heuristics:
            return {}
        if all(isinstance(v, ParamHeuristics) for v in heuristics.values()):
            return dict(heuristics)
        table = parse_learned_heuristics(heuristics)
        if not table:
            logger.warning("Learned heuristics table is empty after parsing")
        return table

    def _init_components(self) -> None:
        self.transform = OklabTransform()
        active = self.heuristics if self.config.apply_heuristics else None
        self.fitter = ReferenceFitter(heuristics=active, transform=self.transform)
        self.applier = LookApplier(transform=self.transform)
        self.halation = HalationStage(transform=self.transform) if self.config.use_halation else None
        if not self.config.apply_heuristics and self.heuristics:
            logger.warning("Learned heuristics loaded but disabled by configuration")

    def fit(self, reference: FrameLike) -> LookParams:
        """Fit a look from a reference frame."""

        return self.fitter.fit(_as_frame(reference, "reference"))

    def process(
        self,
        source: FrameLike,
        reference: Optional[FrameLike] = None,
        look: Optional[LookParams] = None,
        match: Optional[MatchParams] = None,
        source_type: Optional[str] = None,
        return_intermediate: bool = False,
    ) -> Union[PixelFrame, Dict[str, Any]]:
        """
        Grade ``source`` toward ``reference`` (or an explicit ``look``).

        Parameters
        ----------
        source : PixelFrame or np.ndarray
            Image to grade (H×W×4 uint8 RGBA)
        reference : PixelFrame or np.ndarray, optional
            Image to fit a look from; ignored when ``look`` is given
        look : LookParams, optional
            Explicit look; neutral when neither look nor reference is given
        match : MatchParams, optional
            Explicit UI match parameters; when absent they are seeded from
            the look and adapted with learned heuristics
        source_type : str, optional
            Source category used by the ``source_type:*`` heuristics bucket
        return_intermediate : bool
            Return a dict of stage results instead of the output frame
        """

        source = _as_frame(source, "source")
        ref_frame = _as_frame(reference, "reference") if reference is not None else None

        logger.info("Processing source: %dx%d", source.width, source.height)

        source_stats = compute_image_stats(LabPlanes.from_frame(source, self.transform))
        ref_stats: Optional[ImageStats] = None
        if ref_frame is not None:
            ref_stats = compute_image_stats(LabPlanes.from_frame(ref_frame, self.transform))

        look = self._stage_look(look, ref_frame)
        match = self._stage_match(look, match, source_stats, ref_stats, source_type)
        merged = merge_match(look, match)

        logger.debug("Stage 5: apply look")
        matched = self.applier.apply(source, merged)

        logger.debug("Stage 6: strength blend %.2f", self.config.strength)
        output = blend_frames(source, matched, self.config.strength)

        if self.halation is not None:
            logger.debug("Stage 7: halation")
            output = self.halation.apply(output, merged.highlight_fill)

        logger.info(
            "Processing complete. Output RGB range: [%d, %d]",
            int(output.data[:, :, :3].min()),
            int(output.data[:, :, :3].max()),
        )

        if return_intermediate:
            return {
                "look": merged,
                "fitted_look": look,
                "match": match,
                "matched": matched,
                "output": output,
                "source_stats": source_stats,
                "reference_stats": ref_stats,
            }
        return output

    # ------------------------------------------------------------------
    # Individual pipeline stages
    # ------------------------------------------------------------------

    def _stage_look(self, look: Optional[LookParams], reference: Optional[PixelFrame]) -> LookParams:
        if look is not None:
            logger.debug("Stage 2: explicit look")
            return look
        if reference is not None:
            logger.debug("Stage 2: fit reference %dx%d", reference.width, reference.height)
            return self.fitter.fit(reference)
        logger.debug("Stage 2: no reference, neutral look")
        return LookParams.neutral()

    def _stage_match(
        self,
        look: LookParams,
        match: Optional[MatchParams],
        source_stats: ImageStats,
        ref_stats: Optional[ImageStats],
        source_type: Optional[str],
    ) -> MatchParams:
        if match is not None:
            logger.debug("Stage 3: explicit match parameters")
            return match

        auto = match_from_look(look)
        if not (self.config.apply_heuristics and self.heuristics):
            return auto

        ctx = MatchContext.from_stats(source_stats, ref_stats, source_type)
        logger.debug(
            "Stage 3: heuristics context exposure=%s ref_exposure=%s ref_color=%s",
            ctx.source_exposure_bucket, ctx.ref_exposure_bucket, ctx.ref_color_bucket,
        )
        return apply_heuristics_to_match(auto, self.heuristics, ctx, exclude=FIT_TIME_KEYS)


def grade_image(
    source: FrameLike,
    reference: Optional[FrameLike] = None,
    strength: float = 1.0,
    heuristics: Optional[Mapping[str, Any]] = None,
) -> PixelFrame:
    """
    Convenience wrapper for quick grading.
    """

    config = GradingConfig(strength=strength)
    pipeline = GradingPipeline(config, heuristics=heuristics)
    return pipeline.process(source, reference)
