"""
Advanced refgrade usage scenarios.
"""

from __future__ import annotations

import json

import numpy as np

from refgrade import GradingConfig, GradingPipeline, LookParams, MatchParams, PixelFrame
from refgrade.heuristics import CorrectionRecord, learn_heuristics


def _gradient(height: int, width: int, offsets=(0, 0, 0)) -> np.ndarray:
    v = np.linspace(5, 250, width).astype(int)
    rgb = np.stack([np.clip(v + o, 0, 255) for o in offsets], axis=-1)
    data = np.empty((height, width, 4), dtype=np.uint8)
    data[..., :3] = rgb[np.newaxis]
    data[..., 3] = 255
    return data


def example_with_intermediate_results() -> dict:
    """Retrieve intermediate stage results for inspection."""

    pipeline = GradingPipeline()
    results = pipeline.process(
        _gradient(128, 256), _gradient(128, 256, (20, 0, -30)), return_intermediate=True
    )
    keys = ", ".join(results.keys())
    print(f"Intermediate results available: {keys}")
    return results


def example_match_overrides() -> PixelFrame:
    """Layer UI match strengths and band overrides on a fitted look."""

    match = MatchParams(
        luma_strength=0.8,
        color_strength=1.4,
        band_mid_hue=0.2,
        band_upper_high_sat=0.7,
        highlight_fill_strength=0.5,
        highlight_fill_warmth=0.6,
    )
    pipeline = GradingPipeline()
    graded = pipeline.process(_gradient(128, 256), _gradient(128, 256, (0, 10, 25)), match=match)
    print("Match override example complete.")
    return graded


def example_saved_look() -> PixelFrame:
    """Fit once, store the look as JSON, reuse it on another source."""

    pipeline = GradingPipeline()
    look = pipeline.fit(_gradient(64, 128, (15, 5, -20)))
    stored = json.dumps(look.to_dict())
    restored = LookParams.from_dict(json.loads(stored))
    graded = pipeline.process(_gradient(64, 64), look=restored)
    print(f"Saved look: {len(stored)} bytes of JSON")
    return graded


def example_learned_heuristics() -> PixelFrame:
    """Learn from recorded corrections and grade with the learned table."""

    records = [
        CorrectionRecord(MatchParams(), MatchParams(luma_strength=1.3, color_strength=0.9)),
        CorrectionRecord(MatchParams(), MatchParams(luma_strength=1.2, color_strength=0.85)),
    ]
    table = learn_heuristics(records)["heuristics"]
    pipeline = GradingPipeline(GradingConfig(), heuristics=table)
    results = pipeline.process(_gradient(64, 128), _gradient(64, 128, (10, 0, -10)), return_intermediate=True)
    match = results["match"]
    print(f"Adapted luma {match.luma_strength:0.3f}, colour {match.color_strength:0.3f}")
    return results["output"]


def example_torch_transform():
    """Demonstrate the PyTorch OKLab transform (requires torch)."""
    try:
        import torch
        from refgrade.torch import TorchOklabTransform  # type: ignore
    except Exception:  # pragma: no cover - torch optional
        print("PyTorch is not available; skipping GPU example.")
        return None

    device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
    transform = TorchOklabTransform(device=device)
    codes = torch.from_numpy(_gradient(64, 64)[..., :3]).to(device)
    lab = transform.srgb8_to_oklab(codes)
    print(f"Torch OKLab on {device}: L in [{lab[..., 0].min():0.3f}, {lab[..., 0].max():0.3f}]")
    return lab


if __name__ == "__main__":
    print("Running refgrade advanced examples...")
    example_with_intermediate_results()
    example_match_overrides()
    example_saved_look()
    example_learned_heuristics()
    example_torch_transform()
