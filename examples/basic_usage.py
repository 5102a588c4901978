"""
Basic usage examples for refgrade.
"""

from __future__ import annotations

import numpy as np

from refgrade import GradingConfig, GradingPipeline, PixelFrame, fit_look_params, grade_image


def _random_rgba(height: int, width: int, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    data = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    data[..., 3] = 255
    return data


def _warm_reference(height: int = 256, width: int = 384) -> np.ndarray:
    v = np.linspace(10, 240, width).astype(int)
    rgb = np.stack([np.minimum(255, v + 25), v + 5, np.maximum(0, v - 35)], axis=-1)
    data = np.empty((height, width, 4), dtype=np.uint8)
    data[..., :3] = rgb[np.newaxis]
    data[..., 3] = 255
    return data


def example_simple() -> PixelFrame:
    """Grade a source toward a reference with the default configuration."""

    pipeline = GradingPipeline()
    graded = pipeline.process(_random_rgba(256, 256), _warm_reference())
    rgb = graded.data[..., :3]
    print(f"Simple example output range: [{rgb.min()}, {rgb.max()}]")
    return graded


def example_partial_strength() -> PixelFrame:
    """Blend half way between the source and the graded result."""

    config = GradingConfig(strength=0.5, use_halation=False)
    graded = GradingPipeline(config).process(_random_rgba(128, 128, seed=1), _warm_reference())
    print(f"Half-strength example mean RGB: {graded.data[..., :3].mean():0.1f}")
    return graded


def example_convenience_function() -> PixelFrame:
    """Grade using the high-level convenience wrapper."""

    graded = grade_image(_random_rgba(128, 128, seed=2), _warm_reference(), strength=0.8)
    print(f"Convenience example output shape: {graded.data.shape}")
    return graded


def example_fit_only() -> dict:
    """Fit a look and print its JSON form."""

    look = fit_look_params(PixelFrame.from_array(_warm_reference()))
    data = look.to_dict()
    print(f"Fitted warmth {look.warmth:0.3f}, tint {look.tint:0.3f}, {len(data)} fields")
    return data


if __name__ == "__main__":
    print("Running refgrade basic examples...")
    example_simple()
    example_partial_strength()
    example_convenience_function()
    example_fit_only()
