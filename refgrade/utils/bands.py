"""
Lightness band kernels shared by fitting, matching and image statistics.
"""

from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np

# Deep shadows, upper shadows, mids, lower highlights, upper highlights.
COLOR_BAND_ANCHORS: Tuple[float, ...] = (0.08, 0.25, 0.5, 0.7, 0.9)
BAND_COUNT = len(COLOR_BAND_ANCHORS)


def _band_widths() -> np.ndarray:
    anchors = np.asarray(COLOR_BAND_ANCHORS)
    left = np.concatenate([[0.0], anchors[:-1]])
    right = np.concatenate([anchors[1:], [1.0]])
    return np.maximum(1e-3, np.maximum(anchors - left, right - anchors))


_BAND_WIDTHS = _band_widths()


def band_weights(L: np.ndarray) -> np.ndarray:
    """
    Normalised triangular weights of each L over the five colour bands.

    Parameters
    ----------
    L : np.ndarray
        Lightness values, any shape

    Returns
    -------
    np.ndarray
        Weights of shape ``L.shape + (5,)``; each row sums to 1.
    """

    L = np.asarray(L, dtype=float)
    anchors = np.asarray(COLOR_BAND_ANCHORS)
    weights = np.maximum(0.0, 1.0 - np.abs(L[..., np.newaxis] - anchors) / _BAND_WIDTHS)
    total = weights.sum(axis=-1, keepdims=True)
    safe = np.where(total > 1e-6, total, 1.0)
    return np.where(total > 1e-6, weights / safe, weights)


def band_sums(
    L: np.ndarray, a: np.ndarray, b: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Weighted sums of a, b and chroma per band over flat pixel arrays.

    Returns (sum_a, sum_b, sum_c, sum_w), each of shape (5,).
    """

    weights = band_weights(L)
    c = np.sqrt(a * a + b * b)
    return weights.T @ a, weights.T @ b, weights.T @ c, weights.sum(axis=0)


def interpolate_tint(
    L: np.ndarray,
    anchors: Sequence[float],
    tint_a: Sequence[float],
    tint_b: Sequence[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Band-centred tint lookup with half-width 0.65 / band count.

    Narrower than a linear blend, so neighbouring bands transition sharply.
    """

    L = np.asarray(L, dtype=float)
    n = len(anchors)
    if n == 0:
        return np.zeros_like(L), np.zeros_like(L)

    anchors_arr = np.asarray(anchors, dtype=float)
    a_arr = np.asarray(tint_a, dtype=float)
    b_arr = np.asarray(tint_b, dtype=float)

    half_width = 0.65 / n
    weights = np.maximum(0.0, 1.0 - np.abs(L[..., np.newaxis] - anchors_arr) / half_width)
    total = weights.sum(axis=-1)
    safe = np.where(total < 1e-9, 1.0, total)
    out_a = (weights * a_arr).sum(axis=-1) / safe
    out_b = (weights * b_arr).sum(axis=-1) / safe

    below = L <= anchors_arr[0]
    edge_a = np.where(below, a_arr[0], a_arr[-1])
    edge_b = np.where(below, b_arr[0], b_arr[-1])
    uncovered = total < 1e-9
    return np.where(uncovered, edge_a, out_a), np.where(uncovered, edge_b, out_b)


def region_weights(L: np.ndarray) -> np.ndarray:
    """
    Five overlapping triangular regions across L used to modulate the
    tint-curve strength. Returns shape ``L.shape + (5,)``, not normalised.
    """

    ls = np.clip(np.asarray(L, dtype=float), 0.0, 1.0)
    lower_shadow = np.where(
        ls <= 0.3,
        np.where(ls <= 0.15, 1.0 - ls / 0.15, np.maximum(0.0, (0.3 - ls) / 0.15)),
        0.0,
    )
    upper_shadow = np.where((ls >= 0.1) & (ls <= 0.45), 1.0 - np.abs(ls - 0.275) / 0.175, 0.0)
    mid = np.where((ls >= 0.3) & (ls <= 0.7), 1.0 - np.abs(ls - 0.5) / 0.2, 0.0)
    lower_high = np.where((ls >= 0.5) & (ls <= 0.85), 1.0 - np.abs(ls - 0.675) / 0.175, 0.0)
    upper_high = np.where(
        ls >= 0.7,
        np.where(ls <= 0.85, (ls - 0.7) / 0.15, np.maximum(0.0, (1.0 - ls) / 0.15)),
        0.0,
    )
    return np.stack([lower_shadow, upper_shadow, mid, lower_high, upper_high], axis=-1)


def region_strength_factor(L: np.ndarray, strengths: Sequence[float]) -> np.ndarray:
    """Blend five per-region strengths at each L; 1 where no region covers L."""

    weights = region_weights(L)
    num = (weights * np.asarray(strengths, dtype=float)).sum(axis=-1)
    den = weights.sum(axis=-1)
    return np.where(den > 1e-3, num / np.where(den > 1e-3, den, 1.0), 1.0)
