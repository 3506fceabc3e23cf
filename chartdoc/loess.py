"""
Locally weighted linear regression (LOESS).

For every observation a straight line is fitted to its nearest neighbours,
weighted by the tricube kernel on distance. Robustness iterations then
down-weight points with large residuals using bisquare weights.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, Sequence, Tuple

import numpy as np
import pandas as pd

Curve = Tuple[np.ndarray, np.ndarray]


def _tricube(u: np.ndarray) -> np.ndarray:
    return np.clip(1 - np.abs(u) ** 3, 0, None) ** 3


def _weighted_line(x: np.ndarray, y: np.ndarray, w: np.ndarray, at: float) -> float:
    sw = w.sum()
    if sw <= 0:
        return float(y.mean())
    xm = (w * x).sum() / sw
    ym = (w * y).sum() / sw
    sxx = (w * (x - xm) ** 2).sum()
    if sxx <= 1e-12 * max(1.0, xm * xm):
        return float(ym)
    slope = (w * (x - xm) * (y - ym)).sum() / sxx
    return float(ym + slope * (at - xm))


def loess(
    x: Sequence[float],
    y: Sequence[float],
    *,
    bandwidth: float = 0.3,
    robustness_iters: int = 2,
) -> Curve:
    """
    Smooth y against x.

    Args:
        x, y: Observations; pairs containing NaN are dropped
        bandwidth: Fraction of points in each local fit, in (0, 1]
        robustness_iters: Number of reweighting passes after the first fit

    Returns:
        (xs, fitted) with xs sorted ascending

    Failure modes:
        - Raises ValueError for a bandwidth outside (0, 1]
        - Raises ValueError if x and y differ in length
        - Fewer than three points are returned unsmoothed
    """
    if not 0 < bandwidth <= 1:
        raise ValueError(f"bandwidth must be in (0, 1], got {bandwidth}")
    if robustness_iters < 0:
        raise ValueError("robustness_iters must be >= 0")

    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)
    if xs.shape != ys.shape:
        raise ValueError(f"x and y differ in length: {xs.shape} vs {ys.shape}")

    keep = ~(np.isnan(xs) | np.isnan(ys))
    xs, ys = xs[keep], ys[keep]
    order = np.argsort(xs, kind="mergesort")
    xs, ys = xs[order], ys[order]

    n = xs.size
    if n < 3:
        return xs, ys.copy()

    k = min(n, max(2, math.ceil(bandwidth * n)))
    robust = np.ones(n)
    fitted = np.empty(n)

    for iteration in range(robustness_iters + 1):
        for i in range(n):
            distance = np.abs(xs - xs[i])
            neighbours = np.argpartition(distance, k - 1)[:k]
            radius = distance[neighbours].max()
            if radius > 0:
                weights = _tricube(distance[neighbours] / radius)
            else:
                weights = np.ones(k)
            weights = weights * robust[neighbours]
            fitted[i] = _weighted_line(xs[neighbours], ys[neighbours], weights, xs[i])

        if iteration == robustness_iters:
            break
        residuals = ys - fitted
        scale = np.median(np.abs(residuals))
        if scale < 1e-12:
            break
        u = residuals / (6 * scale)
        robust = np.where(np.abs(u) < 1, (1 - u ** 2) ** 2, 0.0)

    return xs, fitted


def loess_by_side(
    left: pd.DataFrame,
    right: pd.DataFrame,
    x: str,
    y: str,
    bandwidths: Iterable[float],
) -> Dict[float, Dict[str, Curve]]:
    """
    One curve per bandwidth on each side of a cutoff, fitted independently.

    Returns:
        {bandwidth: {"left": (xs, ys), "right": (xs, ys)}}
    """
    curves: Dict[float, Dict[str, Curve]] = {}
    for bandwidth in bandwidths:
        curves[bandwidth] = {
            "left": loess(left[x], left[y], bandwidth=bandwidth),
            "right": loess(right[x], right[y], bandwidth=bandwidth),
        }
    return curves
