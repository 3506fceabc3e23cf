from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class Bin:
    """
    One histogram bin covering [x0, x1).

    The last bin of a histogram is closed on both ends. value is a count,
    a weight sum, or a proportion when normalized.
    """
    x0: float
    x1: float
    value: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0


def bin_values(
    values: Sequence[float],
    *,
    thresholds: int = 20,
    weights: Optional[Sequence[float]] = None,
    normalize: bool = False,
    domain: Optional[Tuple[float, float]] = None,
) -> List[Bin]:
    """
    Partition observations into contiguous equal-width bins and count them.

    Args:
        values: Numeric observations; NaN and infinite values are ignored
        thresholds: Number of bins spanning the extent (or domain)
        weights: Optional per-observation weights, summed instead of counted
        normalize: Divide bin values by the total so they sum to 1
        domain: Fixed (lo, hi) instead of the data extent; values outside it
            are ignored

    Returns:
        Bins in ascending order; empty input returns []

    Failure modes:
        - Raises ValueError if thresholds < 1
        - Raises ValueError if weights and values differ in length
    """
    if thresholds < 1:
        raise ValueError("thresholds must be >= 1")

    xs = np.asarray(values, dtype=float)
    ws = np.ones_like(xs) if weights is None else np.asarray(weights, dtype=float)
    if ws.shape != xs.shape:
        raise ValueError(f"weights length {ws.shape} does not match values length {xs.shape}")

    keep = np.isfinite(xs) & np.isfinite(ws)
    xs, ws = xs[keep], ws[keep]

    if domain is not None:
        lo, hi = float(domain[0]), float(domain[1])
        inside = (xs >= lo) & (xs <= hi)
        xs, ws = xs[inside], ws[inside]
    if xs.size == 0:
        return []
    if domain is None:
        lo, hi = float(xs.min()), float(xs.max())
    if lo == hi:
        total = float(ws.sum())
        return [Bin(x0=lo, x1=hi, value=1.0 if normalize and total else total)]

    # numpy closes only the last bin, matching [x0, x1) ... [xn-1, xn]
    sums, edges = np.histogram(xs, bins=thresholds, range=(lo, hi), weights=ws)

    if normalize:
        total = sums.sum()
        sums = sums / total if total else sums

    return [
        Bin(x0=float(edges[i]), x1=float(edges[i + 1]), value=float(sums[i]))
        for i in range(len(sums))
    ]
