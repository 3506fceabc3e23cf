"""Tests for locally weighted regression."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from chartdoc.loess import loess, loess_by_side

pytestmark = pytest.mark.unit


def test_loess_reproduces_a_straight_line() -> None:
    """Recover linear data exactly: every local fit is the same line."""

    x = np.arange(20, dtype=float)
    y = 2 * x + 1
    xs, fitted = loess(x, y, bandwidth=0.3)
    np.testing.assert_allclose(xs, x)
    np.testing.assert_allclose(fitted, y, atol=1e-9)


def test_loess_sorts_output_by_x() -> None:
    """Return observations ordered by x regardless of input order."""

    x = [5.0, 1.0, 3.0, 2.0, 4.0]
    y = [10.0, 2.0, 6.0, 4.0, 8.0]
    xs, fitted = loess(x, y, bandwidth=1.0)
    assert list(xs) == [1.0, 2.0, 3.0, 4.0, 5.0]
    np.testing.assert_allclose(fitted, [2.0, 4.0, 6.0, 8.0, 10.0], atol=1e-9)


def test_loess_smooths_noise_toward_the_trend() -> None:
    """Reduce the error against the underlying curve on noisy data."""

    rng = np.random.default_rng(0)
    x = np.linspace(0, 10, 200)
    truth = np.sin(x)
    y = truth + rng.normal(0, 0.3, x.size)
    _, fitted = loess(x, y, bandwidth=0.2)
    assert np.mean((fitted - truth) ** 2) < np.mean((y - truth) ** 2) / 2


def test_loess_drops_nan_pairs() -> None:
    """Ignore pairs where either coordinate is missing."""

    xs, fitted = loess([1, 2, np.nan, 4, 5], [1, 2, 3, np.nan, 5], bandwidth=1.0)
    assert list(xs) == [1.0, 2.0, 5.0]
    assert len(fitted) == 3


def test_loess_returns_tiny_inputs_unsmoothed() -> None:
    """Leave fewer than three points as they are."""

    xs, fitted = loess([2.0, 1.0], [20.0, 10.0])
    assert list(xs) == [1.0, 2.0]
    assert list(fitted) == [10.0, 20.0]


@pytest.mark.parametrize("bandwidth", [0.0, -0.1, 1.5])
def test_loess_rejects_bandwidth_outside_unit_interval(bandwidth: float) -> None:
    """Require 0 < bandwidth <= 1."""

    with pytest.raises(ValueError, match="bandwidth"):
        loess([1, 2, 3], [1, 2, 3], bandwidth=bandwidth)


def test_loess_rejects_mismatched_lengths() -> None:
    """Raise when x and y differ in length."""

    with pytest.raises(ValueError, match="differ in length"):
        loess([1, 2, 3], [1, 2])


def test_loess_by_side_fits_each_side_independently() -> None:
    """Fit one curve per bandwidth on each side without mixing points."""

    left = pd.DataFrame({"margin": [-3.0, -2.0, -1.0, -0.5], "vote": [40.0, 41.0, 42.0, 42.5]})
    right = pd.DataFrame({"margin": [0.0, 1.0, 2.0, 3.0], "vote": [50.0, 51.0, 52.0, 53.0]})

    curves = loess_by_side(left, right, "margin", "vote", [0.5, 1.0])

    assert set(curves) == {0.5, 1.0}
    for sides in curves.values():
        left_x, left_y = sides["left"]
        right_x, right_y = sides["right"]
        assert left_x.max() < 0 <= right_x.min()
        assert left_y.max() < 45 < right_y.min()
