"""Tests for the statistical layer: group means, binned means and exports."""

from __future__ import annotations

import pandas as pd
import pytest

from chartdoc.datasets import DatasetError, ExportRegistry
from chartdoc.stats import (
    bin_means,
    group_means,
    prepare_discontinuity_exports,
    split_at_cutoff,
    summarize,
)

pytestmark = pytest.mark.unit


def test_group_means_returns_one_sorted_row_per_group() -> None:
    """Average each column per group and count group members."""

    frame = pd.DataFrame({"species": ["b", "a", "a"], "length": [5.0, 1.0, 3.0]})
    means = group_means(frame, "species", ["length"])
    assert list(means["species"]) == ["a", "b"]
    assert list(means["length"]) == [2.0, 5.0]
    assert list(means["n"]) == [2, 1]


def test_group_means_requires_columns() -> None:
    """Raise DatasetError when a referenced column is missing."""

    with pytest.raises(DatasetError, match="missing column"):
        group_means(pd.DataFrame({"a": [1]}), "species", ["a"])


def test_bin_means_averages_y_per_fixed_width_bin() -> None:
    """Group x into [k*width, (k+1)*width) bins and report centres."""

    frame = pd.DataFrame({"x": [-5.0, -1.0, 2.0, 8.0, 15.0], "y": [1.0, 3.0, 5.0, 7.0, 9.0]})
    binned = bin_means(frame, "x", "y", width=10)
    assert list(binned["bin"]) == [-10.0, 0.0, 10.0]
    assert list(binned["x"]) == [-5.0, 5.0, 15.0]
    assert list(binned["y"]) == [2.0, 6.0, 9.0]
    assert list(binned["n"]) == [2, 2, 1]


def test_bin_means_never_straddles_the_origin() -> None:
    """Align bin edges to the origin so bins sit on one side of a cutoff."""

    frame = pd.DataFrame({"x": [-0.1, 0.0, 0.1, 2.4, 2.6], "y": [1.0, 2.0, 3.0, 4.0, 5.0]})
    binned = bin_means(frame, "x", "y", width=2.5, origin=0.0)
    for left in binned["bin"]:
        assert left >= 0 or left + 2.5 <= 0
    assert list(binned["y"]) == [1.0, 3.0, 5.0]


def test_bin_means_rejects_non_positive_width() -> None:
    """Require a positive bin width."""

    with pytest.raises(ValueError, match="width"):
        bin_means(pd.DataFrame({"x": [1.0], "y": [1.0]}), "x", "y", width=0)


def test_split_at_cutoff_puts_cutoff_on_the_right() -> None:
    """Send x < cutoff left and x >= cutoff right."""

    frame = pd.DataFrame({"margin": [-1.0, 0.0, 1.0]})
    left, right = split_at_cutoff(frame, "margin", 0.0)
    assert list(left["margin"]) == [-1.0]
    assert list(right["margin"]) == [0.0, 1.0]


def test_prepare_discontinuity_exports_publishes_binned_and_raw() -> None:
    """Export the display and regression tables and drop malformed rows."""

    senate = pd.DataFrame(
        {
            "margin": ["-3", "-1", "2", "bad", "4"],
            "vote": ["40", "44", "55", "50", "57"],
        }
    )
    registry = ExportRegistry()
    prepare_discontinuity_exports(senate, registry, cutoff=0.0, bin_width=2.5)

    assert registry.names() == ["binned", "raw"]
    raw = registry.get("raw")
    assert len(raw) == 4
    assert list(raw["side"]) == ["left", "left", "right", "right"]
    binned = registry.get("binned")
    assert list(binned["bin"]) == [-5.0, -2.5, 0.0, 2.5]
    assert list(binned["y"]) == [40.0, 44.0, 55.0, 57.0]


def test_summarize_reports_rows_and_numeric_columns() -> None:
    """Summarize numeric columns only."""

    frame = pd.DataFrame({"a": [1.0, 3.0], "label": ["x", "y"]})
    summary = summarize(frame)
    assert summary == {"rows": 2, "columns": {"a": {"mean": 2.0, "min": 1.0, "max": 3.0}}}
