from __future__ import annotations

import logging
from typing import Any, Dict, Sequence, Tuple

import numpy as np
import pandas as pd

from chartdoc.datasets import ExportRegistry, coerce_numeric, require_columns

logger = logging.getLogger(__name__)


def group_means(frame: pd.DataFrame, by: str, columns: Sequence[str]) -> pd.DataFrame:
    """
    Mean of each column per group, one row per group sorted by group key.

    The ``n`` column holds the number of rows in each group.
    """
    require_columns(frame, [by, *columns], name="group_means")
    grouped = frame.groupby(by, sort=True)
    means = grouped[list(columns)].mean()
    means["n"] = grouped.size()
    return means.reset_index()


def bin_means(
    frame: pd.DataFrame,
    x: str,
    y: str,
    *,
    width: float,
    origin: float = 0.0,
) -> pd.DataFrame:
    """
    Partition x into contiguous bins of fixed width and average y per bin.

    Bins are [origin + k*width, origin + (k+1)*width), so with origin set to
    a cutoff no bin straddles it.

    Returns:
        DataFrame with columns bin (left edge), x (bin centre), y (mean), n
        sorted by bin; empty bins are absent

    Failure modes:
        - Raises ValueError if width <= 0
    """
    if width <= 0:
        raise ValueError("width must be > 0")
    require_columns(frame, [x, y], name="bin_means")

    xs = frame[x].to_numpy(dtype=float)
    ys = frame[y].to_numpy(dtype=float)
    keep = ~(np.isnan(xs) | np.isnan(ys))
    index = np.floor((xs[keep] - origin) / width).astype(int)

    table = pd.DataFrame({"k": index, "y": ys[keep]})
    grouped = table.groupby("k", sort=True)["y"].agg(["mean", "size"]).reset_index()
    left = origin + grouped["k"].to_numpy(dtype=float) * width

    return pd.DataFrame(
        {
            "bin": left,
            "x": left + width / 2,
            "y": grouped["mean"].to_numpy(dtype=float),
            "n": grouped["size"].to_numpy(dtype=int),
        }
    )


def split_at_cutoff(
    frame: pd.DataFrame, x: str, cutoff: float
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Rows with x < cutoff, and rows with x >= cutoff."""
    require_columns(frame, [x], name="split_at_cutoff")
    below = frame[x] < cutoff
    return (
        frame.loc[below].reset_index(drop=True),
        frame.loc[~below].reset_index(drop=True),
    )


def prepare_discontinuity_exports(
    senate: pd.DataFrame,
    registry: ExportRegistry,
    *,
    cutoff: float,
    bin_width: float,
    x: str = "margin",
    y: str = "vote",
) -> None:
    """
    Export the two tables the discontinuity plot draws from.

      - "binned": mean of y per x bin (display dataset)
      - "raw": every record, with a side column "left"/"right" of the cutoff
        (regression dataset)
    """
    require_columns(senate, [x, y], name="senate")
    clean = coerce_numeric(senate[[x, y]], [x, y])

    binned = bin_means(clean, x, y, width=bin_width, origin=cutoff)
    raw = clean.copy()
    raw["side"] = np.where(raw[x] < cutoff, "left", "right")

    registry.export("binned", binned)
    registry.export("raw", raw)
    logger.info(
        "Exported binned (%d bins) and raw (%d rows) around cutoff %s",
        len(binned),
        len(raw),
        cutoff,
    )


def summarize(frame: pd.DataFrame) -> Dict[str, Any]:
    """
    Row count plus mean/min/max per numeric column, for quoting in prose.
    """
    numeric = frame.select_dtypes(include="number")
    columns: Dict[str, Dict[str, float]] = {}
    for column in numeric.columns:
        series = numeric[column].dropna()
        if series.empty:
            continue
        columns[str(column)] = {
            "mean": float(series.mean()),
            "min": float(series.min()),
            "max": float(series.max()),
        }
    return {"rows": int(len(frame)), "columns": columns}
