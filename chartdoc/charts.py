"""
Chart.js payloads built from tables.

Python decides what is drawn (series, points, bins, fitted curves and their
colours); the page hands each payload to Chart.js, which owns scales, ticks
and marks.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypedDict

import pandas as pd

from chartdoc.binning import bin_values
from chartdoc.datasets import require_columns
from chartdoc.loess import loess_by_side
from chartdoc.stats import split_at_cutoff

logger = logging.getLogger(__name__)

MARKS = ("line", "point", "bar", "rect", "discontinuity")

# d3 category10
PALETTE = (
    "#1f77b4",
    "#ff7f0e",
    "#2ca02c",
    "#d62728",
    "#9467bd",
    "#8c564b",
    "#e377c2",
    "#7f7f7f",
    "#bcbd22",
    "#17becf",
)

RULE_COLOR = "#555555"


class ChartConfigError(ValueError):
    """A chart configuration cannot be drawn from its dataset."""


@dataclass(frozen=True)
class ChartConfig:
    """
    Declarative description of one chart.

    Fields:
        chart_id: DOM id, unique within a document
        mark: One of MARKS ("rect" is the histogram mark)
        x, y: Column names; y is unused by histograms
        color: Optional categorical column mapped through the palette
        height: Canvas height in pixels; the width follows the page
        zero: Force the y axis to include zero
    """

    chart_id: str
    title: str
    mark: str
    x: str
    y: Optional[str] = None
    color: Optional[str] = None
    x_label: Optional[str] = None
    y_label: Optional[str] = None
    height: int = 400
    palette: Tuple[str, ...] = PALETTE
    fill: str = "steelblue"
    x_ticks: int = 8
    y_ticks: int = 6
    radius: float = 3.5
    zero: bool = False


@dataclass(frozen=True)
class ChartValidationResult:
    is_valid: bool
    errors: Tuple[str, ...] = ()


def validate_chart_config(config: ChartConfig, frame: pd.DataFrame) -> ChartValidationResult:
    """
    Check a ChartConfig against the dataset it will draw.

    Every referenced column must exist; numeric channels must hold numbers.
    """
    errors: List[str] = []

    if config.mark not in MARKS:
        errors.append(f"Unknown mark {config.mark!r}; expected one of {list(MARKS)}.")
    if not config.chart_id:
        errors.append("chart_id must not be empty.")
    if config.height <= 0:
        errors.append(f"height must be positive, got {config.height}.")
    if not config.palette:
        errors.append("palette must contain at least one colour.")

    needs_y = config.mark != "rect"
    if needs_y and not config.y:
        errors.append(f"Mark {config.mark!r} requires a y column.")

    referenced = [c for c in (config.x, config.y if needs_y else None, config.color) if c]
    for column in referenced:
        if column not in frame.columns:
            errors.append(f"Unknown column {column!r}; dataset has {list(frame.columns)}.")

    numeric = []
    if config.mark in ("point", "rect", "discontinuity"):
        numeric.append(config.x)
    if needs_y and config.y:
        numeric.append(config.y)
    for column in numeric:
        if column in frame.columns and not pd.api.types.is_numeric_dtype(frame[column]):
            errors.append(f"Column {column!r} must be numeric for mark {config.mark!r}.")

    if config.mark == "line" and config.x in frame.columns:
        series = frame[config.x]
        if not (
            pd.api.types.is_numeric_dtype(series) or pd.api.types.is_datetime64_any_dtype(series)
        ):
            errors.append(f"Column {config.x!r} must be numeric or datetime for a line chart.")

    return ChartValidationResult(is_valid=not errors, errors=tuple(errors))


def check_chart_config(config: ChartConfig, frame: pd.DataFrame) -> None:
    """Raise ChartConfigError listing every problem validate_chart_config finds."""
    result = validate_chart_config(config, frame)
    if not result.is_valid:
        raise ChartConfigError(f"Chart {config.chart_id!r}: " + " ".join(result.errors))


class ChartDataset(TypedDict, total=False):
    """A Chart.js dataset payload.

    role, side and bandwidth are ignored by Chart.js; the page script uses
    them to filter the legend and switch LOESS curves.
    """

    label: str
    type: str
    data: List[Any]
    borderColor: str
    backgroundColor: str | List[str]
    borderWidth: float
    borderDash: List[int]
    pointRadius: float
    showLine: bool
    spanGaps: bool
    fill: bool
    hidden: bool
    barPercentage: float
    categoryPercentage: float
    grouped: bool
    role: str
    side: str
    bandwidth: str


class ChartData(TypedDict, total=False):
    """Labels (category axes only) plus datasets."""

    labels: List[str]
    datasets: List[ChartDataset]


@dataclass(frozen=True)
class RenderedChart:
    """A Chart.js configuration ({type, data, options}) for one canvas."""

    config: ChartConfig
    payload: Dict[str, Any]
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def chart_id(self) -> str:
        return self.config.chart_id

    @property
    def title(self) -> str:
        return self.config.title

    @property
    def datasets(self) -> List[ChartDataset]:
        return self.payload["data"]["datasets"]


def _num(value: Any, digits: int = 4) -> Optional[float]:
    """JSON-safe rounded float; NaN and infinities become None."""
    if value is None:
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return round(value, digits)


def _points(xs: Sequence[Any], ys: Sequence[Any]) -> List[Dict[str, Optional[float]]]:
    return [{"x": _num(x), "y": _num(y)} for x, y in zip(xs, ys)]


def _color_map(keys: Sequence[Any], palette: Sequence[str]) -> Dict[Any, str]:
    """Category -> colour in order of first appearance, cycling the palette."""
    colors: Dict[Any, str] = {}
    for key in keys:
        if key not in colors:
            colors[key] = palette[len(colors) % len(palette)]
    return colors


def _axis(
    title: str,
    *,
    ticks: int,
    kind: str = "linear",
    begin_at_zero: bool = False,
    **extra: Any,
) -> Dict[str, Any]:
    axis: Dict[str, Any] = {
        "type": kind,
        "title": {"display": True, "text": title},
        "ticks": {"maxTicksLimit": ticks},
        "beginAtZero": begin_at_zero,
    }
    axis.update(extra)
    return axis


def _payload(
    chart_type: str,
    data: ChartData,
    config: ChartConfig,
    *,
    x_axis: Dict[str, Any],
    y_axis: Dict[str, Any],
    legend: bool,
) -> Dict[str, Any]:
    return {
        "type": chart_type,
        "data": data,
        "options": {
            "responsive": True,
            "maintainAspectRatio": False,
            "animation": False,
            "plugins": {
                "title": {"display": True, "text": config.title},
                "legend": {"display": legend, "position": "bottom"},
            },
            "scales": {"x": x_axis, "y": y_axis},
        },
    }


def _groups(frame: pd.DataFrame, column: Optional[str]) -> List[Tuple[Any, pd.DataFrame]]:
    if not column:
        return [(None, frame)]
    return [(key, frame.loc[frame[column] == key]) for key in pd.unique(frame[column])]


def _time_labels(series: pd.Series) -> pd.Series:
    """ISO labels; dates only unless some timestamp carries a time of day."""
    if (series == series.dt.normalize()).all():
        return series.dt.strftime("%Y-%m-%d")
    return series.dt.strftime("%Y-%m-%d %H:%M")


def line_chart(frame: pd.DataFrame, config: ChartConfig) -> RenderedChart:
    """
    One line per colour group.

    Datetime x values become category labels shared by every group, with
    gaps where a group has no observation; numeric x values are plotted on a
    linear axis.
    """
    check_chart_config(config, frame)
    data = frame.dropna(subset=[config.x, config.y]).sort_values(config.x, kind="mergesort")
    keys = list(pd.unique(data[config.color])) if config.color else []
    colors = _color_map(keys, config.palette)
    y_axis = _axis(config.y_label or config.y, ticks=config.y_ticks, begin_at_zero=config.zero)
    datasets: List[ChartDataset] = []

    if pd.api.types.is_datetime64_any_dtype(data[config.x]):
        labels = _time_labels(data[config.x])
        order = list(pd.unique(labels))
        for key, group in _groups(data, config.color):
            values = group[config.y].groupby(labels.loc[group.index]).mean()
            datasets.append(
                {
                    "label": config.y if key is None else str(key),
                    "data": [_num(values.get(label)) for label in order],
                    "borderColor": colors.get(key, config.fill),
                    "backgroundColor": colors.get(key, config.fill),
                    "borderWidth": 1.5,
                    "pointRadius": 0,
                    "spanGaps": True,
                }
            )
        chart_data: ChartData = {"labels": order, "datasets": datasets}
        x_axis = _axis(
            config.x_label or config.x, ticks=config.x_ticks, kind="category"
        )
    else:
        for key, group in _groups(data, config.color):
            datasets.append(
                {
                    "label": config.y if key is None else str(key),
                    "data": _points(group[config.x], group[config.y]),
                    "borderColor": colors.get(key, config.fill),
                    "backgroundColor": colors.get(key, config.fill),
                    "borderWidth": 1.5,
                    "pointRadius": 0,
                }
            )
        chart_data = {"datasets": datasets}
        x_axis = _axis(config.x_label or config.x, ticks=config.x_ticks)

    payload = _payload(
        "line", chart_data, config, x_axis=x_axis, y_axis=y_axis, legend=bool(config.color)
    )
    return RenderedChart(config, payload, {"series": len(datasets), "points": len(data)})


def scatter_chart(frame: pd.DataFrame, config: ChartConfig) -> RenderedChart:
    """One point per complete row, one dataset per colour group."""
    check_chart_config(config, frame)
    data = frame.dropna(subset=[config.x, config.y])
    keys = list(pd.unique(data[config.color])) if config.color else []
    colors = _color_map(keys, config.palette)

    datasets: List[ChartDataset] = [
        {
            "label": config.y if key is None else str(key),
            "data": _points(group[config.x], group[config.y]),
            "backgroundColor": colors.get(key, config.fill),
            "pointRadius": config.radius,
        }
        for key, group in _groups(data, config.color)
    ]
    payload = _payload(
        "scatter",
        {"datasets": datasets},
        config,
        x_axis=_axis(config.x_label or config.x, ticks=config.x_ticks),
        y_axis=_axis(config.y_label or config.y, ticks=config.y_ticks, begin_at_zero=config.zero),
        legend=bool(config.color),
    )
    return RenderedChart(config, payload, {"points": len(data)})


def bar_chart(frame: pd.DataFrame, config: ChartConfig) -> RenderedChart:
    """One bar per row; x is categorical, the y axis always starts at zero."""
    check_chart_config(config, frame)
    data = frame.dropna(subset=[config.y])

    if config.color:
        colors = _color_map(list(data[config.color]), config.palette)
        fills: str | List[str] = [colors[key] for key in data[config.color]]
    else:
        fills = config.fill

    dataset: ChartDataset = {
        "label": config.y_label or config.y,
        "data": [_num(v) for v in data[config.y]],
        "backgroundColor": fills,
    }
    payload = _payload(
        "bar",
        {"labels": [str(key) for key in data[config.x]], "datasets": [dataset]},
        config,
        x_axis=_axis(config.x_label or config.x, ticks=config.x_ticks, kind="category"),
        y_axis=_axis(config.y_label or config.y, ticks=config.y_ticks, begin_at_zero=True),
        legend=False,
    )
    return RenderedChart(config, payload, {"bars": len(data)})


def histogram_chart(
    frame: pd.DataFrame,
    config: ChartConfig,
    *,
    thresholds: int = 20,
    normalize: bool = False,
) -> RenderedChart:
    """
    Histogram of config.x.

    Each bin becomes one bar centred on its midpoint with the bin's full
    width; the x axis spans the first to the last edge and the y axis starts
    at zero. A white 1px border separates adjacent bars.
    """
    check_chart_config(config, frame)
    bins = bin_values(
        pd.to_numeric(frame[config.x], errors="coerce"),
        thresholds=thresholds,
        normalize=normalize,
    )
    y_label = config.y_label or ("Proportion" if normalize else "Frequency")

    dataset: ChartDataset = {
        "label": y_label,
        "data": [{"x": _num((b.x0 + b.x1) / 2), "y": _num(b.value, 6)} for b in bins],
        "backgroundColor": config.fill,
        "borderColor": "#ffffff",
        "borderWidth": 1,
        "barPercentage": 1.0,
        "categoryPercentage": 1.0,
        "grouped": False,
    }
    x_extra: Dict[str, Any] = {"offset": False}
    if bins:
        x_extra.update(min=_num(bins[0].x0), max=_num(bins[-1].x1))

    payload = _payload(
        "bar",
        {"datasets": [dataset]},
        config,
        x_axis=_axis(config.x_label or config.x, ticks=config.x_ticks, **x_extra),
        y_axis=_axis(y_label, ticks=config.y_ticks, begin_at_zero=True),
        legend=False,
    )
    meta = {
        "thresholds": thresholds,
        "bins": len(bins),
        "normalize": normalize,
        "edges": [_num(b.x0) for b in bins] + [_num(bins[-1].x1)] if bins else [],
    }
    return RenderedChart(config, payload, meta)


def histogram_variants(
    frame: pd.DataFrame,
    config: ChartConfig,
    threshold_options: Sequence[int],
    *,
    normalize: bool = False,
) -> Dict[int, RenderedChart]:
    """One histogram per selectable threshold count, in ascending order.

    Variants share config.chart_id: the page draws one of them at a time
    on the same canvas.
    """
    return {
        count: histogram_chart(frame, config, thresholds=count, normalize=normalize)
        for count in sorted(set(threshold_options))
    }


def bandwidth_decimals(bandwidths: Sequence[float]) -> int:
    """Fewest decimals (at least 2) that write every bandwidth exactly."""
    for decimals in range(2, 7):
        if all(round(b, decimals) == round(b, 6) for b in bandwidths):
            return decimals
    return 6


def bandwidth_key(bandwidth: float, decimals: int = 2) -> str:
    """Stable string form of a bandwidth used to switch curves in the page."""
    return f"{bandwidth:.{decimals}f}"


def _rule(label: str, start: Tuple[float, float], end: Tuple[float, float]) -> ChartDataset:
    return {
        "label": label,
        "type": "line",
        "role": "rule",
        "data": [{"x": _num(start[0]), "y": _num(start[1])}, {"x": _num(end[0]), "y": _num(end[1])}],
        "borderColor": RULE_COLOR,
        "borderWidth": 1,
        "borderDash": [4, 3],
        "pointRadius": 0,
        "showLine": True,
        "fill": False,
    }


def discontinuity_chart(
    binned: pd.DataFrame,
    raw: pd.DataFrame,
    config: ChartConfig,
    *,
    cutoff: float,
    bandwidths: Sequence[float],
    selected: float,
    reference_y: Optional[float] = 50.0,
) -> RenderedChart:
    """
    Regression discontinuity plot.

    Draws the binned means as points, one LOESS curve per bandwidth on each
    side of the cutoff (only the selected bandwidth visible), a dashed
    vertical line at the cutoff and a horizontal reference line.

    Args:
        binned: Display dataset with columns x, y (bin centre, mean)
        raw: Regression dataset with columns config.x and config.y
        bandwidths: Every bandwidth the page can switch between
        selected: Bandwidth shown initially; must be one of bandwidths

    Failure modes:
        - Raises ChartConfigError for absent columns or an unknown selection
        - Raises ValueError for a bandwidth outside (0, 1]
    """
    check_chart_config(config, raw)
    require_columns(binned, ["x", "y"], name="binned")
    if selected not in bandwidths:
        raise ChartConfigError(f"Selected bandwidth {selected} is not among {list(bandwidths)}")

    left_data, right_data = split_at_cutoff(raw, config.x, cutoff)
    curves = loess_by_side(left_data, right_data, config.x, config.y, bandwidths)
    decimals = bandwidth_decimals(bandwidths)

    left_color = config.palette[0]
    right_color = config.palette[1 % len(config.palette)]
    colors = {"left": left_color, "right": right_color}

    below = binned.loc[binned["x"] < cutoff]
    above = binned.loc[binned["x"] >= cutoff]
    datasets: List[ChartDataset] = [
        {
            "label": label,
            "role": "points",
            "data": _points(part["x"], part["y"]),
            "backgroundColor": color,
            "pointRadius": config.radius,
        }
        for label, part, color in (
            ("Below cutoff", below, left_color),
            ("Above cutoff", above, right_color),
        )
    ]

    y_values: List[float] = [float(v) for v in binned["y"]]
    for bandwidth, sides in curves.items():
        key = bandwidth_key(bandwidth, decimals)
        for side, (xs, fitted) in sides.items():
            y_values.extend(fitted.tolist())
            datasets.append(
                {
                    "label": f"LOESS {key} ({side})",
                    "type": "line",
                    "role": "loess",
                    "side": side,
                    "bandwidth": key,
                    "data": _points(xs, fitted),
                    "borderColor": colors[side],
                    "borderWidth": 2.5,
                    "pointRadius": 0,
                    "showLine": True,
                    "fill": False,
                    "hidden": bandwidth != selected,
                }
            )

    if reference_y is not None:
        y_values.append(reference_y)
    finite_y = [v for v in y_values if math.isfinite(v)] or [0.0, 1.0]
    x_values = [float(v) for v in raw[config.x] if math.isfinite(v)] + [cutoff]
    y_lo, y_hi = min(finite_y), max(finite_y)
    x_lo, x_hi = min(x_values), max(x_values)

    datasets.append(_rule("Cutoff", (cutoff, y_lo), (cutoff, y_hi)))
    if reference_y is not None:
        datasets.append(_rule("Reference", (x_lo, reference_y), (x_hi, reference_y)))

    payload = _payload(
        "scatter",
        {"datasets": datasets},
        config,
        x_axis=_axis(config.x_label or config.x, ticks=config.x_ticks),
        y_axis=_axis(config.y_label or config.y, ticks=config.y_ticks),
        legend=True,
    )
    meta = {
        "cutoff": cutoff,
        "bandwidths": [bandwidth_key(b, decimals) for b in bandwidths],
        "selected": bandwidth_key(selected, decimals),
    }
    logger.debug(
        "Discontinuity chart %s: %d curve(s)", config.chart_id, 2 * len(curves)
    )
    return RenderedChart(config, payload, meta)
