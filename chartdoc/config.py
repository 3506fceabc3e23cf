from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional


@dataclass(frozen=True)
class DocumentConfig:
    """
    Everything a document render needs besides the data itself.

    Sources are local paths or http(s) URLs. Bandwidths are fractions of the
    points on each side of the cutoff used by each local regression.
    """
    data_dir: str
    output_path: str
    stocks_source: str
    iris_source: str
    senate_source: str
    cutoff: float
    bin_width: float
    bandwidth_min: float
    bandwidth_max: float
    bandwidth_step: float
    bandwidth: float
    thresholds: int
    threshold_options: tuple = (5, 10, 20, 40)
    reference_vote: float = 50.0

    def bandwidths(self) -> List[float]:
        """Inclusive bandwidth grid offered by the slider."""
        if self.bandwidth_step <= 0:
            raise ValueError("bandwidth_step must be > 0")
        grid: List[float] = []
        k = 0
        while True:
            value = round(self.bandwidth_min + k * self.bandwidth_step, 6)
            if value > self.bandwidth_max + 1e-9:
                break
            if value > 0:
                grid.append(min(value, 1.0))
            k += 1
        if not grid:
            raise ValueError(
                f"Empty bandwidth grid for range [{self.bandwidth_min}, {self.bandwidth_max}]"
            )
        return sorted(set(grid))

    def selected_bandwidth(self) -> float:
        """The grid value closest to the configured default bandwidth."""
        return min(self.bandwidths(), key=lambda b: (abs(b - self.bandwidth), b))

    def with_overrides(self, **changes) -> "DocumentConfig":
        """Copy with CLI overrides applied; None values are ignored."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default).strip()
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {name}={raw!r}: expected a number") from e


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default).strip()
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {name}={raw!r}: expected an integer") from e


def load_config_from_env(data_dir: Optional[str] = None) -> DocumentConfig:
    """
    Build a DocumentConfig from CHARTDOC_* environment variables.

    Args:
        data_dir: Overrides CHARTDOC_DATA_DIR; default sources live inside it

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    data_dir = data_dir or os.environ.get("CHARTDOC_DATA_DIR", "data")
    base = Path(data_dir)

    return DocumentConfig(
        data_dir=str(base),
        output_path=os.environ.get("CHARTDOC_OUTPUT", "output/index.html"),
        stocks_source=os.environ.get("CHARTDOC_STOCKS_SOURCE", str(base / "stocks.csv")),
        iris_source=os.environ.get("CHARTDOC_IRIS_SOURCE", str(base / "iris.csv")),
        senate_source=os.environ.get("CHARTDOC_SENATE_SOURCE", str(base / "senate.csv")),
        cutoff=_env_float("CHARTDOC_CUTOFF", "0"),
        bin_width=_env_float("CHARTDOC_BIN_WIDTH", "2.5"),
        bandwidth_min=_env_float("CHARTDOC_BANDWIDTH_MIN", "0.1"),
        bandwidth_max=_env_float("CHARTDOC_BANDWIDTH_MAX", "1.0"),
        bandwidth_step=_env_float("CHARTDOC_BANDWIDTH_STEP", "0.05"),
        bandwidth=_env_float("CHARTDOC_BANDWIDTH", "0.3"),
        thresholds=_env_int("CHARTDOC_THRESHOLDS", "20"),
    )
