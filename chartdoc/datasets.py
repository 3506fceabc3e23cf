from __future__ import annotations

import io
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

_EXPORT_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DatasetError(ValueError):
    """A data file is missing or does not have the expected shape."""


class UnknownExportError(KeyError):
    """A chart asked for a table that was never exported."""

    def __init__(self, name: str, available: Sequence[str]) -> None:
        self.name = name
        self.available = list(available)
        super().__init__(name)

    def __str__(self) -> str:
        listing = ", ".join(self.available) or "none"
        return f"No table exported as {self.name!r} (available: {listing})"


def _is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def require_columns(frame: pd.DataFrame, columns: Iterable[str], *, name: str) -> None:
    """
    Raise DatasetError unless every column exists in frame.

    Column names referenced by a chart must exist in the dataset it draws.
    """
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise DatasetError(
            f"Dataset {name!r} is missing column(s) {missing}; has {list(frame.columns)}"
        )


def load_table(
    source: str,
    *,
    parse_dates: Optional[List[str]] = None,
    required: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Load a columnar data file whose first row names the fields.

    Args:
        source: Local path or http(s) URL
        parse_dates: Columns to parse as datetimes
        required: Columns that must be present

    Returns:
        DataFrame with one row per record

    Failure modes:
        - Raises DatasetError if a local file does not exist
        - Raises DatasetError if required columns are absent
        - Raises collector.main.FetchError if a URL cannot be downloaded
        - Unparseable dates raise DatasetError naming the column
    """
    source = str(source)
    name = Path(source).stem if not _is_url(source) else source.rsplit("/", 1)[-1]

    if _is_url(source):
        from collector.main import fetch_text_once

        buffer: Any = io.StringIO(fetch_text_once(source))
    else:
        path = Path(source)
        if not path.exists():
            raise DatasetError(f"Data file not found: {path}")
        buffer = path

    frame = pd.read_csv(buffer, skipinitialspace=True)
    frame.columns = [str(c).strip() for c in frame.columns]

    if required:
        require_columns(frame, required, name=name)

    for column in parse_dates or []:
        require_columns(frame, [column], name=name)
        try:
            frame[column] = pd.to_datetime(frame[column], format="mixed")
        except (ValueError, TypeError) as e:
            raise DatasetError(f"Cannot parse dates in {name}.{column}: {e}") from e

    logger.info("Loaded %s: %d rows, columns=%s", name, len(frame), list(frame.columns))
    return frame


def coerce_numeric(frame: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """
    Return a copy with columns converted to floats.

    Rows where any of the columns is malformed or empty are dropped.
    """
    out = frame.copy()
    for column in columns:
        out[column] = pd.to_numeric(out[column], errors="coerce")
    mask = out[list(columns)].notna().all(axis=1)
    dropped = int((~mask).sum())
    if dropped:
        logger.warning("Dropped %d row(s) with non-numeric %s", dropped, list(columns))
    return out.loc[mask].reset_index(drop=True)


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp,)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, np.bool_):
        return bool(value)
    return value


class ExportRegistry:
    """
    Named hand-off of tables from the statistical layer to the charting layer.

    Exports are copies, so later mutation on either side does not leak.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, pd.DataFrame] = {}

    def export(self, name: str, frame: pd.DataFrame) -> None:
        if not _EXPORT_NAME.match(name or ""):
            raise ValueError(f"Invalid export name {name!r}")
        if name in self._tables:
            logger.debug("Replacing export %r", name)
        self._tables[name] = frame.copy()

    def get(self, name: str) -> pd.DataFrame:
        try:
            return self._tables[name].copy()
        except KeyError:
            raise UnknownExportError(name, self.names()) from None

    def names(self) -> List[str]:
        return sorted(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def to_records(self, name: str) -> List[Dict[str, Any]]:
        """Rows of an export as JSON-safe dicts (NaN -> None, timestamps -> ISO)."""
        frame = self.get(name)
        return [
            {str(k): _json_safe(v) for k, v in row.items()}
            for row in frame.to_dict(orient="records")
        ]
