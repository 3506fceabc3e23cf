"""Pytest fixtures shared across chartdoc tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from collector.main import FetchConfig

REPO_DATA_DIR = Path(__file__).resolve().parents[1] / "data"


@pytest.fixture
def write_csv(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a helper that writes CSV text into tmp_path and returns its path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.write_text(text.strip() + "\n", encoding="utf-8")
        return path

    return _write


@pytest.fixture
def sample_data_dir() -> Path:
    """Return the directory holding the bundled sample data files."""

    return REPO_DATA_DIR


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove CHARTDOC_* variables so defaults apply."""

    import os

    for key in list(os.environ):
        if key.startswith("CHARTDOC_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def fetch_config() -> FetchConfig:
    """Return a FetchConfig with short, jitter-free backoff."""

    return FetchConfig(
        user_agent="chartdoc-tests",
        timeout_s=1.0,
        max_retries=3,
        backoff_base_s=0.01,
        backoff_cap_s=0.1,
        jitter_ratio=0.0,
    )


def pytest_collection_modifyitems(items: Sequence[pytest.Item]) -> None:
    """Enforce that every test has exactly one speed marker.

    - `unit`: pure, fast tests touching at most tmp_path.
    - `integration`: tests rendering the full document from data files.
    """

    invalid: list[str] = []
    for item in items:
        has_unit = item.get_closest_marker("unit") is not None
        has_integration = item.get_closest_marker("integration") is not None
        if has_unit == has_integration:
            invalid.append(item.nodeid)

    if invalid:
        joined = "\n".join(f"- {nodeid}" for nodeid in invalid)
        raise pytest.UsageError(
            "Each test must have exactly one speed marker: `@pytest.mark.unit` or "
            f"`@pytest.mark.integration`.\nOffending tests:\n{joined}"
        )
