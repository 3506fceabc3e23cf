"""End-to-end tests: render the full document from the bundled data files."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path

import pytest

from chartdoc import render
from chartdoc.charts import ChartConfig, histogram_chart
from chartdoc.config import load_config_from_env
from chartdoc.datasets import DatasetError
from chartdoc.run_document import main

pytestmark = pytest.mark.integration


@pytest.fixture
def document(clean_env, sample_data_dir: Path) -> render.DocumentContext:
    cfg = load_config_from_env(data_dir=str(sample_data_dir))
    return render.build_document(cfg)


def test_build_document_exports_binned_and_raw(document: render.DocumentContext) -> None:
    """Hand both statistical-layer tables to the charting layer by name."""

    assert sorted(document.exports) == ["binned", "raw"]
    assert {"bin", "x", "y", "n"} <= set(document.exports["binned"][0])
    assert {"margin", "vote", "side"} <= set(document.exports["raw"][0])
    assert document.summaries["iris"]["rows"] == 150


def test_build_document_builds_every_chart(document: render.DocumentContext) -> None:
    """Build the line, histogram, scatter, bar and discontinuity charts."""

    assert set(document.charts) == {"stocks", "prices", "iris", "means", "discontinuity"}
    assert list(document.histograms) == [5, 10, 20, 40]
    assert document.facts["symbols"] == ["AAPL", "AMZN", "GOOG", "IBM", "MSFT"]
    assert document.charts["discontinuity"].meta["selected"] == "0.30"


def test_render_document_draws_every_chart_with_chartjs(document: render.DocumentContext) -> None:
    """Give each chart a canvas and a parseable Chart.js configuration."""

    html = render.render_document(document)

    assert html.startswith("<!DOCTYPE html>")
    assert len(re.findall(r"<canvas id=", html)) == len(document.charts) + 1
    assert re.findall(r'src="(http[^"]+)"', html) == [render.CHARTJS_URL]

    configs = {
        chart_id: json.loads(body)
        for chart_id, body in re.findall(
            r'<script type="application/json" data-chart="([^"]+)">(.*?)</script>', html, re.S
        )
    }
    assert set(configs) == {chart.chart_id for chart in document.charts.values()} | {"iris-hist"}
    assert configs["iris-means"]["type"] == "bar"

    curves = [d for d in configs["senate-rdd"]["data"]["datasets"] if d.get("role") == "loess"]
    assert {d["bandwidth"] for d in curves if not d["hidden"]} == {"0.30"}
    assert 'id="bandwidth"' in html


def test_render_document_embeds_every_histogram_variant(document: render.DocumentContext) -> None:
    """Ship one histogram configuration per selectable bin count."""

    html = render.render_document(document)
    match = re.search(r'<script type="application/json" id="iris-hist-variants">(.*?)</script>', html, re.S)
    assert match is not None
    variants = json.loads(match.group(1))
    assert sorted(int(count) for count in variants) == [5, 10, 20, 40]
    assert len(variants["10"]["data"]["datasets"][0]["data"]) == 10


def test_render_document_is_stable_for_a_fixed_timestamp(clean_env, sample_data_dir: Path) -> None:
    """Produce identical pages from the same data, config and timestamp."""

    cfg = load_config_from_env(data_dir=str(sample_data_dir))
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    first = render.render_document(render.build_document(cfg, generated_at=moment))
    second = render.render_document(render.build_document(cfg, generated_at=moment))

    assert first == second
    assert "2024-01-02T03:04:05Z" in first


def test_render_document_embeds_exports_as_json(document: render.DocumentContext) -> None:
    """Publish each export as parseable JSON."""

    html = render.render_document(document)
    match = re.search(r'<script type="application/json" id="export-binned">(.*?)</script>', html, re.S)
    assert match is not None
    records = json.loads(match.group(1))
    assert len(records) == document.facts["bins"]


def test_render_chart_escapes_titles() -> None:
    """Escape user text in both the canvas label and the embedded configuration."""

    import pandas as pd

    view = histogram_chart(
        pd.DataFrame({"v": [1.0, 2.0]}),
        ChartConfig(chart_id="h", title="<b>x</b> & y", mark="rect", x="v"),
    )
    markup = str(render.render_chart(view))
    assert 'aria-label="&lt;b&gt;x&lt;/b&gt; &amp; y"' in markup
    assert "\\u003cb\\u003ex" in markup
    assert "<b>" not in markup


def test_build_document_reports_missing_files(clean_env, tmp_path: Path) -> None:
    """Raise DatasetError when the data directory is empty."""

    with pytest.raises(DatasetError, match="not found"):
        render.build_document(load_config_from_env(data_dir=str(tmp_path)))


def test_cli_writes_the_output_file(clean_env, sample_data_dir: Path, tmp_path: Path, capsys) -> None:
    """Render to the requested path and report success."""

    output = tmp_path / "site" / "index.html"
    code = main(["--data-dir", str(sample_data_dir), "--output", str(output), "--bandwidth", "0.5"])

    assert code == 0
    assert output.exists()
    out = capsys.readouterr().out
    assert f"[chartdoc] Generated {output}" in out
    assert "Bandwidth: 0.50" in out


def test_cli_returns_error_for_missing_data(clean_env, tmp_path: Path, capsys) -> None:
    """Exit with 1 and print the error type on stderr."""

    code = main(["--data-dir", str(tmp_path), "--output", str(tmp_path / "out.html")])

    assert code == 1
    assert "[chartdoc] ERROR: DatasetError" in capsys.readouterr().err
    assert not (tmp_path / "out.html").exists()


def test_cli_rejects_invalid_thresholds(clean_env, sample_data_dir: Path, capsys) -> None:
    """Refuse a non-positive bin count before rendering."""

    assert main(["--data-dir", str(sample_data_dir), "--thresholds", "0"]) == 1
    assert "--thresholds must be >= 1" in capsys.readouterr().err
