from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader
from markupsafe import Markup

from chartdoc.charts import (
    ChartConfig,
    RenderedChart,
    bar_chart,
    discontinuity_chart,
    histogram_chart,
    histogram_variants,
    line_chart,
    scatter_chart,
)
from chartdoc.config import DocumentConfig
from chartdoc.datasets import ExportRegistry, coerce_numeric, load_table
from chartdoc.stats import group_means, prepare_discontinuity_exports, summarize

logger = logging.getLogger(__name__)

CHARTJS_URL = "https://cdn.jsdelivr.net/npm/chart.js@4.4.7/dist/chart.umd.min.js"

IRIS_MEASURES = ["sepal_length", "sepal_width", "petal_length", "petal_width"]


@dataclass
class DocumentContext:
    """
    Everything the document template needs, computed once per render.

    charts holds one Chart.js payload per canvas by name; histograms holds
    one payload per selectable threshold count, all drawn on one canvas.
    """
    config: DocumentConfig
    charts: Dict[str, RenderedChart]
    histograms: Dict[int, RenderedChart]
    summaries: Dict[str, Dict[str, Any]]
    exports: Dict[str, List[Dict[str, Any]]]
    facts: Dict[str, Any] = field(default_factory=dict)
    generated_at_utc: str = ""


def _get_template_env() -> Environment:
    """Create Jinja2 environment with templates directory."""
    templates_dir = Path(__file__).parent / "templates"
    return Environment(
        loader=FileSystemLoader(str(templates_dir)),
        autoescape=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _format_number(value: float, digits: int = 1) -> str:
    return f"{value:,.{digits}f}"


def _utc_stamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def render_chart(chart: RenderedChart, env: Optional[Environment] = None) -> Markup:
    """
    Render the canvas for one chart plus its Chart.js configuration as JSON.

    Failure modes:
        - Raises jinja2.TemplateNotFound if templates/chart.html.j2 is missing
    """
    env = env or _get_template_env()
    template = env.get_template("chart.html.j2")
    return Markup(template.render(chart=chart))


def build_document(
    config: DocumentConfig, *, generated_at: Optional[datetime] = None
) -> DocumentContext:
    """
    Run the statistical layer, then the charting layer.

    The statistical layer exports "binned" and "raw" for the discontinuity
    plot; the charting layer reads those exports by name and loads the
    stocks and iris files itself. With generated_at fixed, the result
    depends only on the data files and the configuration.

    Failure modes:
        - Raises DatasetError for missing files or columns
        - Raises ChartConfigError if a chart references absent columns
        - Raises ValueError for an invalid bandwidth grid
    """
    registry = ExportRegistry()

    # Statistical layer
    senate = load_table(config.senate_source, required=["margin", "vote"])
    prepare_discontinuity_exports(
        senate, registry, cutoff=config.cutoff, bin_width=config.bin_width
    )

    # Charting layer
    stocks = load_table(
        config.stocks_source, parse_dates=["date"], required=["symbol", "date", "price"]
    )
    stocks = coerce_numeric(stocks, ["price"])
    iris = load_table(config.iris_source, required=[*IRIS_MEASURES, "species"])
    iris = coerce_numeric(iris, IRIS_MEASURES)
    species_means = group_means(iris, "species", IRIS_MEASURES)

    charts: Dict[str, RenderedChart] = {
        "stocks": line_chart(
            stocks,
            ChartConfig(
                chart_id="stocks-line",
                title="Monthly closing prices",
                mark="line",
                x="date",
                y="price",
                color="symbol",
                x_label="Date",
                y_label="Price (USD)",
                zero=True,
            ),
        ),
        "prices": histogram_chart(
            stocks,
            ChartConfig(
                chart_id="stocks-hist",
                title="Share of months by closing price",
                mark="rect",
                x="price",
                x_label="Price (USD)",
                fill="#69b3a2",
            ),
            thresholds=config.thresholds,
            normalize=True,
        ),
        "iris": scatter_chart(
            iris,
            ChartConfig(
                chart_id="iris-scatter",
                title="Petal length against petal width",
                mark="point",
                x="petal_length",
                y="petal_width",
                color="species",
                x_label="Petal length (cm)",
                y_label="Petal width (cm)",
            ),
        ),
        "means": bar_chart(
            species_means,
            ChartConfig(
                chart_id="iris-means",
                title="Mean sepal length by species",
                mark="bar",
                x="species",
                y="sepal_length",
                color="species",
                x_label="Species",
                y_label="Sepal length (cm)",
                height=320,
            ),
        ),
        "discontinuity": discontinuity_chart(
            registry.get("binned"),
            registry.get("raw"),
            ChartConfig(
                chart_id="senate-rdd",
                title="Vote share in the next election by winning margin",
                mark="discontinuity",
                x="margin",
                y="vote",
                x_label="Democratic margin of victory at t (pp)",
                y_label="Democratic vote share at t+1 (%)",
                palette=("#1b9e77", "#d95f02"),
                height=440,
                radius=3.0,
            ),
            cutoff=config.cutoff,
            bandwidths=config.bandwidths(),
            selected=config.selected_bandwidth(),
            reference_y=config.reference_vote,
        ),
    }

    histograms = histogram_variants(
        iris,
        ChartConfig(
            chart_id="iris-hist",
            title="Distribution of sepal length",
            mark="rect",
            x="sepal_length",
            x_label="Sepal length (cm)",
        ),
        [*config.threshold_options, config.thresholds],
    )

    facts = {
        "symbols": sorted(str(s) for s in stocks["symbol"].unique()),
        "date_start": stocks["date"].min().strftime("%B %Y") if len(stocks) else "",
        "date_end": stocks["date"].max().strftime("%B %Y") if len(stocks) else "",
        "species": [str(s) for s in species_means["species"]],
        "bins": len(registry.get("binned")),
        "cutoff": config.cutoff,
        "bin_width": config.bin_width,
    }

    return DocumentContext(
        config=config,
        charts=charts,
        histograms=histograms,
        summaries={
            "stocks": summarize(stocks),
            "iris": summarize(iris),
            "senate": summarize(registry.get("raw")),
        },
        exports={name: registry.to_records(name) for name in registry.names()},
        facts=facts,
        generated_at_utc=_utc_stamp(generated_at or datetime.now(timezone.utc)),
    )


def _prepare_context(document: DocumentContext, env: Environment) -> Dict[str, Any]:
    """
    Prepare template context from a built document.

    Returns dictionary suitable for passing to Jinja2 templates.
    """
    config = document.config
    return {
        "charts": document.charts,
        "histogram": document.histograms[config.thresholds],
        "histogram_variants": {
            str(count): chart.payload for count, chart in document.histograms.items()
        },
        "threshold_options": list(document.histograms),
        "default_thresholds": config.thresholds,
        "summaries": document.summaries,
        "exports": document.exports,
        "facts": document.facts,
        "bandwidths": document.charts["discontinuity"].meta["bandwidths"],
        "selected_bandwidth": document.charts["discontinuity"].meta["selected"],
        "generated_at": document.generated_at_utc,
        "chartjs_url": CHARTJS_URL,

        # Helper functions
        "render_chart": lambda chart: render_chart(chart, env),
        "format_number": _format_number,
    }


def render_document(document: DocumentContext) -> str:
    """
    Render the complete single-file HTML page.

    Returns:
        HTML string with inline CSS, chart configurations and script
        (self-contained, Chart.js via CDN)

    Failure modes:
        - Raises jinja2.TemplateError if a template is malformed
        - Raises if templates/document.html.j2 is missing
    """
    env = _get_template_env()
    template = env.get_template("document.html.j2")
    context = _prepare_context(document, env)
    html = template.render(**context)
    logger.info(
        "Rendered document with %d chart(s) and %d histogram variant(s)",
        len(document.charts),
        len(document.histograms),
    )
    return html
