#!/usr/bin/env python3
"""
Document rendering CLI.

Usage:
    python -m chartdoc.run_document                        # data/ -> output/index.html
    python -m chartdoc.run_document --data-dir examples/   # explicit data directory
    python -m chartdoc.run_document --bandwidth 0.5 --thresholds 10
    python -m chartdoc.run_document --help

Environment variables:
    CHARTDOC_DATA_DIR: Directory holding stocks.csv, iris.csv, senate.csv (default: data)
    CHARTDOC_OUTPUT: Output HTML path (default: output/index.html)
    CHARTDOC_*_SOURCE, CHARTDOC_CUTOFF, CHARTDOC_BANDWIDTH*, CHARTDOC_THRESHOLDS:
        see chartdoc.config
"""

from __future__ import annotations

import argparse
import logging
import sys
import traceback
from pathlib import Path
from typing import List, Optional

from chartdoc import config as doc_config
from chartdoc import render


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render the chart tutorial into a single static HTML page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        help="Directory holding the data files (default: $CHARTDOC_DATA_DIR or data/)",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Output HTML file (default: $CHARTDOC_OUTPUT or output/index.html)",
    )
    parser.add_argument(
        "--bandwidth",
        type=float,
        help="Initially selected LOESS bandwidth (default: 0.3)",
    )
    parser.add_argument(
        "--thresholds",
        type=int,
        help="Initially selected histogram bin count (default: 20)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log loading and rendering details",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for document rendering.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        cfg = doc_config.load_config_from_env(data_dir=args.data_dir)
        cfg = cfg.with_overrides(
            output_path=args.output,
            bandwidth=args.bandwidth,
            thresholds=args.thresholds,
        )
    except ValueError as e:
        print(f"[chartdoc] ERROR: {e}", file=sys.stderr)
        return 1

    if cfg.thresholds < 1:
        print("[chartdoc] ERROR: --thresholds must be >= 1", file=sys.stderr)
        return 1

    print(f"[chartdoc] Rendering document from {cfg.data_dir}...")

    try:
        document = render.build_document(cfg)
        html = render.render_document(document)

        output_path = Path(cfg.output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(html, encoding="utf-8")

        print(f"[chartdoc] Generated {output_path}")
        print(f"[chartdoc]")
        print(f"[chartdoc] Summary:")
        print(f"[chartdoc]   Charts: {len(document.charts)} (+{len(document.histograms)} histogram variants)")
        print(f"[chartdoc]   Exports: {', '.join(sorted(document.exports))}")
        print(f"[chartdoc]   Bandwidth: {document.charts['discontinuity'].meta['selected']}")
        print(f"[chartdoc]   Size: {len(html.encode('utf-8')) / 1024:.1f} KB")
        return 0

    except Exception as e:
        print(f"[chartdoc] ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc(file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
