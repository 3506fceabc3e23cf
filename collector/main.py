from __future__ import annotations

import json
import os
import random
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx


class FetchError(RuntimeError):
    """A data file could not be downloaded."""


@dataclass(frozen=True)
class SourceSpec:
    """
    A remote columnar data file and the local name it is stored under.

    Example:
      {"name": "stocks", "url": "https://example.org/stocks.csv", "filename": "stocks.csv"}
    """
    name: str
    url: str
    filename: str


@dataclass
class FetchConfig:
    user_agent: str
    timeout_s: float
    max_retries: int
    backoff_base_s: float
    backoff_cap_s: float
    jitter_ratio: float


def compute_backoff_s(attempt: int, base: float, cap: float, jitter_ratio: float) -> float:
    exp = min(cap, base * (2 ** max(0, attempt - 1)))
    jitter = exp * jitter_ratio * random.random()
    return exp + jitter


def fetch_text(
    client: httpx.Client,
    cfg: FetchConfig,
    url: str,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """
    Download a text file.

    Conservative semantics:
      - Retry 429, 5xx and transport errors with exponential backoff + jitter
      - Other 4xx statuses fail immediately

    Raises:
        FetchError: when the status is non-retryable or attempts run out
    """
    last_error: Optional[str] = None
    for attempt in range(1, cfg.max_retries + 1):
        try:
            resp = client.get(url)
        except httpx.TransportError as e:
            last_error = f"network:{type(e).__name__}"
        else:
            status_code = resp.status_code
            if status_code == 429 or 500 <= status_code <= 599:
                last_error = f"retryable_status:{status_code}"
            elif status_code >= 400:
                raise FetchError(f"GET {url} failed with status {status_code}")
            else:
                return resp.text

        if attempt < cfg.max_retries:
            sleep(compute_backoff_s(attempt, cfg.backoff_base_s, cfg.backoff_cap_s, cfg.jitter_ratio))

    raise FetchError(f"GET {url} failed after {cfg.max_retries} attempt(s): {last_error}")


def load_config_from_env() -> FetchConfig:
    return FetchConfig(
        user_agent=os.environ.get("CHARTDOC_FETCH_USER_AGENT", "chartdoc/0.1"),
        timeout_s=float(os.environ.get("CHARTDOC_FETCH_TIMEOUT_S", "20")),
        max_retries=int(os.environ.get("CHARTDOC_FETCH_MAX_RETRIES", "4")),
        backoff_base_s=float(os.environ.get("CHARTDOC_FETCH_BACKOFF_BASE_S", "0.8")),
        backoff_cap_s=float(os.environ.get("CHARTDOC_FETCH_BACKOFF_CAP_S", "30")),
        jitter_ratio=float(os.environ.get("CHARTDOC_FETCH_JITTER_RATIO", "0.25")),
    )


def make_client(cfg: FetchConfig, transport: Optional[httpx.BaseTransport] = None) -> httpx.Client:
    return httpx.Client(
        timeout=cfg.timeout_s,
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=True,
        transport=transport,
    )


def fetch_text_once(url: str) -> str:
    """Download one URL with a client configured from the environment."""
    cfg = load_config_from_env()
    with make_client(cfg) as client:
        return fetch_text(client, cfg, url)


def load_source_specs_from_env() -> List[SourceSpec]:
    raw = os.environ.get("CHARTDOC_SOURCES_JSON", "").strip()
    if not raw:
        raise RuntimeError("Missing CHARTDOC_SOURCES_JSON (JSON list of source specs)")
    try:
        items = json.loads(raw)
        specs: List[SourceSpec] = []
        for it in items:
            url = str(it["url"])
            specs.append(
                SourceSpec(
                    name=str(it["name"]),
                    url=url,
                    filename=str(it.get("filename") or url.rsplit("/", 1)[-1]),
                )
            )
        return specs
    except Exception as e:
        raise RuntimeError(f"Invalid CHARTDOC_SOURCES_JSON: {e}") from e


def download_sources(
    cfg: FetchConfig,
    specs: List[SourceSpec],
    data_dir: str,
    client: Optional[httpx.Client] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Path]:
    """
    Download every source into data_dir.

    Returns:
        {source name: written path}; failed sources are absent
    """
    target = Path(data_dir)
    target.mkdir(parents=True, exist_ok=True)
    written: Dict[str, Path] = {}

    owns_client = client is None
    client = client or make_client(cfg)
    try:
        for spec in specs:
            try:
                text = fetch_text(client, cfg, spec.url, sleep=sleep)
            except FetchError as e:
                print(f"[collector] {spec.name}: {e}", file=sys.stderr)
                continue
            path = target / spec.filename
            path.write_text(text, encoding="utf-8")
            written[spec.name] = path
    finally:
        if owns_client:
            client.close()

    print(f"[collector] completed: {len(written)}/{len(specs)} sources stored into {target}")
    return written


def main() -> int:
    cfg = load_config_from_env()
    specs = load_source_specs_from_env()
    data_dir = os.environ.get("CHARTDOC_DATA_DIR", "data")
    written = download_sources(cfg, specs, data_dir)
    return 0 if len(written) == len(specs) else 1


if __name__ == "__main__":
    sys.exit(main())
