# market_search/cli.py
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .catalog import build_catalog_snapshot, provider_for
from .config import CATALOG_SNAPSHOT_PATH, CATALOG_SOURCE, SearchStrategy
from .errors import CatalogUnavailableError
from .logging_setup import configure_logging
from .normalize import coerce_search_params
from .ranking import RankingPipeline


def _cmd_build_snapshot(args: argparse.Namespace) -> int:
    try:
        out = build_catalog_snapshot(raw_path=args.raw, output_path=args.out)
    except FileNotFoundError as e:
        logger.error("{}", e)
        return 1
    print(out)
    return 0


def _cmd_search(args: argparse.Namespace) -> int:
    provider = provider_for(args.catalog or CATALOG_SOURCE)
    try:
        catalog = provider.load()
    except CatalogUnavailableError as e:
        logger.error("{}", e)
        return 2

    params = coerce_search_params(
        q=args.query,
        category=args.category,
        page=args.page,
        limit=args.limit,
        threshold=args.threshold,
        strategy=args.strategy,
    )
    result = RankingPipeline().run(catalog, params)
    body = {
        "total": result.total,
        "page": params.page,
        "limit": params.limit,
        "items": [listing.model_dump() for listing in result.listings],
    }
    print(json.dumps(body, indent=2, ensure_ascii=False, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="market-search", description="Marketplace catalog search tools")
    ap.add_argument("--log-level", default="WARNING")
    sub = ap.add_subparsers(dest="command", required=True)

    snap = sub.add_parser("build-snapshot", help="Normalize a raw listings export into a parquet snapshot")
    snap.add_argument("raw", type=Path, nargs="?", default=None,
                      help="CSV/XLSX/JSON export (default: first file under data/catalog_raw)")
    snap.add_argument("--out", type=Path, default=CATALOG_SNAPSHOT_PATH)
    snap.set_defaults(func=_cmd_build_snapshot)

    s = sub.add_parser("search", help="Run one search against a catalog and print the page as JSON")
    s.add_argument("query", nargs="?", default="")
    s.add_argument("--catalog", default=None, help="Snapshot path, SQLite database or http(s) URL")
    s.add_argument("--page", default=None)
    s.add_argument("--limit", default=None)
    s.add_argument("--category", default=None)
    s.add_argument("--threshold", default=None)
    s.add_argument(
        "--strategy",
        choices=[st.value for st in SearchStrategy],
        default=SearchStrategy.FUZZY_WEIGHTED.value,
    )
    s.set_defaults(func=_cmd_search)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level.upper(), app_log_path=None, access_log_path=None)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
