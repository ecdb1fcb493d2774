from __future__ import annotations

"""
FastAPI application for marketplace catalog search.

- GET /api/v1/search          fuzzy, weighted, threshold-filtered ranking
- GET /api/v1/items/search    plain substring filter in catalog order
- Both return a JSON array of listings; the match count before pagination
  travels in the X-Total-Count header.
- Query-string numbers are coerced, never rejected: a bad page/limit/
  threshold falls back to its default.
"""

import time
from typing import List, Optional, Sequence

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ._singletons import get_catalog, reload_catalog
from .config import (
    HealthResponse,
    Listing,
    ReloadResponse,
    SearchParams,
    SearchStrategy,
)
from .errors import CatalogUnavailableError
from .logging_setup import configure_logging
from .normalize import coerce_search_params
from .ranking import RankingPipeline

TOTAL_COUNT_HEADER = "X-Total-Count"

pipeline = RankingPipeline()


# -----------------------
# FastAPI app + startup
# -----------------------

app = FastAPI(title="market-search")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[TOTAL_COUNT_HEADER],
)


@app.middleware("http")
async def access_log(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    logger.bind(
        access=True,
        method=request.method,
        url=str(request.url),
        status=response.status_code,
        response_time_ms=round(elapsed_ms, 2),
        content_length=response.headers.get("content-length"),
        user_agent=request.headers.get("user-agent"),
    ).info("{} {} {}", request.method, request.url.path, response.status_code)
    return response


@app.on_event("startup")
def startup_event() -> None:
    configure_logging()
    logger.info("Starting app warmup...")
    try:
        catalog = get_catalog()
        logger.info("Loaded catalog with {} listings", len(catalog))
    except CatalogUnavailableError as e:
        # Searches will retry the provider and answer 503 until it recovers.
        logger.warning("Catalog not available at startup: {}", e)
    logger.info("Warmup complete.")


# -----------------------
# Request handling
# -----------------------

def _load_catalog() -> Sequence[Listing]:
    try:
        return get_catalog()
    except CatalogUnavailableError as e:
        logger.error("Search failed, {}", e)
        raise HTTPException(status_code=503, detail="Catalog unavailable") from e


def run_search(params: SearchParams, response: Response) -> List[Listing]:
    catalog = _load_catalog()
    logger.info(
        "Search q={!r:.80} page={!s:.20} limit={!s:.20} category={} threshold={} strategy={}",
        params.q, params.page, params.limit, params.category_id, params.threshold, params.strategy.value,
    )
    result = pipeline.run(catalog, params)
    response.headers[TOTAL_COUNT_HEADER] = str(result.total)
    return result.listings


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@app.get("/api/v1/search", response_model=List[Listing])
def search(
    response: Response,
    q: str = "",
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    threshold: Optional[str] = None,
) -> List[Listing]:
    params = coerce_search_params(
        q=q,
        category=category,
        page=page,
        limit=limit,
        threshold=threshold,
        strategy=SearchStrategy.FUZZY_WEIGHTED,
    )
    return run_search(params, response)


@app.get("/api/v1/items/search", response_model=List[Listing])
def search_items(
    response: Response,
    q: str = "",
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
) -> List[Listing]:
    params = coerce_search_params(
        q=q,
        category=category,
        page=page,
        limit=limit,
        strategy=SearchStrategy.EXACT_SUBSTRING,
    )
    return run_search(params, response)


@app.post("/api/v1/catalog/reload", response_model=ReloadResponse)
def reload() -> ReloadResponse:
    try:
        catalog = reload_catalog()
    except CatalogUnavailableError as e:
        logger.error("Catalog reload failed, {}", e)
        raise HTTPException(status_code=503, detail="Catalog unavailable") from e
    logger.info("Catalog reloaded with {} listings", len(catalog))
    return ReloadResponse(status="reloaded", count=len(catalog))
