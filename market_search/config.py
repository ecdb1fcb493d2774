from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------
# Paths
# ---------------------------

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = Path(os.getenv("MARKET_SEARCH_DATA_DIR", str(PROJECT_ROOT / "data")))
CATALOG_RAW_DIR = DATA_DIR / "catalog_raw"
CATALOG_SNAPSHOT_PATH = DATA_DIR / "catalog_snapshot.parquet"

# Path or URL of the catalog the API serves from. Empty -> snapshot above.
CATALOG_SOURCE = os.getenv("MARKET_SEARCH_CATALOG", "")

SQLITE_SUFFIXES = {".db", ".sqlite", ".sqlite3"}


# ---------------------------
# Search defaults
# ---------------------------

DEFAULT_PAGE = 1
DEFAULT_LIMIT = int(os.getenv("SEARCH_DEFAULT_LIMIT", "10"))
DEFAULT_THRESHOLD = float(os.getenv("SEARCH_DEFAULT_THRESHOLD", "0.6"))

# Score given when one string contains the other; sits below an exact match
# and above most edit-distance near misses.
CONTAINMENT_SCORE = 0.9

# Relative importance of each searchable listing field.
FIELD_WEIGHTS: Dict[str, float] = {
    "title": 1.5,
    "description": 1.0,
    "category_name": 1.2,
    "location": 0.8,
    "condition": 0.8,
}


# ---------------------------
# Remote catalog / HTTP hardening
# ---------------------------

HTTP_CONNECT_TIMEOUT = float(os.getenv("CATALOG_HTTP_CONNECT_TIMEOUT", "3.0"))
HTTP_READ_TIMEOUT = float(os.getenv("CATALOG_HTTP_READ_TIMEOUT", "10.0"))
HTTP_MAX_REDIRECTS = 2
HTTP_MAX_BYTES = 20_000_000  # 20 MB cap on a catalog payload

HTTP_USER_AGENT = "market-search/1.0 (+catalog-sync)"


# ---------------------------
# Logging / observability
# ---------------------------

LOG_DIR = Path(os.getenv("MARKET_SEARCH_LOG_DIR", str(PROJECT_ROOT / "logs")))
LOG_LEVEL = os.getenv("MARKET_SEARCH_LOG_LEVEL", "INFO")
APP_LOG_PATH = LOG_DIR / "market_search.log"
ACCESS_LOG_PATH = LOG_DIR / "api.log"


# ---------------------------
# Pydantic models shared around the app
# ---------------------------

class SearchStrategy(str, Enum):
    """How a non-empty query is matched against the catalog."""

    FUZZY_WEIGHTED = "fuzzy-weighted"
    EXACT_SUBSTRING = "exact-substring"


class Listing(BaseModel):
    """
    A single marketplace listing as served by the catalog provider.

    Rows are already denormalized (category name, payment methods, images).
    Every text field is optional; scoring treats a missing field as "".
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int
    title: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    location: Optional[str] = None
    condition: Optional[str] = None

    user_id: Optional[int] = None
    price: Optional[float] = None
    status: Optional[str] = None
    shipping: List[str] = Field(default_factory=list)
    negotiable: bool = False
    email: Optional[str] = None
    phone: Optional[str] = None
    teams_link: Optional[str] = None
    views: int = 0
    sold: bool = False
    payment_methods: List[str] = Field(default_factory=list)
    primary_image: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    expires_at: Optional[str] = None


class ScoringConfig(BaseModel):
    """
    Tunable constants of the listing scorer.

    Weights multiply the raw [0,1] field similarity and are deliberately not
    clamped, so a strong title match may exceed 1.0 before the cross-field max.
    """

    model_config = ConfigDict(frozen=True)

    field_weights: Dict[str, float] = Field(default_factory=lambda: dict(FIELD_WEIGHTS))
    containment_score: float = Field(default=CONTAINMENT_SCORE, ge=0.0, le=1.0)

    @field_validator("field_weights")
    @classmethod
    def _weights_valid(cls, value: Dict[str, float]) -> Dict[str, float]:
        if not value:
            raise ValueError("field_weights must name at least one field")
        for field, weight in value.items():
            if field not in Listing.model_fields:
                raise ValueError(f"{field!r} is not a listing field")
            if weight < 0:
                raise ValueError(f"weight for {field!r} must be >= 0, got {weight}")
        return value


class SearchParams(BaseModel):
    """Already-coerced search request; see normalize.coerce_search_params."""

    q: str = ""
    category_id: Optional[int] = None
    page: int = Field(default=DEFAULT_PAGE, ge=1)
    limit: int = Field(default=DEFAULT_LIMIT, ge=1)
    threshold: float = Field(default=DEFAULT_THRESHOLD, ge=0.0, le=1.0)
    strategy: SearchStrategy = SearchStrategy.FUZZY_WEIGHTED


class HealthResponse(BaseModel):
    """
    Response body for GET /health.
    """

    status: str


class ReloadResponse(BaseModel):
    """
    Response body for POST /api/v1/catalog/reload.
    """

    status: str
    count: int = Field(ge=0)
