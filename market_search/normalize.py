from __future__ import annotations

"""
Text and request-parameter normalisation shared by the ranking pipeline,
the HTTP layer and the CLI.

Public helpers:

* text_of(value) -> str
    Null-safe string view of a listing field; missing means "".

* tokenize_query(text) -> List[str]
    Query tokenizer: lower-cased, non-empty, whitespace-delimited tokens.

* coerce_page / coerce_limit / coerce_threshold / coerce_category
    Total coercions for raw request values; bad input falls back to the
    configured default instead of raising.
"""

import math
import re
from typing import Any, List, Optional

from loguru import logger

from .config import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    DEFAULT_THRESHOLD,
    SearchParams,
    SearchStrategy,
)


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    # pandas hands NaN back for empty cells
    return isinstance(value, float) and math.isnan(value)


def text_of(value: Any) -> str:
    """Return ``value`` as a string, treating None / NaN as empty."""
    if _is_missing(value):
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def tokenize_query(text: Any) -> List[str]:
    """Split a raw query into lower-cased search tokens.

    An empty or whitespace-only query yields no tokens.
    """
    return text_of(text).lower().split()


def is_blank_query(text: Any) -> bool:
    return not text_of(text).strip()


# ---------------------------------------------------------------------------
# Request parameters
# ---------------------------------------------------------------------------

_INT_PREFIX = re.compile(r"[+-]?\d+")


def _parse_int(value: Any) -> Optional[int]:
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    # leading integer prefix: "3abc" -> 3, "2.9" -> 2, "abc" -> None
    m = _INT_PREFIX.match(str(value).strip())
    if m is None:
        return None
    try:
        return int(m.group(0))
    except ValueError:
        # over the interpreter's int digit limit
        return None


def _parse_float(value: Any) -> Optional[float]:
    if _is_missing(value) or isinstance(value, bool):
        return None
    try:
        f = float(str(value).strip()) if not isinstance(value, (int, float)) else float(value)
    except (ValueError, OverflowError):
        return None
    return f if math.isfinite(f) else None


def coerce_page(value: Any) -> int:
    page = _parse_int(value)
    if page is None or page < 1:
        if value is not None:
            logger.debug("Invalid page {!r:.80}; using {}", value, DEFAULT_PAGE)
        return DEFAULT_PAGE
    return page


def coerce_limit(value: Any) -> int:
    limit = _parse_int(value)
    if limit is None or limit < 1:
        if value is not None:
            logger.debug("Invalid limit {!r:.80}; using {}", value, DEFAULT_LIMIT)
        return DEFAULT_LIMIT
    return limit


def coerce_threshold(value: Any) -> float:
    """Parse a threshold, clamping numbers into [0, 1]."""
    threshold = _parse_float(value)
    if threshold is None:
        if value is not None:
            logger.debug("Invalid threshold {!r:.80}; using {}", value, DEFAULT_THRESHOLD)
        return DEFAULT_THRESHOLD
    return min(1.0, max(0.0, threshold))


def coerce_category(value: Any) -> Optional[int]:
    """Category filter id, or None when absent, zero or unparseable."""
    category = _parse_int(value)
    return category or None


def coerce_strategy(value: Any) -> SearchStrategy:
    if isinstance(value, SearchStrategy):
        return value
    try:
        return SearchStrategy(text_of(value).strip().lower())
    except ValueError:
        return SearchStrategy.FUZZY_WEIGHTED


def coerce_search_params(
    q: Any = "",
    category: Any = None,
    page: Any = None,
    limit: Any = None,
    threshold: Any = None,
    strategy: Any = SearchStrategy.FUZZY_WEIGHTED,
) -> SearchParams:
    """Build a valid SearchParams from raw query-string values."""
    return SearchParams(
        q=text_of(q),
        category_id=coerce_category(category),
        page=coerce_page(page),
        limit=coerce_limit(limit),
        threshold=coerce_threshold(threshold),
        strategy=coerce_strategy(strategy),
    )
