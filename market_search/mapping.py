from __future__ import annotations
"""
Mapping utilities to convert raw catalog rows into Listing models.

Rows arrive from pandas (numpy scalars, NaN for empty cells), from the
marketplace database (GROUP_CONCAT strings, JSON-encoded shipping options,
0/1 booleans) or from a JSON API (already-typed values).  Everything is
funnelled through the same coercions here so the search core only ever
sees well-formed Listing objects.
"""

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional

import numpy as np
import pandas as pd
from loguru import logger
from pydantic import ValidationError

from .config import Listing

TEXT_FIELDS = [
    "title",
    "description",
    "category_name",
    "location",
    "condition",
    "status",
    "email",
    "phone",
    "teams_link",
    "primary_image",
    "created_at",
    "updated_at",
    "expires_at",
]

# Raw column aliases seen in the marketplace database and its JSON API.
FIELD_ALIASES: Dict[str, str] = {
    "paymentMethods": "payment_methods",
    "categoryId": "category_id",
    "categoryName": "category_name",
    "imageUrls": "image_urls",
    "primaryImage": "primary_image",
    "userId": "user_id",
    "teamsLink": "teams_link",
}


def _is_null(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, (list, tuple, np.ndarray, dict)):
        return False
    try:
        return bool(pd.isna(val))
    except (TypeError, ValueError):
        return False


def _coerce_int(val: Any, default: Optional[int] = 0) -> Optional[int]:
    try:
        if _is_null(val) or isinstance(val, bool):
            return default
        if isinstance(val, (int, np.integer)):
            return int(val)
        if isinstance(val, (float, np.floating)):
            return int(val)
        s = str(val).strip()
        return int(float(s)) if s else default
    except (TypeError, ValueError, OverflowError):
        return default


def _coerce_float(val: Any) -> Optional[float]:
    try:
        if _is_null(val) or isinstance(val, bool):
            return None
        return float(val)
    except (TypeError, ValueError):
        return None


def _coerce_bool(val: Any) -> bool:
    """SQLite stores booleans as 0/1; JSON and CSV may use strings."""
    if _is_null(val):
        return False
    if isinstance(val, str):
        return val.strip().lower() in {"1", "true", "yes", "y"}
    return bool(val)


def _coerce_text(val: Any) -> Optional[str]:
    # stored text is served and scored verbatim
    if _is_null(val):
        return None
    return val if isinstance(val, str) else str(val)


def _coerce_str_list(val: Any) -> List[str]:
    """
    Normalise list-shaped fields:
      - None / NaN -> []
      - '["a","b"]' (JSON) -> ["a","b"]
      - "a,b,c" (GROUP_CONCAT) -> ["a","b","c"]
      - list/tuple/np.ndarray -> list[str]
    """
    if isinstance(val, (list, tuple, np.ndarray)):
        return [str(v).strip() for v in val if not _is_null(v) and str(v).strip()]
    if _is_null(val):
        return []
    s = str(val).strip()
    if not s:
        return []
    if s.startswith("["):
        try:
            parsed = json.loads(s)
        except ValueError:
            logger.warning("Could not parse list field {!r}; splitting on commas", s)
        else:
            if isinstance(parsed, list):
                return [str(v).strip() for v in parsed if v is not None and str(v).strip()]
    return [part.strip() for part in s.split(",") if part.strip()]


def _canonical_keys(row: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in row.items():
        out[FIELD_ALIASES.get(str(key), str(key))] = value
    return out


def to_listing(row: Mapping[str, Any]) -> Listing:
    """
    Convert one raw catalog row (dict or pandas Series) into a Listing.

    Raises ValueError when the row has no usable integer id.
    """
    if isinstance(row, pd.Series):
        row = row.to_dict()
    data = _canonical_keys(row)

    listing_id = _coerce_int(data.get("id"), default=None)
    if listing_id is None:
        raise ValueError(f"listing row has no usable id: {data.get('id')!r}")

    fields: Dict[str, Any] = {"id": listing_id}
    for name in TEXT_FIELDS:
        fields[name] = _coerce_text(data.get(name))

    fields["category_id"] = _coerce_int(data.get("category_id"), default=None)
    fields["user_id"] = _coerce_int(data.get("user_id"), default=None)
    fields["price"] = _coerce_float(data.get("price"))
    fields["views"] = _coerce_int(data.get("views"), default=0)
    fields["negotiable"] = _coerce_bool(data.get("negotiable"))
    fields["sold"] = _coerce_bool(data.get("sold"))
    fields["shipping"] = _coerce_str_list(data.get("shipping"))
    fields["payment_methods"] = _coerce_str_list(data.get("payment_methods"))
    fields["image_urls"] = _coerce_str_list(data.get("image_urls"))

    return Listing(**fields)


def records_to_listings(rows: Iterable[Mapping[str, Any]]) -> List[Listing]:
    """
    Convert raw rows, skipping (and logging) rows that cannot become a Listing.

    One malformed record never fails the whole catalog.
    """
    listings: List[Listing] = []
    skipped = 0
    for row in rows:
        try:
            listings.append(to_listing(row))
        except (ValueError, ValidationError) as e:
            skipped += 1
            logger.warning("Skipping malformed catalog row: {}", e)
    if skipped:
        logger.warning("Skipped {} malformed catalog rows", skipped)
    logger.info("Mapped {} catalog rows into listings", len(listings))
    return listings


def dataframe_to_listings(df: pd.DataFrame) -> List[Listing]:
    if df is None or df.empty:
        return []
    return records_to_listings(df.to_dict(orient="records"))
