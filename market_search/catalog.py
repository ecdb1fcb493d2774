from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

import httpx
import pandas as pd
from loguru import logger

from .config import (
    CATALOG_RAW_DIR,
    CATALOG_SNAPSHOT_PATH,
    HTTP_CONNECT_TIMEOUT,
    HTTP_MAX_BYTES,
    HTTP_MAX_REDIRECTS,
    HTTP_READ_TIMEOUT,
    HTTP_USER_AGENT,
    SQLITE_SUFFIXES,
    Listing,
)
from .errors import CatalogUnavailableError
from .mapping import dataframe_to_listings, records_to_listings


# ---------------------------
# Column detection / standardization
# ---------------------------

# Exports from the marketplace admin panel and older dumps use different
# headers, so several likely variants are accepted for each field.
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    "id": ["id", "item_id", "listing_id", "Item ID", "ID"],
    "title": ["title", "Title", "name", "Name", "Item", "Listing"],
    "description": ["description", "Description", "Details", "Body"],
    "category_id": ["category_id", "categoryId", "Category ID"],
    "category_name": ["category_name", "categoryName", "category", "Category"],
    "location": ["location", "Location", "City", "Place"],
    "condition": ["condition", "Condition", "State"],
    "price": ["price", "Price", "Amount"],
    "payment_methods": ["payment_methods", "paymentMethods", "Payment Methods"],
    "image_urls": ["image_urls", "imageUrls", "Images"],
}

CANONICAL_COLUMNS: List[str] = [
    "id",
    "title",
    "description",
    "category_id",
    "category_name",
    "location",
    "condition",
]


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """
    Rename columns from a raw catalog export to the canonical listing schema.

    Columns not named in COLUMN_CANDIDATES are kept under their own name so
    extra display fields (status, shipping, ...) still reach the mapper.
    """
    col_map: Dict[str, str] = {}
    lower_to_original = {str(c).lower(): c for c in df.columns}

    for canon, candidates in COLUMN_CANDIDATES.items():
        if canon in df.columns:
            continue
        for candidate in candidates:
            # Try exact, then case-insensitive
            if candidate in df.columns and candidate not in col_map:
                col_map[candidate] = canon
                break
            original = lower_to_original.get(candidate.lower())
            if original is not None and original not in col_map:
                col_map[original] = canon
                break

    if col_map:
        logger.info("Standardizing columns with map: {}", col_map)

    df_std = df.rename(columns=col_map)

    missing = [c for c in ("title", "description") if c not in df_std.columns]
    if missing:
        logger.warning("Raw catalog is missing text columns: {}", missing)

    return df_std


# ---------------------------
# Catalog normalization
# ---------------------------

def normalize_catalog_df(df_raw: pd.DataFrame) -> pd.DataFrame:
    """
    Normalization pipeline for a raw listing export.

    Output keeps every raw column and guarantees the canonical ones:

    - id (int, unique; generated 1..n when the export has none)
    - title, description, category_name, location, condition (text as exported;
      empty cells stay missing)
    - category_id (nullable Int64)
    """
    logger.info("Normalizing catalog dataframe with {} raw rows", len(df_raw))

    df = _standardize_columns(df_raw.copy())

    for col in CANONICAL_COLUMNS:
        if col not in df.columns:
            df[col] = None

    if df["id"].isna().all():
        logger.warning("No id column in raw catalog; assigning sequential ids")
        df["id"] = range(1, len(df) + 1)

    df["id"] = pd.to_numeric(df["id"], errors="coerce")
    bad_ids = int(df["id"].isna().sum())
    if bad_ids:
        logger.warning("Dropping {} rows without a numeric id", bad_ids)
        df = df[df["id"].notna()].copy()
    df["id"] = df["id"].astype("int64")

    before = len(df)
    df = df.drop_duplicates(subset=["id"], keep="first").reset_index(drop=True)
    if len(df) != before:
        logger.warning("Dropped {} duplicate listing ids", before - len(df))

    df["category_id"] = pd.to_numeric(df["category_id"], errors="coerce").astype("Int64")

    ordered = CANONICAL_COLUMNS + [c for c in df.columns if c not in CANONICAL_COLUMNS]
    df_out = df[ordered]

    logger.info("Catalog normalization complete. Final rows: {}", len(df_out))
    return df_out


# ---------------------------
# IO helpers
# ---------------------------

def read_table(path: Path) -> pd.DataFrame:
    """Read a catalog table; the format follows the file suffix."""
    ext = path.suffix.lower()
    if ext == ".parquet":
        return pd.read_parquet(path)
    if ext in {".xlsx", ".xls"}:
        return pd.read_excel(path)
    if ext == ".json":
        return pd.read_json(path, orient="records")
    return pd.read_csv(path, encoding="utf-8")


def load_raw_catalog(path: Optional[Path] = None) -> pd.DataFrame:
    """
    Load a raw listing export.

    If no path is provided, we take the first .csv/.xlsx/.json found under
    data/catalog_raw.
    """
    if path is None:
        candidates = sorted(
            p for p in CATALOG_RAW_DIR.glob("*") if p.suffix.lower() in {".csv", ".xlsx", ".json"}
        )
        if not candidates:
            raise FileNotFoundError(
                f"No catalog exports found under {CATALOG_RAW_DIR}. "
                f"Place a listings export there and re-run."
            )
        path = candidates[0]

    logger.info("Loading raw catalog from {}", path)
    df = read_table(path)
    logger.info("Loaded {} rows from raw catalog", len(df))
    return df


def build_catalog_snapshot(
    raw_path: Optional[Path] = None,
    output_path: Path = CATALOG_SNAPSHOT_PATH,
) -> Path:
    """
    End-to-end: load raw export -> normalize -> write Parquet snapshot.

    Returns the output path.
    """
    df_raw = load_raw_catalog(raw_path)
    df_norm = normalize_catalog_df(df_raw)

    logger.info("Writing catalog snapshot to {}", output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df_norm.to_parquet(output_path, index=False)
    logger.info("Catalog snapshot written with {} rows", len(df_norm))

    return output_path


def load_catalog_snapshot(path: Path = CATALOG_SNAPSHOT_PATH) -> pd.DataFrame:
    """
    Convenience helper to load and normalize a catalog snapshot.
    """
    logger.info("Loading catalog snapshot from {}", path)
    df = normalize_catalog_df(read_table(path))
    logger.info("Loaded catalog snapshot with {} rows", len(df))
    return df


# ---------------------------
# Providers
# ---------------------------

class CatalogProvider(Protocol):
    """Anything that can hand the search core the full listing collection."""

    source: str

    def load(self) -> List[Listing]:
        ...


class SnapshotCatalogProvider:
    """Listings from a parquet / csv / json / xlsx file."""

    def __init__(self, path: Union[str, Path] = CATALOG_SNAPSHOT_PATH) -> None:
        self.path = Path(path)
        self.source = str(self.path)

    def load(self) -> List[Listing]:
        if not self.path.exists():
            raise CatalogUnavailableError(self.source, "file not found")
        try:
            df = load_catalog_snapshot(self.path)
        except (OSError, ValueError, ImportError) as e:
            logger.exception("Failed to read catalog snapshot {}", self.path)
            raise CatalogUnavailableError(self.source, str(e)) from e
        return dataframe_to_listings(df)


# Same denormalized view the marketplace serves for its search index: one row
# per item with the category name, payment method slugs, primary image and
# all image urls folded in. The secret management_key is never selected.
MARKETPLACE_CATALOG_SQL = """
    SELECT
        i.id, i.user_id, i.category_id, i.title, i.description, i.price,
        i.status, i.condition, i.location, i.shipping, i.negotiable,
        i.email, i.phone, i.teams_link, i.views, i.sold,
        i.created_at, i.updated_at, i.expires_at,
        c.name AS category_name,
        GROUP_CONCAT(DISTINCT pm.slug) AS payment_methods,
        (SELECT url FROM item_images WHERE item_id = i.id AND is_primary = 1 LIMIT 1) AS primary_image,
        GROUP_CONCAT(DISTINCT ii.url) AS image_urls
    FROM items i
    LEFT JOIN categories c ON i.category_id = c.id
    LEFT JOIN item_payment_methods ipm ON i.id = ipm.item_id
    LEFT JOIN payment_methods pm ON ipm.payment_method_id = pm.id
    LEFT JOIN item_images ii ON i.id = ii.item_id
    GROUP BY i.id
    ORDER BY i.id
"""


class SqliteCatalogProvider:
    """Listings read (read-only) from the marketplace SQLite database."""

    def __init__(self, db_path: Union[str, Path], sql: str = MARKETPLACE_CATALOG_SQL) -> None:
        self.db_path = Path(db_path)
        self.sql = sql
        self.source = str(self.db_path)

    def load(self) -> List[Listing]:
        if not self.db_path.exists():
            raise CatalogUnavailableError(self.source, "database file not found")
        uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
        try:
            conn = sqlite3.connect(uri, uri=True, timeout=5.0)
        except sqlite3.Error as e:
            raise CatalogUnavailableError(self.source, str(e)) from e
        try:
            df = pd.read_sql_query(self.sql, conn)
        except (sqlite3.Error, pd.errors.DatabaseError) as e:
            logger.exception("Catalog query failed against {}", self.db_path)
            raise CatalogUnavailableError(self.source, str(e)) from e
        finally:
            conn.close()
        logger.info("Read {} listings from {}", len(df), self.db_path)
        return dataframe_to_listings(df)


class HttpCatalogProvider:
    """
    Listings fetched from a remote JSON endpoint.

    Accepts either a bare array of listings or an object with an "items" array.
    Hardening: connect/read timeouts, limited redirects, payload size cap.
    """

    def __init__(self, url: str, client: Optional[httpx.Client] = None) -> None:
        self.url = url
        self.source = url
        self._client = client

    def _client_or_default(self) -> httpx.Client:
        if self._client is not None:
            return self._client
        return httpx.Client(
            follow_redirects=True,
            timeout=httpx.Timeout(HTTP_READ_TIMEOUT, connect=HTTP_CONNECT_TIMEOUT),
            max_redirects=HTTP_MAX_REDIRECTS,
        )

    def _fetch(self) -> Any:
        headers = {"User-Agent": HTTP_USER_AGENT, "Accept": "application/json"}
        client = self._client_or_default()
        try:
            r = client.get(self.url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Catalog fetch failed for {}: {}", self.url, e)
            raise CatalogUnavailableError(self.source, str(e)) from e
        finally:
            if self._client is None:
                client.close()

        if r.status_code >= 400:
            logger.warning("Catalog fetch: HTTP {} for {}", r.status_code, self.url)
            raise CatalogUnavailableError(self.source, f"HTTP {r.status_code}")
        if len(r.content) > HTTP_MAX_BYTES:
            logger.warning("Catalog fetch aborted: {} bytes > {} limit", len(r.content), HTTP_MAX_BYTES)
            raise CatalogUnavailableError(self.source, "payload too large")
        try:
            return r.json()
        except ValueError as e:
            raise CatalogUnavailableError(self.source, "response is not JSON") from e

    def load(self) -> List[Listing]:
        payload = self._fetch()
        if isinstance(payload, dict):
            payload = payload.get("items")
        if not isinstance(payload, list):
            raise CatalogUnavailableError(self.source, "expected a JSON array of listings")
        rows = [row for row in payload if isinstance(row, dict)]
        if len(rows) != len(payload):
            logger.warning("Ignoring {} non-object catalog entries", len(payload) - len(rows))
        return records_to_listings(rows)


def provider_for(source: Union[str, Path, None] = None) -> CatalogProvider:
    """
    Pick a provider from a path or URL.

    http(s):// -> HttpCatalogProvider, .db/.sqlite/.sqlite3 -> SqliteCatalogProvider,
    anything else (or nothing) -> SnapshotCatalogProvider.
    """
    if source is None or str(source).strip() == "":
        return SnapshotCatalogProvider(CATALOG_SNAPSHOT_PATH)
    text = str(source).strip()
    if text.lower().startswith(("http://", "https://")):
        return HttpCatalogProvider(text)
    path = Path(text).expanduser()
    if path.suffix.lower() in SQLITE_SUFFIXES:
        return SqliteCatalogProvider(path)
    return SnapshotCatalogProvider(path)
