import sqlite3

import httpx
import pandas as pd
import pytest

from market_search.catalog import (
    HttpCatalogProvider,
    SnapshotCatalogProvider,
    SqliteCatalogProvider,
    build_catalog_snapshot,
    load_catalog_snapshot,
    normalize_catalog_df,
    provider_for,
)
from market_search.errors import CatalogUnavailableError


def test_normalize_maps_alias_columns_and_keeps_text():
    df_raw = pd.DataFrame(
        {
            "Item ID": [3, 1],
            "Name": ["  Desk ", "Laptop"],
            "Description": ["Oak desk", None],
            "Category": ["Furniture", "Electronics"],
        }
    )
    df = normalize_catalog_df(df_raw)

    assert list(df.columns[:7]) == [
        "id", "title", "description", "category_id", "category_name", "location", "condition",
    ]
    assert df["id"].tolist() == [3, 1]
    assert df["title"].tolist() == ["  Desk ", "Laptop"]
    assert df["description"].iloc[0] == "Oak desk"
    assert pd.isna(df["description"].iloc[1])
    assert df["category_name"].tolist() == ["Furniture", "Electronics"]
    assert df["category_id"].isna().all()


def test_normalize_drops_bad_and_duplicate_ids():
    df_raw = pd.DataFrame(
        {
            "id": [1, "x", 2, 1],
            "title": ["first", "bad", "second", "dupe"],
        }
    )
    df = normalize_catalog_df(df_raw)
    assert df["id"].tolist() == [1, 2]
    assert df["title"].tolist() == ["first", "second"]


def test_normalize_assigns_ids_when_missing():
    df = normalize_catalog_df(pd.DataFrame({"title": ["a", "b", "c"]}))
    assert df["id"].tolist() == [1, 2, 3]


def test_snapshot_provider_reads_csv(tmp_path):
    path = tmp_path / "listings.csv"
    pd.DataFrame(
        {
            "id": [1, 2],
            "title": ["Laptop", "Office chair"],
            "category_id": [1, 2],
            "category_name": ["Electronics", "Furniture"],
            "price": [450.0, 80.0],
        }
    ).to_csv(path, index=False)

    provider = SnapshotCatalogProvider(path)
    listings = provider.load()

    assert provider.source == str(path)
    assert [l.id for l in listings] == [1, 2]
    assert listings[1].title == "Office chair"
    assert listings[1].category_id == 2
    assert listings[0].price == 450.0
    assert listings[0].description is None


def test_snapshot_provider_missing_file(tmp_path):
    provider = SnapshotCatalogProvider(tmp_path / "nope.parquet")
    with pytest.raises(CatalogUnavailableError) as exc:
        provider.load()
    assert "nope.parquet" in str(exc.value)


def test_build_and_load_snapshot(tmp_path):
    raw = tmp_path / "raw.csv"
    pd.DataFrame({"id": [5, 6], "title": ["Road bike", "Helmet"]}).to_csv(raw, index=False)

    out = build_catalog_snapshot(raw_path=raw, output_path=tmp_path / "out" / "catalog.parquet")
    assert out.exists()

    df = load_catalog_snapshot(out)
    assert df["id"].tolist() == [5, 6]
    assert df["title"].tolist() == ["Road bike", "Helmet"]


def _make_marketplace_db(path):
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE categories (id INTEGER PRIMARY KEY, name TEXT);
        CREATE TABLE items (
            id INTEGER PRIMARY KEY, user_id INTEGER, category_id INTEGER,
            title TEXT, description TEXT, price REAL, status TEXT,
            condition TEXT, location TEXT, shipping TEXT, negotiable INTEGER,
            email TEXT, phone TEXT, teams_link TEXT, views INTEGER, sold INTEGER,
            created_at TEXT, updated_at TEXT, expires_at TEXT, management_key TEXT
        );
        CREATE TABLE payment_methods (id INTEGER PRIMARY KEY, slug TEXT);
        CREATE TABLE item_payment_methods (item_id INTEGER, payment_method_id INTEGER);
        CREATE TABLE item_images (item_id INTEGER, url TEXT, is_primary INTEGER);

        INSERT INTO categories VALUES (1, 'Electronics'), (2, 'Furniture');
        INSERT INTO payment_methods VALUES (1, 'cash'), (2, 'paypal');
        INSERT INTO items VALUES
            (1, 10, 1, 'Laptop', '13 inch', 450.0, 'active', 'good', 'Berlin',
             '["pickup","parcel"]', 1, 'a@example.com', NULL, NULL, 4, 0,
             '2024-01-01', '2024-01-02', '2024-02-01', 'secret-1'),
            (2, 11, 2, 'Desk', NULL, 60.0, 'active', 'fair', 'Hamburg',
             NULL, 0, NULL, NULL, NULL, 0, 1,
             '2024-01-03', '2024-01-03', NULL, 'secret-2');
        INSERT INTO item_payment_methods VALUES (1, 1), (1, 2);
        INSERT INTO item_images VALUES (1, '/img/1a.jpg', 1), (1, '/img/1b.jpg', 0);
        """
    )
    conn.commit()
    conn.close()


def test_sqlite_provider_denormalizes_items(tmp_path):
    db = tmp_path / "marketplace.db"
    _make_marketplace_db(db)

    listings = SqliteCatalogProvider(db).load()
    assert [l.id for l in listings] == [1, 2]

    laptop, desk = listings
    assert laptop.category_name == "Electronics"
    assert set(laptop.payment_methods) == {"cash", "paypal"}
    assert laptop.primary_image == "/img/1a.jpg"
    assert set(laptop.image_urls) == {"/img/1a.jpg", "/img/1b.jpg"}
    assert laptop.shipping == ["pickup", "parcel"]
    assert laptop.negotiable is True
    assert "management_key" not in laptop.model_dump()

    assert desk.category_name == "Furniture"
    assert desk.description is None
    assert desk.payment_methods == []
    assert desk.image_urls == []
    assert desk.primary_image is None
    assert desk.sold is True


def test_sqlite_provider_errors(tmp_path):
    with pytest.raises(CatalogUnavailableError):
        SqliteCatalogProvider(tmp_path / "missing.db").load()

    db = tmp_path / "empty.db"
    sqlite3.connect(db).close()
    with pytest.raises(CatalogUnavailableError):
        SqliteCatalogProvider(db).load()


def _http_provider(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpCatalogProvider("https://market.example/api/v1/items", client=client)


def test_http_provider_accepts_array_and_items_object():
    rows = [{"id": 1, "title": "Laptop"}, {"id": 2, "title": "Desk"}, "junk"]

    provider = _http_provider(lambda request: httpx.Response(200, json=rows))
    assert [l.id for l in provider.load()] == [1, 2]

    provider = _http_provider(lambda request: httpx.Response(200, json={"items": rows[:1]}))
    assert [l.title for l in provider.load()] == ["Laptop"]


def test_http_provider_sends_user_agent():
    seen = {}

    def handler(request):
        seen["ua"] = request.headers.get("user-agent")
        return httpx.Response(200, json=[])

    assert _http_provider(handler).load() == []
    assert seen["ua"].startswith("market-search")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, json={"count": 3}),
        httpx.Response(200, content=b"<html>not json</html>"),
    ],
)
def test_http_provider_bad_responses(response):
    provider = _http_provider(lambda request: response)
    with pytest.raises(CatalogUnavailableError):
        provider.load()


def test_http_provider_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CatalogUnavailableError) as exc:
        _http_provider(handler).load()
    assert "market.example" in str(exc.value)


def test_provider_for_picks_by_source(tmp_path):
    assert isinstance(provider_for("https://market.example/items"), HttpCatalogProvider)
    assert isinstance(provider_for(tmp_path / "marketplace.sqlite3"), SqliteCatalogProvider)
    assert isinstance(provider_for(str(tmp_path / "catalog.parquet")), SnapshotCatalogProvider)
    assert isinstance(provider_for(None), SnapshotCatalogProvider)
    assert isinstance(provider_for("  "), SnapshotCatalogProvider)
