import math

import pytest
from pydantic import ValidationError

from market_search.config import Listing, SearchParams, SearchStrategy
from market_search.ranking import RankingPipeline, filter_by_category, paginate, search
from market_search.normalize import tokenize_query
from market_search.scoring import ListingScorer


CATALOG = [
    Listing(id=1, title="Laptop", description="Lightly used 13 inch laptop", category_id=1,
            category_name="Electronics", location="Berlin", condition="good"),
    Listing(id=2, title="MacBook Pro", description="2019 model with charger", category_id=1,
            category_name="Electronics", location="Munich", condition="like_new"),
    Listing(id=3, title="Office chair", description="Ergonomic chair", category_id=2,
            category_name="Furniture", location="Berlin", condition="fair"),
    Listing(id=4, title="Desk", description="Standing desk", category_id=2,
            category_name="Furniture", location="Hamburg", condition="good"),
    Listing(id=5, title="Road bike", category_id=3, category_name="Sports", condition="poor"),
]


def numbered_catalog(n=25):
    return [Listing(id=i, title=f"Listing number {i}", category_id=(i % 3) + 1) for i in range(1, n + 1)]


def ids(listings):
    return [l.id for l in listings]


def test_empty_query_returns_first_page_unscored():
    catalog = numbered_catalog()
    page = search(catalog, "", page=1, limit=10)
    assert ids(page.listings) == list(range(1, 11))
    assert page.total == 25

    last = search(catalog, "   ", page=3, limit=10)
    assert ids(last.listings) == [21, 22, 23, 24, 25]
    assert last.total == 25


def test_search_page_unpacks_as_pair():
    listings, total = search(CATALOG, "")
    assert total == 5
    assert len(listings) == 5


def test_misspelled_query_finds_listing():
    page = search(CATALOG, "labtop", threshold=0.6)
    assert ids(page.listings) == [1]
    assert page.total == 1


def test_category_filter_preserves_order():
    catalog = numbered_catalog()
    page = search(catalog, "", category_id=2, limit=100)
    assert ids(page.listings) == [1, 4, 7, 10, 13, 16, 19, 22, 25]
    assert page.total == 9
    assert filter_by_category(catalog, None) == catalog


def test_category_filter_with_no_matches_is_empty_not_error():
    page = search(CATALOG, "laptop", category_id=99)
    assert page.listings == []
    assert page.total == 0


def test_empty_catalog():
    page = search([], "laptop")
    assert page.listings == []
    assert page.total == 0


def test_results_sorted_by_score_then_id():
    catalog = [Listing(id=9, title="Lamp"), Listing(id=3, title="Lamp"), Listing(id=5, title="Lamp")]
    page = search(catalog, "lamp")
    assert ids(page.listings) == [3, 5, 9]


def test_empty_query_differs_from_zero_threshold():
    catalog = [Listing(id=1, title="Chair"), Listing(id=2, title="Laptop")]
    assert ids(search(catalog, "").listings) == [1, 2]
    assert ids(search(catalog, "laptop", threshold=0.0).listings) == [2, 1]


def test_every_result_meets_threshold():
    scorer = ListingScorer()
    for query in ["laptop", "chair desk", "berlin", "good bike", "electronics"]:
        for threshold in (0.0, 0.3, 0.6, 0.9):
            page = search(CATALOG, query, threshold=threshold, limit=50)
            tokens = tokenize_query(query)
            for listing in page.listings:
                assert scorer.score(listing, tokens) >= threshold


def test_scores_are_non_increasing_down_the_page():
    scorer = ListingScorer()
    page = search(CATALOG, "chair desk berlin", threshold=0.0, limit=50)
    tokens = tokenize_query("chair desk berlin")
    scores = [scorer.score(l, tokens) for l in page.listings]
    assert scores == sorted(scores, reverse=True)


def test_pages_concatenate_to_full_ranking():
    catalog = numbered_catalog()
    full = search(catalog, "listing 7", threshold=0.0, limit=1000)
    limit = 4
    pages = math.ceil(full.total / limit)
    collected = []
    for p in range(1, pages + 1):
        collected.extend(ids(search(catalog, "listing 7", threshold=0.0, page=p, limit=limit).listings))
    assert collected == ids(full.listings)
    assert len(set(collected)) == len(collected) == full.total
    # past the end
    assert search(catalog, "listing 7", threshold=0.0, page=pages + 1, limit=limit).listings == []


def test_search_is_idempotent_and_does_not_mutate_catalog():
    catalog = list(CATALOG)
    snapshot = [l.model_copy() for l in catalog]
    first = search(catalog, "desk chair", threshold=0.2)
    second = search(catalog, "desk chair", threshold=0.2)
    assert ids(first.listings) == ids(second.listings)
    assert first.total == second.total
    assert catalog == snapshot
    with pytest.raises(ValidationError):
        catalog[0].title = "changed"


def test_invalid_paging_values_are_defaulted():
    catalog = numbered_catalog()
    page = search(catalog, "", page="abc", limit=-5)
    assert ids(page.listings) == list(range(1, 11))

    page = search(catalog, "", page=0, limit="0")
    assert ids(page.listings) == list(range(1, 11))

    page = search(catalog, "", page="2", limit="5")
    assert ids(page.listings) == [6, 7, 8, 9, 10]


def test_threshold_is_clamped_and_defaulted():
    # above 1 behaves like 1: only perfect scores survive
    assert ids(search(CATALOG, "laptop", threshold=5).listings) == [1]
    # unparseable falls back to the default 0.6
    assert ids(search(CATALOG, "labtop", threshold="high").listings) == [1]
    # negative behaves like 0: everything matches
    assert search(CATALOG, "laptop", threshold=-1).total == len(CATALOG)


def test_listing_with_only_an_id_is_tolerated():
    catalog = CATALOG + [Listing(id=6)]
    page = search(catalog, "laptop", threshold=0.0, limit=50)
    assert 6 in ids(page.listings)


def test_exact_substring_strategy_keeps_catalog_order():
    pipeline = RankingPipeline(strategy=SearchStrategy.EXACT_SUBSTRING)
    assert ids(pipeline.search(CATALOG, "book").listings) == [2]
    assert ids(pipeline.search(CATALOG, "CHAIR").listings) == [3]
    # matches on category name, in catalog order
    assert ids(pipeline.search(CATALOG, "furniture").listings) == [3, 4]
    # no fuzzy matching and threshold is irrelevant
    assert pipeline.search(CATALOG, "labtop", threshold=0.0).total == 0
    # empty query short-circuits the same way
    assert pipeline.search(CATALOG, "").total == 5


def test_run_uses_strategy_from_params():
    pipeline = RankingPipeline()
    fuzzy = pipeline.run(CATALOG, SearchParams(q="labtop"))
    exact = pipeline.run(CATALOG, SearchParams(q="labtop", strategy=SearchStrategy.EXACT_SUBSTRING))
    assert ids(fuzzy.listings) == [1]
    assert exact.listings == []


def test_paginate_slices():
    assert paginate([1, 2, 3, 4, 5], page=2, limit=2) == [3, 4]
    assert paginate([1, 2, 3], page=5, limit=2) == []
