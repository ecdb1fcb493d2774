# market_search/ranking.py
from __future__ import annotations

from typing import Any, List, Optional, Sequence

from loguru import logger

from .config import Listing, SearchParams, SearchStrategy
from .normalize import (
    coerce_category,
    coerce_limit,
    coerce_page,
    coerce_threshold,
    is_blank_query,
    text_of,
    tokenize_query,
)
from .pipeline_types import ScoredListing, SearchPage
from .scoring import ListingScorer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def filter_by_category(catalog: Sequence[Listing], category_id: Optional[int]) -> List[Listing]:
    """Keep listings in ``category_id``; catalog order is preserved."""
    if category_id is None:
        return list(catalog)
    return [listing for listing in catalog if listing.category_id == category_id]


def paginate(items: Sequence[Any], page: int, limit: int) -> List[Any]:
    start = (page - 1) * limit
    return list(items[start:start + limit])


def substring_match(listing: Listing, query: str) -> bool:
    """Whole-query containment in title, description or category name."""
    needle = query.lower()
    return (
        needle in text_of(listing.title).lower()
        or needle in text_of(listing.description).lower()
        or needle in text_of(listing.category_name).lower()
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class RankingPipeline:
    """
    Category filter -> match -> order -> paginate over an in-memory catalog.

    The catalog is only read; the returned page holds the same Listing
    objects the caller supplied, without their scores.
    """

    def __init__(
        self,
        scorer: Optional[ListingScorer] = None,
        strategy: SearchStrategy = SearchStrategy.FUZZY_WEIGHTED,
    ) -> None:
        self.scorer = scorer or ListingScorer()
        self.strategy = SearchStrategy(strategy)

    def rank(self, catalog: Sequence[Listing], tokens: Sequence[str], threshold: float) -> List[ScoredListing]:
        """
        Score every listing, drop those below ``threshold`` and order the rest.

        Order: score desc, listing id asc, catalog position asc.
        """
        scored: List[ScoredListing] = []
        for position, listing in enumerate(catalog):
            score = self.scorer.score(listing, tokens)
            if score >= threshold:
                scored.append(ScoredListing(listing=listing, score=score, position=position))

        scored.sort(key=lambda s: (-s.score, s.listing.id, s.position))
        return scored

    def search(
        self,
        catalog: Sequence[Listing],
        query: Any = "",
        category_id: Any = None,
        page: Any = 1,
        limit: Any = None,
        threshold: Any = None,
    ) -> SearchPage:
        page = coerce_page(page)
        limit = coerce_limit(limit)
        threshold = coerce_threshold(threshold)
        category_id = coerce_category(category_id)
        query = text_of(query)

        items = filter_by_category(catalog, category_id)
        if category_id is not None:
            logger.debug("Category {} filter kept {} listings", category_id, len(items))

        if is_blank_query(query):
            return SearchPage(listings=paginate(items, page, limit), total=len(items))

        if self.strategy is SearchStrategy.EXACT_SUBSTRING:
            matches = [listing for listing in items if substring_match(listing, query)]
            return SearchPage(listings=paginate(matches, page, limit), total=len(matches))

        tokens = tokenize_query(query)
        ranked = self.rank(items, tokens, threshold)
        logger.debug(
            "Query {!r}: {} tokens, {} of {} listings >= {}",
            query, len(tokens), len(ranked), len(items), threshold,
        )
        return SearchPage(
            listings=[s.listing for s in paginate(ranked, page, limit)],
            total=len(ranked),
        )

    def run(self, catalog: Sequence[Listing], params: SearchParams) -> SearchPage:
        """Search with already-coerced request parameters."""
        pipeline = self
        if params.strategy is not self.strategy:
            pipeline = RankingPipeline(scorer=self.scorer, strategy=params.strategy)
        return pipeline.search(
            catalog,
            query=params.q,
            category_id=params.category_id,
            page=params.page,
            limit=params.limit,
            threshold=params.threshold,
        )


def search(
    catalog: Sequence[Listing],
    query: Any = "",
    category_id: Any = None,
    page: Any = 1,
    limit: Any = None,
    threshold: Any = None,
    strategy: SearchStrategy = SearchStrategy.FUZZY_WEIGHTED,
) -> SearchPage:
    """Convenience wrapper using the default scoring config."""
    return RankingPipeline(strategy=strategy).search(
        catalog,
        query=query,
        category_id=category_id,
        page=page,
        limit=limit,
        threshold=threshold,
    )
