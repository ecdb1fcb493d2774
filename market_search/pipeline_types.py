"""Typed containers shared across pipeline modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Union

from .config import Listing


@dataclass(frozen=True)
class ScoredListing:
    """A listing paired with its search score; never leaves the pipeline."""

    listing: Listing
    score: float
    position: int = 0  # index in the (category-filtered) catalog


@dataclass
class SearchPage:
    """One page of results plus the total match count before pagination."""

    listings: List[Listing] = field(default_factory=list)
    total: int = 0

    def __iter__(self) -> Iterator[Union[List[Listing], int]]:
        # allows ``listings, total = pipeline.search(...)``
        yield self.listings
        yield self.total
