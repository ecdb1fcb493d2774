"""Exceptions raised by the search service."""

from __future__ import annotations


class MarketSearchError(Exception):
    """Base class for errors raised by this package."""


class CatalogUnavailableError(MarketSearchError):
    """The catalog provider could not supply listings for a request."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Catalog unavailable from {source}: {reason}")
