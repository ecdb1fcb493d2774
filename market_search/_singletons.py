# market_search/_singletons.py
from functools import lru_cache
from typing import Tuple

from loguru import logger

from .catalog import provider_for
from .config import CATALOG_SOURCE, Listing


@lru_cache(maxsize=1)
def get_catalog() -> Tuple[Listing, ...]:
    # failures are not cached; the next request retries the provider
    provider = provider_for(CATALOG_SOURCE)
    listings = tuple(provider.load())
    logger.info("Cached {} listings from {}", len(listings), provider.source)
    return listings


def reload_catalog() -> Tuple[Listing, ...]:
    get_catalog.cache_clear()
    return get_catalog()
