"""
catalog.py — public interface for product search.

The rest of the pipeline imports only from here:
  from catalog import CatalogClient, get_catalog

A CatalogClient wraps one CatalogBackend with a RateLimiter, so every search
respects the external catalog's request spacing whatever backend is active.
Backend failures surface as CatalogSearchFailed.
"""
from __future__ import annotations

import logging
from typing import Optional

import config
from catalog_backends.base import CatalogBackend
from errors import CatalogSearchFailed
from models import Product
from rate_limiter import FixedDelayLimiter, RateLimiter

logger = logging.getLogger(__name__)

__all__ = ["CatalogClient", "get_catalog"]


class CatalogClient:

    def __init__(
        self,
        backend: CatalogBackend,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.backend = backend
        self.limiter = limiter or FixedDelayLimiter(config.CATALOG_REQUEST_DELAY_SECS)
        self.request_count = 0

    async def search(self, keywords: str, max_results: int = 5) -> list[Product]:
        """
        Search the catalog for `keywords` (space-separated).

        Waits for the rate limiter first, so N sequential calls take at least
        (N-1) × the configured delay.
        """
        await self.limiter.acquire()
        self.request_count += 1
        try:
            items = await self.backend.search(keywords, max_results)
        except Exception as exc:
            raise CatalogSearchFailed(f"[{self.backend.name}] search '{keywords}' failed: {exc}") from exc
        logger.info("[%s] '%s' → %d products", self.backend.name, keywords, len(items))
        return items[:max_results]


_catalog: Optional[CatalogClient] = None


def get_catalog() -> CatalogClient:
    """
    Return the process-wide catalog client, creating it on first call.
    Shared so the request spacing holds across concurrent analyses, including
    analyses run under different event loops.
    """
    global _catalog
    if _catalog is None:
        from catalog_backends.static_backend import StaticCatalogBackend
        _catalog = CatalogClient(StaticCatalogBackend())
        logger.info("Catalog backend: %s", _catalog.backend.name)
    return _catalog
