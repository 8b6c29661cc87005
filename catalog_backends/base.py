"""
Abstract base for all product catalog backends.
Every backend returns the same Product list; the recommendation engine
doesn't care which backend is active.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

from models import Product


def with_associate_tag(url: str, tag: Optional[str]) -> str:
    """
    Embed an Associates tag as ?tag=... so every click is tracked under that
    account. URLs are returned unchanged when no tag is configured.
    """
    if not tag:
        return url
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query))
    query["tag"] = tag
    return urlunsplit(parts._replace(query=urlencode(query)))


class CatalogBackend(ABC):
    """All backends must implement this interface."""

    @abstractmethod
    async def search(self, keywords: str, max_results: int) -> list[Product]:
        """
        Search the catalog for products matching `keywords`.
        Returns up to max_results Product objects, best-first.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name for logs."""
        ...
