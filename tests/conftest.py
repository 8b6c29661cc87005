"""
Shared pytest fixtures.

Every test gets fresh provider/catalog caches and a zero catalog delay, so
tests never wait on the real rate limit unless they ask for it.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import config  # noqa: E402
from catalog_backends.base import CatalogBackend  # noqa: E402
from image_source import EncodedImage  # noqa: E402
from models import Product  # noqa: E402
from providers.base import ModelProvider  # noqa: E402


class FakeProvider(ModelProvider):
    """
    Scripted model provider. Each generate() call pops the next reply;
    an Exception instance in the script is raised instead of returned.
    Calls are recorded as (prompt, image) pairs.
    """

    def __init__(self, *replies):
        self.name = "fake"
        self.model_id = "scripted"
        self.replies = list(replies)
        self.calls: list[tuple[str, Optional[EncodedImage]]] = []

    async def _generate(self, prompt, image):
        self.calls.append((prompt, image))
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class MemoryCatalogBackend(CatalogBackend):
    """In-memory backend: keywords → products, recording every query."""

    def __init__(self, table: Optional[dict[str, list[Product]]] = None, error: Optional[Exception] = None):
        self.table = table or {}
        self.error = error
        self.queries: list[str] = []

    @property
    def name(self) -> str:
        return "Memory catalog"

    async def search(self, keywords, max_results):
        self.queries.append(keywords)
        if self.error is not None:
            raise self.error
        return list(self.table.get(keywords, []))[:max_results]


def make_product(pid: str, name: str = "", category: str = "テスト") -> Product:
    return Product(
        id=pid,
        name=name or f"商品 {pid}",
        price="¥1,000",
        affiliate_url=f"https://amazon.co.jp/dp/{pid}",
        category=category,
    )


def make_image(size: int = 2048, mime: str = "image/jpeg") -> EncodedImage:
    data = b"\xff\xd8" + b"\x00" * (size - 2)
    return EncodedImage(data=data, mime_type=mime, base64="AAAA")


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    import catalog
    import providers.manager as manager_mod

    monkeypatch.setattr(manager_mod, "_provider", None)
    monkeypatch.setattr(catalog, "_catalog", None)
    monkeypatch.setattr(config, "CATALOG_REQUEST_DELAY_SECS", 0.0)
    monkeypatch.setattr(config, "AMAZON_ASSOCIATE_TAG", None)
    yield


def mock_client_session(status: int = 200, body: bytes = b"", content_type: str = "image/jpeg",
                        content_length: Optional[int] = None) -> MagicMock:
    """An aiohttp.ClientSession mock whose get() yields a single response."""
    resp = MagicMock()
    resp.status = status
    resp.reason = "OK" if status == 200 else "Internal Server Error"
    resp.headers = {"Content-Type": content_type}
    resp.content_length = content_length

    async def iter_chunked(n):
        for i in range(0, len(body), n):
            yield body[i : i + n]

    resp.content.iter_chunked = iter_chunked

    get_cm = MagicMock()
    get_cm.__aenter__ = AsyncMock(return_value=resp)
    get_cm.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.get = MagicMock(return_value=get_cm)
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    return session
