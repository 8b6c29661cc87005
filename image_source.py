"""
image_source.py — turns an image URL into bytes and a base64 payload.

Two kinds of input are accepted:
  data:<mime>;base64,<payload>   decoded locally, no network call
  http(s)://...                  fetched with aiohttp; on a network-level failure
                                 the fetch is retried exactly once through
                                 config.CORS_PROXY_URL (no backoff, no further retries)

The decoded size is capped at config.MAX_IMAGE_BYTES so an oversized payload
is never sent to a model. Only data URIs are held to
config.SUPPORTED_IMAGE_TYPES; an HTTP response whose Content-Type is not a
supported image type is identified by its magic bytes instead.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from urllib.parse import quote

import aiohttp

import config
from errors import FetchFailed, ImageTooLarge

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*),", re.IGNORECASE)
DEFAULT_MIME = "image/jpeg"


@dataclass(frozen=True)
class EncodedImage:
    """An acquired image, ready to attach to a multimodal prompt."""
    data: bytes
    mime_type: str
    base64: str

    @property
    def size(self) -> int:
        return len(self.data)


# ── Binary encoder ─────────────────────────────────────────────────────────────

def encode_base64(data: bytes, chunk_size: int | None = None) -> str:
    """
    Base64-encode `data` chunk by chunk and join the pieces.

    The chunk size is rounded down to a multiple of 3 so that every chunk
    except the last encodes without padding; the joined string is therefore
    identical to a one-shot encoding and decodes back to exactly `data`.
    """
    size = chunk_size or config.ENCODE_CHUNK_SIZE
    if size < 3:
        raise ValueError(f"chunk_size must be at least 3, got {size}")
    size -= size % 3

    view = memoryview(data)
    parts = [
        base64.b64encode(view[i : i + size]).decode("ascii")
        for i in range(0, len(view), size)
    ]
    return "".join(parts)


# ── Acquisition ────────────────────────────────────────────────────────────────

def _check_size(size: int) -> None:
    if size > config.MAX_IMAGE_BYTES:
        raise ImageTooLarge(size, config.MAX_IMAGE_BYTES)
    if size < config.MIN_IMAGE_BYTES:
        raise FetchFailed(f"Image data too small ({size} bytes) — not a usable image")


def _check_mime(mime_type: str) -> str:
    mime = mime_type.split(";")[0].strip().lower() or DEFAULT_MIME
    if mime not in config.SUPPORTED_IMAGE_TYPES:
        raise FetchFailed(
            f"Unsupported image type: {mime}. Supported: {', '.join(config.SUPPORTED_IMAGE_TYPES)}"
        )
    return mime


_MAGIC_NUMBERS: tuple[tuple[bytes, str], ...] = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def _sniff_mime(data: bytes) -> str | None:
    for magic, mime in _MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def _response_mime(content_type: str, data: bytes) -> str:
    """
    MIME type for an HTTP response body.

    Servers and proxies often label images as application/octet-stream, so a
    header outside the supported image types is not an error: the body's magic
    bytes decide, then DEFAULT_MIME.
    """
    mime = content_type.split(";")[0].strip().lower()
    if mime in config.SUPPORTED_IMAGE_TYPES:
        return mime
    return _sniff_mime(data) or DEFAULT_MIME


def decode_data_uri(uri: str) -> tuple[bytes, str]:
    """Split a base64 data URI into (bytes, mime_type). Raises FetchFailed on bad input."""
    match = _DATA_URI_RE.match(uri)
    if not match:
        raise FetchFailed("Malformed data URI")
    if "base64" not in match.group("params").lower():
        raise FetchFailed("Only base64 data URIs are supported")

    payload = uri[match.end():].strip()
    if not payload:
        raise FetchFailed("Data URI carries no payload")

    # Reject before decoding: 4 base64 chars → 3 bytes.
    estimated = len(payload) * 3 // 4
    if estimated > config.MAX_IMAGE_BYTES + 3:
        raise ImageTooLarge(estimated, config.MAX_IMAGE_BYTES)

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise FetchFailed(f"Invalid base64 data: {exc}") from exc

    mime = _check_mime(match.group("mime") or DEFAULT_MIME)
    _check_size(len(data))
    return data, mime


async def _http_get(url: str) -> tuple[bytes, str]:
    """
    Single GET. Returns (body, content_type).

    Raises FetchFailed on a non-2xx status and ImageTooLarge as soon as the
    declared or streamed length crosses the limit. Network errors
    (aiohttp.ClientError, asyncio.TimeoutError) propagate to the caller.
    """
    limit = config.MAX_IMAGE_BYTES
    async with aiohttp.ClientSession() as session:
        async with session.get(
            url,
            headers={"Accept": "image/*"},
            timeout=aiohttp.ClientTimeout(total=config.IMAGE_FETCH_TIMEOUT_SECS),
        ) as resp:
            if not 200 <= resp.status < 300:
                raise FetchFailed(
                    f"Image fetch failed: HTTP {resp.status} {resp.reason or ''}".strip(),
                    status=resp.status,
                )
            if resp.content_length is not None and resp.content_length > limit:
                raise ImageTooLarge(resp.content_length, limit)

            content_type = resp.headers.get("Content-Type", "")
            body = bytearray()
            async for chunk in resp.content.iter_chunked(64 * 1024):
                body.extend(chunk)
                if len(body) > limit:
                    raise ImageTooLarge(len(body), limit)
    return bytes(body), content_type


async def fetch_image(image_url: str) -> tuple[bytes, str]:
    """
    Acquire raw image bytes and their MIME type from a URL or data URI.

    Raises:
        FetchFailed:   bad data URI, non-2xx response, or both direct and proxy fetch failed
        ImageTooLarge: decoded payload exceeds config.MAX_IMAGE_BYTES
    """
    if not image_url:
        raise FetchFailed("No image URL given")

    if image_url.startswith("data:"):
        data, mime = decode_data_uri(image_url)
        logger.info("Decoded data URI: %d bytes (%s)", len(data), mime)
        return data, mime

    try:
        data, content_type = await _http_get(image_url)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        # Cross-origin or connection failure: one attempt through the proxy.
        proxy_url = f"{config.CORS_PROXY_URL}{quote(image_url, safe='')}"
        logger.warning("Direct image fetch failed (%s) — retrying via proxy", exc)
        try:
            data, content_type = await _http_get(proxy_url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as proxy_exc:
            raise FetchFailed(f"Image fetch failed directly and via proxy: {proxy_exc}") from proxy_exc

    mime = _response_mime(content_type, data)
    _check_size(len(data))
    logger.info("Fetched image: %d bytes (%s)", len(data), mime)
    return data, mime


async def load_image(image_url: str) -> EncodedImage:
    """Fetch and base64-encode an image for a multimodal model call."""
    data, mime = await fetch_image(image_url)
    return EncodedImage(data=data, mime_type=mime, base64=encode_base64(data))
