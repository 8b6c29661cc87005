"""
Shared base class and JSON helper for all model providers.

A provider answers one prompt, optionally with one attached image, and
returns the model's raw text. Prompts and response schemas belong to the
pipeline stages (scoring.py, context_extractor.py, recommendations.py);
providers know nothing about them.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import config
from errors import ModelCallFailed, ResponseParseFailed
from image_source import EncodedImage

logger = logging.getLogger(__name__)


def parse_json_response(raw: str, source: str) -> dict:
    """
    Extract the JSON object embedded in a model response.

    Models routinely wrap the object in prose or ```json fences, so the text
    between the first "{" and the last "}" is parsed.
    Raises ResponseParseFailed when there is no object or it does not parse.
    """
    text = raw or ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        logger.error("[%s] No JSON object in response: %s", source, text[:300])
        raise ResponseParseFailed(f"[{source}] JSON object not found in response")
    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        logger.error("[%s] Non-JSON response: %s", source, text[:300])
        raise ResponseParseFailed(f"[{source}] JSON parse error: {exc}") from exc
    if not isinstance(data, dict):
        raise ResponseParseFailed(f"[{source}] expected a JSON object, got {type(data).__name__}")
    return data


def as_str(value, default: str = "") -> str:
    """A non-empty stripped string from a response field, else `default`."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def as_str_list(value) -> list[str]:
    """A list of non-empty strings from a response field; a bare string becomes one item."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [s for s in (as_str(v) for v in value) if s]


class ModelProvider(ABC):
    """Base class all model providers must implement."""

    name: str           # e.g. "google"
    model_id: str       # e.g. "gemini-2.0-flash"

    @abstractmethod
    async def _generate(self, prompt: str, image: Optional[EncodedImage]) -> str:
        """Provider-specific call. Returns the response text."""
        ...

    @property
    def full_name(self) -> str:
        return f"{self.name}/{self.model_id}"

    async def generate(self, prompt: str, image: Optional[EncodedImage] = None) -> str:
        """
        Send `prompt` (plus `image` when given) and return the raw text.

        Every failure (SDK error, timeout, empty answer) is raised as
        ModelCallFailed so stages have a single condition to fall back on.
        """
        t0 = time.monotonic()
        try:
            text = await asyncio.wait_for(
                self._generate(prompt, image), timeout=config.MODEL_TIMEOUT_SECS,
            )
        except asyncio.TimeoutError as exc:
            raise ModelCallFailed(
                f"[{self.full_name}] timed out after {config.MODEL_TIMEOUT_SECS:.0f}s"
            ) from exc
        except ModelCallFailed:
            raise
        except Exception as exc:
            raise ModelCallFailed(f"[{self.full_name}] {exc}") from exc

        latency_ms = int((time.monotonic() - t0) * 1000)
        if not text or not text.strip():
            raise ModelCallFailed(f"[{self.full_name}] empty response")
        logger.info(
            "[%s] OK — %s latency=%dms chars=%d",
            self.full_name, "image+text" if image else "text", latency_ms, len(text),
        )
        return text
