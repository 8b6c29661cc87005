"""
Provider Manager — picks the model provider the pipeline talks to.

Selection (config.MODEL_PROVIDER):
  auto       — first provider whose key is set: gemini → openai → anthropic
  gemini     — Google Gemini   (GOOGLE_API_KEY required)
  openai     — OpenAI          (OPENAI_API_KEY required)
  anthropic  — Anthropic       (ANTHROPIC_API_KEY required)

In auto mode with no key at all, no provider is returned and every stage
serves its non-model fallback.
"""
from __future__ import annotations

import logging
from typing import Optional

import config
from providers.base import ModelProvider

logger = logging.getLogger(__name__)

# Module-level cache; reset to None to pick up changed keys
_provider: Optional[ModelProvider] = None


def _make_gemini() -> ModelProvider:
    from providers.gemini_provider import GeminiProvider
    return GeminiProvider(config.GOOGLE_API_KEY, config.GEMINI_MODEL)


def _make_openai() -> ModelProvider:
    from providers.openai_provider import OpenAIProvider
    return OpenAIProvider(config.OPENAI_API_KEY, config.OPENAI_MODEL)


def _make_anthropic() -> ModelProvider:
    from providers.anthropic_provider import AnthropicProvider
    return AnthropicProvider(config.ANTHROPIC_API_KEY, config.ANTHROPIC_MODEL)


# mode → (config key attribute, factory); order is the auto-mode priority
_FACTORIES = {
    "gemini":    ("GOOGLE_API_KEY",    _make_gemini),
    "openai":    ("OPENAI_API_KEY",    _make_openai),
    "anthropic": ("ANTHROPIC_API_KEY", _make_anthropic),
}


def _build_provider() -> Optional[ModelProvider]:
    mode = config.MODEL_PROVIDER.strip().lower()

    if mode != "auto":
        if mode not in _FACTORIES:
            raise ValueError(
                f"Unknown MODEL_PROVIDER '{mode}'. Use one of: auto, {', '.join(_FACTORIES)}"
            )
        key_attr, factory = _FACTORIES[mode]
        if not getattr(config, key_attr):
            raise RuntimeError(f"MODEL_PROVIDER={mode} but {key_attr} is not set.")
        return factory()

    for name, (key_attr, factory) in _FACTORIES.items():
        if getattr(config, key_attr):
            logger.info("Auto-selected %s provider", name)
            return factory()

    logger.warning(
        "No model provider configured — set GOOGLE_API_KEY, OPENAI_API_KEY or "
        "ANTHROPIC_API_KEY. Analyses will use fallback values only."
    )
    return None


def get_provider() -> Optional[ModelProvider]:
    """Return the active provider, building it on first use."""
    global _provider
    if _provider is None:
        _provider = _build_provider()
        if _provider is not None:
            logger.info("Loaded provider: %s", _provider.full_name)
    return _provider


class ProviderProbe:
    """
    One-time capability check: can the provider answer at all?

    The first `available()` call sends a tiny prompt; the answer is remembered
    on this instance, so an orchestrator pays for the check once.
    """

    PROBE_PROMPT = "Reply with the single word: ok"

    def __init__(self, provider: Optional[ModelProvider]) -> None:
        self._provider = provider
        self._result: Optional[bool] = None

    async def available(self) -> bool:
        if self._result is None:
            self._result = await self._check()
        return self._result

    async def _check(self) -> bool:
        if self._provider is None:
            return False
        try:
            await self._provider.generate(self.PROBE_PROMPT)
        except Exception as exc:
            logger.error("[%s] capability check failed: %s", self._provider.full_name, exc)
            return False
        logger.info("[%s] capability check passed", self._provider.full_name)
        return True
