"""
Anthropic provider — messages API with a base64 image block.

Claude only accepts jpeg/png/gif/webp media types; "image/jpg" is normalised.
"""
from __future__ import annotations

import logging
from typing import Optional

import anthropic

import config
from image_source import EncodedImage
from providers.base import ModelProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(ModelProvider):

    def __init__(self, api_key: str, model: str = "claude-3-haiku-20240307"):
        self.name = "anthropic"
        self.model_id = model
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def _generate(self, prompt: str, image: Optional[EncodedImage]) -> str:
        content: list[dict] = []
        if image is not None:
            media_type = "image/jpeg" if image.mime_type == "image/jpg" else image.mime_type
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": media_type,
                    "data": image.base64,
                },
            })
        content.append({"type": "text", "text": prompt})

        message = await self._client.messages.create(
            model=self.model_id,
            max_tokens=config.MODEL_MAX_OUTPUT_TOKENS,
            messages=[{"role": "user", "content": content}],
        )
        return "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )
