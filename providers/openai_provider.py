"""
OpenAI provider — chat completions with an inline base64 data URL for images.
"""
from __future__ import annotations

import logging
from typing import Optional

from openai import AsyncOpenAI

import config
from image_source import EncodedImage
from providers.base import ModelProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(ModelProvider):

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.name = "openai"
        self.model_id = model
        self._client = AsyncOpenAI(api_key=api_key)

    async def _generate(self, prompt: str, image: Optional[EncodedImage]) -> str:
        content: list[dict] = []
        if image is not None:
            content.append({
                "type": "image_url",
                "image_url": {
                    "url": f"data:{image.mime_type};base64,{image.base64}",
                    "detail": "high",
                },
            })
        content.append({"type": "text", "text": prompt})

        response = await self._client.chat.completions.create(
            model=self.model_id,
            max_tokens=config.MODEL_MAX_OUTPUT_TOKENS,
            temperature=0.4,
            messages=[{"role": "user", "content": content}],
        )
        return response.choices[0].message.content or ""
