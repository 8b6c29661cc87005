"""
Google Gemini provider — uses the google-genai SDK.

Default provider: gemini-2.0-flash handles image + Japanese text prompts well
and is the cheapest multimodal option per image.
"""
from __future__ import annotations

import logging
from typing import Optional

from google import genai
from google.genai import types as genai_types

import config
from image_source import EncodedImage
from providers.base import ModelProvider

logger = logging.getLogger(__name__)


class GeminiProvider(ModelProvider):

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash"):
        self.name     = "google"
        self.model_id = model
        self._client  = genai.Client(api_key=api_key)

    async def _generate(self, prompt: str, image: Optional[EncodedImage]) -> str:
        contents: list = [prompt]
        if image is not None:
            contents.append(genai_types.Part.from_bytes(data=image.data, mime_type=image.mime_type))

        response = await self._client.aio.models.generate_content(
            model=self.model_id,
            contents=contents,
            config=genai_types.GenerateContentConfig(
                temperature=0.4,
                max_output_tokens=config.MODEL_MAX_OUTPUT_TOKENS,
            ),
        )
        return response.text or ""
