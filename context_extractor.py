"""
context_extractor.py — turns a photo and its caption into a PostContext.

Tiers, in order:
  multimodal  image + title + comment
  text_only   title + comment (used when the image or the multimodal call fails)
  neutral     PostContext.neutral(), cannot fail
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from fallback import FallbackTier, StageOutcome, run_tiers
from image_source import EncodedImage, load_image
from models import UNKNOWN, PostContext
from providers.base import ModelProvider, as_str, as_str_list, parse_json_response

logger = logging.getLogger(__name__)

_SCHEMA = """{
  "objects": ["写っている（または推測される）オブジェクト（犬、花、料理など）"],
  "scene": "シーンの種類（屋内、屋外、公園、海、レストラン、イベントなど）",
  "emotion": "感情（楽しい、感動、困っている、満足など）",
  "needs": ["潜在的なニーズ（例：ペット用品が必要、アウトドアグッズが欲しい）"],
  "season": "季節（春、夏、秋、冬、不明）",
  "timeOfDay": "時間帯（朝、昼、夕方、夜、不明）"
}"""

# Answers the model uses for "don't know"
_UNKNOWN_WORDS = {"不明", "unknown", "わからない", "n/a", "none", ""}


def build_context_prompt(title: str, comment: str, with_image: bool) -> str:
    intro = (
        "この投稿（写真とテキスト）を分析して、商品推薦のためのコンテキストを抽出してください。"
        if with_image else
        "以下のテキストから商品推薦のためのコンテキストを推測して抽出してください。"
    )
    return (
        f"{intro}\n\n"
        f"タイトル: {title}\n"
        f"コメント: {comment}\n\n"
        f"以下のJSON形式のみで回答してください:\n{_SCHEMA}"
    )


def _known(value) -> str:
    text = as_str(value)
    return UNKNOWN if text.lower() in _UNKNOWN_WORDS else text


def parse_context_response(raw: str) -> PostContext:
    """Parse a context response; absent fields take their neutral defaults."""
    data = parse_json_response(raw, "context")
    neutral = PostContext.neutral()
    return PostContext(
        objects=as_str_list(data.get("objects")),
        scene=_known(data.get("scene")),
        emotion=as_str(data.get("emotion"), neutral.emotion),
        needs=as_str_list(data.get("needs")),
        season=_known(data.get("season")),
        time_of_day=_known(data.get("timeOfDay", data.get("time_of_day"))),
    )


class ContextExtractor:
    STAGE = "context"

    def __init__(
        self,
        provider: Optional[ModelProvider],
        image_loader: Callable[[str], Awaitable[EncodedImage]] = load_image,
    ) -> None:
        self.provider = provider
        self._load_image = image_loader

    async def run(
        self,
        image_url: str,
        title: str,
        comment: str,
        use_model: bool = True,
    ) -> StageOutcome[PostContext]:
        title = title or ""
        comment = comment or ""

        async def multimodal() -> Optional[PostContext]:
            if self.provider is None:
                return None
            image = await self._load_image(image_url)
            raw = await self.provider.generate(build_context_prompt(title, comment, True), image)
            return parse_context_response(raw)

        async def text_only() -> Optional[PostContext]:
            if self.provider is None or not (title.strip() or comment.strip()):
                return None
            raw = await self.provider.generate(build_context_prompt(title, comment, False))
            return parse_context_response(raw)

        async def neutral() -> PostContext:
            return PostContext.neutral()

        outcome = await run_tiers(self.STAGE, [
            FallbackTier("multimodal", multimodal, uses_model=True),
            FallbackTier("text_only", text_only, uses_model=True),
            FallbackTier("neutral", neutral),
        ], use_model=use_model)
        logger.info("[%s] via %s: objects=%s scene=%s", self.STAGE, outcome.tier,
                    outcome.value.objects, outcome.value.scene)
        return outcome

    async def extract(self, image_url: str, title: str, comment: str) -> PostContext:
        """Extract a PostContext. Never raises: the last tier is the neutral context."""
        return (await self.run(image_url, title, comment)).value
