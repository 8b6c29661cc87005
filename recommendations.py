"""
recommendations.py — PostContext → grouped, catalog-backed product picks.

Tiers, in order:
  model     the model proposes up to 3 {category, keywords, reason} groups;
            each is searched in the catalog (sequentially, since the catalog client
            enforces request spacing) and kept only if it found products
  category  fixed candidate categories whose match words overlap the
            context's objects/scene; the first one with products wins
  static    one built-in group with one generic product, never empty

So recommend() always returns at least one group with at least one product.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

import config
from catalog import CatalogClient
from catalog_backends.base import with_associate_tag
from errors import CatalogSearchFailed
from fallback import FallbackTier, StageOutcome, run_tiers
from models import PostContext, Product, RecommendationGroup
from providers.base import ModelProvider, as_str, as_str_list, parse_json_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordGroup:
    category: str
    keywords: list[str]
    reason: str


@dataclass(frozen=True)
class CandidateCategory:
    title: str
    reason: str
    search_keywords: str
    match_words: tuple[str, ...]    # any of these inside an object or the scene selects it


CANDIDATE_CATEGORIES: tuple[CandidateCategory, ...] = (
    CandidateCategory(
        "ペット用品", "ペットの写真から、便利なペット用品をご提案します", "ペット",
        ("ペット", "犬", "猫", "dog", "cat", "pet"),
    ),
    CandidateCategory(
        "アウトドア用品", "アウトドアをもっと楽しむための商品", "アウトドア",
        ("屋外", "公園", "キャンプ", "山", "海", "川", "自然", "outdoor", "park", "beach", "camp"),
    ),
    CandidateCategory(
        "おすすめガジェット", "毎日をもっと便利にするガジェット", "ガジェット",
        ("ガジェット", "スマホ", "カメラ", "パソコン", "家電", "phone", "camera", "gadget"),
    ),
)


def static_group() -> RecommendationGroup:
    """The built-in last resort; always one group with one product."""
    return RecommendationGroup(
        title="おすすめ商品",
        reason="人気の商品をご紹介します",
        products=[Product(
            id="B01GENERAL",
            name="モバイルバッテリー 大容量 20000mAh",
            price="¥2,980",
            affiliate_url=with_associate_tag("https://amazon.co.jp/dp/B01GENERAL", config.AMAZON_ASSOCIATE_TAG),
            category="家電・カメラ",
            tags=["ガジェット", "便利グッズ"],
            reason="外出時の必需品",
        )],
    )


# ── Prompts & parsing ──────────────────────────────────────────────────────────

def build_keyword_prompt(context: PostContext) -> str:
    return (
        "以下の投稿コンテキストに基づいて、投稿者に役立ちそうな商品カテゴリを"
        f"最大{config.MAX_RECOMMENDATION_GROUPS}つ提案してください。\n"
        "各カテゴリには商品検索用の短い日本語キーワードを1〜3個含めてください。\n\n"
        f"コンテキスト:\n{json.dumps(context.to_dict(), ensure_ascii=False, indent=2)}\n\n"
        "以下のJSON形式のみで回答してください:\n"
        "{\n"
        '  "groups": [\n'
        '    {"category": "カテゴリ名（例：ペット用品）", "keywords": ["ペット", "おもちゃ"], '
        '"reason": "このカテゴリを推薦する理由（投稿内容と関連付ける）"}\n'
        "  ]\n"
        "}"
    )


def parse_keyword_groups(raw: str) -> list[KeywordGroup]:
    data = parse_json_response(raw, "recommendations")
    entries = data.get("groups", data.get("recommendations"))
    if not isinstance(entries, list):
        return []

    groups: list[KeywordGroup] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        category = as_str(entry.get("category", entry.get("title")))
        keywords = as_str_list(entry.get("keywords"))
        if not category or not keywords:
            logger.info("Skipping incomplete keyword group: %s", entry)
            continue
        reason = as_str(entry.get("reason"), f"{category}のおすすめ商品です")
        groups.append(KeywordGroup(category, keywords, reason))
    return groups[:config.MAX_RECOMMENDATION_GROUPS]


def _matches(candidate: CandidateCategory, context: PostContext) -> bool:
    texts = [t.lower() for t in (*context.objects, context.scene)]
    return any(word.lower() in text for word in candidate.match_words for text in texts)


# ── Engine ─────────────────────────────────────────────────────────────────────

class RecommendationEngine:
    STAGE = "recommendations"

    def __init__(self, provider: Optional[ModelProvider], catalog: CatalogClient) -> None:
        self.provider = provider
        self.catalog = catalog

    async def _search(self, keywords: str) -> list[Product]:
        try:
            products = await self.catalog.search(keywords, max_results=config.CATALOG_MAX_RESULTS)
        except CatalogSearchFailed as exc:
            logger.warning("[%s] %s", self.STAGE, exc)
            return []
        return products[:config.PRODUCTS_PER_GROUP]

    async def _from_model(self, context: PostContext) -> Optional[list[RecommendationGroup]]:
        if self.provider is None:
            return None
        raw = await self.provider.generate(build_keyword_prompt(context))
        keyword_groups = parse_keyword_groups(raw)
        logger.info("[%s] model proposed %d keyword groups", self.STAGE, len(keyword_groups))

        groups: list[RecommendationGroup] = []
        for kg in keyword_groups:
            products = await self._search(" ".join(kg.keywords))
            if products:
                groups.append(RecommendationGroup(title=kg.category, reason=kg.reason, products=products))
        return groups or None

    async def _from_candidates(self, context: PostContext) -> Optional[list[RecommendationGroup]]:
        for candidate in CANDIDATE_CATEGORIES:
            if not _matches(candidate, context):
                continue
            products = await self._search(candidate.search_keywords)
            if products:
                return [RecommendationGroup(title=candidate.title, reason=candidate.reason, products=products)]
        return None

    async def run(self, context: PostContext, use_model: bool = True) -> StageOutcome[list[RecommendationGroup]]:

        async def static() -> list[RecommendationGroup]:
            return [static_group()]

        outcome = await run_tiers(self.STAGE, [
            FallbackTier("model", lambda: self._from_model(context), uses_model=True),
            FallbackTier("category", lambda: self._from_candidates(context)),
            FallbackTier("static", static),
        ], use_model=use_model)
        logger.info("[%s] via %s: %s", self.STAGE, outcome.tier, [g.title for g in outcome.value])
        return outcome

    async def recommend(self, context: PostContext) -> list[RecommendationGroup]:
        """Recommendation groups for `context`. Never empty, never raises."""
        return (await self.run(context)).value

    async def mention_product_in_comment(
        self,
        comment: str,
        product: Product,
        context: PostContext,
    ) -> str:
        """
        Rewrite `comment` so it mentions `product` casually.
        Falls back to appending a markdown link when the model is unavailable.
        """
        fallback = f"{comment} ちなみに[{product.name}]({product.affiliate_url})が人気ですよ！"
        if self.provider is None:
            return fallback

        prompt = (
            "以下のコメントに、商品を自然に織り込んでください。\n"
            "押し売りにならないよう、さりげなく商品に言及してください。\n\n"
            f"元のコメント: {comment}\n"
            f"商品名: {product.name}\n"
            f"商品の推薦理由: {product.reason or ''}\n"
            f"コンテキスト: {json.dumps(context.to_dict(), ensure_ascii=False)}\n\n"
            "自然で親しみやすい日本語で、100文字程度で回答してください。\n"
            f"商品名は[{product.name}]({product.affiliate_url})のようにマークダウンリンク形式で含めてください。"
        )
        try:
            text = await self.provider.generate(prompt)
        except Exception as exc:
            logger.warning("Product mention generation failed: %s", exc)
            return fallback
        return text.strip()
