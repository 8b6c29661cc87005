"""
scoring.py — 100-point photo scoring.

The rubric is a fixed data structure (RUBRIC): four categories of 25 points,
each split into weighted sub-criteria. The same table generates the prompt
and drives validation of the model's answer, so the two cannot disagree.

Validation policy for model output:
  • every sub-criterion must be present and numeric, otherwise the response
    is rejected (ResponseParseFailed → fallback score)
  • numeric values are rounded and clamped into [0, max_points]
  • category subscores and the grand total are recomputed from the clamped
    sub-criteria; totals reported by the model are only checked and logged

Any failure in image acquisition, encoding, the model call or parsing yields the
fixed fallback score (15/15/15/15 = 60, level C). ScoringEngine.score never raises.
"""
from __future__ import annotations

import dataclasses
import json
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from errors import FetchFailed, ImageTooLarge, ModelCallFailed, ResponseParseFailed
from fallback import FallbackTier, StageOutcome, run_tiers
from image_source import EncodedImage, load_image
from models import (
    CompositionScore,
    CreativityScore,
    EngagementScore,
    ImageAnalysis,
    PhotoScore,
    ScoreBreakdown,
    ScoreLevel,
    TechnicalScore,
    score_level,
)
from providers.base import ModelProvider, as_str, as_str_list, parse_json_response

logger = logging.getLogger(__name__)

__all__ = [
    "RUBRIC", "ScoringEngine", "build_scoring_prompt", "parse_score_response",
    "fallback_score", "score_level", "ScoreLevel",
]

MAX_COMMENT_CHARS = 200


# ── Rubric ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Criterion:
    key: str            # JSON key in the model response
    field: str          # attribute on the category's score dataclass
    label: str          # shown to the model
    max_points: int


@dataclass(frozen=True)
class Category:
    key: str
    label: str
    score_type: type
    criteria: tuple[Criterion, ...]

    @property
    def max_points(self) -> int:
        return sum(c.max_points for c in self.criteria)


RUBRIC: tuple[Category, ...] = (
    Category("technical", "技術的品質", TechnicalScore, (
        Criterion("quality",   "quality",   "画質・解像度", 5),
        Criterion("exposure",  "exposure",  "露出・明るさ", 5),
        Criterion("color",     "color",     "色彩バランス", 5),
        Criterion("sharpness", "sharpness", "シャープネス", 5),
        Criterion("noise",     "noise",     "ノイズレベル", 5),
    )),
    Category("composition", "構図・バランス", CompositionScore, (
        Criterion("ruleOfThirds", "rule_of_thirds", "三分割法の活用",   8),
        Criterion("symmetry",     "symmetry",       "対称性・非対称性", 5),
        Criterion("placement",    "placement",      "被写体の配置",     7),
        Criterion("background",   "background",     "背景とのバランス", 5),
    )),
    Category("creativity", "創造性・独創性", CreativityScore, (
        Criterion("uniquePerspective",  "unique_perspective",  "ユニークな視点", 10),
        Criterion("artisticExpression", "artistic_expression", "芸術的表現",     8),
        Criterion("storytelling",       "storytelling",        "ストーリー性",   7),
    )),
    Category("engagement", "エンゲージメント予測", EngagementScore, (
        Criterion("emotionalImpact", "emotional_impact", "感情的インパクト", 10),
        Criterion("visualAppeal",    "visual_appeal",    "視覚的魅力",       8),
        Criterion("relatability",    "relatability",     "共感度予測",       7),
    )),
)

# image_analysis field → JSON key
_IMAGE_ANALYSIS_KEYS = {
    "main_colors": "mainColors",
    "color_temperature": "colorTemperature",
    "composition_type": "compositionType",
    "main_subject": "mainSubject",
    "specific_content": "specificContent",
    "background_elements": "backgroundElements",
    "lighting_quality": "lightingQuality",
    "mood_atmosphere": "moodAtmosphere",
    "shooting_angle": "shootingAngle",
    "depth_perception": "depthPerception",
    "visual_impact_description": "visualImpactDescription",
    "emotional_trigger": "emotionalTrigger",
    "technical_signature": "technicalSignature",
}
_LIST_FIELDS = {"main_colors", "background_elements"}


# ── Prompt ─────────────────────────────────────────────────────────────────────

def _response_schema() -> dict:
    schema: dict = {}
    for cat in RUBRIC:
        section = {c.key: f"0〜{c.max_points}の整数" for c in cat.criteria}
        section["total"] = f"0〜{cat.max_points}の整数（上の項目の合計）"
        schema[cat.key] = section
    schema["total"] = "0〜100の整数（4カテゴリの合計）"
    schema["comment"] = f"詳細なフィードバック（日本語{MAX_COMMENT_CHARS}文字程度）"
    schema["imageAnalysis"] = {
        "mainColors": ["主要色彩1", "主要色彩2", "主要色彩3"],
        "colorTemperature": "色温度の印象（例：温かみのある、クールな、ニュートラル）",
        "compositionType": "構図タイプ（例：三分割法、中央配置、対角線構図）",
        "mainSubject": "主被写体の詳細説明（具体的な物、人、場所、固有名詞を含む）",
        "specificContent": "写っている具体的な内容物、文字、ブランド名、店名、地名など",
        "backgroundElements": ["背景要素1", "背景要素2"],
        "lightingQuality": "光の質（例：自然光、間接光、ドラマチック）",
        "moodAtmosphere": "写真の雰囲気（例：穏やか、エネルギッシュ、ノスタルジック）",
        "shootingAngle": "撮影角度（例：水平、仰角、俯瞰）",
        "depthPerception": "奥行き感（例：強い奥行き、平面的、層構造）",
        "visualImpactDescription": "視覚的インパクトの説明",
        "emotionalTrigger": "感情的トリガー（例：懐かしさ、興奮、安らぎ）",
        "technicalSignature": "技術的特徴（例：ボケ味、長時間露光、粒状感）",
    }
    return schema


def build_scoring_prompt(title: Optional[str] = None, description: Optional[str] = None) -> str:
    lines = ["この写真を100点満点で詳細に採点してください。", "", "【採点基準】"]
    for n, cat in enumerate(RUBRIC, start=1):
        lines.append(f"{n}. {cat.label} ({cat.max_points}点満点)")
        lines.extend(f"   - {c.label} ({c.max_points}点)" for c in cat.criteria)
        lines.append("")
    if title:
        lines.append(f"タイトル: {title}")
    if description:
        lines.append(f"説明: {description}")
    lines += [
        "",
        "各項目は必ず上記の満点以内の整数で採点してください。",
        "写っている物・場所・文字・雰囲気・光の質などを具体的に観察して評価に反映してください。",
        "",
        "以下のJSON形式のみで回答してください:",
        json.dumps(_response_schema(), ensure_ascii=False, indent=2),
    ]
    return "\n".join(lines)


# ── Parsing ────────────────────────────────────────────────────────────────────

def _as_int(value, where: str) -> int:
    if isinstance(value, bool) or value is None:
        raise ResponseParseFailed(f"{where}: expected a number, got {value!r}")
    if isinstance(value, int):
        return value
    number = None
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            pass
    # json.loads accepts NaN and Infinity, which round() cannot handle
    if number is not None and math.isfinite(number):
        return round(number)
    raise ResponseParseFailed(f"{where}: expected a number, got {value!r}")


def _clamp(value: int, upper: int, where: str) -> int:
    clamped = max(0, min(upper, value))
    if clamped != value:
        logger.warning("Score %s=%d out of range [0,%d] — clamped to %d", where, value, upper, clamped)
    return clamped


def _parse_category(data: dict, cat: Category):
    section = data.get(cat.key)
    if not isinstance(section, dict):
        raise ResponseParseFailed(f"missing category '{cat.key}'")

    values = {}
    for c in cat.criteria:
        where = f"{cat.key}.{c.key}"
        if c.key not in section:
            raise ResponseParseFailed(f"missing sub-criterion '{where}'")
        values[c.field] = _clamp(_as_int(section[c.key], where), c.max_points, where)
    score = cat.score_type(**values)

    reported = section.get("total")
    if reported is not None:
        try:
            if _as_int(reported, f"{cat.key}.total") != score.total:
                logger.warning(
                    "Model reported %s.total=%s, sub-criteria sum to %d — using the sum",
                    cat.key, reported, score.total,
                )
        except ResponseParseFailed:
            logger.warning("Ignoring non-numeric %s.total=%r", cat.key, reported)
    return score


def _parse_image_analysis(raw) -> Optional[ImageAnalysis]:
    if not isinstance(raw, dict):
        return None
    values = {
        attr: as_str_list(raw.get(key)) if attr in _LIST_FIELDS else as_str(raw.get(key))
        for attr, key in _IMAGE_ANALYSIS_KEYS.items()
    }
    return ImageAnalysis(**values)


def parse_score_response(raw: str) -> PhotoScore:
    """Validate a scoring response into a PhotoScore. Raises ResponseParseFailed."""
    data = parse_json_response(raw, "scoring")
    technical, composition, creativity, engagement = (_parse_category(data, cat) for cat in RUBRIC)

    comment = as_str(data.get("comment"), "AIによる採点が完了しました。")
    score = PhotoScore(
        breakdown=ScoreBreakdown(technical, composition, creativity, engagement),
        comment=comment[:MAX_COMMENT_CHARS],
        image_analysis=_parse_image_analysis(data.get("imageAnalysis")),
    )

    reported_total = data.get("total")
    if reported_total is not None and reported_total != score.total:
        logger.warning("Model reported total=%s, recomputed %d — using %d",
                       reported_total, score.total, score.total)
    return score


# ── Fallback ───────────────────────────────────────────────────────────────────

_FALLBACK_BREAKDOWN = ScoreBreakdown(
    technical=TechnicalScore(3, 3, 3, 3, 3),
    composition=CompositionScore(4, 3, 4, 4),
    creativity=CreativityScore(5, 5, 5),
    engagement=EngagementScore(5, 5, 5),
)

SCORING_FAILED_COMMENT = "採点に失敗しました。技術的問題により標準スコアを表示しています。"
MODEL_UNAVAILABLE_COMMENT = "API設定が必要です。採点できなかったため基本スコアを表示しています。"


def fallback_score(comment: str = SCORING_FAILED_COMMENT) -> PhotoScore:
    """The fixed safety-net score: 15 per category, total 60."""
    return PhotoScore(breakdown=_FALLBACK_BREAKDOWN, comment=comment)


def describe_failure(error: Optional[BaseException]) -> str:
    """User-facing fallback comment for the failure that caused it."""
    if error is None:
        return MODEL_UNAVAILABLE_COMMENT
    if isinstance(error, ImageTooLarge):
        reason = "画像サイズが大きすぎます（最大4MB）"
    elif isinstance(error, FetchFailed):
        reason = "画像を取得できませんでした"
    elif isinstance(error, ResponseParseFailed):
        reason = "採点結果を読み取れませんでした"
    elif isinstance(error, ModelCallFailed):
        message = str(error)
        if "429" in message:
            reason = "APIの利用制限に達しました。しばらく時間をおいて再試行してください"
        elif "401" in message or "403" in message:
            reason = "APIキーが無効です"
        elif "timed out" in message:
            reason = "AIの応答がタイムアウトしました"
        else:
            reason = "AIサービスでエラーが発生しました"
    else:
        return SCORING_FAILED_COMMENT
    return f"採点に失敗しました（{reason}）。標準スコアを表示しています。"


# ── Engine ─────────────────────────────────────────────────────────────────────

class ScoringEngine:
    STAGE = "photo_score"

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
        title: Optional[str] = None,
        description: Optional[str] = None,
        use_model: bool = True,
    ) -> StageOutcome[PhotoScore]:

        async def model_tier() -> Optional[PhotoScore]:
            if self.provider is None:
                return None
            image = await self._load_image(image_url)
            raw = await self.provider.generate(build_scoring_prompt(title, description), image)
            return parse_score_response(raw)

        async def fixed_tier() -> PhotoScore:
            return fallback_score()

        outcome = await run_tiers(self.STAGE, [
            FallbackTier("model", model_tier, uses_model=True),
            FallbackTier("fallback", fixed_tier),
        ], use_model=use_model)

        if outcome.fell_back:
            score = dataclasses.replace(outcome.value, comment=describe_failure(outcome.error))
            outcome = dataclasses.replace(outcome, value=score)
        else:
            logger.info("[%s] total=%d level=%s", self.STAGE, outcome.value.total, outcome.value.level)
        return outcome

    async def score(
        self,
        image_url: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PhotoScore:
        """Score a photo out of 100. Never raises: failures yield the fallback score."""
        return (await self.run(image_url, title, description)).value
