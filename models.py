"""
models.py — value types produced and consumed by the analysis pipeline.

Everything here is created once per analysis request and never mutated after
it is returned; persistence is the caller's responsibility.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Optional


# ── Score level ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScoreLevel:
    level: str          # S | A | B | C | D | E
    description: str
    color: str          # badge colour used by the UI


# Inclusive lower bounds, highest first.
_LEVELS: tuple[tuple[int, ScoreLevel], ...] = (
    (90, ScoreLevel("S", "傑作",   "#FFD700")),
    (80, ScoreLevel("A", "優秀",   "#FF6B6B")),
    (70, ScoreLevel("B", "良好",   "#4ECDC4")),
    (60, ScoreLevel("C", "標準",   "#45B7D1")),
    (50, ScoreLevel("D", "改善要", "#96CEB4")),
)
_LOWEST_LEVEL = ScoreLevel("E", "要練習", "#FFEAA7")


def score_level(total: int) -> ScoreLevel:
    """Map a 0–100 total to its level. Boundary values belong to the higher tier."""
    for threshold, level in _LEVELS:
        if total >= threshold:
            return level
    return _LOWEST_LEVEL


# ── Photo score ────────────────────────────────────────────────────────────────

class _SubScores:
    """Mixin: a category's subscore is the sum of its sub-criteria."""

    @property
    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))


@dataclass(frozen=True)
class TechnicalScore(_SubScores):
    quality: int        # 5
    exposure: int       # 5
    color: int          # 5
    sharpness: int      # 5
    noise: int          # 5


@dataclass(frozen=True)
class CompositionScore(_SubScores):
    rule_of_thirds: int     # 8
    symmetry: int           # 5
    placement: int          # 7
    background: int         # 5


@dataclass(frozen=True)
class CreativityScore(_SubScores):
    unique_perspective: int     # 10
    artistic_expression: int    # 8
    storytelling: int           # 7


@dataclass(frozen=True)
class EngagementScore(_SubScores):
    emotional_impact: int   # 10
    visual_appeal: int      # 8
    relatability: int       # 7


@dataclass(frozen=True)
class ScoreBreakdown:
    technical: TechnicalScore
    composition: CompositionScore
    creativity: CreativityScore
    engagement: EngagementScore


@dataclass(frozen=True)
class ImageAnalysis:
    """Descriptive observations the scoring model returns alongside the numbers."""
    main_colors: list[str] = field(default_factory=list)
    color_temperature: str = ""
    composition_type: str = ""
    main_subject: str = ""
    specific_content: str = ""
    background_elements: list[str] = field(default_factory=list)
    lighting_quality: str = ""
    mood_atmosphere: str = ""
    shooting_angle: str = ""
    depth_perception: str = ""
    visual_impact_description: str = ""
    emotional_trigger: str = ""
    technical_signature: str = ""


@dataclass(frozen=True)
class PhotoScore:
    breakdown: ScoreBreakdown
    comment: str
    image_analysis: Optional[ImageAnalysis] = None

    # Subscores and total are derived from the breakdown so they cannot drift.
    technical: int = field(init=False)
    composition: int = field(init=False)
    creativity: int = field(init=False)
    engagement: int = field(init=False)
    total: int = field(init=False)

    def __post_init__(self) -> None:
        b = self.breakdown
        object.__setattr__(self, "technical", b.technical.total)
        object.__setattr__(self, "composition", b.composition.total)
        object.__setattr__(self, "creativity", b.creativity.total)
        object.__setattr__(self, "engagement", b.engagement.total)
        object.__setattr__(
            self, "total",
            self.technical + self.composition + self.creativity + self.engagement,
        )

    @property
    def level(self) -> str:
        return score_level(self.total).level

    @property
    def level_description(self) -> str:
        return score_level(self.total).description

    @property
    def level_color(self) -> str:
        return score_level(self.total).color

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["level"] = self.level
        data["level_description"] = self.level_description
        data["level_color"] = self.level_color
        return data


# ── Post context ───────────────────────────────────────────────────────────────

UNKNOWN = "unknown"


@dataclass(frozen=True)
class PostContext:
    objects: list[str] = field(default_factory=list)
    scene: str = UNKNOWN
    emotion: str = "neutral"
    needs: list[str] = field(default_factory=list)
    season: str = UNKNOWN
    time_of_day: str = UNKNOWN

    @classmethod
    def neutral(cls) -> "PostContext":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ── Products ───────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: str                  # display string, e.g. "¥2,980"
    affiliate_url: str
    category: str
    tags: list[str] = field(default_factory=list)
    image_url: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class RecommendationGroup:
    title: str
    reason: str
    products: list[Product] = field(default_factory=list)


# ── Aggregate ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AnalysisProgress:
    photo_score: bool = False
    context: bool = False
    recommendations: bool = False

    @property
    def done(self) -> bool:
        return self.photo_score and self.context and self.recommendations

    @property
    def completion_percentage(self) -> int:
        flags = (self.photo_score, self.context, self.recommendations)
        return round(sum(flags) / len(flags) * 100)


@dataclass(frozen=True)
class AnalysisMetadata:
    elapsed_ms: int
    stages_completed: int
    stages_fallen_back: int
    stage_tiers: dict[str, str] = field(default_factory=dict)   # stage → tier that produced it


@dataclass(frozen=True)
class AnalysisResult:
    photo_score: PhotoScore
    context: PostContext
    recommendation_groups: list[RecommendationGroup]
    metadata: AnalysisMetadata

    @property
    def all_products(self) -> list[Product]:
        return [p for group in self.recommendation_groups for p in group.products]

    def to_dict(self) -> dict[str, Any]:
        return {
            "photo_score": self.photo_score.to_dict(),
            "context": self.context.to_dict(),
            "recommendation_groups": [asdict(g) for g in self.recommendation_groups],
            "all_products": [asdict(p) for p in self.all_products],
            "metadata": asdict(self.metadata),
        }
