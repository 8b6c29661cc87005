"""
Tests for scoring.py and the score model.

Covers:
  - score_level(): every tier boundary
  - build_scoring_prompt(): rubric and caption included
  - parse_score_response(): totals recomputed, clamping, numeric strings,
    missing / non-numeric / NaN / Infinity fields rejected, comment handling,
    imageAnalysis
  - fallback_score(): 15/15/15/15 = 60, level C
  - ScoringEngine: model success, fallback on fetch / model / parse failure,
    failure-specific comments, model skipped when unavailable
"""
from __future__ import annotations

import base64
import copy
import json
import os

import pytest

from conftest import FakeProvider, make_image
from errors import FetchFailed, ImageTooLarge, ModelCallFailed, ResponseParseFailed
from models import score_level
from scoring import (
    MODEL_UNAVAILABLE_COMMENT,
    RUBRIC,
    ScoringEngine,
    build_scoring_prompt,
    describe_failure,
    fallback_score,
    parse_score_response,
)

# Sums: technical 22, composition 21, creativity 19, engagement 20 → 82
VALID = {
    "technical": {"quality": 5, "exposure": 5, "color": 4, "sharpness": 4, "noise": 4, "total": 22},
    "composition": {"ruleOfThirds": 7, "symmetry": 4, "placement": 6, "background": 4, "total": 21},
    "creativity": {"uniquePerspective": 8, "artisticExpression": 6, "storytelling": 5, "total": 19},
    "engagement": {"emotionalImpact": 8, "visualAppeal": 7, "relatability": 5, "total": 20},
    "total": 82,
    "comment": "夕焼けのグラデーションが美しく、水平線の配置も安定しています。",
    "imageAnalysis": {
        "mainColors": ["オレンジ", "紺"],
        "mainSubject": "海に沈む夕日",
        "moodAtmosphere": "穏やか",
    },
}


def response(data=None, **overrides) -> str:
    data = copy.deepcopy(data or VALID)
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


async def load_ok(url):
    return make_image()


async def load_fails(url):
    raise FetchFailed("Image fetch failed: HTTP 500", status=500)


# ── score_level ───────────────────────────────────────────────────────────────

class TestScoreLevel:
    @pytest.mark.parametrize("total,level", [
        (100, "S"), (90, "S"), (89, "A"), (80, "A"), (79, "B"), (70, "B"),
        (69, "C"), (60, "C"), (59, "D"), (50, "D"), (49, "E"), (0, "E"),
    ])
    def test_boundaries(self, total, level):
        assert score_level(total).level == level

    def test_descriptions(self):
        assert score_level(95).description == "傑作"
        assert score_level(65).description == "標準"
        assert score_level(10).description == "要練習"


# ── Prompt ────────────────────────────────────────────────────────────────────

class TestBuildScoringPrompt:
    def test_lists_every_criterion(self):
        prompt = build_scoring_prompt()
        for cat in RUBRIC:
            assert cat.label in prompt
            for c in cat.criteria:
                assert c.label in prompt
                assert f'"{c.key}"' in prompt

    def test_categories_sum_to_100(self):
        assert [cat.max_points for cat in RUBRIC] == [25, 25, 25, 25]

    def test_caption_included_when_given(self):
        prompt = build_scoring_prompt("夕焼け", "海で撮った")
        assert "タイトル: 夕焼け" in prompt
        assert "説明: 海で撮った" in prompt
        assert "タイトル:" not in build_scoring_prompt()


# ── parse_score_response ──────────────────────────────────────────────────────

class TestParseScoreResponse:
    def test_valid_response(self):
        score = parse_score_response(response())
        assert (score.technical, score.composition, score.creativity, score.engagement) == (22, 21, 19, 20)
        assert score.total == 82
        assert score.level == "A"
        assert score.breakdown.composition.rule_of_thirds == 7
        assert score.image_analysis.main_subject == "海に沈む夕日"
        assert score.image_analysis.main_colors == ["オレンジ", "紺"]
        assert score.image_analysis.lighting_quality == ""

    def test_reported_totals_are_ignored(self):
        data = copy.deepcopy(VALID)
        data["technical"]["total"] = 25
        data["total"] = 99
        score = parse_score_response(response(data))
        assert score.technical == 22
        assert score.total == 82

    def test_out_of_range_values_clamped(self):
        data = copy.deepcopy(VALID)
        data["technical"]["quality"] = 9
        data["engagement"]["emotionalImpact"] = -3
        score = parse_score_response(response(data))
        assert score.breakdown.technical.quality == 5
        assert score.breakdown.engagement.emotional_impact == 0
        assert score.total == score.technical + score.composition + score.creativity + score.engagement

    def test_numeric_strings_and_floats_accepted(self):
        data = copy.deepcopy(VALID)
        data["creativity"]["uniquePerspective"] = "8"
        data["creativity"]["storytelling"] = 4.6
        score = parse_score_response(response(data))
        assert score.breakdown.creativity.unique_perspective == 8
        assert score.breakdown.creativity.storytelling == 5

    def test_missing_sub_criterion_rejected(self):
        data = copy.deepcopy(VALID)
        del data["composition"]["symmetry"]
        with pytest.raises(ResponseParseFailed, match="composition.symmetry"):
            parse_score_response(response(data))

    def test_missing_category_rejected(self):
        data = copy.deepcopy(VALID)
        del data["engagement"]
        with pytest.raises(ResponseParseFailed, match="engagement"):
            parse_score_response(response(data))

    @pytest.mark.parametrize("bad", ["high", None, True, [3]])
    def test_non_numeric_rejected(self, bad):
        data = copy.deepcopy(VALID)
        data["technical"]["noise"] = bad
        with pytest.raises(ResponseParseFailed):
            parse_score_response(response(data))

    @pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf"), "NaN", "Infinity"])
    def test_non_finite_rejected(self, bad):
        data = copy.deepcopy(VALID)
        data["technical"]["noise"] = bad
        # json.dumps writes bare NaN / Infinity tokens, which json.loads reads back
        with pytest.raises(ResponseParseFailed):
            parse_score_response(response(data))

    def test_huge_integer_clamped(self):
        data = copy.deepcopy(VALID)
        data["technical"]["noise"] = 10 ** 400
        assert parse_score_response(response(data)).breakdown.technical.noise == 5

    def test_comment_trimmed_and_defaulted(self):
        assert len(parse_score_response(response(comment="あ" * 500)).comment) == 200
        assert parse_score_response(response(comment="")).comment == "AIによる採点が完了しました。"

    def test_missing_image_analysis_is_fine(self):
        data = copy.deepcopy(VALID)
        del data["imageAnalysis"]
        assert parse_score_response(response(data)).image_analysis is None

    def test_fenced_response_with_prose(self):
        raw = f"採点結果は以下の通りです。\n```json\n{response()}\n```\n以上です。"
        assert parse_score_response(raw).total == 82


# ── Fallback ──────────────────────────────────────────────────────────────────

class TestFallbackScore:
    def test_fixed_values(self):
        score = fallback_score()
        assert (score.technical, score.composition, score.creativity, score.engagement) == (15, 15, 15, 15)
        assert score.total == 60
        assert score.level == "C"
        assert "失敗" in score.comment

    @pytest.mark.parametrize("error,fragment", [
        (None, "API設定が必要です"),
        (ImageTooLarge(5_000_000, 4_194_304), "画像サイズが大きすぎます"),
        (FetchFailed("HTTP 500"), "画像を取得できませんでした"),
        (ResponseParseFailed("bad"), "読み取れませんでした"),
        (ModelCallFailed("Error code: 429"), "利用制限"),
        (ModelCallFailed("Error code: 401"), "APIキーが無効です"),
        (ModelCallFailed("[x] timed out after 60s"), "タイムアウト"),
        (ModelCallFailed("boom"), "AIサービスでエラー"),
    ])
    def test_describe_failure(self, error, fragment):
        assert fragment in describe_failure(error)


# ── ScoringEngine ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestScoringEngine:
    async def test_scenario_2mb_jpeg_scores_level_a(self):
        jpeg = b"\xff\xd8\xff\xe0" + os.urandom(2 * 1024 * 1024)
        url = "data:image/jpeg;base64," + base64.b64encode(jpeg).decode()
        provider = FakeProvider(response())

        score = await ScoringEngine(provider).score(url, "夕焼け", "海で撮った")

        assert score.total == 82
        assert score.level == "A"
        prompt, image = provider.calls[0]
        assert "夕焼け" in prompt
        assert image.data == jpeg
        assert base64.b64decode(image.base64) == jpeg

    async def test_model_success_reports_primary_tier(self):
        outcome = await ScoringEngine(FakeProvider(response()), load_ok).run("u")
        assert outcome.tier == "model"
        assert outcome.fell_back is False

    async def test_fetch_failure_gives_fallback(self):
        provider = FakeProvider(response())
        outcome = await ScoringEngine(provider, load_fails).run("https://example.com/x.jpg")
        assert outcome.value.total == 60
        assert outcome.value.level == "C"
        assert outcome.fell_back is True
        assert outcome.tier == "fallback"
        assert "画像を取得できませんでした" in outcome.value.comment
        assert provider.calls == []

    async def test_model_failure_gives_fallback(self):
        engine = ScoringEngine(FakeProvider(RuntimeError("Error code: 429")), load_ok)
        score = await engine.score("u")
        assert score.total == 60
        assert "利用制限" in score.comment

    async def test_missing_field_gives_fallback(self):
        data = copy.deepcopy(VALID)
        del data["technical"]["sharpness"]
        score = await ScoringEngine(FakeProvider(response(data)), load_ok).score("u")
        assert score.total == 60
        assert score.level == "C"

    async def test_non_finite_value_gives_fallback(self):
        data = copy.deepcopy(VALID)
        data["engagement"]["relatability"] = float("nan")
        outcome = await ScoringEngine(FakeProvider(response(data)), load_ok).run("u")
        assert outcome.tier == "fallback"
        assert outcome.value.total == 60

    async def test_prose_only_gives_fallback(self):
        score = await ScoringEngine(FakeProvider("素敵な写真ですね！"), load_ok).score("u")
        assert score.total == 60

    async def test_no_provider_gives_unavailable_comment(self):
        score = await ScoringEngine(None, load_ok).score("u")
        assert score.total == 60
        assert score.comment == MODEL_UNAVAILABLE_COMMENT

    async def test_model_skipped_when_unavailable(self):
        provider = FakeProvider(response())
        outcome = await ScoringEngine(provider, load_ok).run("u", use_model=False)
        assert outcome.value.total == 60
        assert outcome.value.comment == MODEL_UNAVAILABLE_COMMENT
        assert provider.calls == []
