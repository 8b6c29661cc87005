"""
orchestrator.py — runs one post analysis end to end.

    photo_score ─────────────────────────┐
                                         ├─► AnalysisResult
    context ──► recommendations ─────────┘

Scoring and context extraction run concurrently; recommendations wait for
the context. Every stage contains its own failures (see fallback.py), so the
orchestrator only enters the ERROR state on an unexpected exception. When one
branch raises, the other is cancelled and awaited before the state changes, so
no stage reports progress after ERROR.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from context_extractor import ContextExtractor
from fallback import StageOutcome
from models import (
    AnalysisMetadata,
    AnalysisProgress,
    AnalysisResult,
    PhotoScore,
    PostContext,
    RecommendationGroup,
)
from providers.manager import ProviderProbe
from recommendations import RecommendationEngine
from scoring import ScoringEngine

logger = logging.getLogger(__name__)

ANALYSIS_ERROR_MESSAGE = "AI分析中にエラーが発生しました"


class AnalysisState(str, enum.Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


class AnalysisOrchestrator:
    """
    Holds the state of the analysis it is running; use one instance per
    concurrently analysed post.

    `probe`, when given, is asked once whether the model answers at all; if
    not, every stage goes straight to its non-model tiers.
    `on_progress` receives an AnalysisProgress snapshot each time a stage
    completes.
    """

    def __init__(
        self,
        scorer: ScoringEngine,
        extractor: ContextExtractor,
        recommender: RecommendationEngine,
        probe: Optional[ProviderProbe] = None,
        on_progress: Optional[Callable[[AnalysisProgress], None]] = None,
    ) -> None:
        self.scorer = scorer
        self.extractor = extractor
        self.recommender = recommender
        self.probe = probe
        self.on_progress = on_progress
        self.reset()

    def reset(self) -> None:
        """Back to IDLE with no progress, result or error."""
        self.state = AnalysisState.IDLE
        self.progress = AnalysisProgress()
        self.error: Optional[str] = None
        self.result: Optional[AnalysisResult] = None

    @property
    def completion_percentage(self) -> int:
        return self.progress.completion_percentage

    def _mark_done(self, stage: str) -> None:
        self.progress = replace(self.progress, **{stage: True})
        logger.info("Stage %s done (%d%%)", stage, self.progress.completion_percentage)
        if self.on_progress is not None:
            self.on_progress(self.progress)

    async def analyze(self, image_url: str, title: str, comment: str) -> Optional[AnalysisResult]:
        """
        Analyse one post. Returns the AnalysisResult, or None when an
        unexpected error put the orchestrator into the ERROR state.
        """
        self.reset()
        self.state = AnalysisState.ANALYZING
        t0 = time.monotonic()
        tasks: list[asyncio.Future] = []

        try:
            use_model = await self.probe.available() if self.probe is not None else True
            if not use_model:
                logger.warning("Model unavailable — analysing with fallback tiers only")

            async def score_stage() -> StageOutcome[PhotoScore]:
                outcome = await self.scorer.run(image_url, title, comment, use_model=use_model)
                self._mark_done("photo_score")
                return outcome

            async def context_stage() -> tuple[StageOutcome[PostContext], StageOutcome[list[RecommendationGroup]]]:
                ctx = await self.extractor.run(image_url, title, comment, use_model=use_model)
                self._mark_done("context")
                recs = await self.recommender.run(ctx.value, use_model=use_model)
                self._mark_done("recommendations")
                return ctx, recs

            tasks = [asyncio.ensure_future(score_stage()), asyncio.ensure_future(context_stage())]
            score, (ctx, recs) = await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            await _cancel_pending(tasks)
            raise
        except Exception:
            # The surviving branch must not touch progress once the state is ERROR.
            await _cancel_pending(tasks)
            logger.exception("Analysis of %s failed", image_url[:80])
            self.state = AnalysisState.ERROR
            self.error = ANALYSIS_ERROR_MESSAGE
            return None

        outcomes = {
            ScoringEngine.STAGE: score,
            ContextExtractor.STAGE: ctx,
            RecommendationEngine.STAGE: recs,
        }
        metadata = AnalysisMetadata(
            elapsed_ms=int((time.monotonic() - t0) * 1000),
            stages_completed=len(outcomes),
            stages_fallen_back=sum(o.fell_back for o in outcomes.values()),
            stage_tiers={stage: o.tier for stage, o in outcomes.items()},
        )
        self.result = AnalysisResult(
            photo_score=score.value,
            context=ctx.value,
            recommendation_groups=recs.value,
            metadata=metadata,
        )
        self.state = AnalysisState.COMPLETE
        logger.info(
            "Analysis complete in %dms — score=%d (%s), %d groups, %d fallbacks",
            metadata.elapsed_ms, score.value.total, score.value.level,
            len(recs.value), metadata.stages_fallen_back,
        )
        return self.result


async def _cancel_pending(tasks: list[asyncio.Future]) -> None:
    for task in tasks:
        if not task.done():
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


def create_orchestrator(
    on_progress: Optional[Callable[[AnalysisProgress], None]] = None,
) -> AnalysisOrchestrator:
    """Wire an orchestrator to the configured provider and the shared catalog."""
    from catalog import get_catalog
    from providers.manager import get_provider

    provider = get_provider()
    return AnalysisOrchestrator(
        scorer=ScoringEngine(provider),
        extractor=ContextExtractor(provider),
        recommender=RecommendationEngine(provider, get_catalog()),
        probe=ProviderProbe(provider),
        on_progress=on_progress,
    )
