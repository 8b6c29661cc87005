"""
Ordered fallback tiers for a pipeline stage.

A stage declares its alternatives as a list of `FallbackTier`s. `run_tiers`
tries them in order and returns the first non-None value. Any exception from
a tier is logged and treated like a None result, so the final tier (which
must not fail) always decides the outcome.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FallbackTier(Generic[T]):
    name: str
    attempt: Callable[[], Awaitable[Optional[T]]]
    uses_model: bool = False    # skipped when the model is known to be unavailable


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    value: T
    tier: str                   # name of the tier that produced `value`
    fell_back: bool             # True when anything but the primary tier produced it
    error: Optional[BaseException] = None    # last failure seen before `value` was produced


class TiersExhausted(RuntimeError):
    pass


async def run_tiers(
    stage: str,
    tiers: Sequence[FallbackTier[T]],
    use_model: bool = True,
) -> StageOutcome[T]:
    """
    Run `tiers` in order and return the first non-None result.

    Raises TiersExhausted only if every tier failed, which means the stage's
    terminal tier is broken (a programming error).
    """
    eligible = [t for t in tiers if use_model or not t.uses_model]
    last_error: Optional[BaseException] = None

    for tier in eligible:
        try:
            value = await tier.attempt()
        except Exception as exc:
            last_error = exc
            logger.warning("[%s] tier '%s' failed: %s", stage, tier.name, exc)
            continue
        if value is None:
            logger.info("[%s] tier '%s' produced nothing", stage, tier.name)
            continue
        fell_back = tier is not tiers[0]
        if fell_back:
            logger.info("[%s] fell back to tier '%s'", stage, tier.name)
        return StageOutcome(value=value, tier=tier.name, fell_back=fell_back, error=last_error)

    raise TiersExhausted(f"[{stage}] all {len(eligible)} tiers failed") from last_error
