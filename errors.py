"""
Failure conditions raised by the analysis pipeline's leaf components.

Stages never let these escape: each one is caught by the stage's fallback
tiers (see fallback.py) and replaced by that stage's documented value.
"""
from __future__ import annotations


class AnalysisError(Exception):
    """Base class for every pipeline failure condition."""


class FetchFailed(AnalysisError):
    """The image could not be acquired (network, HTTP status, bad data URI)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ImageTooLarge(AnalysisError):
    """The decoded image exceeds the configured byte ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Image is {size} bytes, limit is {limit} bytes "
            f"({size / 1024 / 1024:.1f}MB > {limit / 1024 / 1024:.0f}MB)"
        )
        self.size = size
        self.limit = limit


class ModelCallFailed(AnalysisError):
    """The model provider raised, timed out or returned no text."""


class ResponseParseFailed(AnalysisError, ValueError):
    """The model answered, but not with a usable JSON object."""


class CatalogSearchFailed(AnalysisError):
    """A catalog backend search raised."""
