"""
AI comparison of a user's recall against the original summary.
"""

from __future__ import annotations

from config import Settings, get_settings

from .gemini import GeminiRecallComparator
from .models import (
    ComparisonRequest,
    ComparisonResult,
    MissingConcept,
    MissingReason,
    RecallComparator,
    UnderstoodConcept,
)
from .remote import HttpRecallComparator
from .segments import Segment, split_into_segments


def build_comparator(settings: Settings | None = None) -> RecallComparator:
    """Create the comparator selected by settings.comparator_provider."""
    settings = settings or get_settings()
    if settings.comparator_provider == "http":
        if not settings.comparator_url:
            raise ValueError("COMPARATOR_URL is required when COMPARATOR_PROVIDER=http")
        return HttpRecallComparator(
            api_url=settings.comparator_url,
            timeout_seconds=settings.comparator_timeout_seconds,
        )
    return GeminiRecallComparator(
        api_key=settings.gemini_api_key,
        model_name=settings.comparator_model,
        timeout_seconds=settings.comparator_timeout_seconds,
        temperature=settings.comparator_temperature,
        max_output_tokens=settings.comparator_max_output_tokens,
    )


__all__ = [
    "ComparisonRequest",
    "ComparisonResult",
    "GeminiRecallComparator",
    "HttpRecallComparator",
    "MissingConcept",
    "MissingReason",
    "RecallComparator",
    "Segment",
    "UnderstoodConcept",
    "build_comparator",
    "split_into_segments",
]
