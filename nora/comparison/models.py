"""
Comparator contract.

A comparator takes the original summary and the user's recall and classifies
every concept of the summary as understood or missing. The two lists are
exhaustive and disjoint: a concept appears in exactly one of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from nora.revision.phases import CustomSettings, RequirementLevel, effective_thresholds

DEFAULT_FEEDBACK = "Keep it up!"


class MissingReason(str, Enum):
    """Why a concept was classified as missing."""

    ABSENT = "absent"
    INCOMPLETE = "incomplete"
    FACTUAL_ERROR = "factual_error"
    CONTRADICTION = "contradiction"


class UnderstoodConcept(BaseModel):
    """Concept the user recalled correctly."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    concept: str = Field(min_length=1)
    user_text: str = Field(default="", validation_alias=AliasChoices("user_text", "userText"))
    source_text: str = Field(
        validation_alias=AliasChoices("source_text", "sourceText", "originalText")
    )


class MissingConcept(BaseModel):
    """Concept absent from the recall, or recalled wrongly."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    concept: str = Field(min_length=1)
    source_text: str = Field(
        validation_alias=AliasChoices("source_text", "sourceText", "originalText")
    )
    importance: Literal["high", "medium", "low"] = "high"
    reason: MissingReason = MissingReason.ABSENT

    @field_validator("reason", mode="before")
    @classmethod
    def _normalise_reason(cls, value: Any) -> Any:
        # "factual-error" and "factual_error" are both accepted
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value


class ComparisonResult(BaseModel):
    """Full comparator output returned to the caller."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    understood_concepts: list[UnderstoodConcept] = Field(
        default_factory=list,
        validation_alias=AliasChoices("understood_concepts", "understoodConcepts"),
    )
    missing_concepts: list[MissingConcept] = Field(
        default_factory=list,
        validation_alias=AliasChoices("missing_concepts", "missingConcepts"),
    )
    overall_score: int = Field(
        ge=0, le=100, validation_alias=AliasChoices("overall_score", "overallScore")
    )
    feedback: str = DEFAULT_FEEDBACK

    @model_validator(mode="after")
    def _check_disjoint(self) -> ComparisonResult:
        understood = {c.concept for c in self.understood_concepts}
        overlap = understood.intersection(c.concept for c in self.missing_concepts)
        if overlap:
            raise ValueError(f"Concepts classified as both understood and missing: {sorted(overlap)}")
        return self

    def understood_payload(self) -> list[dict[str, Any]]:
        """JSON-ready understood concepts, as persisted on the session."""
        return [c.model_dump(mode="json") for c in self.understood_concepts]

    def missing_payload(self) -> list[dict[str, Any]]:
        """JSON-ready missing concepts, as persisted on the session."""
        return [c.model_dump(mode="json") for c in self.missing_concepts]


@dataclass(frozen=True)
class ComparisonRequest:
    """Everything a comparator needs for one evaluation."""

    original_summary: str
    user_recall: str
    specific_instructions: str | None = None
    requirement_level: RequirementLevel = RequirementLevel.INTERMEDIATE
    custom_settings: CustomSettings | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert request to API payload format."""
        thresholds = effective_thresholds(self.requirement_level, self.custom_settings)
        return {
            "original_summary": self.original_summary,
            "user_recall": self.user_recall,
            "specific_instructions": self.specific_instructions,
            "requirement_level": self.requirement_level.value,
            "custom_settings": (
                self.custom_settings.model_dump() if self.custom_settings else None
            ),
            "thresholds": {
                "definitions": thresholds.definitions,
                "concepts": thresholds.concepts,
                "data": thresholds.data,
            },
        }


class RecallComparator(Protocol):
    """Anything able to compare a recall with the original summary."""

    def compare(
        self,
        original_summary: str,
        user_recall: str,
        specific_instructions: str | None = None,
        requirement_level: RequirementLevel = RequirementLevel.INTERMEDIATE,
        custom_settings: CustomSettings | None = None,
    ) -> ComparisonResult:
        """
        Classify the summary's concepts against the recall.

        Raises:
            ComparatorError: on any failure, including malformed output
        """
        ...
