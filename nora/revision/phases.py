"""
Revision phases and requirement levels.

One iteration runs STUDY -> PAUSE -> RECALL -> ANALYZING -> RESULT; RESULT
loops back to RECALL for the next iteration or ends in COMPLETED / STOPPED.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RevisionPhase(str, Enum):
    """Workflow state of a revision session."""

    STUDY = "study"
    PAUSE = "pause"
    RECALL = "recall"
    ANALYZING = "analyzing"
    RESULT = "result"
    COMPLETED = "completed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (RevisionPhase.COMPLETED, RevisionPhase.STOPPED)


INITIAL_PHASE = RevisionPhase.STUDY

# Edges accepted by a timer/phase sync. Staying in the same phase is always
# allowed (plain checkpoint).
PHASE_TRANSITIONS: dict[RevisionPhase, frozenset[RevisionPhase]] = {
    RevisionPhase.STUDY: frozenset(
        {RevisionPhase.PAUSE, RevisionPhase.RECALL, RevisionPhase.STOPPED}
    ),
    RevisionPhase.PAUSE: frozenset({RevisionPhase.RECALL, RevisionPhase.STOPPED}),
    RevisionPhase.RECALL: frozenset({RevisionPhase.ANALYZING, RevisionPhase.STOPPED}),
    RevisionPhase.ANALYZING: frozenset(
        {RevisionPhase.RESULT, RevisionPhase.RECALL, RevisionPhase.STOPPED}
    ),
    RevisionPhase.RESULT: frozenset(
        {RevisionPhase.RECALL, RevisionPhase.COMPLETED, RevisionPhase.STOPPED}
    ),
    RevisionPhase.COMPLETED: frozenset(),
    RevisionPhase.STOPPED: frozenset(),
}


def can_transition(current: RevisionPhase, requested: RevisionPhase) -> bool:
    """Check whether a sync may move the session from current to requested."""
    return requested == current or requested in PHASE_TRANSITIONS[current]


@dataclass(frozen=True)
class PrecisionThresholds:
    """Strictness (percent) applied by the comparator per kind of content."""

    definitions: int
    concepts: int
    data: int


class RequirementLevel(str, Enum):
    """Named strictness preset, or custom thresholds."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"
    CUSTOM = "custom"

    @property
    def preset(self) -> PrecisionThresholds | None:
        """Default thresholds for the level (None for CUSTOM)."""
        return LEVEL_PRESETS.get(self)


LEVEL_PRESETS: dict[RequirementLevel, PrecisionThresholds] = {
    RequirementLevel.BEGINNER: PrecisionThresholds(definitions=70, concepts=70, data=70),
    RequirementLevel.INTERMEDIATE: PrecisionThresholds(definitions=85, concepts=85, data=95),
    RequirementLevel.EXPERT: PrecisionThresholds(definitions=95, concepts=95, data=100),
}


class CustomSettings(BaseModel):
    """User-defined thresholds for the CUSTOM requirement level."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    definitions_threshold: int = Field(ge=0, le=100, alias="definitionsThreshold")
    concepts_threshold: int = Field(ge=0, le=100, alias="conceptsThreshold")
    data_threshold: int = Field(ge=0, le=100, alias="dataThreshold")

    def to_thresholds(self) -> PrecisionThresholds:
        return PrecisionThresholds(
            definitions=self.definitions_threshold,
            concepts=self.concepts_threshold,
            data=self.data_threshold,
        )


def effective_thresholds(
    level: RequirementLevel,
    custom_settings: CustomSettings | None = None,
) -> PrecisionThresholds:
    """
    Resolve the thresholds the comparator should apply.

    Falls back to the intermediate preset when a CUSTOM level has no settings.
    """
    if level == RequirementLevel.CUSTOM:
        if custom_settings is not None:
            return custom_settings.to_thresholds()
        return LEVEL_PRESETS[RequirementLevel.INTERMEDIATE]
    return LEVEL_PRESETS[level]
