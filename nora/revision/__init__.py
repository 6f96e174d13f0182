"""
Revision session engine.

Components:
- store: one active session per (user, document), completion history
- phase_controller: phase/timer checkpoints
- recall: recall validation and storage
- orchestrator: AI comparison of recall vs. summary
- iteration: bounded recall loop
- completion: mastery score, completion record, stop
- expiration: lazy inactivity expiry
- service: RevisionService facade (import from nora.revision.service)
"""

from .errors import (
    ComparatorError,
    ConcurrentModificationError,
    DocumentNotFoundError,
    InvalidPhaseTransitionError,
    NothingToCompareError,
    RecallValidationError,
    RevisionError,
    SessionNotFoundError,
    SessionValidationError,
)
from .expiration import is_expired
from .phases import CustomSettings, RequirementLevel, RevisionPhase
from .scoring import compute_mastery_score

__all__ = [
    "ComparatorError",
    "ConcurrentModificationError",
    "CustomSettings",
    "DocumentNotFoundError",
    "InvalidPhaseTransitionError",
    "NothingToCompareError",
    "RecallValidationError",
    "RequirementLevel",
    "RevisionError",
    "RevisionPhase",
    "SessionNotFoundError",
    "SessionValidationError",
    "compute_mastery_score",
    "is_expired",
]
