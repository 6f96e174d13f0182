from __future__ import annotations

from loguru import logger

from nora.revision.errors import (
    InvalidPhaseTransitionError,
    RecallValidationError,
    SessionNotFoundError,
)
from nora.revision.phases import RevisionPhase
from nora.revision.store import RevisionSessionState, RevisionSessionStore

MIN_RECALL_LENGTH = 10


class RecallRecorder:
    """Stores the user's recall for the current iteration and moves to ANALYZING."""

    def __init__(self, store: RevisionSessionStore, min_length: int = MIN_RECALL_LENGTH):
        self.store = store
        self.min_length = min_length

    def validate(self, text: str | None) -> str:
        """Return the trimmed recall, or raise if it is shorter than the minimum."""
        if not isinstance(text, str):
            raise RecallValidationError(self.min_length)
        trimmed = text.strip()
        if len(trimmed) < self.min_length:
            raise RecallValidationError(self.min_length)
        return trimmed

    def save_recall(self, user_id: int, document_id: int, text: str | None) -> RevisionSessionState:
        """
        Persist the trimmed recall and enter ANALYZING.

        Concept lists from a previous comparison are left as they are; only a
        new comparison replaces them.

        Raises:
            RecallValidationError: trimmed text shorter than the minimum
            SessionNotFoundError: no active session
            InvalidPhaseTransitionError: the session is already completed or stopped
            ConcurrentModificationError: the phase changed while saving
        """
        recall = self.validate(text)
        current = self.store.get(user_id, document_id)
        if current is None:
            raise SessionNotFoundError(user_id, document_id)
        if current.phase.is_terminal:
            raise InvalidPhaseTransitionError(current.phase.value, RevisionPhase.ANALYZING.value)

        state = self.store.update(
            user_id,
            document_id,
            restart_phase=True,
            expected={"phase": current.phase.value},
            phase=RevisionPhase.ANALYZING,
            user_recall=recall,
        )
        logger.info(
            f"Recall saved for user={user_id} document={document_id} "
            f"iteration={state.current_iteration} ({len(recall)} chars)"
        )
        return state
