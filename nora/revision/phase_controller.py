"""
Phase and timer synchronisation.

The server does not run the countdowns: the client drives its timers and
checkpoints them here so a reload or a device switch can resume mid-phase.
phase_started_at, set by the store whenever the phase changes, is the only
server-authoritative clock.
"""

from __future__ import annotations

from loguru import logger

from nora.revision.errors import (
    InvalidPhaseTransitionError,
    SessionNotFoundError,
    SessionValidationError,
)
from nora.revision.phases import RevisionPhase, can_transition
from nora.revision.store import DEFAULT_LOOP_SECONDS, RevisionSessionState, RevisionSessionStore


class PhaseController:
    """Validates and applies phase/timer checkpoints on an existing session."""

    def __init__(
        self,
        store: RevisionSessionStore,
        max_iterations: int = 8,
        default_loop_seconds: int = DEFAULT_LOOP_SECONDS,
    ):
        self.store = store
        self.max_iterations = max_iterations
        self.default_loop_seconds = default_loop_seconds

    def sync(
        self,
        user_id: int,
        document_id: int,
        phase: RevisionPhase | str,
        study_time_remaining: int | None,
        pause_time_remaining: int | None,
        loop_time_remaining: int | None,
        current_iteration: int,
    ) -> RevisionSessionState:
        """
        Checkpoint the client's phase, timers and iteration.

        Raises:
            SessionNotFoundError: no active session
            SessionValidationError: unknown phase, negative timer, bad iteration
            InvalidPhaseTransitionError: phase not reachable from the stored one
        """
        requested = self._parse_phase(phase)
        for name, value in (
            ("study_time_remaining", study_time_remaining),
            ("pause_time_remaining", pause_time_remaining),
            ("loop_time_remaining", loop_time_remaining),
        ):
            self._check_timer(name, value)

        current = self.store.get(user_id, document_id)
        if current is None:
            raise SessionNotFoundError(user_id, document_id)

        if not can_transition(current.phase, requested):
            raise InvalidPhaseTransitionError(current.phase.value, requested.value)

        if isinstance(current_iteration, bool) or not isinstance(current_iteration, int):
            raise SessionValidationError("current_iteration must be an integer")
        if not 1 <= current_iteration <= self.max_iterations:
            raise SessionValidationError(
                f"current_iteration must be between 1 and {self.max_iterations}"
            )
        if current_iteration < current.current_iteration:
            raise SessionValidationError(
                f"current_iteration cannot go back from {current.current_iteration} "
                f"to {current_iteration}"
            )

        if loop_time_remaining is None:
            loop_time_remaining = self.default_loop_seconds

        state = self.store.update(
            user_id,
            document_id,
            # Same phase read above: a racing write fails instead of being undone
            expected={"phase": current.phase.value},
            phase=requested,
            study_time_remaining=study_time_remaining,
            pause_time_remaining=pause_time_remaining,
            loop_time_remaining=loop_time_remaining,
            current_iteration=current_iteration,
        )
        if requested != current.phase:
            logger.debug(
                f"Revision phase {current.phase.value} -> {requested.value} "
                f"(user={user_id} document={document_id})"
            )
        return state

    @staticmethod
    def _parse_phase(phase: RevisionPhase | str) -> RevisionPhase:
        try:
            return RevisionPhase(phase)
        except ValueError as e:
            raise SessionValidationError(f"Unknown revision phase: {phase!r}") from e

    @staticmethod
    def _check_timer(name: str, value: int | None) -> None:
        if value is None:
            return
        if isinstance(value, bool) or not isinstance(value, int):
            raise SessionValidationError(f"{name} must be an integer number of seconds")
        if value < 0:
            raise SessionValidationError(f"{name} cannot be negative")
