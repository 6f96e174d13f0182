from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from nora.revision.completion import CompletionService
from nora.revision.errors import InvalidPhaseTransitionError, SessionNotFoundError
from nora.revision.phases import RevisionPhase
from nora.revision.store import DEFAULT_LOOP_SECONDS, RevisionSessionStore

MAX_ITERATIONS = 8


@dataclass(frozen=True)
class AdvanceResult:
    """Either the new iteration number, or the forced completion."""

    iteration: int | None = None
    completed: bool = False
    iterations_count: int | None = None

    def to_dict(self) -> dict:
        if self.completed:
            return {"completed": True, "iterations_count": self.iterations_count}
        return {"iteration": self.iteration}


class IterationController:
    """
    Advances the recall loop, bounded at max_iterations.

    Advancing past the bound completes the session at its current iteration;
    the extra iteration is never stored.
    """

    def __init__(
        self,
        store: RevisionSessionStore,
        completion: CompletionService,
        max_iterations: int = MAX_ITERATIONS,
        default_loop_seconds: int = DEFAULT_LOOP_SECONDS,
    ):
        self.store = store
        self.completion = completion
        self.max_iterations = max_iterations
        self.default_loop_seconds = default_loop_seconds

    def advance(self, user_id: int, document_id: int) -> AdvanceResult:
        """
        Move to the next iteration, back in RECALL.

        Study and pause checkpoints are carried over; the loop countdown is
        reset. The previous recall and concept lists stay until the next
        recall and comparison replace them.

        Raises:
            SessionNotFoundError: no active session
            InvalidPhaseTransitionError: the session is already completed or stopped
            ConcurrentModificationError: another write moved the phase or iteration
        """
        session = self.store.get(user_id, document_id)
        if session is None:
            raise SessionNotFoundError(user_id, document_id)
        if session.phase.is_terminal:
            raise InvalidPhaseTransitionError(session.phase.value, RevisionPhase.RECALL.value)

        next_iteration = session.current_iteration + 1
        if next_iteration > self.max_iterations:
            result = self.completion.force_complete(
                user_id, document_id, expected_version=session.version
            )
            return AdvanceResult(completed=True, iterations_count=result.iterations_count)

        self.store.update(
            user_id,
            document_id,
            restart_phase=True,
            expected={
                "phase": session.phase.value,
                "current_iteration": session.current_iteration,
            },
            phase=RevisionPhase.RECALL,
            study_time_remaining=session.study_time_remaining,
            pause_time_remaining=session.pause_time_remaining,
            loop_time_remaining=self.default_loop_seconds,
            current_iteration=next_iteration,
        )
        logger.info(
            f"Revision iteration {next_iteration}/{self.max_iterations} "
            f"for user={user_id} document={document_id}"
        )
        return AdvanceResult(iteration=next_iteration)
