"""
Revision Service: entry point for the revision workflow.

Callers (HTTP handlers, CLI) drive a session through:

    start -> { sync timers -> recall -> compare -> next iteration }* -> complete

or end it early with stop. The session store is the single source of truth;
every component here reads and writes through it.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker

from config import Settings, get_settings
from nora.comparison import build_comparator
from nora.comparison.models import ComparisonResult, RecallComparator
from nora.documents.repository import DocumentRepository, SqlDocumentRepository
from nora.revision.completion import CompletionResult, CompletionService
from nora.revision.errors import DocumentNotFoundError, SessionValidationError
from nora.revision.iteration import AdvanceResult, IterationController
from nora.revision.orchestrator import ComparisonOrchestrator
from nora.revision.phase_controller import PhaseController
from nora.revision.phases import CustomSettings, RequirementLevel, RevisionPhase
from nora.revision.recall import RecallRecorder
from nora.revision.store import RevisionSessionState, RevisionSessionStore


@dataclass(frozen=True)
class SessionLookup:
    """Result of reading the active session; expired means it was just cleaned up."""

    session: RevisionSessionState | None
    expired: bool = False


class RevisionService:
    """
    Facade over the revision components.

    Args:
        store: Session store (built from session_factory/clock when omitted)
        documents: Document repository (SQL-backed when omitted)
        comparator: AI comparator (built from settings on first comparison when omitted)
        settings: Application settings
        clock: Callable returning the current naive-UTC time
        session_factory: SQLAlchemy sessionmaker for the default store/repository
    """

    def __init__(
        self,
        store: RevisionSessionStore | None = None,
        documents: DocumentRepository | None = None,
        comparator: RecallComparator | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        session_factory: sessionmaker | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or RevisionSessionStore(
            session_factory=session_factory,
            clock=clock,
            start_retry_attempts=self.settings.revision_start_retry_attempts,
        )
        self.documents = documents or SqlDocumentRepository(session_factory)
        self._comparator = comparator
        self._orchestrator: ComparisonOrchestrator | None = None

        self.phases = PhaseController(
            self.store,
            max_iterations=self.settings.revision_max_iterations,
            default_loop_seconds=self.settings.revision_default_loop_seconds,
        )
        self.recall = RecallRecorder(self.store, min_length=self.settings.revision_min_recall_length)
        self.completion = CompletionService(self.store, self.documents)
        self.iterations = IterationController(
            self.store,
            self.completion,
            max_iterations=self.settings.revision_max_iterations,
            default_loop_seconds=self.settings.revision_default_loop_seconds,
        )

    @property
    def comparator(self) -> RecallComparator:
        """Lazy-load the configured comparator."""
        if self._comparator is None:
            self._comparator = build_comparator(self.settings)
        return self._comparator

    @property
    def orchestrator(self) -> ComparisonOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = ComparisonOrchestrator(self.store, self.documents, self.comparator)
        return self._orchestrator

    # ========================================
    # Operations
    # ========================================

    def get_active_session(self, user_id: int, document_id: int) -> SessionLookup:
        """
        Read the active session, applying lazy expiration.

        An expired session is deleted (as if stopped) and reported as absent.
        """
        session = self.store.get(user_id, document_id)
        if session is None:
            return SessionLookup(session=None)

        if session.is_expired(self.store.now(), self.settings.revision_expiry_seconds):
            self.completion.stop(user_id, document_id)
            logger.info(f"Revision session expired for user={user_id} document={document_id}")
            return SessionLookup(session=None, expired=True)

        return SessionLookup(session=session)

    def start_session(
        self,
        user_id: int,
        document_id: int,
        requirement_level: RequirementLevel | str | None = None,
        custom_settings: CustomSettings | Mapping[str, Any] | None = None,
    ) -> RevisionSessionState:
        """
        Start a fresh session, superseding any existing one for the pair.

        Raises:
            DocumentNotFoundError: document absent or owned by someone else
            SessionValidationError: unknown level, or bad/missing custom settings
        """
        level = self._parse_level(requirement_level)
        settings = self._parse_custom_settings(level, custom_settings)

        if self.documents.get_summary_and_instructions(document_id, user_id) is None:
            raise DocumentNotFoundError(document_id)

        return self.store.start(
            user_id,
            document_id,
            requirement_level=level,
            custom_settings=settings,
            loop_time_remaining=self.settings.revision_default_loop_seconds,
        )

    def sync_session(
        self,
        user_id: int,
        document_id: int,
        phase: RevisionPhase | str,
        study_time_remaining: int | None,
        pause_time_remaining: int | None,
        loop_time_remaining: int | None,
        current_iteration: int,
    ) -> None:
        """Checkpoint phase, timers and iteration."""
        self.phases.sync(
            user_id,
            document_id,
            phase=phase,
            study_time_remaining=study_time_remaining,
            pause_time_remaining=pause_time_remaining,
            loop_time_remaining=loop_time_remaining,
            current_iteration=current_iteration,
        )

    def submit_recall(self, user_id: int, document_id: int, text: str | None) -> None:
        """Store the recall text (at least 10 characters once trimmed)."""
        self.recall.save_recall(user_id, document_id, text)

    def run_comparison(self, user_id: int, document_id: int) -> ComparisonResult:
        """Compare the stored recall with the document summary."""
        return self.orchestrator.compare(user_id, document_id)

    def advance_iteration(self, user_id: int, document_id: int) -> AdvanceResult:
        """Loop back to RECALL, or force-complete past the iteration bound."""
        return self.iterations.advance(user_id, document_id)

    def complete_session(self, user_id: int, document_id: int) -> CompletionResult:
        """Complete the session and record the mastery score."""
        return self.completion.complete(user_id, document_id)

    def stop_session(self, user_id: int, document_id: int) -> None:
        """Cancel the session without recording a completion."""
        self.completion.stop(user_id, document_id)

    def get_completion_count(self, user_id: int, document_id: int) -> int:
        return self.store.count_completions(user_id, document_id)

    def purge_expired_sessions(self) -> int:
        """Delete all expired sessions (storage hygiene only)."""
        return self.store.purge_expired(self.settings.revision_expiry_seconds)

    # ========================================
    # Input parsing
    # ========================================

    def _parse_level(self, value: RequirementLevel | str | None) -> RequirementLevel:
        if value is None or value == "":
            return RequirementLevel(self.settings.revision_default_level)
        try:
            return RequirementLevel(value)
        except ValueError as e:
            raise SessionValidationError(f"Unknown requirement level: {value!r}") from e

    @staticmethod
    def _parse_custom_settings(
        level: RequirementLevel,
        value: CustomSettings | Mapping[str, Any] | None,
    ) -> CustomSettings | None:
        if level != RequirementLevel.CUSTOM:
            if value is not None:
                logger.debug(f"Ignoring custom settings for requirement level '{level.value}'")
            return None

        if value is None:
            raise SessionValidationError("Custom requirement level needs custom settings")
        if isinstance(value, CustomSettings):
            return value
        try:
            return CustomSettings.model_validate(dict(value))
        except (ValidationError, TypeError, ValueError) as e:
            raise SessionValidationError(f"Invalid custom settings: {e}") from e
