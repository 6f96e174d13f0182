"""
Session completion and mastery.

complete() is the explicit, successful end of a revision: it scores the last
comparison, records the score on the document, appends a completion and
removes the session. force_complete() is what the iteration bound triggers:
same completion record, no mastery score. stop() cancels without a record.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy.orm import Session

from nora.documents.repository import DocumentRepository
from nora.revision.errors import DocumentNotFoundError, SessionNotFoundError
from nora.revision.scoring import compute_mastery_score
from nora.revision.store import RevisionSessionStore


@dataclass(frozen=True)
class CompletionResult:
    """Outcome returned to the caller of complete()."""

    iterations_count: int
    mastery_score: int | None = None


class CompletionService:
    """Ends revision sessions."""

    def __init__(self, store: RevisionSessionStore, documents: DocumentRepository):
        self.store = store
        self.documents = documents

    def complete(self, user_id: int, document_id: int) -> CompletionResult:
        """
        Complete the session and record its mastery score.

        The score, the completion record and the session removal commit
        together; any failure leaves all three untouched.

        Raises:
            SessionNotFoundError: no active session
            DocumentNotFoundError: the document disappeared; session kept
            ConcurrentModificationError: the session changed after it was scored
        """
        session = self.store.get(user_id, document_id)
        if session is None:
            raise SessionNotFoundError(user_id, document_id)

        mastery_score = compute_mastery_score(session.understood_concepts, session.missing_concepts)

        def record_mastery(db: Session) -> None:
            if not self.documents.set_mastery_score(document_id, user_id, mastery_score, db=db):
                raise DocumentNotFoundError(document_id)

        record = self.store.complete(
            user_id,
            document_id,
            expected={"version": session.version},
            on_complete=record_mastery,
        )
        if record is None:
            raise SessionNotFoundError(user_id, document_id)

        logger.info(
            f"Mastery {mastery_score}% for user={user_id} document={document_id} "
            f"({len(session.understood_concepts)} understood, {len(session.missing_concepts)} missing)"
        )
        return CompletionResult(iterations_count=record.iterations_count, mastery_score=mastery_score)

    def force_complete(
        self, user_id: int, document_id: int, expected_version: int | None = None
    ) -> CompletionResult:
        """
        Complete without scoring (iteration bound reached).

        Raises:
            SessionNotFoundError: no active session
            ConcurrentModificationError: the session version no longer matches
        """
        expected = {"version": expected_version} if expected_version is not None else None
        record = self.store.complete(user_id, document_id, expected=expected)
        if record is None:
            raise SessionNotFoundError(user_id, document_id)
        logger.info(
            f"Revision force-completed for user={user_id} document={document_id} "
            f"at iteration {record.iterations_count}"
        )
        return CompletionResult(iterations_count=record.iterations_count)

    def stop(self, user_id: int, document_id: int) -> bool:
        """Cancel the session; no completion is recorded. Idempotent."""
        stopped = self.store.delete(user_id, document_id)
        if stopped:
            logger.info(f"Revision stopped for user={user_id} document={document_id}")
        return stopped
