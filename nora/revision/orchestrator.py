"""
Comparison orchestration.

Loads the document summary and the stored recall, calls the comparator once,
and stores the concept classification on the session. The comparator call
runs outside any transaction; the result is written only if the session
still holds the recall that was compared.
"""

from __future__ import annotations

from loguru import logger

from nora.comparison.models import ComparisonResult, RecallComparator
from nora.documents.repository import DocumentRepository
from nora.revision.errors import (
    ComparatorError,
    DocumentNotFoundError,
    NothingToCompareError,
    SessionNotFoundError,
)
from nora.revision.store import RevisionSessionStore


class ComparisonOrchestrator:
    """Runs one AI comparison for the active session."""

    def __init__(
        self,
        store: RevisionSessionStore,
        documents: DocumentRepository,
        comparator: RecallComparator,
    ):
        self.store = store
        self.documents = documents
        self.comparator = comparator

    def compare(self, user_id: int, document_id: int) -> ComparisonResult:
        """
        Compare the stored recall with the document summary.

        The session phase is left unchanged.

        Raises:
            DocumentNotFoundError: document absent or owned by someone else
            NothingToCompareError: no session, or no recall stored yet
            ComparatorError: comparator failed; nothing was written
            ConcurrentModificationError: the recall changed during the call
        """
        document = self.documents.get_summary_and_instructions(document_id, user_id)
        if document is None:
            raise DocumentNotFoundError(document_id)

        session = self.store.get(user_id, document_id)
        if session is None or not session.user_recall:
            raise NothingToCompareError(document_id)

        try:
            result = self.comparator.compare(
                document.summary_content,
                session.user_recall,
                document.specific_instructions,
                session.requirement_level,
                session.custom_settings,
            )
        except ComparatorError:
            raise
        except Exception as e:  # Intentionally broad - any comparator failure is one retryable error
            logger.error(f"Comparator failed for document={document_id}: {e}")
            raise ComparatorError() from e

        try:
            self.store.update(
                user_id,
                document_id,
                expected={"user_recall": session.user_recall},
                understood_concepts=result.understood_payload(),
                missing_concepts=result.missing_payload(),
            )
        except SessionNotFoundError:
            logger.warning(
                f"Revision session for document={document_id} ended during comparison"
            )
            raise

        logger.info(
            f"Comparison stored for user={user_id} document={document_id}: "
            f"{len(result.understood_concepts)} understood, {len(result.missing_concepts)} missing"
        )
        return result
