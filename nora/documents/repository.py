"""
Study document access for the revision engine.

The engine only needs two things from the document store: the summary with
its mandatory-elements annotation, and a place to record the mastery score
when a revision is completed. Documents are always scoped by owner.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from nora.db.database import session_scope
from nora.db.models import StudyDocument


@dataclass(frozen=True)
class DocumentContent:
    """Summary and instructions of a study document."""

    document_id: int
    summary_content: str
    specific_instructions: str | None = None


class DocumentRepository(Protocol):
    """Narrow document interface used by the revision engine."""

    def get_summary_and_instructions(
        self, document_id: int, user_id: int
    ) -> DocumentContent | None:
        """Return the summary of a document owned by user_id, or None."""
        ...

    def set_mastery_score(
        self, document_id: int, user_id: int, score: int, db: Session | None = None
    ) -> bool:
        """
        Record the mastery score; False when the document is not found.

        With db, the write joins that open transaction instead of committing
        on its own.
        """
        ...


class SqlDocumentRepository:
    """DocumentRepository over the study_documents table."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self._session_factory = session_factory

    def get_summary_and_instructions(
        self, document_id: int, user_id: int
    ) -> DocumentContent | None:
        with session_scope(self._session_factory) as db:
            document = self._find(db, document_id, user_id)
            if document is None:
                return None
            return DocumentContent(
                document_id=document.id,
                summary_content=document.summary_content or "",
                specific_instructions=document.specific_instructions or None,
            )

    def set_mastery_score(
        self, document_id: int, user_id: int, score: int, db: Session | None = None
    ) -> bool:
        if not 0 <= score <= 100:
            raise ValueError(f"Mastery score must be between 0 and 100, got {score}")

        if db is not None:
            return self._write_mastery(db, document_id, user_id, score)
        with session_scope(self._session_factory) as db:
            return self._write_mastery(db, document_id, user_id, score)

    def create(
        self,
        user_id: int,
        title: str,
        summary_content: str,
        specific_instructions: str | None = None,
    ) -> int:
        """Insert a document and return its id (imports, fixtures)."""
        with session_scope(self._session_factory) as db:
            document = StudyDocument(
                user_id=user_id,
                title=title,
                summary_content=summary_content,
                specific_instructions=specific_instructions,
            )
            db.add(document)
            db.flush()
            return document.id

    def get_mastery_score(self, document_id: int, user_id: int) -> int | None:
        with session_scope(self._session_factory) as db:
            document = self._find(db, document_id, user_id)
            return document.mastery_score if document else None

    def _write_mastery(self, db: Session, document_id: int, user_id: int, score: int) -> bool:
        document = self._find(db, document_id, user_id)
        if document is None:
            return False
        document.mastery_score = score
        logger.debug(f"Mastery score {score}% staged for document={document_id}")
        return True

    @staticmethod
    def _find(db: Session, document_id: int, user_id: int) -> StudyDocument | None:
        return db.scalar(
            select(StudyDocument).where(
                StudyDocument.id == document_id,
                StudyDocument.user_id == user_id,
            )
        )
