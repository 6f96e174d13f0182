"""Study documents ("syntheses") as seen by the revision engine."""

from .repository import DocumentContent, DocumentRepository, SqlDocumentRepository

__all__ = ["DocumentContent", "DocumentRepository", "SqlDocumentRepository"]
