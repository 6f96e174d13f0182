# SQLAlchemy models
from .base import Base
from .document import StudyDocument
from .revision import RevisionCompletion, RevisionSession

__all__ = [
    # Base
    "Base",
    # Documents
    "StudyDocument",
    # Revision
    "RevisionSession",
    "RevisionCompletion",
]
