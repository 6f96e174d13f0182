"""
Revision engine errors.

Every error raised by the engine derives from RevisionError and carries a
category a transport layer can map to a response:

- not_found: no active session, or document absent / owned by someone else
- validation: input violates a constraint (recall too short, bad phase edge)
- precondition_failed: comparison requested before any recall was stored
- upstream: the AI comparator failed; the caller may resubmit
- conflict: a concurrent write changed the session; the caller may retry
"""

from __future__ import annotations


class RevisionError(Exception):
    """Base class for revision engine errors."""

    category = "error"
    retryable = False


class SessionNotFoundError(RevisionError):
    """No active session exists for the (user, document) pair."""

    category = "not_found"

    def __init__(self, user_id: int, document_id: int, expired: bool = False):
        self.user_id = user_id
        self.document_id = document_id
        self.expired = expired
        reason = "expired" if expired else "no active session"
        super().__init__(f"No active revision session for document {document_id} ({reason})")


class DocumentNotFoundError(RevisionError):
    """Study document is absent or not owned by the caller."""

    category = "not_found"

    def __init__(self, document_id: int):
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class SessionValidationError(RevisionError):
    """Supplied session data violates a constraint."""

    category = "validation"


class RecallValidationError(SessionValidationError):
    """Recall text is missing or shorter than the minimum."""

    def __init__(self, min_length: int):
        self.min_length = min_length
        super().__init__(f"Recall must contain at least {min_length} characters")


class InvalidPhaseTransitionError(SessionValidationError):
    """Requested phase is not reachable from the stored phase."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move revision session from '{current}' to '{requested}'")


class NothingToCompareError(RevisionError):
    """Comparison requested but no recall has been submitted."""

    category = "precondition_failed"

    def __init__(self, document_id: int):
        self.document_id = document_id
        super().__init__("No recall to compare")


class ComparatorError(RevisionError):
    """AI comparator failed (transport, timeout or malformed output)."""

    category = "upstream"
    retryable = True

    def __init__(self, message: str = "Comparison failed. Please try again."):
        super().__init__(message)


class ConcurrentModificationError(RevisionError):
    """The session changed underneath the operation."""

    category = "conflict"
    retryable = True
