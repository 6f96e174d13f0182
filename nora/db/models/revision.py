"""
Revision Session Models.

SQLAlchemy models for the active-recall revision workflow:
- One active session per (user, document), superseded on every start
- Append-only completion history used for completion counters
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RevisionSession(Base):
    """
    Active revision session for one user on one study document.

    Timers are client-driven countdowns checkpointed for resume; only
    phase_started_at is server-authoritative. The version column is the
    optimistic-concurrency counter: a write against a stale version fails
    instead of overwriting a concurrent change.
    """

    __tablename__ = "revision_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    document_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Strictness
    requirement_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="intermediate"
    )  # 'beginner', 'intermediate', 'expert', 'custom'
    custom_settings: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    # Workflow state
    phase: Mapped[str] = mapped_column(String(20), nullable=False, default="study")
    phase_started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Client countdowns (seconds)
    study_time_remaining: Mapped[int | None] = mapped_column(Integer)
    pause_time_remaining: Mapped[int | None] = mapped_column(Integer)
    loop_time_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=120)

    current_iteration: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Recall + comparison output
    user_recall: Mapped[str | None] = mapped_column(Text)
    understood_concepts: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)
    missing_concepts: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON)

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_activity_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "document_id", name="uq_revision_session_user_document"),
        Index("idx_revision_sessions_last_activity", "last_activity_at"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<RevisionSession user={self.user_id} document={self.document_id} "
            f"phase={self.phase} iteration={self.current_iteration}>"
        )


class RevisionCompletion(Base):
    """
    Completed revision (normal or forced). Written once, never updated.

    iterations_count is the last committed iteration of the session.
    """

    __tablename__ = "revision_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    document_id: Mapped[int] = mapped_column(Integer, nullable=False)
    iterations_count: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_revision_completions_user_document", "user_id", "document_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<RevisionCompletion user={self.user_id} document={self.document_id} "
            f"iterations={self.iterations_count}>"
        )
