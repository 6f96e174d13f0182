from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class StudyDocument(Base):
    """
    Study document ("synthese"): imported material and its generated summary.

    The revision engine only reads the summary and instructions and writes
    mastery_score when a session is completed.
    """

    __tablename__ = "study_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    summary_content: Mapped[str | None] = mapped_column(Text)
    specific_instructions: Mapped[str | None] = mapped_column(Text)  # Elements marked as mandatory at import
    mastery_score: Mapped[int | None] = mapped_column(Integer)  # 0-100, last completed revision

    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<StudyDocument id={self.id} user={self.user_id} title={self.title!r}>"
