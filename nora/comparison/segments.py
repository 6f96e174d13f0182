"""
Server-side segmentation of a summary.

The comparator model only judges numbered segments; the segment text itself
always comes from here, so highlighted source text matches the summary
exactly instead of whatever the model chose to quote.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

SENTENCE_SPLIT_MIN_LINE = 100  # Lines longer than this are split into sentences
MIN_SEGMENT_LENGTH = 15  # Shorter fragments carry no concept of their own

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class Segment:
    """Numbered piece of the summary (ids start at 1)."""

    id: int
    text: str

    @property
    def label(self) -> str:
        return f"Segment {self.id}"


def split_into_segments(text: str | None) -> list[Segment]:
    """
    Split a summary into the segments the comparator evaluates.

    - Escaped newlines are normalised and blank lines dropped
    - "## " section headers are skipped
    - Definition lines ("**Term** : definition") stay whole
    - Lines over 100 chars are split on sentence boundaries
    - Fragments of 15 chars or fewer are ignored
    """
    if not text:
        return []

    normalised = text.replace("\\n", "\n").replace("  \n", "\n")
    pieces: list[str] = []

    for line in normalised.split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("## "):
            continue

        if trimmed.startswith("**") and ":" in trimmed:
            pieces.append(trimmed)
            continue

        if len(trimmed) > SENTENCE_SPLIT_MIN_LINE:
            for sentence in _SENTENCE_BOUNDARY.split(trimmed):
                sentence = sentence.strip()
                if len(sentence) > MIN_SEGMENT_LENGTH:
                    pieces.append(sentence)
        elif len(trimmed) > MIN_SEGMENT_LENGTH:
            pieces.append(trimmed)

    return [Segment(id=index, text=piece) for index, piece in enumerate(pieces, start=1)]


def number_segments(segments: list[Segment]) -> str:
    """Render segments as the numbered list shown to the model."""
    return "\n\n".join(f"[{segment.id}] {segment.text}" for segment in segments)
