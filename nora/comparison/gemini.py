"""
Gemini-backed recall comparator.

The summary is segmented server-side and the model only returns which
numbered segments the recall covers. Any segment the model does not report
as understood is classified missing, so the result is exhaustive and
disjoint whatever the model answers.
"""

from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

from config import get_settings
from nora.comparison.models import (
    DEFAULT_FEEDBACK,
    ComparisonResult,
    MissingConcept,
    MissingReason,
    UnderstoodConcept,
)
from nora.comparison.segments import Segment, number_segments, split_into_segments
from nora.revision.errors import ComparatorError
from nora.revision.phases import CustomSettings, RequirementLevel, effective_thresholds
from nora.revision.scoring import percent_half_up

SYSTEM_PROMPT = """You are a teacher checking whether a student understood their course.

You receive a numbered list of segments from the student's course summary and
the student's recall, written or dictated from memory. For EVERY numbered
segment, decide whether the recall expresses the same idea.

A segment is UNDERSTOOD when:
- The recall expresses the SAME IDEA, even in different words
- Familiar vocabulary, simplifications and abbreviations are accepted (O2 = oxygen)
- The meaning is correct even if the form differs

A segment is NOT UNDERSTOOD when:
- The idea does not appear in the recall at all (reason "absent")
- The idea appears only partially (reason "incomplete")
- A fact, figure or definition is wrong (reason "factual_error")
- The idea is stated with the opposite meaning (reason "contradiction")

Be strict about the presence of ideas and tolerant about wording.
Write the feedback in the language of the recall: one short, encouraging sentence."""


class GeminiRecallComparator:
    """
    Compare recalls with Gemini.

    Args:
        api_key: Gemini API key (defaults to settings)
        model_name: Gemini model name (defaults to settings)
        timeout_seconds: Upper bound for the single model call
        model: Pre-built GenerativeModel-like object (tests, custom clients)
    """

    def __init__(
        self,
        api_key: str | None = None,
        model_name: str | None = None,
        timeout_seconds: float | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        model: Any | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.gemini_api_key
        self.model_name = model_name or settings.comparator_model
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.comparator_timeout_seconds
        )
        self.temperature = temperature if temperature is not None else settings.comparator_temperature
        self.max_output_tokens = (
            max_output_tokens
            if max_output_tokens is not None
            else settings.comparator_max_output_tokens
        )
        self._model = model

    @property
    def model(self):
        """Lazy-load the Gemini model."""
        if self._model is None:
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(
                model_name=self.model_name,
                system_instruction=SYSTEM_PROMPT,
            )
        return self._model

    def compare(
        self,
        original_summary: str,
        user_recall: str,
        specific_instructions: str | None = None,
        requirement_level: RequirementLevel = RequirementLevel.INTERMEDIATE,
        custom_settings: CustomSettings | None = None,
    ) -> ComparisonResult:
        """Classify every summary segment as understood or missing."""
        segments = split_into_segments(original_summary)
        logger.info(
            f"Comparing recall ({len(user_recall)} chars) against {len(segments)} segment(s)"
        )

        if not segments:
            return ComparisonResult(overall_score=0, feedback=DEFAULT_FEEDBACK)

        prompt = self.build_prompt(
            segments,
            user_recall,
            specific_instructions=specific_instructions,
            requirement_level=requirement_level,
            custom_settings=custom_settings,
        )
        raw = self._generate(prompt)
        data = self._parse_response(raw)
        result = self.classify(segments, data)

        logger.info(
            f"Comparison done: {len(result.understood_concepts)}/{len(segments)} understood "
            f"(score {result.overall_score}%)"
        )
        return result

    def build_prompt(
        self,
        segments: list[Segment],
        user_recall: str,
        specific_instructions: str | None = None,
        requirement_level: RequirementLevel = RequirementLevel.INTERMEDIATE,
        custom_settings: CustomSettings | None = None,
    ) -> str:
        """Build the comparison prompt."""
        thresholds = effective_thresholds(requirement_level, custom_settings)
        prompt_parts = [
            f'SUMMARY SEGMENTS (numbered 1 to {len(segments)}):\n"""\n{number_segments(segments)}\n"""',
            f'\nSTUDENT RECALL:\n"""\n{user_recall}\n"""',
        ]

        if specific_instructions:
            prompt_parts.append(
                f'\nMANDATORY ELEMENTS (must be present):\n"""\n{specific_instructions}\n"""'
            )

        prompt_parts.append(
            f"""
STRICTNESS ({requirement_level.value}), minimum precision required:
- definitions: {thresholds.definitions}%
- concepts: {thresholds.concepts}%
- figures and data: {thresholds.data}%

Return JSON only:
{{
  "understood": [{{"id": 1, "userText": "the student's words for this idea"}}],
  "notUnderstood": [{{"id": 2, "reason": "absent" | "incomplete" | "factual_error" | "contradiction"}}],
  "feedback": "short encouraging message"
}}

Every number from 1 to {len(segments)} must appear exactly once, in "understood" OR "notUnderstood"."""
        )

        return "\n".join(prompt_parts)

    def _generate(self, prompt: str) -> str:
        """Call the model once; every failure becomes a ComparatorError."""
        try:
            response = self.model.generate_content(
                prompt,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_output_tokens,
                    "response_mime_type": "application/json",
                },
                request_options={"timeout": self.timeout_seconds},
            )
            text = response.text
        except Exception as e:  # Intentionally broad - SDK, transport and safety-block errors
            logger.error(f"Gemini comparison call failed: {e}")
            raise ComparatorError() from e

        if not text:
            logger.error("Empty response from Gemini comparator")
            raise ComparatorError()
        return text

    @staticmethod
    def _parse_response(raw: str) -> dict[str, Any]:
        """Extract the JSON object from the model response."""
        json_match = re.search(r"\{[\s\S]*\}", raw)
        if not json_match:
            logger.error(f"No JSON found in comparator response: {raw[:200]!r}")
            raise ComparatorError()
        try:
            data = json.loads(json_match.group(0))
        except json.JSONDecodeError as e:
            logger.error(f"Malformed comparator JSON: {e}")
            raise ComparatorError() from e
        if not isinstance(data, dict):
            raise ComparatorError()
        return data

    @staticmethod
    def classify(segments: list[Segment], data: dict[str, Any]) -> ComparisonResult:
        """Map the model's segment ids back onto the segments."""
        understood = _index_entries(data.get("understood"), "userText")
        not_understood = _index_entries(data.get("notUnderstood"), "reason")

        understood_concepts: list[UnderstoodConcept] = []
        missing_concepts: list[MissingConcept] = []

        for segment in segments:
            if segment.id in understood:
                understood_concepts.append(
                    UnderstoodConcept(
                        concept=segment.label,
                        user_text=understood[segment.id] or "",
                        source_text=segment.text,
                    )
                )
            else:
                # Not listed as understood, even if the model forgot it entirely
                missing_concepts.append(
                    MissingConcept(
                        concept=segment.label,
                        source_text=segment.text,
                        reason=_reason(not_understood.get(segment.id)),
                    )
                )

        feedback = data.get("feedback")
        return ComparisonResult(
            understood_concepts=understood_concepts,
            missing_concepts=missing_concepts,
            overall_score=percent_half_up(len(understood_concepts), len(segments)),
            feedback=feedback if isinstance(feedback, str) and feedback.strip() else DEFAULT_FEEDBACK,
        )


def _index_entries(entries: Any, detail_key: str) -> dict[int, str | None]:
    """Accept either [1, 2] or [{"id": 1, ...}] and return id -> detail."""
    indexed: dict[int, str | None] = {}
    if not isinstance(entries, list):
        return indexed

    for entry in entries:
        if isinstance(entry, dict):
            segment_id, detail = entry.get("id"), entry.get(detail_key)
        else:
            segment_id, detail = entry, None
        try:
            segment_id = int(segment_id)
        except (TypeError, ValueError):
            continue
        if segment_id not in indexed:
            indexed[segment_id] = detail if isinstance(detail, str) else None
    return indexed


def _reason(value: str | None) -> MissingReason:
    if not value:
        return MissingReason.ABSENT
    try:
        return MissingReason(value.strip().lower().replace("-", "_"))
    except ValueError:
        return MissingReason.ABSENT
