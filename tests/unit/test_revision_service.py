"""
Unit tests for the revision service workflow.

Covers starting, comparison orchestration, the bounded iteration loop,
completion/mastery, stopping and lazy expiration.
"""

import pytest

from conftest import OTHER_USER_ID, SAMPLE_INSTRUCTIONS, SAMPLE_SUMMARY, USER_ID, make_result
from nora.revision.errors import (
    ComparatorError,
    ConcurrentModificationError,
    DocumentNotFoundError,
    InvalidPhaseTransitionError,
    NothingToCompareError,
    RecallValidationError,
    SessionNotFoundError,
    SessionValidationError,
)
from nora.revision.phases import CustomSettings, RequirementLevel, RevisionPhase

RECALL = "J'ai compris que les plantes captent la lumiere"


def set_concepts(store, document_id, understood, missing):
    store.update(
        USER_ID,
        document_id,
        understood_concepts=[{"concept": f"u{i}"} for i in range(understood)],
        missing_concepts=[{"concept": f"m{i}"} for i in range(missing)],
    )


class TestStartSession:
    """Tests for RevisionService.start_session."""

    def test_defaults(self, service, document_id):
        state = service.start_session(USER_ID, document_id)

        assert state.phase == RevisionPhase.STUDY
        assert state.requirement_level == RequirementLevel.INTERMEDIATE
        assert state.custom_settings is None

    def test_unknown_document(self, service):
        with pytest.raises(DocumentNotFoundError):
            service.start_session(USER_ID, 999)

    def test_document_of_another_user(self, service, document_id):
        with pytest.raises(DocumentNotFoundError):
            service.start_session(OTHER_USER_ID, document_id)

    def test_unknown_level(self, service, document_id):
        with pytest.raises(SessionValidationError):
            service.start_session(USER_ID, document_id, requirement_level="legendary")

    def test_custom_from_dict(self, service, document_id):
        state = service.start_session(
            USER_ID,
            document_id,
            requirement_level="custom",
            custom_settings={"definitionsThreshold": 60, "conceptsThreshold": 70, "dataThreshold": 80},
        )

        assert state.requirement_level == RequirementLevel.CUSTOM
        assert state.custom_settings == CustomSettings(
            definitions_threshold=60, concepts_threshold=70, data_threshold=80
        )

    def test_custom_without_settings(self, service, document_id):
        with pytest.raises(SessionValidationError):
            service.start_session(USER_ID, document_id, requirement_level="custom")

    def test_custom_out_of_range(self, service, document_id):
        with pytest.raises(SessionValidationError):
            service.start_session(
                USER_ID,
                document_id,
                requirement_level="custom",
                custom_settings={"definitionsThreshold": 150, "conceptsThreshold": 70, "dataThreshold": 80},
            )

    def test_settings_ignored_for_preset(self, service, document_id):
        state = service.start_session(
            USER_ID,
            document_id,
            requirement_level="beginner",
            custom_settings={"definitionsThreshold": 60, "conceptsThreshold": 70, "dataThreshold": 80},
        )

        assert state.custom_settings is None

    def test_restart_discards_progress(self, service, store, document_id):
        service.start_session(USER_ID, document_id)
        service.submit_recall(USER_ID, document_id, RECALL)
        service.run_comparison(USER_ID, document_id)
        store.update(USER_ID, document_id, current_iteration=4)

        state = service.start_session(USER_ID, document_id)

        assert state.current_iteration == 1
        assert state.user_recall is None
        assert state.understood_concepts == []
        assert state.missing_concepts == []


class TestRunComparison:
    """Tests for comparison orchestration."""

    def test_stores_result_and_keeps_phase(self, service, comparator, document_id):
        service.start_session(USER_ID, document_id)
        service.submit_recall(USER_ID, document_id, RECALL)

        result = service.run_comparison(USER_ID, document_id)

        assert len(result.understood_concepts) == 2
        assert len(result.missing_concepts) == 1
        session = service.get_active_session(USER_ID, document_id).session
        assert session.phase == RevisionPhase.ANALYZING
        assert len(session.understood_concepts) == 2
        assert session.missing_concepts[0]["concept"] == "Segment 3"

        call = comparator.calls[0]
        assert call["original_summary"] == SAMPLE_SUMMARY
        assert call["user_recall"] == RECALL
        assert call["specific_instructions"] == SAMPLE_INSTRUCTIONS
        assert call["requirement_level"] == RequirementLevel.INTERMEDIATE

    def test_no_recall(self, service, comparator, document_id):
        service.start_session(USER_ID, document_id)

        with pytest.raises(NothingToCompareError):
            service.run_comparison(USER_ID, document_id)
        assert comparator.calls == []

    def test_no_session(self, service, document_id):
        with pytest.raises(NothingToCompareError):
            service.run_comparison(USER_ID, document_id)

    def test_unknown_document(self, service):
        with pytest.raises(DocumentNotFoundError):
            service.run_comparison(USER_ID, 999)

    def test_comparator_failure_writes_nothing(self, service, comparator, store, document_id):
        service.start_session(USER_ID, document_id)
        service.submit_recall(USER_ID, document_id, RECALL)
        comparator.error = ComparatorError()

        with pytest.raises(ComparatorError):
            service.run_comparison(USER_ID, document_id)

        assert store.get(USER_ID, document_id).understood_concepts == []

    def test_unexpected_comparator_error_wrapped(self, service, comparator, document_id):
        service.start_session(USER_ID, document_id)
        service.submit_recall(USER_ID, document_id, RECALL)
        comparator.error = KeyError("boom")

        with pytest.raises(ComparatorError):
            service.run_comparison(USER_ID, document_id)

    def test_recall_replaced_during_comparison(self, service, comparator, store, document_id):
        service.start_session(USER_ID, document_id)
        service.submit_recall(USER_ID, document_id, RECALL)
        comparator.before_return = lambda: store.update(
            USER_ID, document_id, user_recall="A newer recall from another tab"
        )

        with pytest.raises(ConcurrentModificationError):
            service.run_comparison(USER_ID, document_id)

        assert store.get(USER_ID, document_id).understood_concepts == []

    def test_session_stopped_during_comparison(self, service, comparator, store, document_id):
        service.start_session(USER_ID, document_id)
        service.submit_recall(USER_ID, document_id, RECALL)
        comparator.before_return = lambda: store.delete(USER_ID, document_id)

        with pytest.raises(SessionNotFoundError):
            service.run_comparison(USER_ID, document_id)


class TestAdvanceIteration:
    """Tests for the bounded recall loop."""

    def test_three_to_four(self, service, store, clock, document_id):
        service.start_session(USER_ID, document_id)
        store.update(
            USER_ID,
            document_id,
            phase=RevisionPhase.RECALL,
            current_iteration=3,
            study_time_remaining=0,
            pause_time_remaining=15,
            loop_time_remaining=40,
        )
        clock.advance(30)

        result = service.advance_iteration(USER_ID, document_id)

        assert result.to_dict() == {"iteration": 4}
        session = store.get(USER_ID, document_id)
        assert session.current_iteration == 4
        assert session.phase == RevisionPhase.RECALL
        assert session.phase_started_at == clock.current
        assert session.loop_time_remaining == 120
        assert session.study_time_remaining == 0
        assert session.pause_time_remaining == 15

    def test_keeps_previous_recall_and_concepts(self, service, store, document_id):
        service.start_session(USER_ID, document_id)
        service.submit_recall(USER_ID, document_id, RECALL)
        service.run_comparison(USER_ID, document_id)

        service.advance_iteration(USER_ID, document_id)

        session = store.get(USER_ID, document_id)
        assert session.user_recall == RECALL
        assert len(session.understood_concepts) == 2

    def test_forced_completion_at_eight(self, service, store, documents, document_id):
        service.start_session(USER_ID, document_id)
        store.update(USER_ID, document_id, current_iteration=8)
        set_concepts(store, document_id, 3, 1)

        result = service.advance_iteration(USER_ID, document_id)

        assert result.to_dict() == {"completed": True, "iterations_count": 8}
        assert store.get(USER_ID, document_id) is None
        assert service.get_completion_count(USER_ID, document_id) == 1
        # Forced completion records no mastery score
        assert documents.get_mastery_score(document_id, USER_ID) is None

    def test_missing_session(self, service, document_id):
        with pytest.raises(SessionNotFoundError):
            service.advance_iteration(USER_ID, document_id)

    @pytest.mark.parametrize("phase", [RevisionPhase.STOPPED, RevisionPhase.COMPLETED])
    def test_terminal_phase_not_reopened(self, service, store, document_id, phase):
        service.start_session(USER_ID, document_id)
        store.update(USER_ID, document_id, phase=phase, current_iteration=3)

        with pytest.raises(InvalidPhaseTransitionError):
            service.advance_iteration(USER_ID, document_id)

        session = store.get(USER_ID, document_id)
        assert session.phase == phase
        assert session.current_iteration == 3

    def test_terminal_phase_at_bound_not_completed(self, service, store, document_id):
        service.start_session(USER_ID, document_id)
        store.update(USER_ID, document_id, phase=RevisionPhase.STOPPED, current_iteration=8)

        with pytest.raises(InvalidPhaseTransitionError):
            service.advance_iteration(USER_ID, document_id)

        assert store.get(USER_ID, document_id) is not None
        assert service.get_completion_count(USER_ID, document_id) == 0


class TestCompleteSession:
    """Tests for completion and mastery."""

    def test_mastery_75(self, service, store, documents, document_id):
        service.start_session(USER_ID, document_id)
        set_concepts(store, document_id, 3, 1)

        result = service.complete_session(USER_ID, document_id)

        assert result.mastery_score == 75
        assert result.iterations_count == 1
        assert documents.get_mastery_score(document_id, USER_ID) == 75
        assert store.get(USER_ID, document_id) is None
        assert service.get_completion_count(USER_ID, document_id) == 1

    def test_mastery_zero_without_comparison(self, service, documents, document_id):
        service.start_session(USER_ID, document_id)

        result = service.complete_session(USER_ID, document_id)

        assert result.mastery_score == 0
        assert documents.get_mastery_score(document_id, USER_ID) == 0

    def test_uses_iteration_count(self, service, store, document_id):
        service.start_session(USER_ID, document_id)
        service.advance_iteration(USER_ID, document_id)
        service.advance_iteration(USER_ID, document_id)

        assert service.complete_session(USER_ID, document_id).iterations_count == 3

    def test_missing_session(self, service, document_id):
        with pytest.raises(SessionNotFoundError):
            service.complete_session(USER_ID, document_id)

    def test_document_removed_keeps_session(self, service, store, session_factory, document_id):
        from nora.db.models import StudyDocument

        service.start_session(USER_ID, document_id)
        with session_factory() as db:
            db.delete(db.get(StudyDocument, document_id))
            db.commit()

        with pytest.raises(DocumentNotFoundError):
            service.complete_session(USER_ID, document_id)

        assert store.get(USER_ID, document_id) is not None
        assert service.get_completion_count(USER_ID, document_id) == 0

    def test_stopped_before_commit_writes_nothing(
        self, service, store, documents, monkeypatch, document_id
    ):
        service.start_session(USER_ID, document_id)
        set_concepts(store, document_id, 3, 1)
        read_session = store.get

        def read_then_stop(user_id, doc_id):
            snapshot = read_session(user_id, doc_id)
            store.delete(user_id, doc_id)
            return snapshot

        monkeypatch.setattr(store, "get", read_then_stop)

        with pytest.raises(SessionNotFoundError):
            service.complete_session(USER_ID, document_id)

        assert documents.get_mastery_score(document_id, USER_ID) is None
        assert service.get_completion_count(USER_ID, document_id) == 0

    def test_changed_before_commit_writes_nothing(
        self, service, store, documents, monkeypatch, document_id
    ):
        service.start_session(USER_ID, document_id)
        set_concepts(store, document_id, 3, 1)
        read_session = store.get

        def read_then_touch(user_id, doc_id):
            snapshot = read_session(user_id, doc_id)
            store.touch(user_id, doc_id)
            return snapshot

        monkeypatch.setattr(store, "get", read_then_touch)

        with pytest.raises(ConcurrentModificationError):
            service.complete_session(USER_ID, document_id)

        monkeypatch.undo()
        assert documents.get_mastery_score(document_id, USER_ID) is None
        assert store.get(USER_ID, document_id) is not None
        assert service.get_completion_count(USER_ID, document_id) == 0


class TestStopSession:
    """Tests for stopping."""

    def test_stop_records_no_completion(self, service, store, documents, document_id):
        service.start_session(USER_ID, document_id)
        set_concepts(store, document_id, 2, 2)

        service.stop_session(USER_ID, document_id)

        assert store.get(USER_ID, document_id) is None
        assert service.get_completion_count(USER_ID, document_id) == 0
        assert documents.get_mastery_score(document_id, USER_ID) is None

    def test_stop_is_idempotent(self, service, document_id):
        service.stop_session(USER_ID, document_id)
        service.stop_session(USER_ID, document_id)


class TestExpiration:
    """Tests for lazy expiration on read."""

    def test_active_within_window(self, service, clock, document_id):
        service.start_session(USER_ID, document_id)
        clock.advance(900)

        lookup = service.get_active_session(USER_ID, document_id)

        assert lookup.session is not None
        assert lookup.expired is False

    def test_expired_session_removed(self, service, store, clock, document_id):
        service.start_session(USER_ID, document_id)
        clock.advance(901)

        lookup = service.get_active_session(USER_ID, document_id)

        assert lookup.session is None
        assert lookup.expired is True
        assert store.get(USER_ID, document_id) is None
        assert service.get_completion_count(USER_ID, document_id) == 0

    def test_activity_extends_window(self, service, clock, document_id):
        service.start_session(USER_ID, document_id)
        clock.advance(600)
        service.sync_session(USER_ID, document_id, "study", 100, None, None, 1)
        clock.advance(600)

        assert service.get_active_session(USER_ID, document_id).session is not None

    def test_no_session(self, service, document_id):
        lookup = service.get_active_session(USER_ID, document_id)

        assert lookup.session is None
        assert lookup.expired is False

    def test_purge_expired(self, service, clock, document_id):
        service.start_session(USER_ID, document_id)
        clock.advance(1000)

        assert service.purge_expired_sessions() == 1
        assert service.purge_expired_sessions() == 0


class TestEndToEnd:
    """Full revision from start to completion."""

    def test_single_iteration_revision(self, service, comparator, documents, clock, document_id):
        comparator.result = make_result(2, 1)

        service.start_session(USER_ID, document_id, requirement_level="intermediate")
        clock.advance(5)
        service.sync_session(USER_ID, document_id, "study", 295, None, 120, 1)
        clock.advance(295)
        service.sync_session(USER_ID, document_id, "recall", 0, None, 120, 1)
        clock.advance(60)
        service.submit_recall(USER_ID, document_id, "J'ai compris que la lumiere fait l'energie")
        result = service.run_comparison(USER_ID, document_id)
        completion = service.complete_session(USER_ID, document_id)

        assert len(result.understood_concepts) == 2
        assert len(result.missing_concepts) == 1
        assert completion.iterations_count == 1
        assert completion.mastery_score == 67
        assert documents.get_mastery_score(document_id, USER_ID) == 67
        assert service.get_completion_count(USER_ID, document_id) == 1
        assert service.get_active_session(USER_ID, document_id).session is None

    def test_recall_too_short_keeps_session(self, service, document_id):
        service.start_session(USER_ID, document_id)

        with pytest.raises(RecallValidationError):
            service.submit_recall(USER_ID, document_id, " 123456789 ")

        assert service.get_active_session(USER_ID, document_id).session.phase == RevisionPhase.STUDY
