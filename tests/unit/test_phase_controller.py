"""
Unit tests for phase/timer synchronisation.
"""

import pytest

from conftest import USER_ID
from nora.revision.errors import (
    InvalidPhaseTransitionError,
    SessionNotFoundError,
    SessionValidationError,
)
from nora.revision.phase_controller import PhaseController
from nora.revision.phases import RevisionPhase

DOCUMENT_ID = 1


@pytest.fixture
def controller(store):
    store.start(USER_ID, DOCUMENT_ID)
    return PhaseController(store)


def sync(controller, phase, study=300, pause=None, loop=120, iteration=1):
    return controller.sync(USER_ID, DOCUMENT_ID, phase, study, pause, loop, iteration)


class TestSync:
    """Tests for checkpointing phase and timers."""

    def test_same_phase_twice_keeps_phase_started_at(self, controller, clock):
        first = sync(controller, "study", study=290)
        clock.advance(10)

        second = sync(controller, "study", study=280)

        assert second.phase_started_at == first.phase_started_at
        assert second.study_time_remaining == 280
        assert second.last_activity_at == clock.current

    def test_phase_change_moves_phase_started_at(self, controller, clock):
        first = sync(controller, "study", study=10)
        clock.advance(10)

        second = sync(controller, "pause", study=0, pause=60)

        assert second.phase == RevisionPhase.PAUSE
        assert second.phase_started_at == clock.current
        assert second.phase_started_at != first.phase_started_at

    def test_study_can_jump_to_recall(self, controller):
        state = sync(controller, RevisionPhase.RECALL, study=0)

        assert state.phase == RevisionPhase.RECALL

    def test_loop_timer_defaults(self, controller):
        state = sync(controller, "study", loop=None)

        assert state.loop_time_remaining == 120

    def test_null_study_and_pause_timers(self, controller):
        state = sync(controller, "study", study=None, pause=None)

        assert state.study_time_remaining is None
        assert state.pause_time_remaining is None

    def test_unknown_phase(self, controller):
        with pytest.raises(SessionValidationError):
            sync(controller, "sleeping")

    def test_negative_timer(self, controller):
        with pytest.raises(SessionValidationError):
            sync(controller, "study", study=-1)

    def test_non_integer_timer(self, controller):
        with pytest.raises(SessionValidationError):
            sync(controller, "study", study=12.5)

    def test_unreachable_phase(self, controller):
        with pytest.raises(InvalidPhaseTransitionError):
            sync(controller, "result")

    @pytest.mark.parametrize("iteration", [0, 9])
    def test_iteration_out_of_range(self, controller, iteration):
        with pytest.raises(SessionValidationError):
            sync(controller, "study", iteration=iteration)

    def test_iteration_cannot_go_back(self, controller, store):
        store.update(USER_ID, DOCUMENT_ID, current_iteration=3)

        with pytest.raises(SessionValidationError):
            sync(controller, "study", iteration=2)

    def test_missing_session(self, store):
        controller = PhaseController(store)

        with pytest.raises(SessionNotFoundError):
            sync(controller, "study")

    def test_rejected_sync_writes_nothing(self, controller, store, clock):
        before = store.get(USER_ID, DOCUMENT_ID)
        clock.advance(5)

        with pytest.raises(SessionValidationError):
            sync(controller, "study", study=-5)

        assert store.get(USER_ID, DOCUMENT_ID) == before
