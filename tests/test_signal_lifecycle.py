"""
SIGNAL LIFECYCLE TESTS

candidate -> invalidated | deleted, both terminal, and the status guard
on the model itself.
"""
import pytest

from behavioral_sandbox.domain.signal_lifecycle import (
    SignalLifecycle,
    SignalStatus,
    TransitionReason,
    consent_revoked_reason,
)
from behavioral_sandbox.exceptions import InvalidTransitionError
from behavioral_sandbox.models import CandidateSignal

from conftest import at


def _signal(status: str = "candidate") -> CandidateSignal:
    return CandidateSignal(
        signal_id="sig-1",
        user_id="user-1",
        signal_key="capture_coverage",
        signal_version="1.0.0",
        time_range_start=at(),
        time_range_end=at(days=1),
        value_json={},
        confidence=1.0,
        provenance_event_ids=["e1"],
        provenance_hash="0" * 64,
        parameters_json={},
        _status=status,
    )


class TestTransitions:
    def setup_method(self):
        self.lifecycle = SignalLifecycle()

    def test_allowed_transitions(self):
        assert self.lifecycle.can_transition("candidate", "invalidated")
        assert self.lifecycle.can_transition("candidate", "deleted")

    @pytest.mark.parametrize("source", ["invalidated", "deleted"])
    @pytest.mark.parametrize("target", ["candidate", "invalidated", "deleted"])
    def test_terminal_states_have_no_exit(self, source, target):
        assert not self.lifecycle.can_transition(source, target)

    def test_unknown_status(self):
        assert not self.lifecycle.can_transition("candidate", "archived")

    def test_invalidate_sets_reason_and_time(self):
        signal = _signal()
        event = self.lifecycle.transition(
            signal, SignalStatus.INVALIDATED, consent_revoked_reason("time_patterns"), now=at(days=2)
        )

        assert signal.status == "invalidated"
        assert signal.invalidated_at == at(days=2)
        assert signal.invalidated_reason == "Consent revoked for category: time_patterns"
        assert event.from_status == "candidate"
        assert event.to_status == "invalidated"
        assert event.signal_id == "sig-1"

    def test_invalidate_defaults_reason(self):
        signal = _signal()
        self.lifecycle.transition(signal, SignalStatus.INVALIDATED)
        assert signal.invalidated_reason == TransitionReason.SOURCE_EVENTS_CHANGED.value

    def test_delete(self):
        signal = _signal()
        self.lifecycle.transition(signal, SignalStatus.DELETED, TransitionReason.DELETED_BY_USER.value)
        assert signal.status == "deleted"
        assert signal.invalidated_at is None

    def test_no_path_back_to_candidate(self):
        signal = _signal("invalidated")
        with pytest.raises(InvalidTransitionError) as exc_info:
            self.lifecycle.transition(signal, SignalStatus.CANDIDATE)
        assert exc_info.value.details["from_status"] == "invalidated"
        assert signal.status == "invalidated"


class TestStatusGuard:
    def test_direct_assignment_blocked(self):
        signal = _signal()
        with pytest.raises(RuntimeError, match="DIRECT STATUS ASSIGNMENT BLOCKED"):
            signal.status = "deleted"
        assert signal.status == "candidate"
