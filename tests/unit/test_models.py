"""
Tests for recording session models.
"""

import pytest

from web_recorder.exceptions import InvalidStatusTransition
from web_recorder.interfaces.driver import BrowserKind
from web_recorder.recorder.events import build_event
from web_recorder.recorder.models import (
    InjectionAttempt,
    InjectionOutcome,
    RecordingConfig,
    RecordingSession,
    RecordingStatus,
)


@pytest.fixture
def session():
    return RecordingSession(config=RecordingConfig(name="checkout"))


class TestRecordingStatus:
    """Test the status enum."""

    def test_parse(self):
        """Test case-insensitive parsing."""
        assert RecordingStatus.parse(" paused ") is RecordingStatus.PAUSED
        assert RecordingStatus.parse("nope") is None
        assert RecordingStatus.parse(3) is None

    def test_terminal(self):
        """Test terminal statuses."""
        assert RecordingStatus.COMPLETED.is_terminal
        assert RecordingStatus.ERROR.is_terminal
        assert not RecordingStatus.STOPPING.is_terminal


class TestRecordingSession:
    """Test the session state machine and event list."""

    def test_new_session(self, session):
        """Test a fresh session."""
        assert session.status is RecordingStatus.IDLE
        assert session.event_count == 0
        assert session.end_time is None
        assert session.id

    def test_happy_path(self, session):
        """Test the normal start-record-stop sequence."""
        for status in (
            RecordingStatus.INITIALIZING,
            RecordingStatus.RECORDING,
            RecordingStatus.PAUSED,
            RecordingStatus.RECORDING,
            RecordingStatus.STOPPING,
            RecordingStatus.COMPLETED,
        ):
            session.transition(status)

        assert session.status is RecordingStatus.COMPLETED
        assert session.end_time is not None
        assert session.status_history[0] is RecordingStatus.IDLE
        assert len(session.status_history) == 7

    def test_transition_returns_previous(self, session):
        """Test that transition returns the previous status."""
        assert session.transition(RecordingStatus.INITIALIZING) is RecordingStatus.IDLE

    def test_invalid_transition(self, session):
        """Test that skipping states is rejected."""
        with pytest.raises(InvalidStatusTransition):
            session.transition(RecordingStatus.PAUSED)
        assert session.status is RecordingStatus.IDLE

    def test_terminal_is_final(self, session):
        """Test that nothing leaves a terminal status."""
        session.transition(RecordingStatus.ERROR)
        with pytest.raises(InvalidStatusTransition):
            session.transition(RecordingStatus.RECORDING)
        with pytest.raises(InvalidStatusTransition):
            session.transition(RecordingStatus.COMPLETED, forced=True)

    def test_forced_completion(self, session):
        """Test the closure path from RECORDING straight to COMPLETED."""
        session.transition(RecordingStatus.INITIALIZING)
        session.transition(RecordingStatus.RECORDING)

        with pytest.raises(InvalidStatusTransition):
            session.transition(RecordingStatus.COMPLETED)
        session.transition(RecordingStatus.COMPLETED, forced=True)
        assert session.status is RecordingStatus.COMPLETED

    def test_append_event(self, session, click_payload):
        """Test that events keep insertion order."""
        first = build_event(click_payload, "e1")
        second = build_event({**click_payload, "timestamp": 1}, "e2")

        assert session.append_event(first) == 1
        assert session.append_event(second) == 2
        assert [e.id for e in session.events] == ["e1", "e2"]
        assert session.event_ids() == {"e1", "e2"}

    def test_events_snapshot_is_read_only(self, session, click_payload):
        """Test that the events property is a tuple snapshot."""
        session.append_event(build_event(click_payload, "e1"))
        snapshot = session.events
        session.append_event(build_event(click_payload, "e2"))

        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1

    def test_to_dict(self, session, click_payload):
        """Test the session info map."""
        session.append_event(build_event(click_payload, "e1"))
        data = session.to_dict(include_events=True)

        assert data["name"] == "checkout"
        assert data["status"] == "IDLE"
        assert data["eventCount"] == 1
        assert data["config"]["browserKind"] == BrowserKind.CHROME_PLAYWRIGHT.value
        assert data["events"][0]["id"] == "e1"


class TestInjectionOutcome:
    """Test injection diagnostics."""

    def test_to_dict(self):
        """Test serialization of attempts."""
        attempt = InjectionAttempt(strategy="minimal", attempt=1, verified=True, flag_active=True, marker_present=True)
        outcome = InjectionOutcome(success=True, strategy="minimal", attempts=(attempt,))

        data = outcome.to_dict()
        assert data["strategy"] == "minimal"
        assert data["attempts"][0]["flagActive"] is True
