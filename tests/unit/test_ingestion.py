"""
Tests for the event ingestion gateway.
"""

import pytest

from web_recorder.exceptions import (
    InvalidEventPayload,
    InvalidStatusTransition,
    SessionNotFound,
    UnsupportedEventType,
)
from web_recorder.recorder.lifecycle import build_recording_config
from web_recorder.recorder.models import RecordingStatus


async def start(state, **fields):
    return await state.controller.start(build_recording_config(state.settings, base_url="https://example.com/", **fields))


class TestProcessEvent:
    """Test EventIngestionGateway.process_event."""

    @pytest.mark.asyncio
    async def test_append(self, state, click_payload):
        """Test that valid events are appended and broadcast."""
        session = await start(state)
        queue = state.broadcaster.subscribe()

        event_id = state.gateway.process_event(session.id, click_payload)

        assert session.events[0].id == event_id
        message = queue.get_nowait()
        assert message["type"] == "event_recorded"
        assert message["eventCount"] == 1
        assert message["event"]["targetElement"]["id"] == "go"

    @pytest.mark.asyncio
    async def test_unique_ids(self, state, click_payload):
        """Test that each event gets its own id."""
        session = await start(state)
        ids = {state.gateway.process_event(session.id, click_payload) for _ in range(5)}
        assert len(ids) == 5

    @pytest.mark.asyncio
    async def test_order_per_session(self, state, click_payload):
        """Test that interleaved sessions keep their own order."""
        a = await start(state)
        b = await start(state)

        for n in range(6):
            target = a if n % 2 == 0 else b
            state.gateway.process_event(target.id, {**click_payload, "timestamp": n})

        assert [e.timestamp for e in a.events] == [0, 2, 4]
        assert [e.timestamp for e in b.events] == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_invalid_payload_not_appended(self, state):
        """Test that rejected payloads leave the session untouched."""
        session = await start(state)

        with pytest.raises(InvalidEventPayload):
            state.gateway.process_event(session.id, {"type": "CLICK", "timestamp": 1})
        with pytest.raises(UnsupportedEventType):
            state.gateway.process_event(session.id, {"type": "TELEPORT", "timestamp": 1})
        assert session.event_count == 0

    @pytest.mark.asyncio
    async def test_unknown_session(self, state, click_payload):
        """Test events for an unknown session."""
        with pytest.raises(SessionNotFound):
            state.gateway.process_event("missing", click_payload)

    @pytest.mark.asyncio
    async def test_finished_session_rejects_events(self, state, click_payload):
        """Test that completed sessions take no more events."""
        session = await start(state)
        await state.controller.stop(session.id)

        with pytest.raises(SessionNotFound):
            state.gateway.process_event(session.id, click_payload)

    @pytest.mark.asyncio
    async def test_event_limit(self, state, click_payload):
        """Test the per-session event limit."""
        session = await start(state, max_event_count=2)
        state.gateway.process_event(session.id, click_payload)
        state.gateway.process_event(session.id, click_payload)

        with pytest.raises(InvalidEventPayload) as exc_info:
            state.gateway.process_event(session.id, click_payload)
        assert exc_info.value.field == "maxEventCount"
        assert session.event_count == 2

    @pytest.mark.asyncio
    async def test_group_references_recorded_events(self, state, click_payload):
        """Test that control-flow events reference earlier events."""
        session = await start(state)
        first = state.gateway.process_event(session.id, click_payload)

        state.gateway.process_event(
            session.id,
            {"type": "GROUP", "timestamp": 2, "name": "Checkout", "childEventIds": [first]},
        )
        with pytest.raises(InvalidEventPayload):
            state.gateway.process_event(
                session.id,
                {"type": "GROUP", "timestamp": 3, "name": "Bad", "childEventIds": ["nope"]},
            )
        assert session.event_count == 2


class TestUpdateStatus:
    """Test status changes requested by the page."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, state, drivers):
        """Test pausing and resuming through status values."""
        session = await start(state)

        await state.gateway.update_status(session.id, "paused")
        assert session.status is RecordingStatus.PAUSED
        assert drivers[0].paused is True

        await state.gateway.update_status(session.id, "RECORDING")
        assert session.status is RecordingStatus.RECORDING

    @pytest.mark.asyncio
    async def test_same_status_is_noop(self, state):
        """Test that repeating the current status changes nothing."""
        session = await start(state)
        await state.gateway.update_status(session.id, "RECORDING")
        assert len(session.status_history) == 3

    @pytest.mark.asyncio
    async def test_stop(self, state):
        """Test that STOPPING stops the session."""
        session = await start(state)
        await state.gateway.update_status(session.id, "STOPPING")
        assert session.status is RecordingStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_value(self, state):
        """Test that unknown status values are payload errors."""
        session = await start(state)
        with pytest.raises(InvalidEventPayload):
            await state.gateway.update_status(session.id, "DANCING")

    @pytest.mark.asyncio
    async def test_disallowed_transition(self, state):
        """Test that the page cannot request INITIALIZING."""
        session = await start(state)
        with pytest.raises(InvalidStatusTransition):
            await state.gateway.update_status(session.id, "INITIALIZING")
        assert session.status is RecordingStatus.RECORDING


class TestControl:
    """Test control actions from the page."""

    @pytest.mark.asyncio
    async def test_pause_button(self, state):
        """Test the indicator's pause button."""
        session = await start(state)
        result = await state.gateway.process_control(session.id, "pause")
        assert result == {"action": "PAUSE", "status": "PAUSED"}

    @pytest.mark.asyncio
    async def test_stop_button(self, state):
        """Test the indicator's stop button."""
        session = await start(state)
        result = await state.gateway.process_control(session.id, "STOP", "indicator")
        assert result["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_unload_pokes_supervisor(self, state, wait_until):
        """Test that an unload beacon triggers a health check."""
        session = await start(state)

        result = await state.gateway.process_control(session.id, "UNLOAD", "https://example.com/")

        assert result == {"action": "UNLOAD", "status": "RECORDING"}
        assert await wait_until(lambda: state.supervisor.stats(session.id)["healthRuns"] == 1)

    @pytest.mark.asyncio
    async def test_unknown_action(self, state):
        """Test that unknown actions are rejected."""
        session = await start(state)
        with pytest.raises(InvalidEventPayload):
            await state.gateway.process_control(session.id, "explode")


class TestBrowserInfo:
    """Test browser metadata."""

    @pytest.mark.asyncio
    async def test_set_once(self, state):
        """Test that the first report wins."""
        session = await start(state)

        assert state.gateway.process_browser_info(session.id, {"browser": "Google Inc.", "os": "Linux"}) is True
        assert state.gateway.process_browser_info(session.id, {"browser": "Other"}) is False
        assert session.browser_metadata.browser == "Google Inc."
        assert session.browser_metadata.os == "Linux"

    @pytest.mark.asyncio
    async def test_never_raises(self, state):
        """Test unknown sessions and bad payloads."""
        session = await start(state)
        assert state.gateway.process_browser_info("missing", {"browser": "x"}) is False
        assert state.gateway.process_browser_info(session.id, "not a dict") is False


class TestQueries:
    """Test session info and events."""

    @pytest.mark.asyncio
    async def test_info_after_completion(self, state, click_payload):
        """Test that finished sessions stay readable."""
        session = await start(state)
        state.gateway.process_event(session.id, click_payload)
        await state.controller.stop(session.id)

        info = state.gateway.session_info(session.id)
        assert info["status"] == "COMPLETED"
        assert info["eventCount"] == 1
        assert state.gateway.session_events(session.id)[0]["type"] == "CLICK"

    @pytest.mark.asyncio
    async def test_unknown(self, state):
        """Test queries for unknown sessions."""
        with pytest.raises(SessionNotFound):
            state.gateway.session_info("missing")
        with pytest.raises(SessionNotFound):
            state.gateway.session_events("missing")
