"""
Tests for the session lifecycle controller.
"""

import asyncio

import pytest

from web_recorder.exceptions import (
    BrowserClosed,
    DriverStartFailure,
    InvalidStatusTransition,
    NavigationFailure,
    SessionNotFound,
)
from web_recorder.interfaces.driver import BrowserKind, Viewport
from web_recorder.recorder.lifecycle import build_recording_config
from web_recorder.recorder.models import RecordingStatus


def config_for(state, url="https://example.com/", **fields):
    return build_recording_config(state.settings, base_url=url, **fields)


def drain(queue):
    messages = []
    while not queue.empty():
        messages.append(queue.get_nowait())
    return messages


def disconnects(messages):
    return [m for m in messages if m["type"] == "connection" and not m["connected"]]


class TestBuildRecordingConfig:
    """Test building session configs from settings."""

    def test_defaults_from_settings(self, settings):
        """Test that unset values come from settings."""
        config = build_recording_config(settings)
        assert config.browser_kind is BrowserKind.CHROME_PLAYWRIGHT
        assert config.headless is False
        assert config.viewport == Viewport(1280, 800)

    def test_explicit_values(self, settings):
        """Test explicit values."""
        config = build_recording_config(
            settings,
            browser_kind="firefox",
            headless=True,
            viewport=Viewport(800, 600),
            name="smoke",
        )
        assert config.browser_kind is BrowserKind.FIREFOX
        assert config.headless is True
        assert config.viewport.width == 800
        assert config.name == "smoke"


class TestStart:
    """Test starting sessions."""

    @pytest.mark.asyncio
    async def test_start_records(self, state, drivers):
        """Test the happy path."""
        queue = state.broadcaster.subscribe()
        session = await state.controller.start(config_for(state))

        assert session.status is RecordingStatus.RECORDING
        assert session.status_history == [
            RecordingStatus.IDLE,
            RecordingStatus.INITIALIZING,
            RecordingStatus.RECORDING,
        ]
        assert state.sessions.contains(session.id)
        assert state.supervisor.is_supervised(session.id)
        assert session.last_injection.strategy == "csp_tolerant"

        driver = drivers[0]
        assert driver.session_id == session.id
        assert driver.navigations == ["https://example.com/"]
        assert driver.start_timeouts == [state.settings.browser.start_timeout_seconds]

        messages = drain(queue)
        assert [m["type"] for m in messages] == ["status", "status", "connection"]
        assert messages[-1]["connected"] is True

    @pytest.mark.asyncio
    async def test_about_blank_opened_once(self, state, drivers):
        """Test that about:blank is navigated to exactly once, unmodified."""
        await state.controller.start(config_for(state, url="about:blank"))
        assert drivers[0].navigations == ["about:blank"]

    @pytest.mark.asyncio
    async def test_scheme_added(self, state, drivers):
        """Test that scheme-less URLs get https."""
        await state.controller.start(config_for(state, url="example.com/login"))
        assert drivers[0].navigations == ["https://example.com/login"]

    @pytest.mark.asyncio
    async def test_no_url_skips_navigation(self, state, drivers):
        """Test that a session without base URL keeps the initial page."""
        session = await state.controller.start(config_for(state, url=None))
        assert drivers[0].navigations == []
        assert session.status is RecordingStatus.RECORDING

    @pytest.mark.asyncio
    async def test_custom_start_timeout(self, state, drivers):
        """Test that the config timeout overrides the settings default."""
        await state.controller.start(config_for(state, start_timeout_seconds=5.0))
        assert drivers[0].start_timeouts == [5.0]

    @pytest.mark.asyncio
    async def test_start_failure(self, state, drivers, driver_options):
        """Test that a failed launch leaves an ERROR session, unregistered."""
        driver_options["start_error"] = DriverStartFailure("browser binary missing", "chrome-playwright")

        with pytest.raises(DriverStartFailure):
            await state.controller.start(config_for(state))

        [session] = state.sessions.list_sessions()
        assert session.status is RecordingStatus.ERROR
        assert "browser binary missing" in session.error
        assert len(state.sessions) == 0
        assert drivers[0].stop_calls == 1
        assert not state.supervisor.is_supervised(session.id)

    @pytest.mark.asyncio
    async def test_navigation_failure(self, state, drivers, driver_options):
        """Test that an unreachable start page fails the start."""
        driver_options["navigate_result"] = False

        with pytest.raises(NavigationFailure):
            await state.controller.start(config_for(state))

        [session] = state.sessions.list_sessions()
        assert session.status is RecordingStatus.ERROR
        assert drivers[0].stop_calls == 1

    @pytest.mark.asyncio
    async def test_injection_failure_is_not_fatal(self, state, driver_options):
        """Test that a session starts degraded when no strategy verifies."""
        driver_options["working_strategies"] = set()

        session = await state.controller.start(config_for(state))

        assert session.status is RecordingStatus.RECORDING
        assert session.degraded is True
        assert session.last_injection.success is False
        assert state.supervisor.is_supervised(session.id)


class TestPauseResume:
    """Test pausing and resuming."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, state, drivers):
        """Test toggling the recording."""
        session = await state.controller.start(config_for(state))

        await state.controller.pause(session.id)
        assert session.status is RecordingStatus.PAUSED
        assert drivers[0].paused is True

        await state.controller.resume(session.id)
        assert session.status is RecordingStatus.RECORDING
        assert drivers[0].paused is False

    @pytest.mark.asyncio
    async def test_pause_twice_is_noop(self, state):
        """Test that pausing a paused session changes nothing."""
        session = await state.controller.start(config_for(state))
        await state.controller.pause(session.id)
        history = session.status_history

        await state.controller.pause(session.id)
        assert session.status_history == history

    @pytest.mark.asyncio
    async def test_pause_unknown(self, state):
        """Test pausing an unknown session."""
        with pytest.raises(SessionNotFound):
            await state.controller.pause("missing")

    @pytest.mark.asyncio
    async def test_pause_closed_browser(self, state, drivers):
        """Test that pausing a closed browser completes the session."""
        session = await state.controller.start(config_for(state))
        drivers[0].close_window()

        await state.controller.pause(session.id)

        assert session.status is RecordingStatus.COMPLETED
        assert not state.sessions.contains(session.id)


class TestStop:
    """Test stopping sessions."""

    @pytest.mark.asyncio
    async def test_stop(self, state, drivers, click_payload):
        """Test a user-initiated stop."""
        session = await state.controller.start(config_for(state))
        state.gateway.process_event(session.id, click_payload)
        queue = state.broadcaster.subscribe()

        result = await state.controller.stop(session.id)

        assert result is session
        assert session.status is RecordingStatus.COMPLETED
        assert session.status_history[-2:] == [RecordingStatus.STOPPING, RecordingStatus.COMPLETED]
        assert session.end_time is not None
        assert session.event_count == 1
        assert drivers[0].torn_down is True
        assert drivers[0].stop_calls == 1
        assert not state.sessions.contains(session.id)
        assert not state.supervisor.is_supervised(session.id)

        [message] = disconnects(drain(queue))
        assert message["reason"] == "stopped"

    @pytest.mark.asyncio
    async def test_stop_finished_session(self, state):
        """Test that stopping twice returns the finished session."""
        session = await state.controller.start(config_for(state))
        await state.controller.stop(session.id)

        again = await state.controller.stop(session.id)
        assert again is session
        assert session.status_history.count(RecordingStatus.COMPLETED) == 1

    @pytest.mark.asyncio
    async def test_stop_unknown(self, state):
        """Test stopping an unknown session."""
        with pytest.raises(SessionNotFound):
            await state.controller.stop("missing")

    @pytest.mark.asyncio
    async def test_stop_during_launch(self, state, drivers, driver_options, wait_until):
        """Test that a stop arriving while the browser launches releases the browser."""
        gate = asyncio.Event()
        driver_options["start_gate"] = gate
        queue = state.broadcaster.subscribe()

        starting = asyncio.create_task(state.controller.start(config_for(state)))
        assert await wait_until(lambda: drivers and drivers[0].start_timeouts)
        driver = drivers[0]

        session = await state.controller.stop(driver.session_id)
        assert session.status is RecordingStatus.COMPLETED

        gate.set()
        with pytest.raises(InvalidStatusTransition):
            await starting

        assert session.status is RecordingStatus.COMPLETED
        assert session.error is None
        assert driver.running is False
        assert driver.navigations == []
        assert driver.injected == []
        assert not state.supervisor.is_supervised(session.id)
        assert len(state.sessions) == 0
        assert len(disconnects(drain(queue))) == 1

    @pytest.mark.asyncio
    async def test_stop_during_injection(self, state, drivers, wait_until):
        """Test that a stop arriving mid-injection leaves no supervised browser behind."""
        gate = asyncio.Event()
        inject = state.orchestrator.inject_with_retry

        async def gated_inject(session, driver):
            await gate.wait()
            return await inject(session, driver)

        state.orchestrator.inject_with_retry = gated_inject

        starting = asyncio.create_task(state.controller.start(config_for(state)))
        assert await wait_until(lambda: drivers and drivers[0].navigations)
        driver = drivers[0]

        session = await state.controller.stop(driver.session_id)
        gate.set()
        with pytest.raises(InvalidStatusTransition):
            await starting

        assert session.status is RecordingStatus.COMPLETED
        assert session.status_history.count(RecordingStatus.COMPLETED) == 1
        assert RecordingStatus.RECORDING not in session.status_history
        assert driver.running is False
        assert not state.supervisor.is_supervised(session.id)

    @pytest.mark.asyncio
    async def test_stop_after_window_closed(self, state, drivers):
        """Test that stop still completes when the page is gone."""
        session = await state.controller.start(config_for(state))
        drivers[0].close_window()

        await state.controller.stop(session.id)
        assert session.status is RecordingStatus.COMPLETED


class TestBrowserClosed:
    """Test the closure path."""

    @pytest.mark.asyncio
    async def test_handle_browser_closed(self, state, drivers):
        """Test that closure completes the session without STOPPING."""
        session = await state.controller.start(config_for(state))

        assert await state.controller.handle_browser_closed(session.id) is True

        assert session.status is RecordingStatus.COMPLETED
        assert RecordingStatus.STOPPING not in session.status_history
        assert drivers[0].stop_calls == 1
        assert await state.controller.handle_browser_closed(session.id) is False

    @pytest.mark.asyncio
    async def test_concurrent_closure(self, state, drivers):
        """Test that racing closure signals complete the session once."""
        session = await state.controller.start(config_for(state))
        queue = state.broadcaster.subscribe()

        results = await asyncio.gather(
            state.controller.handle_browser_closed(session.id),
            state.controller.handle_browser_closed(session.id),
            state.controller.handle_browser_closed(session.id),
            state.controller.stop(session.id),
        )

        assert results[:3].count(True) == 1
        assert results[3] is session
        assert session.status_history.count(RecordingStatus.COMPLETED) == 1
        assert len(disconnects(drain(queue))) == 1

    @pytest.mark.asyncio
    async def test_stop_racing_closure(self, state):
        """Test a stop that is overtaken by the closure path."""
        session = await state.controller.start(config_for(state))
        queue = state.broadcaster.subscribe()

        await asyncio.gather(
            state.controller.stop(session.id),
            state.controller.handle_browser_closed(session.id),
            state.controller.handle_browser_closed(session.id),
        )

        assert session.status is RecordingStatus.COMPLETED
        assert session.status_history.count(RecordingStatus.COMPLETED) == 1
        assert len(disconnects(drain(queue))) == 1


class TestReconnect:
    """Test replacing the browser."""

    @pytest.mark.asyncio
    async def test_responsive_browser_kept(self, state, drivers):
        """Test that a responsive browser is not replaced."""
        session = await state.controller.start(config_for(state))

        await state.controller.reconnect(session.id)
        assert len(drivers) == 1

    @pytest.mark.asyncio
    async def test_unresponsive_browser_replaced(self, state, drivers, click_payload):
        """Test that an unresponsive browser gets a fresh one."""
        session = await state.controller.start(config_for(state))
        state.gateway.process_event(session.id, click_payload)
        drivers[0].responsive = False
        queue = state.broadcaster.subscribe()

        await state.controller.reconnect(session.id)

        assert len(drivers) == 2
        assert drivers[0].stop_calls == 1
        assert drivers[1].navigations == ["https://example.com/"]
        assert drivers[1].page_active is True
        assert state.controller.get_driver(session.id) is drivers[1]
        assert state.supervisor.is_supervised(session.id)
        assert session.status is RecordingStatus.RECORDING
        assert session.event_count == 1

        [message] = drain(queue)
        assert message["connected"] is True
        assert message["reason"] == "reconnected"

    @pytest.mark.asyncio
    async def test_forced_reconnect(self, state, drivers):
        """Test that force replaces a healthy browser."""
        session = await state.controller.start(config_for(state))

        await state.controller.reconnect(session.id, force=True)
        assert len(drivers) == 2

    @pytest.mark.asyncio
    async def test_reconnect_failure_closes_session(self, state, drivers, driver_options):
        """Test that a failed reconnect ends the session and raises."""
        session = await state.controller.start(config_for(state))
        driver_options["start_error"] = DriverStartFailure("no display", "chrome-playwright")

        with pytest.raises(DriverStartFailure):
            await state.controller.reconnect(session.id, force=True)

        assert session.status is RecordingStatus.COMPLETED
        assert "no display" in session.error
        assert not state.sessions.contains(session.id)


class TestReinject:
    """Test manual reinjection into the live page."""

    @pytest.mark.asyncio
    async def test_degraded_session_recovers(self, state, drivers, driver_options):
        """Test that reinjection clears the degraded flag once a strategy verifies."""
        driver_options["working_strategies"] = set()
        session = await state.controller.start(config_for(state))
        assert session.degraded is True

        drivers[0].working_strategies = {"minimal"}
        outcome = await state.controller.reinject(session.id)

        assert outcome.success is True
        assert outcome.strategy == "minimal"
        assert session.degraded is False
        assert session.last_injection is outcome
        assert len(drivers) == 1

    @pytest.mark.asyncio
    async def test_still_degraded(self, state, driver_options):
        """Test that a failed reinjection reports the failure without raising."""
        driver_options["working_strategies"] = set()
        session = await state.controller.start(config_for(state))

        outcome = await state.controller.reinject(session.id)

        assert outcome.success is False
        assert session.degraded is True
        assert session.status is RecordingStatus.RECORDING

    @pytest.mark.asyncio
    async def test_paused_state_restored(self, state, drivers):
        """Test that the page stays paused after reinjection."""
        session = await state.controller.start(config_for(state))
        await state.controller.pause(session.id)
        drivers[0].load_document("https://example.com/next")
        drivers[0].paused = False

        await state.controller.reinject(session.id)

        assert drivers[0].page_active is True
        assert drivers[0].paused is True

    @pytest.mark.asyncio
    async def test_closed_browser(self, state, drivers):
        """Test that reinjecting into a closed browser completes the session."""
        session = await state.controller.start(config_for(state))
        drivers[0].close_window()

        with pytest.raises(BrowserClosed):
            await state.controller.reinject(session.id)

        assert session.status is RecordingStatus.COMPLETED
        assert not state.sessions.contains(session.id)

    @pytest.mark.asyncio
    async def test_unknown(self, state):
        """Test reinjecting into an unknown session."""
        with pytest.raises(SessionNotFound):
            await state.controller.reinject("missing")


class TestQueries:
    """Test debug info and shutdown."""

    @pytest.mark.asyncio
    async def test_debug_info(self, state):
        """Test the diagnostics map of a live session."""
        session = await state.controller.start(config_for(state))

        info = await state.controller.debug_info(session.id)

        assert info["session"]["id"] == session.id
        assert info["statusHistory"] == ["IDLE", "INITIALIZING", "RECORDING"]
        assert info["injection"]["strategy"] == "csp_tolerant"
        assert info["driver"]["lastKnownDomain"] == "example.com"
        assert info["page"]["active"] is True
        assert info["capture"] == {"network": [], "console": []}

    @pytest.mark.asyncio
    async def test_debug_info_capture_buffers(self, state, drivers):
        """Test that buffered requests and console messages are reported."""
        session = await state.controller.start(config_for(state, capture_network=True, capture_console=True))
        drivers[0].network_log.append({"method": "POST", "url": "https://example.com/api/cart"})
        drivers[0].console_log.append({"type": "warning", "text": "deprecated"})

        info = await state.controller.debug_info(session.id)

        assert info["capture"]["network"] == [{"method": "POST", "url": "https://example.com/api/cart"}]
        assert info["capture"]["console"] == [{"type": "warning", "text": "deprecated"}]

    @pytest.mark.asyncio
    async def test_debug_info_closed_browser(self, state, drivers):
        """Test that a closed browser found while collecting diagnostics ends the session."""
        session = await state.controller.start(config_for(state))
        drivers[0].close_window()

        info = await state.controller.debug_info(session.id)

        assert "no such window" in info["page"]["error"]
        assert session.status is RecordingStatus.COMPLETED
        assert not state.sessions.contains(session.id)

    @pytest.mark.asyncio
    async def test_debug_info_finished(self, state):
        """Test the diagnostics map of a finished session."""
        session = await state.controller.start(config_for(state))
        await state.controller.stop(session.id)

        info = await state.controller.debug_info(session.id)
        assert info["page"] is None
        assert info["capture"] is None
        assert info["supervisor"] is None

        with pytest.raises(SessionNotFound):
            await state.controller.debug_info("missing")

    @pytest.mark.asyncio
    async def test_shutdown(self, state):
        """Test stopping every live session."""
        a = await state.controller.start(config_for(state))
        b = await state.controller.start(config_for(state))

        stopped = await state.controller.shutdown()

        assert sorted(stopped) == sorted([a.id, b.id])
        assert a.status is RecordingStatus.COMPLETED
        assert b.status is RecordingStatus.COMPLETED
