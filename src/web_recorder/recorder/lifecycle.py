"""
Session Lifecycle Controller - Starts, pauses, stops and closes recordings.

This is the only component that changes a session's status. It ties the
pieces together:

    start() -> registry.create() -> driver.start() + navigate()
            -> orchestrator.inject_with_retry() -> supervisor.spawn()

and tears them down again on stop() or when the browser is closed.

Example:
    >>> controller = SessionLifecycleController(settings, sessions, orchestrator, supervisor, broadcaster)
    >>> session = await controller.start(build_recording_config(settings, base_url="example.com"))
    >>> await controller.pause(session.id)
    >>> await controller.stop(session.id)
"""

import logging
from typing import Any, Callable, List, Optional

import web_recorder.drivers  # noqa: F401  (registers the driver families)
from web_recorder.config import Settings
from web_recorder.drivers.base import BLANK_PAGE
from web_recorder.exceptions import (
    BrowserClosed,
    DriverError,
    InjectionExhausted,
    InvalidStatusTransition,
    NavigationFailure,
    SessionNotFound,
    WebRecorderError,
)
from web_recorder.interfaces.driver import BrowserKind, IBrowserDriver, Viewport
from web_recorder.recorder.broadcast import EventBroadcaster
from web_recorder.recorder.injection import InjectionOrchestrator
from web_recorder.recorder.models import InjectionOutcome, RecordingConfig, RecordingSession, RecordingStatus
from web_recorder.recorder.session_registry import SessionRegistry
from web_recorder.recorder.supervisor import ResilienceSupervisor
from web_recorder.registry import DriverRegistry

logger = logging.getLogger(__name__)

DriverFactory = Callable[[BrowserKind, str, RecordingConfig, Settings], IBrowserDriver]


def normalize_start_url(url: Optional[str]) -> Optional[str]:
    """
    Prepare a session's base URL for navigation.

    ``about:blank`` is passed through untouched; scheme-less URLs get
    ``https://``.

    Example:
        >>> normalize_start_url("example.com/login")
        'https://example.com/login'
    """
    if not url or not url.strip():
        return None
    url = url.strip()
    if url == BLANK_PAGE or "://" in url or url.startswith(("about:", "data:")):
        return url
    return f"https://{url}"


def build_recording_config(
    settings: Settings,
    browser_kind: Optional[str] = None,
    headless: Optional[bool] = None,
    viewport: Optional[Viewport] = None,
    **fields: Any,
) -> RecordingConfig:
    """Build a session config, filling unset values from settings."""
    browser = settings.browser
    return RecordingConfig(
        browser_kind=BrowserKind.from_string(browser_kind or browser.default_kind),
        headless=browser.headless if headless is None else headless,
        viewport=viewport or Viewport(browser.viewport_width, browser.viewport_height),
        **fields,
    )


class SessionLifecycleController:
    """
    Drives recording sessions through their state machine.

    Every status change is broadcast as a ``status`` notification; browser
    connect/disconnect as ``connection``.
    """

    def __init__(
        self,
        settings: Settings,
        sessions: SessionRegistry,
        orchestrator: InjectionOrchestrator,
        supervisor: ResilienceSupervisor,
        broadcaster: EventBroadcaster,
        driver_factory: Optional[DriverFactory] = None,
    ):
        self.settings = settings
        self.sessions = sessions
        self.orchestrator = orchestrator
        self.supervisor = supervisor
        self.broadcaster = broadcaster
        self._driver_factory = driver_factory or DriverRegistry.create
        self.supervisor.on_closed = self.handle_browser_closed

    def _transition(self, session: RecordingSession, status: RecordingStatus, forced: bool = False) -> None:
        previous = session.transition(status, forced=forced)
        logger.info(f"Session {session.id}: {previous.value} -> {status.value}")
        self.broadcaster.status_changed(session.id, status.value, previous.value)

    def _start_timeout(self, config: RecordingConfig) -> float:
        return config.start_timeout_seconds or self.settings.browser.start_timeout_seconds

    # ==================== Start ====================

    async def start(self, config: RecordingConfig) -> RecordingSession:
        """
        Launch a browser and begin recording.

        Returns:
            The session, in RECORDING status

        Raises:
            DriverStartFailure: If the browser could not be launched
            NavigationFailure: If the start page could not be opened
            SidecarUnavailable: If the sidecar service is unreachable
            InvalidStatusTransition: If the session was stopped while starting
        """
        session = RecordingSession(config=config)
        driver = self._driver_factory(config.browser_kind, session.id, config, self.settings)
        self.sessions.create(session, driver)
        logger.info(f"Starting session {session.id} with {config.browser_kind.value}")

        try:
            self._transition(session, RecordingStatus.INITIALIZING)
            await driver.start(self._start_timeout(config))
            self._ensure_live(session)
            await self._open_start_page(driver, normalize_start_url(config.base_url))
            self._ensure_live(session)

            try:
                await self.orchestrator.inject_with_retry(session, driver)
            except InjectionExhausted as e:
                logger.warning(f"Session {session.id} starts degraded: {e.message}")
            self._ensure_live(session)

            self.supervisor.spawn(session.id, driver)
            self._transition(session, RecordingStatus.RECORDING)
        except Exception as e:
            await self._fail_start(session, driver, e)
            raise

        self.broadcaster.connection_changed(session.id, True)
        return session

    def _ensure_live(self, session: RecordingSession) -> None:
        """Raise if the session was stopped or closed while starting."""
        if session.status is RecordingStatus.STOPPING or not self.sessions.contains(session.id):
            raise InvalidStatusTransition(session.status.value, RecordingStatus.RECORDING.value)

    async def _open_start_page(self, driver: IBrowserDriver, url: Optional[str]) -> None:
        if url is None:
            return
        if not await driver.navigate(url):
            raise NavigationFailure(f"Could not open {url}", url)

    async def _fail_start(self, session: RecordingSession, driver: IBrowserDriver, error: Exception) -> None:
        stopping = session.status is RecordingStatus.STOPPING
        if stopping or session.status.is_terminal:
            logger.info(f"Session {session.id} ended while starting; releasing its browser")
        else:
            logger.error(f"Session {session.id} failed to start: {error}")
            session.error = str(error)
            self._transition(session, RecordingStatus.ERROR)
        # a concurrent stop() owns removal and the final status
        if not stopping and self.sessions.remove(session.id) is not None:
            self.supervisor.cancel(session.id)
            await self.supervisor.wait_closed(session.id)
        await self._stop_driver(driver)

    async def _stop_driver(self, driver: IBrowserDriver) -> None:
        try:
            await driver.stop()
        except Exception as e:
            logger.warning(f"Error stopping browser for session {driver.session_id}: {e}")

    # ==================== Pause / resume ====================

    async def pause(self, session_id: str) -> RecordingSession:
        """RECORDING -> PAUSED. Pausing a paused session is a no-op."""
        return await self._set_paused(session_id, True)

    async def resume(self, session_id: str) -> RecordingSession:
        """PAUSED -> RECORDING. Resuming a recording session is a no-op."""
        return await self._set_paused(session_id, False)

    async def _set_paused(self, session_id: str, paused: bool) -> RecordingSession:
        entry = self.sessions.require(session_id)
        session = entry.session
        target = RecordingStatus.PAUSED if paused else RecordingStatus.RECORDING
        if session.status is target:
            return session

        self._transition(session, target)
        try:
            await self.orchestrator.set_paused(entry.driver, paused)
        except BrowserClosed:
            await self.handle_browser_closed(session_id)
        return session

    # ==================== Stop / close ====================

    async def stop(self, session_id: str) -> RecordingSession:
        """
        Stop recording and release the browser.

        Stopping an already finished session returns it unchanged.

        Raises:
            SessionNotFound: If the id is unknown
        """
        entry = self.sessions.get(session_id)
        if entry is None:
            session = self.sessions.find_session(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            return session

        session = entry.session
        if session.status is not RecordingStatus.STOPPING:
            self._transition(session, RecordingStatus.STOPPING)

        self.supervisor.cancel(session_id)
        await self.supervisor.wait_closed(session_id)

        try:
            await self.orchestrator.teardown(entry.driver)
        except DriverError as e:
            logger.debug(f"Skipping in-page teardown for session {session_id}: {e}")
        await self._stop_driver(entry.driver)

        if self.sessions.remove(session_id) is not None:
            self._transition(session, RecordingStatus.COMPLETED)
            self.broadcaster.connection_changed(session_id, False, "stopped")
            logger.info(f"Session {session_id} completed with {session.event_count} events")
        return session

    async def handle_browser_closed(self, session_id: str) -> bool:
        """
        Closure path: the user closed the window or the target is gone.

        Only the caller that wins the atomic registry removal does the
        teardown, so concurrent calls (and a concurrent stop) complete the
        session exactly once.

        Returns:
            True if this call completed the session
        """
        entry = self.sessions.remove(session_id)
        if entry is None:
            return False

        session = entry.session
        logger.info(f"Browser for session {session_id} was closed")
        self.supervisor.cancel(session_id)
        await self.supervisor.wait_closed(session_id)
        await self._stop_driver(entry.driver)

        if not session.status.is_terminal:
            self._transition(session, RecordingStatus.COMPLETED, forced=True)
        self.broadcaster.connection_changed(session_id, False, "browser closed")
        return True

    # ==================== Reconnect ====================

    async def reconnect(self, session_id: str, force: bool = False) -> RecordingSession:
        """
        Replace an unresponsive browser with a fresh one.

        The new browser reopens the last known URL and gets the recorder
        injected again; recorded events are kept. If the replacement fails
        the session goes through the closure path and the error is raised.
        """
        entry = self.sessions.require(session_id)
        session = entry.session
        old_driver = entry.driver

        if not force and await old_driver.is_responsive():
            logger.info(f"Session {session_id} is responsive, not reconnecting")
            return session

        url = old_driver.last_known_url or normalize_start_url(session.config.base_url)
        logger.info(f"Reconnecting session {session_id} to {url or '(no page)'}")

        self.supervisor.cancel(session_id)
        await self.supervisor.wait_closed(session_id)
        await self._stop_driver(old_driver)

        driver = self._driver_factory(session.config.browser_kind, session_id, session.config, self.settings)
        try:
            self.sessions.replace_driver(session_id, driver)
            await driver.start(self._start_timeout(session.config))
            await self._open_start_page(driver, url)
            try:
                await self.orchestrator.inject_with_retry(session, driver)
            except InjectionExhausted as e:
                logger.warning(f"Session {session_id} reconnected degraded: {e.message}")
            self.supervisor.spawn(session_id, driver)
        except Exception as e:
            logger.error(f"Reconnect failed for session {session_id}: {e}")
            session.error = str(e)
            await self._stop_driver(driver)
            await self.handle_browser_closed(session_id)
            raise

        self.broadcaster.connection_changed(session_id, True, "reconnected")
        return session

    # ==================== Reinject ====================

    async def reinject(self, session_id: str) -> InjectionOutcome:
        """
        Inject the recorder again into the live page.

        Recovers a degraded session without replacing its browser. A closed
        browser goes through the closure path and BrowserClosed is raised.

        Returns:
            The injection outcome; ``success`` is False if every strategy
            failed again and the session stays degraded
        """
        entry = self.sessions.require(session_id)
        session = entry.session
        logger.info(f"Manual reinjection requested for session {session_id}")
        try:
            return await self.orchestrator.inject_with_retry(session, entry.driver)
        except InjectionExhausted as e:
            logger.warning(f"Session {session_id} is still degraded: {e.message}")
            return session.last_injection
        except BrowserClosed:
            await self.handle_browser_closed(session_id)
            raise

    # ==================== Queries ====================

    def get_driver(self, session_id: str) -> IBrowserDriver:
        return self.sessions.require(session_id).driver

    async def debug_info(self, session_id: str) -> dict:
        """Injection diagnostics plus a live in-page snapshot."""
        entry = self.sessions.get(session_id)
        session = entry.session if entry else self.sessions.find_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        info = {
            "session": session.to_dict(),
            "statusHistory": [s.value for s in session.status_history],
            "injection": session.last_injection.to_dict() if session.last_injection else None,
            "supervisor": self.supervisor.stats(session_id),
            "page": None,
            "capture": None,
        }
        if entry is not None:
            driver = entry.driver
            info["driver"] = {
                "running": driver.is_running,
                "lastKnownUrl": driver.last_known_url,
                "lastKnownDomain": driver.last_known_domain,
            }
            try:
                info["capture"] = await driver.captured_logs()
                info["page"] = await self.orchestrator.debug_snapshot(driver)
            except BrowserClosed as e:
                info["page"] = {"error": str(e)}
                await self.handle_browser_closed(session_id)
        return info

    # ==================== Shutdown ====================

    async def shutdown(self) -> List[str]:
        """Stop every live session. Returns the ids that were stopped."""
        stopped = []
        for session_id in self.sessions.active_ids():
            try:
                await self.stop(session_id)
                stopped.append(session_id)
            except WebRecorderError as e:
                logger.warning(f"Failed to stop session {session_id} during shutdown: {e}")
        await self.supervisor.shutdown()
        return stopped
