"""
Resilience Supervisor - Keeps the recorder alive in a running session.

Each supervised session gets two background tasks:

- a health loop that detects a closed/unresponsive browser and reinjects
  when the page lost the recorder;
- a domain loop that notices cross-domain navigation (a fresh document
  without the recorder) and reinjects once per change.

Both loops share one cancellation event and have hard iteration caps.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from web_recorder.config import Settings
from web_recorder.drivers.base import extract_domain
from web_recorder.exceptions import BrowserClosed, DriverError, InjectionExhausted
from web_recorder.interfaces.driver import IBrowserDriver
from web_recorder.recorder.injection import InjectionOrchestrator
from web_recorder.recorder.session_registry import SessionEntry, SessionRegistry

logger = logging.getLogger(__name__)

OnClosed = Callable[[str], Awaitable[Any]]


@dataclass
class Supervision:
    """Background tasks and counters for one session."""
    session_id: str
    driver: IBrowserDriver
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)
    wake: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: List[asyncio.Task] = field(default_factory=list)
    health_runs: int = 0
    domain_runs: int = 0
    reinjections: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "healthRuns": self.health_runs,
            "domainRuns": self.domain_runs,
            "reinjections": self.reinjections,
            "cancelled": self.cancelled.is_set(),
            "running": [task.get_name() for task in self.tasks if not task.done()],
        }


async def _wait_event(event: asyncio.Event, interval: float) -> None:
    """Sleep up to ``interval`` seconds, returning early if ``event`` is set."""
    try:
        await asyncio.wait_for(event.wait(), timeout=interval)
    except asyncio.TimeoutError:
        pass


class ResilienceSupervisor:
    """
    Spawns and cancels the per-session supervision loops.

    ``on_closed`` is the closure path (normally
    ``SessionLifecycleController.handle_browser_closed``); it is called with
    the session id whenever a loop finds the browser gone.
    """

    def __init__(
        self,
        settings: Settings,
        orchestrator: InjectionOrchestrator,
        sessions: SessionRegistry,
        on_closed: Optional[OnClosed] = None,
    ):
        self.settings = settings
        self.orchestrator = orchestrator
        self.sessions = sessions
        self.on_closed = on_closed
        self._supervised: Dict[str, Supervision] = {}

    def spawn(self, session_id: str, driver: IBrowserDriver) -> Supervision:
        """Start the health and domain loops for a session."""
        if session_id in self._supervised:
            self.cancel(session_id)
            self._supervised.pop(session_id, None)

        sup = Supervision(session_id=session_id, driver=driver)
        sup.tasks = [
            asyncio.create_task(self._health_loop(sup), name=f"health-{session_id}"),
            asyncio.create_task(self._domain_loop(sup), name=f"domain-{session_id}"),
        ]
        for task in sup.tasks:
            task.add_done_callback(self._log_task_result)
        self._supervised[session_id] = sup
        logger.debug(f"Supervising session {session_id}")
        return sup

    def cancel(self, session_id: str) -> bool:
        """
        Signal a session's loops to stop.

        The task calling this (a loop running the closure path) is left to
        return on its own.

        Returns:
            False if the session was not supervised
        """
        sup = self._supervised.get(session_id)
        if sup is None:
            return False
        sup.cancelled.set()
        sup.wake.set()
        current = asyncio.current_task()
        for task in sup.tasks:
            if task is not current and not task.done():
                task.cancel()
        return True

    async def wait_closed(self, session_id: str) -> None:
        """Wait for a cancelled session's loops to finish and forget them."""
        sup = self._supervised.pop(session_id, None)
        if sup is None:
            return
        current = asyncio.current_task()
        pending = [task for task in sup.tasks if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def poke(self, session_id: str) -> bool:
        """Run the next health check now instead of after the interval."""
        sup = self._supervised.get(session_id)
        if sup is None:
            return False
        sup.wake.set()
        return True

    def is_supervised(self, session_id: str) -> bool:
        sup = self._supervised.get(session_id)
        return sup is not None and not sup.cancelled.is_set()

    def stats(self, session_id: str) -> Optional[Dict[str, Any]]:
        sup = self._supervised.get(session_id)
        return sup.to_dict() if sup else None

    async def shutdown(self) -> None:
        """Cancel every loop and wait for all of them."""
        session_ids = list(self._supervised)
        for session_id in session_ids:
            self.cancel(session_id)
        for session_id in session_ids:
            await self.wait_closed(session_id)

    # ==================== Loops ====================

    async def _health_loop(self, sup: Supervision) -> None:
        config = self.settings.supervisor

        for _ in range(config.health_max_runs):
            await _wait_event(sup.wake, config.health_interval_seconds)
            sup.wake.clear()
            if sup.cancelled.is_set():
                return

            entry = self.sessions.get(sup.session_id)
            if entry is None:
                return
            sup.health_runs += 1

            try:
                if not await sup.driver.is_responsive():
                    logger.info(f"Browser for session {sup.session_id} is not responding, closing session")
                    await self._closed(sup)
                    return

                if not await self.orchestrator.is_active(sup.driver):
                    await self._reinject(sup, entry, "recorder inactive")
                else:
                    await self.orchestrator.ensure_marker(sup.driver)
            except BrowserClosed:
                logger.info(f"Browser closed during health check of session {sup.session_id}")
                await self._closed(sup)
                return
            except DriverError as e:
                logger.warning(f"Health check failed for session {sup.session_id}: {e}")

        logger.debug(f"Health loop for session {sup.session_id} reached its run limit")

    async def _domain_loop(self, sup: Supervision) -> None:
        config = self.settings.supervisor

        for cycle in range(1, config.domain_max_runs + 1):
            await _wait_event(sup.cancelled, config.domain_interval_seconds)
            if sup.cancelled.is_set():
                return

            entry = self.sessions.get(sup.session_id)
            if entry is None:
                return
            sup.domain_runs += 1

            try:
                url = await sup.driver.current_url()
                domain = extract_domain(url)
                driver = sup.driver

                if domain and domain != driver.last_known_domain:
                    logger.info(
                        f"Session {sup.session_id} moved from "
                        f"{driver.last_known_domain or '(none)'} to {domain}"
                    )
                    driver.last_known_domain = domain
                    driver.last_known_url = url
                    await self._reinject(sup, entry, "domain change")
                elif cycle % config.full_check_every == 0:
                    if not await self.orchestrator.is_active(driver):
                        await self._reinject(sup, entry, "activation check")
            except BrowserClosed:
                logger.info(f"Browser closed during domain check of session {sup.session_id}")
                await self._closed(sup)
                return
            except DriverError as e:
                logger.debug(f"Domain check failed for session {sup.session_id}: {e}")

        logger.debug(f"Domain loop for session {sup.session_id} reached its run limit")

    async def _reinject(self, sup: Supervision, entry: SessionEntry, reason: str) -> None:
        sup.reinjections += 1
        logger.info(f"Reinjecting recorder into session {sup.session_id} ({reason})")
        try:
            await self.orchestrator.inject_with_retry(entry.session, sup.driver)
        except InjectionExhausted as e:
            logger.warning(f"Session {sup.session_id} is degraded: {e.message}")

    async def _closed(self, sup: Supervision) -> None:
        sup.cancelled.set()
        if self.on_closed is not None:
            await self.on_closed(sup.session_id)

    @staticmethod
    def _log_task_result(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Supervisor task {task.get_name()} failed: {error}", exc_info=error)
