"""
Injection Orchestrator - Installs the recorder script into the page.

Pages differ in what they allow (CSP, blocked fetch, missing body), so the
orchestrator tries a fixed list of strategies and verifies each one before
accepting it:

1. ``native``: register the script for every new document (driver support required)
2. ``csp_tolerant``: XHR transport, absolute callback URLs
3. ``minimal``: clicks and inputs only
4. ``full``: fetch + sendBeacon, in-page domain watch and unload flush

A strategy counts as installed only when the page reports both the
activation flag and the visible indicator.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from web_recorder.config import Settings
from web_recorder.exceptions import BrowserClosed, DriverError, InjectionExhausted
from web_recorder.interfaces.driver import IBrowserDriver
from web_recorder.recorder.models import (
    InjectionAttempt,
    InjectionOutcome,
    RecordingSession,
    RecordingStatus,
)
from web_recorder.recorder.scripts import STRATEGY_ORDER, ScriptRenderer

logger = logging.getLogger(__name__)


def is_injection_verified(flag_active: bool, marker_present: bool) -> bool:
    """An injection is verified only when the flag and the marker are both present."""
    return bool(flag_active) and bool(marker_present)


class InjectionOrchestrator:
    """
    Runs injection strategies against a driver until one verifies.

    Example:
        >>> orchestrator = InjectionOrchestrator(settings)
        >>> outcome = await orchestrator.inject_with_retry(session, driver)
        >>> outcome.strategy
        'csp_tolerant'
    """

    def __init__(self, settings: Settings, renderer: Optional[ScriptRenderer] = None):
        self.settings = settings
        self.renderer = renderer or ScriptRenderer(settings)

    def strategies_for(self, driver: IBrowserDriver) -> List[str]:
        """Strategies to try for a driver, in order."""
        return [
            name for name in STRATEGY_ORDER
            if name != "native" or driver.supports_native_injection
        ]

    async def inject_with_retry(
        self,
        session: RecordingSession,
        driver: IBrowserDriver,
        max_attempts: Optional[int] = None,
    ) -> InjectionOutcome:
        """
        Inject the recorder script, retrying whole passes over the strategies.

        Args:
            session: Session the script reports to
            driver: Driver of that session
            max_attempts: Passes over the strategy list (settings default if None)

        Returns:
            The successful outcome, also stored on ``session.last_injection``

        Raises:
            BrowserClosed: If the browser goes away mid-injection
            InjectionExhausted: If no strategy verified on any pass
        """
        injection = self.settings.injection
        max_attempts = max_attempts or injection.max_attempts
        attempts: List[InjectionAttempt] = []

        for attempt in range(1, max_attempts + 1):
            await self._relax_security(driver)

            for strategy in self.strategies_for(driver):
                result = await self._try_strategy(strategy, attempt, session.id, driver)
                attempts.append(result)
                if not result.verified:
                    continue

                outcome = InjectionOutcome(success=True, strategy=strategy, attempts=tuple(attempts))
                session.last_injection = outcome
                session.degraded = False
                logger.info(f"Injected recorder into session {session.id} using {strategy} (pass {attempt})")

                if session.status is RecordingStatus.PAUSED:
                    await self.set_paused(driver, True)
                return outcome

            if attempt < max_attempts:
                logger.warning(
                    f"No injection strategy verified for session {session.id} "
                    f"(pass {attempt}/{max_attempts}), retrying in {injection.retry_delay_seconds}s"
                )
                await asyncio.sleep(injection.retry_delay_seconds)

        session.last_injection = InjectionOutcome(success=False, strategy=None, attempts=tuple(attempts))
        session.degraded = True
        raise InjectionExhausted(
            f"Injection failed for session {session.id} after {max_attempts} passes",
            attempts=[a.to_dict() for a in attempts],
        )

    async def _relax_security(self, driver: IBrowserDriver) -> None:
        try:
            await driver.relax_security()
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"Security relaxation failed for session {driver.session_id}: {e}")

    async def _try_strategy(
        self,
        strategy: str,
        attempt: int,
        session_id: str,
        driver: IBrowserDriver,
    ) -> InjectionAttempt:
        script = self.renderer.recorder_script(strategy, session_id)
        try:
            if strategy == "native":
                await driver.inject_native(script)
            else:
                await driver.inject_script(script)
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"Strategy {strategy} failed for session {session_id}: {e}")
            return InjectionAttempt(strategy=strategy, attempt=attempt, verified=False, error=str(e))

        settle = self.settings.injection.settle_delay_seconds
        if settle > 0:
            await asyncio.sleep(settle)

        flag_active, marker_present = await self.probe(driver)
        verified = is_injection_verified(flag_active, marker_present)
        if not verified:
            logger.debug(
                f"Strategy {strategy} unverified for session {session_id} "
                f"(flag={flag_active}, marker={marker_present})"
            )
        return InjectionAttempt(
            strategy=strategy,
            attempt=attempt,
            verified=verified,
            flag_active=flag_active,
            marker_present=marker_present,
        )

    async def probe(self, driver: IBrowserDriver) -> Tuple[bool, bool]:
        """
        Read the activation flag and marker presence from the page.

        Returns:
            ``(flag_active, marker_present)``; ``(False, False)`` if the page
            could not be queried
        """
        try:
            result = await driver.execute_script(self.renderer.probe_script())
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"Probe failed for session {driver.session_id}: {e}")
            return False, False

        if not isinstance(result, dict):
            return False, False
        return result.get("active") is True, bool(result.get("marker"))

    async def is_active(self, driver: IBrowserDriver) -> bool:
        flag_active, _ = await self.probe(driver)
        return flag_active

    async def ensure_marker(self, driver: IBrowserDriver) -> bool:
        """Recreate the recording indicator if the page removed it."""
        try:
            return bool(await driver.execute_script(self.renderer.ensure_marker_script()))
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"Could not restore indicator for session {driver.session_id}: {e}")
            return False

    async def set_paused(self, driver: IBrowserDriver, paused: bool) -> bool:
        """Toggle the in-page paused flag."""
        try:
            await driver.execute_script(self.renderer.set_paused_script(paused))
            return True
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.warning(f"Could not set paused={paused} in page for session {driver.session_id}: {e}")
            return False

    async def teardown(self, driver: IBrowserDriver) -> bool:
        """Disable capture and remove the indicator from the page."""
        try:
            await driver.execute_script(self.renderer.teardown_script())
            return True
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"In-page teardown failed for session {driver.session_id}: {e}")
            return False

    async def debug_snapshot(self, driver: IBrowserDriver) -> Dict[str, Any]:
        """In-page introspection map for the debug endpoint."""
        try:
            result = await driver.execute_script(self.renderer.debug_script())
        except BrowserClosed:
            raise
        except DriverError as e:
            return {"error": str(e)}
        return result if isinstance(result, dict) else {"result": result}
