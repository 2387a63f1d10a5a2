"""
Driver Base - Behaviour shared by every driver family.

Concrete drivers implement the ``_launch``/``_shutdown`` hooks and the
backend calls; this class provides the start/stop bookkeeping, per-call
timeouts, error translation and last-known location tracking.
"""

import logging
from abc import abstractmethod
from typing import Any, Awaitable, Iterable, Optional, TypeVar

from web_recorder.config import Settings
from web_recorder.exceptions import (
    BrowserClosed,
    DriverError,
    DriverStartFailure,
    ScriptExecutionError,
    SidecarUnavailable,
)
from web_recorder.interfaces.driver import IBrowserDriver
from web_recorder.recorder.models import RecordingConfig
from web_recorder.utils.retry import with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

BLANK_PAGE = "about:blank"


def extract_domain(url: Optional[str]) -> str:
    """
    Reduce a URL to its scheme-stripped host part.

    Example:
        >>> extract_domain("https://shop.example.com/cart?id=1")
        'shop.example.com'
        >>> extract_domain("about:blank")
        'about:blank'
    """
    if not url:
        return ""
    if url == BLANK_PAGE:
        return BLANK_PAGE
    rest = url.split("://", 1)[1] if "://" in url else url
    for separator in ("/", "?", "#"):
        rest = rest.split(separator, 1)[0]
    return rest


def is_closure_error(error: Any, markers: Iterable[str]) -> bool:
    """Whether an error message means the browser window or target is gone."""
    if isinstance(error, BrowserClosed):
        return True
    message = str(error).lower()
    return any(marker.lower() in message for marker in markers)


def function_call(script: str) -> str:
    """
    Wrap a function body so it can be evaluated with an argument array.

    The result is a JS expression taking ``args`` that calls the body with
    ``arguments`` bound to the array.
    """
    return f"(args) => (function() {{\n{script}\n}}).apply(null, args)"


def async_function_call(script: str) -> str:
    """Like ``function_call``, appending a resolve callback to ``arguments``."""
    return (
        "(args) => new Promise((resolve) => (function() {\n"
        f"{script}\n"
        "}).apply(null, args.concat([resolve])))"
    )


class BaseBrowserDriver(IBrowserDriver):
    """
    Common driver bookkeeping.

    Subclasses implement the backend hooks. Every backend call should go
    through ``_call`` so it carries a timeout and raises typed errors.
    """

    def __init__(self, session_id: str, config: RecordingConfig, settings: Settings):
        self.session_id = session_id
        self.config = config
        self.settings = settings
        self.last_known_url = ""
        self.last_known_title = ""
        self.last_known_domain = ""
        self._running = False
        self._launching = False
        self._stop_requested = False
        self._network_capturing = False
        self._console_capturing = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def command_timeout(self) -> float:
        return self.config.command_timeout_seconds or self.settings.browser.command_timeout_seconds

    @property
    def probe_timeout(self) -> float:
        return self.settings.browser.probe_timeout_seconds

    @property
    def closure_markers(self) -> Iterable[str]:
        return self.settings.supervisor.closure_markers

    # ==================== Hooks ====================

    @abstractmethod
    async def _launch(self) -> None:
        """Start the backend browser."""
        pass

    @abstractmethod
    async def _shutdown(self) -> None:
        """Release the backend browser."""
        pass

    # ==================== Lifecycle ====================

    async def start(self, timeout: float) -> bool:
        if self._running:
            return True

        kind = self.config.browser_kind.value
        self._launching = True
        self._stop_requested = False
        try:
            await with_timeout(self._launch(), timeout, f"start {kind}")
        except (DriverStartFailure, SidecarUnavailable):
            await self._safe_shutdown()
            raise
        except Exception as e:
            await self._safe_shutdown()
            raise DriverStartFailure(f"Failed to start {kind}: {e}", kind)
        finally:
            self._launching = False

        if self._stop_requested:
            await self._safe_shutdown()
            raise DriverStartFailure(f"{kind} browser was stopped while launching", kind)

        self._running = True
        logger.info(f"Started {kind} browser for session {self.session_id}")

        viewport = self.config.viewport
        await self.set_viewport(viewport.width, viewport.height)
        if self.config.capture_network:
            await self.set_network_capturing(True)
        if self.config.capture_console:
            await self.set_console_capturing(True)
        return True

    async def stop(self) -> None:
        if self._launching:
            # start() releases the backend once the launch returns
            self._stop_requested = True
            return
        if not self._running:
            return
        self._running = False
        await self._safe_shutdown()
        logger.info(f"Stopped browser for session {self.session_id}")

    async def _safe_shutdown(self) -> None:
        try:
            await self._shutdown()
        except Exception as e:
            logger.warning(f"Error while closing browser for session {self.session_id}: {e}")

    # ==================== Helpers ====================

    def remember_location(self, url: Optional[str], title: Optional[str] = None) -> None:
        """Record the last URL/title seen. The domain is left to the supervisor."""
        if url:
            self.last_known_url = url
            if not self.last_known_domain:
                self.last_known_domain = extract_domain(url)
        if title is not None:
            self.last_known_title = title

    def translate_error(self, error: Exception, operation: str) -> DriverError:
        """Map a backend exception onto the driver error taxonomy."""
        if isinstance(error, DriverError):
            return error
        if is_closure_error(error, self.closure_markers):
            return BrowserClosed(
                f"Browser closed during {operation}",
                {"session_id": self.session_id, "error": str(error)},
            )
        return ScriptExecutionError(
            f"{operation} failed: {error}",
            {"session_id": self.session_id},
        )

    async def _call(self, awaitable: Awaitable[T], operation: str, timeout: Optional[float] = None) -> T:
        """Await a backend call with a timeout, raising typed errors."""
        try:
            return await with_timeout(awaitable, timeout or self.command_timeout, operation)
        except Exception as e:
            raise self.translate_error(e, operation) from e

    async def set_network_capturing(self, enabled: bool) -> None:
        self._network_capturing = enabled

    async def set_console_capturing(self, enabled: bool) -> None:
        self._console_capturing = enabled
