"""
Browser Driver Interface - Abstract base class for browser automation backends.

This module defines the contract every driver family must follow so that
injection, supervision and lifecycle code is written once:

- In-process drivers hold one automation-library connection per session
  (Playwright, Selenium).
- Out-of-process drivers are thin RPC clients to a sidecar automation
  service.

Scripts passed to ``execute_script`` are JavaScript function bodies: the
positional args are available as ``arguments`` and ``return`` yields the
result. For ``execute_async_script`` the completion callback is the last
entry of ``arguments``.

Example:
    >>> from web_recorder.registry import DriverRegistry
    >>> driver = DriverRegistry.create(BrowserKind.CHROME_PLAYWRIGHT, "session-1", config, settings)
    >>> await driver.start(timeout=30)
    >>> await driver.navigate("https://example.com")
    >>> await driver.execute_script("return document.title")
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class DriverFamily(str, Enum):
    """Driver implementations a browser kind can map to."""
    PLAYWRIGHT = "playwright"
    SELENIUM = "selenium"
    SIDECAR = "sidecar"


class BrowserKind(str, Enum):
    """Supported browser kinds for a recording session."""
    CHROME = "chrome"
    FIREFOX = "firefox"
    EDGE = "edge"
    SAFARI = "safari"
    CHROME_PLAYWRIGHT = "chrome-playwright"
    FIREFOX_PLAYWRIGHT = "firefox-playwright"
    WEBKIT_PLAYWRIGHT = "webkit-playwright"
    EDGE_PLAYWRIGHT = "edge-playwright"
    CHROMIUM_SIDECAR = "chromium-sidecar"
    FIREFOX_SIDECAR = "firefox-sidecar"
    WEBKIT_SIDECAR = "webkit-sidecar"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "BrowserKind":
        """Parse a browser kind, falling back to Chrome on Playwright."""
        if not value:
            return cls.CHROME_PLAYWRIGHT
        normalized = value.strip().lower().replace("_", "-")
        for kind in cls:
            if kind.value == normalized:
                return kind
        return cls.CHROME_PLAYWRIGHT

    @property
    def family(self) -> DriverFamily:
        """Driver family that implements this kind."""
        if self.value.endswith("-playwright"):
            return DriverFamily.PLAYWRIGHT
        if self.value.endswith("-sidecar"):
            return DriverFamily.SIDECAR
        return DriverFamily.SELENIUM

    @property
    def engine(self) -> str:
        """Underlying browser engine name (chromium, firefox, webkit, ...)."""
        base = self.value.split("-")[0]
        if self.family is DriverFamily.SELENIUM:
            return base
        if base in ("chrome", "edge"):
            return "chromium"
        return base


@dataclass(frozen=True)
class Viewport:
    """Browser viewport size in CSS pixels."""
    width: int = 1280
    height: int = 800

    def to_dict(self) -> Dict[str, int]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["Viewport"]:
        if not isinstance(data, dict):
            return None
        try:
            return cls(width=int(data["width"]), height=int(data["height"]))
        except (KeyError, TypeError, ValueError):
            return None


class IBrowserDriver(ABC):
    """
    Abstract interface for a browser driver owned by one recording session.

    Every operation fails with a ``DriverError`` subclass rather than a raw
    backend exception. Errors that mean the window or target is gone are
    raised as ``BrowserClosed``.

    The handle caches the last known URL, title and domain so supervision
    loops can detect drift without re-querying the browser.
    """

    session_id: str
    last_known_url: str
    last_known_title: str
    last_known_domain: str

    @property
    @abstractmethod
    def is_running(self) -> bool:
        """Whether the browser is started and not yet stopped."""
        pass

    @abstractmethod
    async def start(self, timeout: float) -> bool:
        """
        Launch the browser.

        Args:
            timeout: Seconds to wait for the browser to become usable

        Returns:
            True if the browser started
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Close the browser and release all resources. Safe to call twice."""
        pass

    @abstractmethod
    async def navigate(self, url: str) -> bool:
        """
        Navigate the page to a URL.

        Args:
            url: Destination, passed to the backend unmodified

        Returns:
            True if navigation succeeded
        """
        pass

    @abstractmethod
    async def set_viewport(self, width: int, height: int) -> None:
        """Resize the page viewport."""
        pass

    @abstractmethod
    async def execute_script(self, script: str, *args: Any) -> Any:
        """
        Execute a synchronous script in the page.

        Args:
            script: JavaScript function body
            *args: Values exposed to the script as ``arguments``

        Returns:
            The script's return value
        """
        pass

    @abstractmethod
    async def execute_async_script(self, script: str, *args: Any) -> Any:
        """
        Execute an asynchronous script in the page.

        The script signals completion by calling the last entry of
        ``arguments`` with its result.
        """
        pass

    async def inject_script(self, script: str) -> Any:
        """Execute a script whose purpose is to install instrumentation."""
        return await self.execute_script(script)

    @abstractmethod
    async def capture_screenshot(self) -> bytes:
        """Capture the visible page as PNG bytes."""
        pass

    @abstractmethod
    async def capture_element_screenshot(self, selector: str) -> bytes:
        """Capture one element (by CSS selector) as PNG bytes."""
        pass

    @abstractmethod
    async def current_url(self) -> str:
        """Get the page's current URL."""
        pass

    @abstractmethod
    async def title(self) -> str:
        """Get the page's current title."""
        pass

    @abstractmethod
    async def set_network_capturing(self, enabled: bool) -> None:
        """Start or stop buffering network requests."""
        pass

    @abstractmethod
    async def set_console_capturing(self, enabled: bool) -> None:
        """Start or stop buffering console messages."""
        pass

    @abstractmethod
    async def wait_for_condition(self, predicate: str, timeout_ms: int) -> bool:
        """
        Wait until a JavaScript predicate returns a truthy value.

        Args:
            predicate: JavaScript function body returning a boolean
            timeout_ms: Maximum wait in milliseconds

        Returns:
            True if the predicate held before the timeout
        """
        pass

    @abstractmethod
    async def is_responsive(self) -> bool:
        """
        Probe the browser with a short timeout.

        Never raises: any failure, including a closed window, is reported
        as unresponsive.
        """
        pass

    @property
    def supports_native_injection(self) -> bool:
        """Whether the driver can register a script for every new document."""
        return False

    async def inject_native(self, script: str) -> None:
        """Register ``script`` to run on every new document and run it now."""
        raise NotImplementedError(f"{type(self).__name__} has no native injection")

    async def relax_security(self) -> None:
        """Best-effort CSP/CORS relaxation. No-op unless the backend supports it."""
        return None

    async def captured_logs(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Buffered network requests and console messages.

        Only filled while capture is switched on; backends without capture
        support report empty buffers.
        """
        return {"network": [], "console": []}
