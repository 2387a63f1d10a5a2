"""
Browser driver exceptions.
"""

from web_recorder.exceptions.base import WebRecorderError


class DriverError(WebRecorderError):
    """Base exception for browser driver errors."""
    pass


class DriverStartFailure(DriverError):
    """
    The browser could not be started.

    Raised when a driver fails to launch its browser, which could be due to:
    - Missing browser binaries or webdriver
    - Invalid launch options
    - The start timeout elapsing
    """

    def __init__(self, message: str, browser_kind: str | None = None):
        super().__init__(message, {"browser_kind": browser_kind})
        self.browser_kind = browser_kind


class NavigationFailure(DriverError):
    """Navigation to the session's start URL failed."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, {"url": url})
        self.url = url


class ScriptExecutionError(DriverError):
    """A script evaluated in the page raised or could not be delivered."""
    pass


class DriverTimeout(DriverError):
    """
    A driver operation exceeded its timeout.
    """

    def __init__(self, message: str, timeout_seconds: float, operation: str | None = None):
        super().__init__(message, {"timeout_seconds": timeout_seconds, "operation": operation})
        self.timeout_seconds = timeout_seconds
        self.operation = operation


class BrowserClosed(DriverError):
    """
    The browser window or automation target is gone.

    Raised when a driver call fails with one of the known
    "window/target closed" error messages. The recorder treats this as the
    user closing the browser, not as a failure.
    """
    pass


class SidecarUnavailable(DriverError):
    """
    The out-of-process automation service cannot be reached.

    Raised when the sidecar is not running and could not be started, or did
    not report healthy within the startup timeout.
    """

    def __init__(self, message: str, service_url: str | None = None):
        super().__init__(message, {"service_url": service_url})
        self.service_url = service_url
