"""
Exceptions module - Custom exception hierarchy.

This module defines all custom exceptions used throughout Web Recorder,
providing clear error types for different failure scenarios.
"""

from web_recorder.exceptions.base import (
    WebRecorderError,
    ConfigurationError,
)
from web_recorder.exceptions.driver import (
    DriverError,
    DriverStartFailure,
    NavigationFailure,
    ScriptExecutionError,
    DriverTimeout,
    BrowserClosed,
    SidecarUnavailable,
)
from web_recorder.exceptions.session import (
    SessionError,
    SessionNotFound,
    InvalidEventPayload,
    UnsupportedEventType,
    InvalidStatusTransition,
    InjectionExhausted,
)

__all__ = [
    # Base exceptions
    "WebRecorderError",
    "ConfigurationError",
    # Driver exceptions
    "DriverError",
    "DriverStartFailure",
    "NavigationFailure",
    "ScriptExecutionError",
    "DriverTimeout",
    "BrowserClosed",
    "SidecarUnavailable",
    # Session exceptions
    "SessionError",
    "SessionNotFound",
    "InvalidEventPayload",
    "UnsupportedEventType",
    "InvalidStatusTransition",
    "InjectionExhausted",
]
