"""
Recording session exceptions.
"""

from typing import Any, Dict, List, Optional

from web_recorder.exceptions.base import WebRecorderError


class SessionError(WebRecorderError):
    """Base exception for recording session errors."""
    pass


class SessionNotFound(SessionError):
    """No active session is registered under the given key."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", {"session_id": session_id})
        self.session_id = session_id


class InvalidEventPayload(SessionError):
    """
    An inbound event payload failed validation.

    Raised when a required field for the declared event type is missing or
    malformed. The payload is never appended to the session.
    """

    def __init__(self, message: str, event_type: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, {"event_type": event_type, "field": field})
        self.event_type = event_type
        self.field = field


class UnsupportedEventType(SessionError):
    """The payload declares an event type outside the known taxonomy."""

    def __init__(self, event_type: Any):
        super().__init__(f"Unsupported event type: {event_type}", {"event_type": event_type})
        self.event_type = event_type


class InvalidStatusTransition(SessionError):
    """
    A status change is not allowed from the session's current status.
    """

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot transition from {current} to {requested}",
            {"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class InjectionExhausted(SessionError):
    """
    Every injection strategy failed verification after all attempts.

    Not fatal: the session stays RECORDING in a degraded state and a later
    health check retries the injection.
    """

    def __init__(self, message: str, attempts: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, {"attempts": len(attempts or [])})
        self.attempts = attempts or []
