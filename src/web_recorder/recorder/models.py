"""
Recording Models - Session state, configuration and injection diagnostics.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from web_recorder.exceptions import InvalidStatusTransition
from web_recorder.interfaces.driver import BrowserKind, Viewport
from web_recorder.recorder.events import RecordedEvent


class RecordingStatus(str, Enum):
    """Recording session states."""
    IDLE = "IDLE"
    INITIALIZING = "INITIALIZING"
    RECORDING = "RECORDING"
    PAUSED = "PAUSED"
    STOPPING = "STOPPING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (RecordingStatus.COMPLETED, RecordingStatus.ERROR)

    @classmethod
    def parse(cls, value: Any) -> Optional["RecordingStatus"]:
        """Case-insensitive lookup; None for unknown values."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


_S = RecordingStatus

ALLOWED_TRANSITIONS: Dict[RecordingStatus, FrozenSet[RecordingStatus]] = {
    _S.IDLE: frozenset({_S.INITIALIZING, _S.STOPPING, _S.ERROR}),
    _S.INITIALIZING: frozenset({_S.RECORDING, _S.STOPPING, _S.ERROR}),
    _S.RECORDING: frozenset({_S.PAUSED, _S.STOPPING, _S.ERROR}),
    _S.PAUSED: frozenset({_S.RECORDING, _S.STOPPING, _S.ERROR}),
    _S.STOPPING: frozenset({_S.COMPLETED, _S.ERROR}),
    _S.COMPLETED: frozenset(),
    _S.ERROR: frozenset(),
}


@dataclass
class RecordingConfig:
    """
    Per-session recording configuration.

    Attributes:
        browser_kind: Browser and driver family to record with
        base_url: Page to open once the browser is up ("about:blank" is kept as-is)
        viewport: Initial viewport size
        headless: Run the browser without a window
        environment_variables: Extra environment for the browser process
        capture_network: Buffer network requests while recording
        capture_console: Buffer console messages while recording
        capture_screenshots: Let the page script request screenshots
        max_event_count: Reject events past this many (0 = unbounded)
        start_timeout_seconds: Driver start timeout (None = settings default)
        command_timeout_seconds: Per-call driver timeout (None = settings default)
        name: Optional human-readable label
    """
    browser_kind: BrowserKind = BrowserKind.CHROME_PLAYWRIGHT
    base_url: Optional[str] = None
    viewport: Viewport = field(default_factory=Viewport)
    headless: bool = False
    environment_variables: Dict[str, str] = field(default_factory=dict)
    capture_network: bool = False
    capture_console: bool = False
    capture_screenshots: bool = False
    max_event_count: int = 0
    start_timeout_seconds: Optional[float] = None
    command_timeout_seconds: Optional[float] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "browserKind": self.browser_kind.value,
            "baseUrl": self.base_url,
            "viewport": self.viewport.to_dict(),
            "headless": self.headless,
            "environmentVariables": dict(self.environment_variables),
            "captureNetwork": self.capture_network,
            "captureConsole": self.capture_console,
            "captureScreenshots": self.capture_screenshots,
            "maxEventCount": self.max_event_count,
            "startTimeoutSeconds": self.start_timeout_seconds,
            "commandTimeoutSeconds": self.command_timeout_seconds,
            "name": self.name,
        }


@dataclass
class BrowserMetadata:
    """Browser details reported by the page, best effort."""
    browser: Optional[str] = None
    os: Optional[str] = None
    user_agent: Optional[str] = None
    browser_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "browser": self.browser,
            "os": self.os,
            "userAgent": self.user_agent,
            "browserVersion": self.browser_version,
        }


@dataclass(frozen=True)
class InjectionAttempt:
    """Result of running and verifying one injection strategy."""
    strategy: str
    attempt: int
    verified: bool
    flag_active: bool = False
    marker_present: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "attempt": self.attempt,
            "verified": self.verified,
            "flagActive": self.flag_active,
            "markerPresent": self.marker_present,
            "error": self.error,
        }


@dataclass(frozen=True)
class InjectionOutcome:
    """Result of a full inject-with-retry run."""
    success: bool
    strategy: Optional[str]
    attempts: Tuple[InjectionAttempt, ...]
    finished_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "strategy": self.strategy,
            "finishedAt": self.finished_at,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class RecordingSession:
    """
    One recording run.

    The event list is append-only and only reachable through
    ``append_event`` and the ``events`` snapshot. Status changes go through
    ``transition``, which enforces the session state machine; the lifecycle
    controller is the only caller.
    """
    config: RecordingConfig
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    browser_metadata: Optional[BrowserMetadata] = None
    last_injection: Optional[InjectionOutcome] = None
    degraded: bool = False
    error: Optional[str] = None

    _status: RecordingStatus = field(default=RecordingStatus.IDLE, init=False, repr=False)
    _history: List[Tuple[RecordingStatus, float]] = field(default_factory=list, init=False, repr=False)
    _events: List[RecordedEvent] = field(default_factory=list, init=False, repr=False)
    _event_ids: set = field(default_factory=set, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self._history.append((self._status, self.start_time))

    @property
    def status(self) -> RecordingStatus:
        return self._status

    @property
    def status_history(self) -> List[RecordingStatus]:
        """Every status the session has been in, oldest first."""
        with self._lock:
            return [status for status, _ in self._history]

    @property
    def events(self) -> Tuple[RecordedEvent, ...]:
        """Snapshot of the events in insertion order."""
        with self._lock:
            return tuple(self._events)

    @property
    def event_count(self) -> int:
        with self._lock:
            return len(self._events)

    def event_ids(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._event_ids)

    def append_event(self, event: RecordedEvent) -> int:
        """
        Append an event atomically.

        Returns:
            The new event count
        """
        with self._lock:
            self._events.append(event)
            self._event_ids.add(event.id)
            return len(self._events)

    def transition(self, new_status: RecordingStatus, forced: bool = False) -> RecordingStatus:
        """
        Move to ``new_status``.

        Args:
            new_status: Target status
            forced: Closure path; allows any non-terminal status to jump
                straight to COMPLETED

        Returns:
            The previous status

        Raises:
            InvalidStatusTransition: If the state machine forbids the move
        """
        with self._lock:
            current = self._status
            allowed = new_status in ALLOWED_TRANSITIONS[current]
            if forced and new_status is RecordingStatus.COMPLETED and not current.is_terminal:
                allowed = True
            if not allowed:
                raise InvalidStatusTransition(current.value, new_status.value)

            self._status = new_status
            now = time.time()
            self._history.append((new_status, now))
            if new_status.is_terminal:
                self.end_time = now
            return current

    def to_dict(self, include_events: bool = False) -> Dict[str, Any]:
        """Session info map as served by the info endpoints."""
        data = {
            "id": self.id,
            "name": self.config.name,
            "status": self.status.value,
            "eventCount": self.event_count,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "config": self.config.to_dict(),
            "browserMetadata": self.browser_metadata.to_dict() if self.browser_metadata else None,
            "degraded": self.degraded,
            "error": self.error,
        }
        if include_events:
            data["events"] = [e.to_dict() for e in self.events]
        return data
