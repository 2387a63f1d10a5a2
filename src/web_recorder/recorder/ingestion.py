"""
Event Ingestion Gateway - Entry point for everything the page script posts.

The page reports interaction events, status changes, control actions
(pause/stop buttons, unload beacon) and browser details. The gateway
validates them, appends events to the session and hands status/control
requests to the lifecycle controller. It never calls the browser driver.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from web_recorder.config import Settings
from web_recorder.exceptions import InvalidEventPayload, InvalidStatusTransition, SessionNotFound
from web_recorder.recorder.broadcast import EventBroadcaster
from web_recorder.recorder.events import InputEvent, RecordedEvent, build_event
from web_recorder.recorder.lifecycle import SessionLifecycleController
from web_recorder.recorder.models import BrowserMetadata, RecordingSession, RecordingStatus
from web_recorder.recorder.session_registry import SessionRegistry
from web_recorder.recorder.supervisor import ResilienceSupervisor

logger = logging.getLogger(__name__)

CONTROL_ACTIONS = frozenset({
    "PAUSE",
    "RESUME",
    "STOP",
    "BROWSER_CLOSING",
    "UNLOAD",
    "NEEDS_REINJECTION",
})


def _describe(event: RecordedEvent) -> str:
    """Short log line for an event. Password values never appear."""
    parts = [event.event_type.value]
    if event.target_element is not None:
        parts.append(event.target_element.best_locator or event.target_element.tag_name)
    if isinstance(event, InputEvent) and event.value is not None:
        parts.append("value=***" if event.is_password else f"value={event.value[:40]!r}")
    return " ".join(parts)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class EventIngestionGateway:
    """
    Validates and routes inbound page traffic.

    Example:
        >>> gateway = EventIngestionGateway(settings, sessions, controller, broadcaster, supervisor)
        >>> event_id = gateway.process_event(session_id, {"type": "CLICK", ...})
    """

    def __init__(
        self,
        settings: Settings,
        sessions: SessionRegistry,
        controller: SessionLifecycleController,
        broadcaster: EventBroadcaster,
        supervisor: ResilienceSupervisor,
    ):
        self.settings = settings
        self.sessions = sessions
        self.controller = controller
        self.broadcaster = broadcaster
        self.supervisor = supervisor

    def process_event(self, session_id: str, payload: Any) -> str:
        """
        Validate a page event and append it to its session.

        Returns:
            The new event's id

        Raises:
            SessionNotFound: If no live session has this id
            InvalidEventPayload: If the payload is incomplete or the session
                reached its event limit
            UnsupportedEventType: If the event type is unknown
        """
        session = self.sessions.require(session_id).session

        limit = session.config.max_event_count
        if limit and session.event_count >= limit:
            raise InvalidEventPayload(
                f"Session {session_id} reached its event limit of {limit}",
                field="maxEventCount",
            )

        event = build_event(payload, str(uuid.uuid4()), session.event_ids())
        count = session.append_event(event)
        logger.debug(f"Session {session_id} event #{count}: {_describe(event)}")
        self.broadcaster.event_recorded(session_id, event.to_dict(), count)
        return event.id

    async def update_status(self, session_id: str, value: Any) -> RecordingSession:
        """
        Apply a status change requested by the page.

        Raises:
            InvalidEventPayload: If the value is not a known status
            SessionNotFound: If no live session has this id
            InvalidStatusTransition: If the change is not allowed from the
                current status
        """
        status = RecordingStatus.parse(value)
        if status is None:
            raise InvalidEventPayload(f"Unknown status: {value}", field="status")

        session = self.sessions.require(session_id).session
        current = session.status
        if status is current:
            return session

        if status is RecordingStatus.PAUSED:
            return await self.controller.pause(session_id)
        if status is RecordingStatus.RECORDING:
            return await self.controller.resume(session_id)
        if status in (RecordingStatus.STOPPING, RecordingStatus.COMPLETED):
            return await self.controller.stop(session_id)
        raise InvalidStatusTransition(current.value, status.value)

    async def process_control(self, session_id: str, action: Any, reason: Optional[str] = None) -> Dict[str, Any]:
        """
        Handle a control action from the in-page indicator or unload beacon.

        Raises:
            InvalidEventPayload: If the action is unknown
            SessionNotFound: If no live session has this id
        """
        name = str(action or "").strip().upper()
        if name not in CONTROL_ACTIONS:
            raise InvalidEventPayload(f"Unknown control action: {action}", field="action")

        session = self.sessions.require(session_id).session
        logger.info(f"Session {session_id} control {name}" + (f" ({reason})" if reason else ""))

        if name == "PAUSE":
            session = await self.controller.pause(session_id)
        elif name == "RESUME":
            session = await self.controller.resume(session_id)
        elif name == "STOP":
            session = await self.controller.stop(session_id)
        else:
            self.supervisor.poke(session_id)

        return {"action": name, "status": session.status.value}

    def process_browser_info(self, session_id: str, info: Any) -> bool:
        """
        Store browser details reported by the page. Never raises.

        Returns:
            True if the metadata was stored by this call
        """
        entry = self.sessions.get(session_id)
        if entry is None or not isinstance(info, dict):
            return False

        session = entry.session
        if session.browser_metadata is not None:
            return False

        session.browser_metadata = BrowserMetadata(
            browser=_optional_text(info.get("browser")),
            os=_optional_text(info.get("os")),
            user_agent=_optional_text(info.get("userAgent")),
            browser_version=_optional_text(info.get("browserVersion")),
        )
        return True

    def session_info(self, session_id: str) -> Dict[str, Any]:
        """
        Info map for a live or finished session.

        Raises:
            SessionNotFound: If the id is unknown
        """
        session = self.sessions.find_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session.to_dict()

    def session_events(self, session_id: str) -> List[Dict[str, Any]]:
        """Ordered event list of a live or finished session."""
        session = self.sessions.find_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return [event.to_dict() for event in session.events]
