"""
Event Broadcaster - Fan-out of recorder notifications to subscribers.

Subscribers (SSE streams, the CLI) each get a bounded queue. Publishing
never blocks: when a subscriber falls behind, its notification is dropped.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventBroadcaster:
    """Publishes recorder notifications to subscriber queues."""

    def __init__(self, queue_size: int = 1000):
        self._queue_size = queue_size
        self._subscribers: List[asyncio.Queue] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        """Create a queue that receives every future notification."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, notification_type: str, session_id: str, data: Optional[Dict[str, Any]] = None) -> None:
        """
        Send a notification to every subscriber.

        Args:
            notification_type: ``event_recorded``, ``status`` or ``connection``
            session_id: Session the notification concerns
            data: Type-specific payload
        """
        message = {
            "type": notification_type,
            "sessionId": session_id,
            "timestamp": time.time(),
            **(data or {}),
        }
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"Subscriber queue full, dropping {notification_type} for {session_id}")

    def event_recorded(self, session_id: str, event: Dict[str, Any], event_count: int) -> None:
        self.publish("event_recorded", session_id, {"event": event, "eventCount": event_count})

    def status_changed(self, session_id: str, status: str, previous: Optional[str] = None) -> None:
        self.publish("status", session_id, {"status": status, "previous": previous})

    def connection_changed(self, session_id: str, connected: bool, reason: Optional[str] = None) -> None:
        self.publish("connection", session_id, {"connected": connected, "reason": reason})
