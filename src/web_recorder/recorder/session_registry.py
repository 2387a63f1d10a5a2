"""
Session Registry - The single owner of live recording sessions.

Request handlers and supervision loops both look sessions up here. All
reads and writes of the map go through one lock, and removal is atomic so
exactly one caller "wins" a session's teardown.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional

from web_recorder.exceptions import SessionNotFound
from web_recorder.interfaces.driver import IBrowserDriver
from web_recorder.recorder.models import RecordingSession

logger = logging.getLogger(__name__)


@dataclass
class SessionEntry:
    """A live session and the driver handle it exclusively owns."""
    session: RecordingSession
    driver: IBrowserDriver


class SessionRegistry:
    """
    Concurrency-safe map of session id to live session + driver.

    Sessions removed from the live map are kept in a bounded archive so
    their info and final events remain readable after completion.
    """

    def __init__(self, finished_limit: int = 100):
        self._lock = threading.Lock()
        self._active: Dict[str, SessionEntry] = {}
        self._finished: "OrderedDict[str, RecordingSession]" = OrderedDict()
        self._finished_limit = finished_limit

    def create(self, session: RecordingSession, driver: IBrowserDriver) -> SessionEntry:
        """
        Register a new session.

        Raises:
            ValueError: If the id is already live
        """
        entry = SessionEntry(session=session, driver=driver)
        with self._lock:
            if session.id in self._active:
                raise ValueError(f"Session already registered: {session.id}")
            self._active[session.id] = entry
        logger.debug(f"Registered session {session.id}")
        return entry

    def get(self, session_id: str) -> Optional[SessionEntry]:
        """Get a live session, or None."""
        with self._lock:
            return self._active.get(session_id)

    def require(self, session_id: str) -> SessionEntry:
        """
        Get a live session.

        Raises:
            SessionNotFound: If no live session has this id
        """
        entry = self.get(session_id)
        if entry is None:
            raise SessionNotFound(session_id)
        return entry

    def replace_driver(self, session_id: str, driver: IBrowserDriver) -> SessionEntry:
        """
        Swap the driver of a live session (reconnect).

        Raises:
            SessionNotFound: If no live session has this id
        """
        with self._lock:
            entry = self._active.get(session_id)
            if entry is None:
                raise SessionNotFound(session_id)
            entry.driver = driver
            return entry

    def remove(self, session_id: str) -> Optional[SessionEntry]:
        """
        Atomically remove a live session and archive it.

        Returns:
            The removed entry, or None if another caller already removed it
        """
        with self._lock:
            entry = self._active.pop(session_id, None)
            if entry is None:
                return None
            if self._finished_limit > 0:
                self._finished[session_id] = entry.session
                while len(self._finished) > self._finished_limit:
                    self._finished.popitem(last=False)
        logger.debug(f"Removed session {session_id}")
        return entry

    def find_session(self, session_id: str) -> Optional[RecordingSession]:
        """Look a session up among live and finished sessions."""
        with self._lock:
            entry = self._active.get(session_id)
            if entry is not None:
                return entry.session
            return self._finished.get(session_id)

    def contains(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._active

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._active)

    def list_sessions(self) -> List[RecordingSession]:
        """Live sessions first, then finished ones (oldest first)."""
        with self._lock:
            live = [entry.session for entry in self._active.values()]
            return live + list(self._finished.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)
