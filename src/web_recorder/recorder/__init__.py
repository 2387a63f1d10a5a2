"""
Recorder module - Sessions, events, injection and supervision.

Import the orchestration components from their own modules
(``web_recorder.recorder.lifecycle``, ``.ingestion``, ...); this package
only re-exports the data model.
"""

from web_recorder.recorder.events import EventType, RecordedEvent, build_event
from web_recorder.recorder.models import (
    RecordingConfig,
    RecordingSession,
    RecordingStatus,
)

__all__ = [
    "EventType",
    "RecordedEvent",
    "build_event",
    "RecordingConfig",
    "RecordingSession",
    "RecordingStatus",
]
