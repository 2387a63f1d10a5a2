"""
Server module - HTTP surface of the recorder.
"""

from web_recorder.server.app import create_app, run_server
from web_recorder.server.state import RecorderState

__all__ = [
    "create_app",
    "run_server",
    "RecorderState",
]
