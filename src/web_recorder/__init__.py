"""
Web Recorder - Records user interactions in remote-controlled browsers.

The recorder launches a browser through an automation backend (Playwright,
Selenium or an out-of-process sidecar service), injects an instrumented
script into the page and collects the interaction events that script posts
back over HTTP.

Example:
    >>> from web_recorder.server import RecorderState
    >>> state = RecorderState(load_config())
    >>> session = await state.controller.start(build_recording_config(state.settings, base_url="example.com"))
"""

__version__ = "0.1.0"

from web_recorder.config import Settings, get_settings, load_config
from web_recorder.exceptions import WebRecorderError

__all__ = [
    "Settings",
    "get_settings",
    "load_config",
    "WebRecorderError",
    "__version__",
]
