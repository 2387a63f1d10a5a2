"""
Utilities module - Common utility functions.
"""

from web_recorder.utils.logging import setup_logging
from web_recorder.utils.retry import RetryConfig, retry_async, with_timeout, poll_until

__all__ = [
    "setup_logging",
    "RetryConfig",
    "retry_async",
    "with_timeout",
    "poll_until",
]
