"""
Interfaces module - Abstract base classes for pluggable components.
"""

from web_recorder.interfaces.driver import (
    IBrowserDriver,
    BrowserKind,
    DriverFamily,
    Viewport,
)

__all__ = [
    "IBrowserDriver",
    "BrowserKind",
    "DriverFamily",
    "Viewport",
]
