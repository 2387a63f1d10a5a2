"""
Registry module - Driver registration and discovery.
"""

from web_recorder.registry.registry import DriverRegistry

__all__ = [
    "DriverRegistry",
]
