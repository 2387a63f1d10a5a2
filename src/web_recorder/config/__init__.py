"""
Configuration module - Centralized settings management.

This module provides type-safe configuration management using Pydantic,
supporting environment variables, YAML files, and CLI arguments.

The settings object is built once at process start (CLI or server factory)
and handed to each component explicitly.

Usage:
    from web_recorder.config import get_settings, load_config

    # Get global settings (loaded once)
    settings = get_settings()

    # Or load fresh settings with overrides
    settings = load_config(server={"port": 9000})

Environment Variables:
    WEB_RECORDER__SERVER__HOST=0.0.0.0
    WEB_RECORDER__SERVER__PUBLIC_HOST=192.168.1.20
    WEB_RECORDER__SIDECAR__URL=http://localhost:3500
    WEB_RECORDER__BROWSER__HEADLESS=true
"""

from web_recorder.config.settings import (
    Settings,
    ServerSettings,
    BrowserSettings,
    InjectionSettings,
    SupervisorSettings,
    SidecarSettings,
    LoggingSettings,
    DEFAULT_CLOSURE_MARKERS,
)
from web_recorder.config.loader import ConfigLoader, load_config

# Global settings singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    Settings are loaded once from environment variables and config files.
    Call reset_settings() to reload.

    Returns:
        Global Settings instance
    """
    global _settings
    if _settings is None:
        _settings = load_config()
    return _settings


def reset_settings() -> None:
    """Reset the global settings (forces reload on next get_settings())."""
    global _settings
    _settings = None


__all__ = [
    "Settings",
    "ServerSettings",
    "BrowserSettings",
    "InjectionSettings",
    "SupervisorSettings",
    "SidecarSettings",
    "LoggingSettings",
    "DEFAULT_CLOSURE_MARKERS",
    "ConfigLoader",
    "load_config",
    "get_settings",
    "reset_settings",
]
