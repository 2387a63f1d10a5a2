"""
Settings - Pydantic models for type-safe configuration.

This module defines all configuration settings as Pydantic models,
providing validation, type hints, and automatic environment variable loading.

Example:
    >>> from web_recorder.config import Settings, load_config
    >>> settings = load_config()  # Loads from env, yaml, and defaults
    >>> print(settings.server.callback_base_url)
    'http://127.0.0.1:8000'
"""

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CLOSURE_MARKERS = [
    "no such window",
    "window already closed",
    "chrome not reachable",
    "cannot determine loading status",
    "target closed",
    "disconnected: unable to connect",
    "browser has been closed",
    "target frame detached",
    "session not found",
    "target page, context or browser has been closed",
]


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``updates`` into ``base`` (in place) and return it."""
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class ServerSettings(BaseModel):
    """
    HTTP server settings.

    The host, port and base path are also used to build the absolute
    callback URLs embedded into the injected page script, so they must be
    reachable from the recorded browser.

    Attributes:
        host: Interface to bind to
        port: Port to bind to
        base_path: Path prefix for every route (e.g. "/recorder")
        public_host: Host name the browser should call back to, if it differs
            from the bind address (e.g. when binding 0.0.0.0)
        scheme: URL scheme used in callback URLs
    """
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    base_path: str = ""
    public_host: Optional[str] = None
    scheme: Literal["http", "https"] = "http"

    @property
    def callback_base_url(self) -> str:
        """Absolute URL prefix the in-page script posts to."""
        host = self.public_host or self.host
        if host in ("0.0.0.0", "::"):
            host = "localhost"
        path = "/" + self.base_path.strip("/") if self.base_path.strip("/") else ""
        return f"{self.scheme}://{host}:{self.port}{path}"


class BrowserSettings(BaseModel):
    """
    Browser driver settings.

    Attributes:
        default_kind: Browser kind used when a session does not name one
        headless: Run browsers in headless mode by default
        start_timeout_seconds: Maximum time for a driver to launch
        command_timeout_seconds: Maximum time for a single driver call
        probe_timeout_seconds: Timeout for the responsiveness probe
        viewport_width: Default viewport width in pixels
        viewport_height: Default viewport height in pixels
        capture_buffer_size: Network/console entries kept per session
    """
    default_kind: str = "chrome-playwright"
    headless: bool = False
    start_timeout_seconds: float = Field(default=60.0, ge=1.0, le=600.0)
    command_timeout_seconds: float = Field(default=30.0, ge=0.5, le=300.0)
    probe_timeout_seconds: float = Field(default=3.0, ge=0.1, le=60.0)
    viewport_width: int = Field(default=1280, ge=320, le=3840)
    viewport_height: int = Field(default=800, ge=240, le=2160)
    capture_buffer_size: int = Field(default=500, ge=0, le=100000)
    selenium_remote_url: Optional[str] = None


class InjectionSettings(BaseModel):
    """
    Script injection settings.

    Attributes:
        max_attempts: Full passes over the strategy list before giving up
        retry_delay_seconds: Sleep between passes
        settle_delay_seconds: Wait after executing a candidate before verifying
        activation_flag: Window property the script sets once initialized
        paused_flag: Window property holding the paused state
        marker_id: DOM id of the visible recording indicator
    """
    max_attempts: int = Field(default=3, ge=1, le=20)
    retry_delay_seconds: float = Field(default=1.0, ge=0.0, le=30.0)
    settle_delay_seconds: float = Field(default=0.5, ge=0.0, le=10.0)
    activation_flag: str = "__webRecorderActive"
    paused_flag: str = "__webRecorderPaused"
    marker_id: str = "web-recorder-indicator"


class SupervisorSettings(BaseModel):
    """
    Background supervision settings.

    Attributes:
        health_interval_seconds: Delay between health checks
        health_max_runs: Hard cap on health check iterations
        domain_interval_seconds: Delay between domain checks
        domain_max_runs: Hard cap on domain check iterations
        full_check_every: Run a full activation check every N domain cycles
        closure_markers: Error substrings that mean the browser is gone
    """
    health_interval_seconds: float = Field(default=5.0, ge=0.0, le=300.0)
    health_max_runs: int = Field(default=120, ge=1)
    domain_interval_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    domain_max_runs: int = Field(default=600, ge=1)
    full_check_every: int = Field(default=10, ge=1)
    closure_markers: List[str] = Field(default_factory=lambda: list(DEFAULT_CLOSURE_MARKERS))


class SidecarSettings(BaseModel):
    """
    Out-of-process automation service settings.

    Attributes:
        url: Base URL of the sidecar service
        command: Command line used to start the sidecar when it is not running
        working_dir: Working directory for the sidecar process
        startup_timeout_seconds: How long to poll /health after spawning
        health_poll_interval_seconds: Delay between health polls
        autostart: Spawn the sidecar if it is not already running
    """
    url: str = "http://localhost:3500"
    command: List[str] = Field(default_factory=lambda: ["node", "playwright-service.js"])
    working_dir: Optional[str] = None
    startup_timeout_seconds: float = Field(default=30.0, ge=1.0, le=600.0)
    health_poll_interval_seconds: float = Field(default=0.5, ge=0.05, le=10.0)
    autostart: bool = True


class LoggingSettings(BaseModel):
    """
    Logging configuration.

    Attributes:
        level: Log level
        format: Log format string
        file: Log file path (None for console only)
        json_format: Use JSON format for logs
    """
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    json_format: bool = False


class Settings(BaseSettings):
    """
    Root settings container - single source of truth for all configuration.

    Settings are loaded in this priority order (highest to lowest):
    1. Explicit values passed to constructor
    2. Environment variables (prefixed with WEB_RECORDER__)
    3. Config file (YAML)
    4. Default values

    Example:
        >>> settings = Settings()  # Load from env vars
        >>> settings = Settings(server=ServerSettings(port=9000))  # Override
    """

    model_config = SettingsConfigDict(
        env_prefix="WEB_RECORDER__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    injection: InjectionSettings = Field(default_factory=InjectionSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    sidecar: SidecarSettings = Field(default_factory=SidecarSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    debug: bool = False
    finished_session_limit: int = Field(default=100, ge=0)

    def merge_with(self, overrides: dict) -> "Settings":
        """
        Create a new Settings instance with overrides applied.

        Args:
            overrides: Dictionary of values to override

        Returns:
            New Settings instance with overrides applied
        """
        return Settings(**deep_merge(self.model_dump(), overrides))
