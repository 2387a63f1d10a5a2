"""
Pytest configuration and fixtures.
"""

import asyncio
import re
from typing import Any, List, Optional

import pytest

from web_recorder.config import InjectionSettings, Settings, SupervisorSettings
from web_recorder.drivers.base import extract_domain
from web_recorder.exceptions import BrowserClosed
from web_recorder.interfaces.driver import IBrowserDriver
from web_recorder.recorder.models import RecordingConfig

STRATEGY_PATTERN = re.compile(r'var STRATEGY = "(\w+)";')


class FakeDriver(IBrowserDriver):
    """
    In-memory driver that plays the page's part.

    It recognises the rendered recorder scripts: installing a strategy listed
    in ``working_strategies`` sets the activation flag and the marker; probes
    report them back.
    """

    def __init__(
        self,
        session_id: str = "session-1",
        config: Optional[RecordingConfig] = None,
        working_strategies=("native", "csp_tolerant", "minimal", "full"),
        native: bool = False,
    ):
        self.session_id = session_id
        self.config = config or RecordingConfig()
        self.working_strategies = set(working_strategies)
        self.native = native

        self.last_known_url = ""
        self.last_known_title = ""
        self.last_known_domain = ""

        self.running = False
        self.closed = False
        self.responsive = True
        self.start_error: Optional[Exception] = None
        self.start_gate: Optional[asyncio.Event] = None
        self.navigate_result = True

        self.url = "about:blank"
        self.page_active = False
        self.marker = False
        self.paused = False
        self.torn_down = False

        self.start_timeouts: List[float] = []
        self.navigations: List[str] = []
        self.injected: List[str] = []
        self.scripts: List[str] = []
        self.stop_calls = 0
        self.relax_calls = 0
        self.probe_calls = 0
        self.marker_restores = 0
        self.network_log: List[dict] = []
        self.console_log: List[dict] = []

    # ==================== Test controls ====================

    def close_window(self) -> None:
        self.closed = True

    def load_document(self, url: str) -> None:
        """Simulate the user opening a new document (recorder lost)."""
        self.url = url
        self.page_active = False
        self.marker = False

    def _check(self) -> None:
        if self.closed:
            raise BrowserClosed("no such window: target window already closed")

    def _install(self, script: str) -> Any:
        strategy = STRATEGY_PATTERN.search(script).group(1)
        self.injected.append(strategy)
        if strategy in self.working_strategies:
            self.page_active = True
            self.marker = True
            return "installed"
        return None

    # ==================== IBrowserDriver ====================

    @property
    def is_running(self) -> bool:
        return self.running

    @property
    def supports_native_injection(self) -> bool:
        return self.native

    async def start(self, timeout: float) -> bool:
        self.start_timeouts.append(timeout)
        if self.start_gate is not None:
            await self.start_gate.wait()
        if self.start_error is not None:
            raise self.start_error
        self.running = True
        return True

    async def stop(self) -> None:
        self.stop_calls += 1
        self.running = False

    async def navigate(self, url: str) -> bool:
        self._check()
        self.navigations.append(url)
        if not self.navigate_result:
            return False
        self.load_document(url)
        self.last_known_url = url
        if not self.last_known_domain:
            self.last_known_domain = extract_domain(url)
        return True

    async def set_viewport(self, width: int, height: int) -> None:
        pass

    async def execute_script(self, script: str, *args: Any) -> Any:
        self._check()
        self.scripts.append(script)
        if "var STRATEGY = " in script:
            return self._install(script)
        if "api.teardown()" in script:
            self.page_active = False
            self.marker = False
            self.torn_down = True
            return True
        if "readyState" in script:
            return {"active": self.page_active, "marker": self.marker, "url": self.url}
        if "api.refresh()" in script:
            self.paused = script.splitlines()[0].endswith("= true;")
            return self.paused
        if "active: window[" in script:
            self.probe_calls += 1
            return {"active": self.page_active, "marker": self.marker}
        if script.startswith("if (document.getElementById("):
            self.marker_restores += 1
            if self.page_active:
                self.marker = True
            return self.marker
        return None

    async def execute_async_script(self, script: str, *args: Any) -> Any:
        return await self.execute_script(script, *args)

    async def inject_native(self, script: str) -> None:
        self._check()
        self._install(script)

    async def relax_security(self) -> None:
        self.relax_calls += 1

    async def capture_screenshot(self) -> bytes:
        return b"\x89PNG"

    async def capture_element_screenshot(self, selector: str) -> bytes:
        return b"\x89PNG"

    async def current_url(self) -> str:
        self._check()
        return self.url

    async def title(self) -> str:
        self._check()
        return "Test Page"

    async def set_network_capturing(self, enabled: bool) -> None:
        pass

    async def set_console_capturing(self, enabled: bool) -> None:
        pass

    async def captured_logs(self):
        return {"network": list(self.network_log), "console": list(self.console_log)}

    async def wait_for_condition(self, predicate: str, timeout_ms: int) -> bool:
        return True

    async def is_responsive(self) -> bool:
        return self.responsive and not self.closed


@pytest.fixture
def settings():
    """Settings with no injection delays and idle supervision loops."""
    return Settings(
        injection=InjectionSettings(retry_delay_seconds=0.0, settle_delay_seconds=0.0),
        supervisor=SupervisorSettings(health_interval_seconds=60.0, domain_interval_seconds=60.0),
        finished_session_limit=10,
    )


@pytest.fixture
def fast_settings():
    """Settings whose supervision loops run every few milliseconds."""
    return Settings(
        injection=InjectionSettings(retry_delay_seconds=0.0, settle_delay_seconds=0.0),
        supervisor=SupervisorSettings(
            health_interval_seconds=0.01,
            health_max_runs=5,
            domain_interval_seconds=0.01,
            domain_max_runs=5,
            full_check_every=2,
        ),
    )


@pytest.fixture
def drivers():
    """Every FakeDriver created through ``driver_factory``, in creation order."""
    return []


@pytest.fixture
def driver_options():
    """Attributes applied to every FakeDriver the factory builds next."""
    return {}


@pytest.fixture
def driver_factory(drivers, driver_options):
    """Driver factory for the lifecycle controller that builds FakeDrivers."""
    def factory(kind, session_id, config, settings):
        driver = FakeDriver(session_id, config)
        for name, value in driver_options.items():
            setattr(driver, name, value)
        drivers.append(driver)
        return driver
    return factory


@pytest.fixture
async def state(settings, driver_factory):
    """A wired RecorderState backed by FakeDrivers."""
    from web_recorder.server.state import RecorderState

    recorder = RecorderState(settings, driver_factory=driver_factory)
    yield recorder
    await recorder.controller.shutdown()


@pytest.fixture
def make_driver():
    """Build a standalone FakeDriver."""
    return FakeDriver


@pytest.fixture
def click_payload():
    """A CLICK payload as the page script posts it."""
    return {
        "type": "CLICK",
        "timestamp": 1700000000000,
        "url": "https://example.com/",
        "title": "Example",
        "viewport": {"width": 1280, "height": 800},
        "targetElement": {
            "tagName": "button",
            "id": "go",
            "className": "btn primary",
            "text": "Go",
            "cssSelector": "button#go",
            "xpath": '//*[@id="go"]',
        },
        "button": "left",
    }


@pytest.fixture
def wait_until():
    """Poll a condition from async tests until it holds or time runs out."""
    async def wait(predicate, timeout: float = 2.0) -> bool:
        deadline = asyncio.get_running_loop().time() + timeout
        while not predicate():
            if asyncio.get_running_loop().time() >= deadline:
                return False
            await asyncio.sleep(0.01)
        return True
    return wait
