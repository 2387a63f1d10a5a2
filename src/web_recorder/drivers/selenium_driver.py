"""
Selenium Driver - In-process browser driver using Selenium WebDriver.

Selenium's API is blocking, so every call runs in a worker thread via
``asyncio.to_thread``. Chromium-based browsers get CSP bypass and native
injection through the DevTools protocol; Firefox and Safari fall back to
plain script execution.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from typing import Any, Dict, Optional

from web_recorder.config import Settings
from web_recorder.drivers.base import BaseBrowserDriver
from web_recorder.exceptions import BrowserClosed, DriverError, DriverStartFailure
from web_recorder.interfaces.driver import BrowserKind
from web_recorder.recorder.models import RecordingConfig

logger = logging.getLogger(__name__)

CHROMIUM_KINDS = (BrowserKind.CHROME, BrowserKind.EDGE)


class SeleniumDriver(BaseBrowserDriver):
    """
    In-process driver backed by Selenium WebDriver.

    Supports Chrome, Edge, Firefox and Safari, locally or against a remote
    grid when ``browser.selenium_remote_url`` is configured.
    """

    def __init__(self, session_id: str, config: RecordingConfig, settings: Settings):
        super().__init__(session_id, config, settings)
        self._driver: Any = None
        self._profile_dir: Optional[str] = None

    @property
    def supports_native_injection(self) -> bool:
        return self.config.browser_kind in CHROMIUM_KINDS

    # ==================== Lifecycle ====================

    def _service_kwargs(self) -> Dict[str, Any]:
        if not self.config.environment_variables:
            return {}
        return {"env": {**os.environ, **self.config.environment_variables}}

    def _create_webdriver(self) -> Any:
        from selenium import webdriver

        kind = self.config.browser_kind
        width, height = self.config.viewport.width, self.config.viewport.height
        remote_url = self.settings.browser.selenium_remote_url

        if kind in CHROMIUM_KINDS:
            options = webdriver.ChromeOptions() if kind is BrowserKind.CHROME else webdriver.EdgeOptions()
            # --disable-web-security is ignored without a dedicated profile
            self._profile_dir = tempfile.mkdtemp(prefix="web-recorder-")
            for arg in (
                "--disable-web-security",
                "--allow-running-insecure-content",
                "--disable-site-isolation-trials",
                f"--user-data-dir={self._profile_dir}",
                f"--window-size={width},{height}",
            ):
                options.add_argument(arg)
            if self.config.headless:
                options.add_argument("--headless=new")
            if remote_url:
                return webdriver.Remote(command_executor=remote_url, options=options)
            if kind is BrowserKind.CHROME:
                return webdriver.Chrome(options=options, service=webdriver.ChromeService(**self._service_kwargs()))
            return webdriver.Edge(options=options, service=webdriver.EdgeService(**self._service_kwargs()))

        if kind is BrowserKind.FIREFOX:
            options = webdriver.FirefoxOptions()
            options.set_preference("security.csp.enable", False)
            if self.config.headless:
                options.add_argument("-headless")
            if remote_url:
                return webdriver.Remote(command_executor=remote_url, options=options)
            return webdriver.Firefox(options=options, service=webdriver.FirefoxService(**self._service_kwargs()))

        if kind is BrowserKind.SAFARI:
            if remote_url:
                return webdriver.Remote(command_executor=remote_url, options=webdriver.SafariOptions())
            return webdriver.Safari()

        raise DriverStartFailure(f"Selenium cannot drive {kind.value}", kind.value)

    async def _launch(self) -> None:
        self._driver = await asyncio.to_thread(self._create_webdriver)
        timeout = self.command_timeout
        await asyncio.to_thread(self._driver.set_page_load_timeout, timeout)
        await asyncio.to_thread(self._driver.set_script_timeout, timeout)

    async def _shutdown(self) -> None:
        driver, self._driver = self._driver, None
        if driver is not None:
            await asyncio.to_thread(driver.quit)
        if self._profile_dir:
            shutil.rmtree(self._profile_dir, ignore_errors=True)
            self._profile_dir = None

    # ==================== Operations ====================

    def _require_driver(self) -> Any:
        if self._driver is None:
            raise DriverError("Browser not started", {"session_id": self.session_id})
        return self._driver

    async def _run(self, operation: str, func: Any, *args: Any, timeout: Optional[float] = None) -> Any:
        return await self._call(asyncio.to_thread(func, *args), operation, timeout)

    async def navigate(self, url: str) -> bool:
        driver = self._require_driver()
        try:
            await self._run(f"navigate to {url}", driver.get, url, timeout=self.command_timeout + 1)
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.warning(f"Navigation to {url} failed: {e}")
            return False
        await self.current_url()
        return True

    async def set_viewport(self, width: int, height: int) -> None:
        driver = self._require_driver()
        await self._run("set_viewport", driver.set_window_size, width, height)

    async def execute_script(self, script: str, *args: Any) -> Any:
        driver = self._require_driver()
        return await self._run("execute_script", driver.execute_script, script, *args)

    async def execute_async_script(self, script: str, *args: Any) -> Any:
        driver = self._require_driver()
        return await self._run("execute_async_script", driver.execute_async_script, script, *args)

    async def _cdp(self, command: str, params: Dict[str, Any]) -> Any:
        driver = self._require_driver()
        return await self._run(command, driver.execute_cdp_cmd, command, params)

    async def inject_native(self, script: str) -> None:
        if not self.supports_native_injection:
            return await super().inject_native(script)
        await self._cdp(
            "Page.addScriptToEvaluateOnNewDocument",
            {"source": f"(function() {{\n{script}\n}})();"},
        )
        await self.execute_script(script)

    async def relax_security(self) -> None:
        if self.config.browser_kind not in CHROMIUM_KINDS:
            return
        try:
            await self._cdp("Page.setBypassCSP", {"enabled": True})
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"CSP bypass not applied: {e}")

    async def capture_screenshot(self) -> bytes:
        driver = self._require_driver()
        return await self._run("capture_screenshot", driver.get_screenshot_as_png)

    async def capture_element_screenshot(self, selector: str) -> bytes:
        from selenium.webdriver.common.by import By

        driver = self._require_driver()

        def screenshot() -> bytes:
            return driver.find_element(By.CSS_SELECTOR, selector).screenshot_as_png

        return await self._run(f"screenshot {selector}", screenshot)

    async def current_url(self) -> str:
        driver = self._require_driver()
        url = await self._run("current_url", lambda: driver.current_url)
        self.remember_location(url)
        return url

    async def title(self) -> str:
        driver = self._require_driver()
        title = await self._run("title", lambda: driver.title)
        self.remember_location(None, title)
        return title

    async def set_network_capturing(self, enabled: bool) -> None:
        if enabled:
            logger.debug("Selenium driver does not buffer network traffic")
        await super().set_network_capturing(enabled)

    async def wait_for_condition(self, predicate: str, timeout_ms: int) -> bool:
        from selenium.common.exceptions import TimeoutException
        from selenium.webdriver.support.ui import WebDriverWait

        driver = self._require_driver()

        def wait() -> bool:
            try:
                WebDriverWait(driver, timeout_ms / 1000).until(lambda d: d.execute_script(predicate))
                return True
            except TimeoutException:
                return False

        return await self._run("wait_for_condition", wait, timeout=timeout_ms / 1000 + self.command_timeout)

    async def is_responsive(self) -> bool:
        if self._driver is None:
            return False
        driver = self._driver
        try:
            title = await asyncio.wait_for(asyncio.to_thread(lambda: driver.title), timeout=self.probe_timeout)
        except Exception as e:
            logger.debug(f"Responsiveness probe failed for session {self.session_id}: {e}")
            return False
        self.remember_location(None, title)
        return True
