"""
Playwright Driver - In-process browser driver using Playwright's async API.

Each session gets its own Playwright connection, browser, context and page.
The context is created with CSP bypass enabled, and the recorder script is
registered as an init script so it survives full page loads without help
from the supervisor.
"""

import asyncio
import logging
import os
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from web_recorder.config import Settings
from web_recorder.drivers.base import BaseBrowserDriver, async_function_call, extract_domain, function_call
from web_recorder.exceptions import BrowserClosed, DriverError, DriverStartFailure
from web_recorder.interfaces.driver import BrowserKind
from web_recorder.recorder.models import RecordingConfig

logger = logging.getLogger(__name__)

CHROMIUM_RECORDING_ARGS = [
    "--disable-web-security",
    "--disable-features=IsolateOrigins,site-per-process",
    "--allow-running-insecure-content",
]


class PlaywrightDriver(BaseBrowserDriver):
    """
    In-process driver backed by Playwright.

    Example:
        >>> driver = PlaywrightDriver("session-1", RecordingConfig(), settings)
        >>> await driver.start(timeout=30)
        >>> await driver.navigate("https://example.com")
        >>> await driver.stop()
    """

    def __init__(self, session_id: str, config: RecordingConfig, settings: Settings):
        super().__init__(session_id, config, settings)
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None
        buffer_size = settings.browser.capture_buffer_size
        self._network_log: Deque[Dict[str, Any]] = deque(maxlen=buffer_size)
        self._console_log: Deque[Dict[str, Any]] = deque(maxlen=buffer_size)
        self._init_script_registered = False

    @property
    def supports_native_injection(self) -> bool:
        return True

    # ==================== Lifecycle ====================

    async def _launch(self) -> None:
        from playwright.async_api import async_playwright

        kind = self.config.browser_kind
        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, kind.engine, None)
        if launcher is None:
            raise DriverStartFailure(f"Playwright has no {kind.engine} browser", kind.value)

        options: Dict[str, Any] = {"headless": self.config.headless}
        if kind is BrowserKind.EDGE_PLAYWRIGHT:
            options["channel"] = "msedge"
        if kind.engine == "chromium":
            options["args"] = list(CHROMIUM_RECORDING_ARGS)
        if self.config.environment_variables:
            options["env"] = {**os.environ, **self.config.environment_variables}

        self._browser = await launcher.launch(**options)
        self._context = await self._browser.new_context(
            viewport=self.config.viewport.to_dict(),
            bypass_csp=True,
            ignore_https_errors=True,
        )
        self._page = await self._context.new_page()
        self._page.on("console", self._on_console)
        self._page.on("request", self._on_request)

        logger.debug(f"Playwright {kind.value} page ready for session {self.session_id}")

    async def _shutdown(self) -> None:
        for name in ("_context", "_browser"):
            target = getattr(self, name)
            if target is not None:
                try:
                    await target.close()
                except Exception as e:
                    logger.debug(f"Ignoring error closing {name.strip('_')}: {e}")
                setattr(self, name, None)
        self._page = None
        self._init_script_registered = False
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    # ==================== Capture listeners ====================

    def _on_console(self, message: Any) -> None:
        if self._console_capturing:
            self._console_log.append({"type": message.type, "text": message.text})

    def _on_request(self, request: Any) -> None:
        if self._network_capturing:
            self._network_log.append({
                "method": request.method,
                "url": request.url,
                "resourceType": request.resource_type,
            })

    # ==================== Operations ====================

    def _require_page(self) -> Any:
        if self._page is None:
            raise DriverError("Browser not started", {"session_id": self.session_id})
        if self._page.is_closed():
            raise BrowserClosed("Page has been closed", {"session_id": self.session_id})
        return self._page

    async def navigate(self, url: str) -> bool:
        page = self._require_page()
        timeout_ms = int(self.command_timeout * 1000)
        try:
            await self._call(
                page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms),
                f"navigate to {url}",
                self.command_timeout + 1,
            )
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.warning(f"Navigation to {url} failed: {e}")
            return False
        self.remember_location(page.url)
        return True

    async def set_viewport(self, width: int, height: int) -> None:
        page = self._require_page()
        await self._call(page.set_viewport_size({"width": width, "height": height}), "set_viewport")

    async def execute_script(self, script: str, *args: Any) -> Any:
        page = self._require_page()
        return await self._call(page.evaluate(function_call(script), list(args)), "execute_script")

    async def execute_async_script(self, script: str, *args: Any) -> Any:
        page = self._require_page()
        return await self._call(page.evaluate(async_function_call(script), list(args)), "execute_async_script")

    async def inject_native(self, script: str) -> None:
        page = self._require_page()
        if not self._init_script_registered:
            await self._call(
                self._context.add_init_script(script=f"(function() {{\n{script}\n}})();"),
                "add_init_script",
            )
            self._init_script_registered = True
        await self.execute_script(script)
        await self._inject_frames(page, script)

    async def _inject_frames(self, page: Any, script: str) -> None:
        """Run the recorder in the same-origin child frames already loaded."""
        origin = extract_domain(page.url)
        for frame in page.frames:
            if frame is page.main_frame or frame.is_detached() or extract_domain(frame.url) != origin:
                continue
            try:
                await self._call(frame.evaluate(function_call(script), []), f"inject frame {frame.url}")
            except DriverError as e:
                if page.is_closed():
                    raise BrowserClosed("Page has been closed", {"session_id": self.session_id}) from e
                logger.debug(f"Skipping frame {frame.url}: {e}")

    async def captured_logs(self) -> Dict[str, List[Dict[str, Any]]]:
        return {"network": list(self._network_log), "console": list(self._console_log)}

    async def relax_security(self) -> None:
        if self.config.browser_kind.engine != "chromium":
            return
        page = self._require_page()
        try:
            cdp = await self._call(self._context.new_cdp_session(page), "new_cdp_session")
            await self._call(cdp.send("Page.setBypassCSP", {"enabled": True}), "Page.setBypassCSP")
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"CSP bypass not applied: {e}")

    async def capture_screenshot(self) -> bytes:
        page = self._require_page()
        return await self._call(page.screenshot(full_page=True), "capture_screenshot")

    async def capture_element_screenshot(self, selector: str) -> bytes:
        page = self._require_page()
        return await self._call(page.locator(selector).first.screenshot(), f"screenshot {selector}")

    async def current_url(self) -> str:
        url = self._require_page().url
        self.remember_location(url)
        return url

    async def title(self) -> str:
        page = self._require_page()
        title = await self._call(page.title(), "title")
        self.remember_location(None, title)
        return title

    async def wait_for_condition(self, predicate: str, timeout_ms: int) -> bool:
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        page = self._require_page()
        expression = f"() => (function() {{\n{predicate}\n}})()"
        try:
            await page.wait_for_function(expression, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False
        except Exception as e:
            raise self.translate_error(e, "wait_for_condition") from e

    async def is_responsive(self) -> bool:
        if self._page is None or self._page.is_closed():
            return False
        try:
            title = await asyncio.wait_for(self._page.title(), timeout=self.probe_timeout)
        except Exception as e:
            logger.debug(f"Responsiveness probe failed for session {self.session_id}: {e}")
            return False
        self.remember_location(self._page.url, title)
        return True
