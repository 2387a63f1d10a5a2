"""
Sidecar Driver - Out-of-process browser driver over HTTP RPC.

Browsers without in-process bindings are hosted by a sidecar automation
service. Every driver operation is a JSON POST to ``/browser/<operation>``
carrying the session id as correlation id; the service answers with
``{"success": bool, ...}``.

The sidecar is shared by every session in the process. ``SidecarProcess``
starts it lazily, at most once, and accepts an instance that is already
running.
"""

import asyncio
import base64
import logging
import os
import shutil
from typing import Any, Dict, List, Optional

import httpx

from web_recorder.config import Settings, SidecarSettings
from web_recorder.drivers.base import BaseBrowserDriver
from web_recorder.exceptions import BrowserClosed, DriverError, SidecarUnavailable
from web_recorder.recorder.models import RecordingConfig
from web_recorder.utils.retry import RetryConfig, poll_until, retry_async

logger = logging.getLogger(__name__)


# Right after a spawn the service may accept /health before /browser/start.
START_RETRY = RetryConfig(max_attempts=3, initial_delay_ms=500, retry_on=(SidecarUnavailable,))


class SidecarProcess:
    """
    Lifecycle of the shared sidecar service.

    One instance exists per service URL. ``ensure_running`` is safe to call
    from many sessions concurrently; only the first caller spawns the
    process, the rest wait for its health probe.
    """

    _instances: Dict[str, "SidecarProcess"] = {}

    def __init__(
        self,
        settings: SidecarSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._transport = transport
        self._process: Optional[asyncio.subprocess.Process] = None
        self._spawned = False
        self._lock: Optional[asyncio.Lock] = None

    @classmethod
    def shared(cls, settings: SidecarSettings) -> "SidecarProcess":
        """Get the process-wide manager for ``settings.url``."""
        if settings.url not in cls._instances:
            cls._instances[settings.url] = cls(settings)
        return cls._instances[settings.url]

    @classmethod
    def reset(cls) -> None:
        """Forget all managers (used by tests)."""
        cls._instances.clear()

    @classmethod
    async def shutdown_all(cls) -> None:
        """Terminate every sidecar this process started."""
        for process in list(cls._instances.values()):
            await process.shutdown()

    @property
    def spawned(self) -> bool:
        """Whether this process started the sidecar itself."""
        return self._spawned

    async def is_healthy(self) -> bool:
        """Probe ``GET /health``; any failure counts as unhealthy."""
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.url,
                timeout=2.0,
                transport=self._transport,
            ) as client:
                response = await client.get("/health")
                return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def ensure_running(self) -> None:
        """
        Make sure the sidecar answers its health probe.

        Raises:
            SidecarUnavailable: If the service is down and cannot be started,
                or does not become healthy within the startup timeout
        """
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            if await self.is_healthy():
                return

            if self._spawned:
                raise SidecarUnavailable(
                    "Sidecar stopped responding after it was started",
                    self.settings.url,
                )
            if not self.settings.autostart:
                raise SidecarUnavailable("Sidecar is not running", self.settings.url)

            await self._spawn()
            healthy = await poll_until(
                self.is_healthy,
                self.settings.startup_timeout_seconds,
                self.settings.health_poll_interval_seconds,
            )
            if not healthy:
                raise SidecarUnavailable(
                    f"Sidecar did not become healthy within {self.settings.startup_timeout_seconds}s",
                    self.settings.url,
                )
            logger.info(f"Sidecar ready at {self.settings.url}")

    async def _spawn(self) -> None:
        command = list(self.settings.command)
        if not command:
            raise SidecarUnavailable("No sidecar command configured", self.settings.url)

        executable = shutil.which(command[0])
        if executable is None:
            raise SidecarUnavailable(f"Sidecar executable not found: {command[0]}", self.settings.url)

        env = dict(os.environ)
        port = httpx.URL(self.settings.url).port
        if port:
            env.setdefault("PORT", str(port))

        logger.info(f"Starting sidecar: {' '.join(command)}")
        self._process = await asyncio.create_subprocess_exec(
            executable,
            *command[1:],
            cwd=self.settings.working_dir,
            env=env,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        self._spawned = True

    async def shutdown(self) -> None:
        """Terminate the sidecar if this process started it."""
        process, self._process = self._process, None
        if process is None or process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            process.kill()
        logger.info("Sidecar stopped")


class SidecarDriver(BaseBrowserDriver):
    """
    Out-of-process driver: an RPC client to the sidecar service.
    """

    def __init__(
        self,
        session_id: str,
        config: RecordingConfig,
        settings: Settings,
        sidecar: Optional[SidecarProcess] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(session_id, config, settings)
        self._sidecar = sidecar or SidecarProcess.shared(settings.sidecar)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def supports_native_injection(self) -> bool:
        return True

    # ==================== RPC ====================

    def translate_error(self, error: Exception, operation: str) -> DriverError:
        if isinstance(error, httpx.TransportError):
            return SidecarUnavailable(f"Sidecar unreachable during {operation}: {error}", self.settings.sidecar.url)
        return super().translate_error(error, operation)

    async def _rpc(
        self,
        operation: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        if self._client is None:
            raise DriverError("Browser not started", {"session_id": self.session_id})

        body: Dict[str, Any] = {"sessionId": self.session_id}
        body.update(payload or {})
        response = await self._call(self._client.post(f"/browser/{operation}", json=body), operation, timeout)

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {"result": data}

        if response.is_error or data.get("success") is False:
            message = data.get("error") or data.get("message") or response.text or f"HTTP {response.status_code}"
            raise self.translate_error(RuntimeError(message), operation)
        return data

    # ==================== Lifecycle ====================

    async def _launch(self) -> None:
        await self._sidecar.ensure_running()
        self._client = httpx.AsyncClient(
            base_url=self.settings.sidecar.url,
            timeout=self.command_timeout,
            transport=self._transport,
        )
        await retry_async(self._rpc, START_RETRY, "start", {
            "browserType": self.config.browser_kind.engine,
            "headless": self.config.headless,
            "viewport": self.config.viewport.to_dict(),
            "environmentVariables": dict(self.config.environment_variables),
        })

    async def _shutdown(self) -> None:
        client = self._client
        if client is None:
            return
        try:
            await self._rpc("stop")
        finally:
            self._client = None
            await client.aclose()

    # ==================== Operations ====================

    async def navigate(self, url: str) -> bool:
        try:
            data = await self._rpc("navigate", {"url": url}, self.command_timeout + 1)
        except (BrowserClosed, SidecarUnavailable):
            raise
        except DriverError as e:
            logger.warning(f"Navigation to {url} failed: {e}")
            return False
        self.remember_location(data.get("url") or url, data.get("title"))
        return True

    async def set_viewport(self, width: int, height: int) -> None:
        await self._rpc("viewport", {"width": width, "height": height})

    async def execute_script(self, script: str, *args: Any) -> Any:
        data = await self._rpc("execute", {"script": script, "args": list(args), "async": False})
        return data.get("result")

    async def execute_async_script(self, script: str, *args: Any) -> Any:
        data = await self._rpc("execute", {"script": script, "args": list(args), "async": True})
        return data.get("result")

    async def inject_native(self, script: str) -> None:
        await self._rpc("inject", {"script": script})

    async def capture_screenshot(self) -> bytes:
        data = await self._rpc("screenshot", {"fullPage": True})
        return base64.b64decode(data.get("data") or "")

    async def capture_element_screenshot(self, selector: str) -> bytes:
        data = await self._rpc("element-screenshot", {"selector": selector})
        return base64.b64decode(data.get("data") or "")

    async def _info(self) -> Dict[str, Any]:
        data = await self._rpc("info")
        self.remember_location(data.get("url"), data.get("title"))
        return data

    async def current_url(self) -> str:
        data = await self._info()
        return data.get("url") or self.last_known_url

    async def title(self) -> str:
        data = await self._info()
        return data.get("title") or self.last_known_title

    async def set_network_capturing(self, enabled: bool) -> None:
        await self._rpc("network-capture", {"enabled": enabled})
        await super().set_network_capturing(enabled)

    async def set_console_capturing(self, enabled: bool) -> None:
        await self._rpc("console-capture", {"enabled": enabled})
        await super().set_console_capturing(enabled)

    async def captured_logs(self) -> Dict[str, List[Dict[str, Any]]]:
        if not (self._network_capturing or self._console_capturing):
            return await super().captured_logs()
        try:
            data = await self._rpc("logs")
        except BrowserClosed:
            raise
        except DriverError as e:
            logger.debug(f"Could not read capture buffers for session {self.session_id}: {e}")
            return await super().captured_logs()
        return {"network": list(data.get("network") or []), "console": list(data.get("console") or [])}

    async def wait_for_condition(self, predicate: str, timeout_ms: int) -> bool:
        data = await self._rpc(
            "wait",
            {"condition": predicate, "timeout": timeout_ms},
            timeout_ms / 1000 + self.command_timeout,
        )
        return bool(data.get("result", data.get("success")))

    async def is_responsive(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._rpc("ping", timeout=self.probe_timeout)
        except DriverError as e:
            logger.debug(f"Sidecar ping failed for session {self.session_id}: {e}")
            return False
        return True
