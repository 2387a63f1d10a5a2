"""
Recorder State - The component graph behind one server instance.

Each component receives the settings and its collaborators explicitly;
the FastAPI app keeps one ``RecorderState`` on ``app.state.recorder``.
"""

import logging
from typing import Optional

from web_recorder.config import Settings
from web_recorder.drivers.sidecar_driver import SidecarProcess
from web_recorder.recorder.broadcast import EventBroadcaster
from web_recorder.recorder.ingestion import EventIngestionGateway
from web_recorder.recorder.injection import InjectionOrchestrator
from web_recorder.recorder.lifecycle import DriverFactory, SessionLifecycleController
from web_recorder.recorder.scripts import ScriptRenderer
from web_recorder.recorder.session_registry import SessionRegistry
from web_recorder.recorder.supervisor import ResilienceSupervisor

logger = logging.getLogger(__name__)


class RecorderState:
    """
    Wires the recorder components together.

    Example:
        >>> state = RecorderState(settings)
        >>> session = await state.controller.start(config)
        >>> state.gateway.process_event(session.id, payload)
    """

    def __init__(self, settings: Settings, driver_factory: Optional[DriverFactory] = None):
        self.settings = settings
        self.sessions = SessionRegistry(finished_limit=settings.finished_session_limit)
        self.broadcaster = EventBroadcaster()
        self.renderer = ScriptRenderer(settings)
        self.orchestrator = InjectionOrchestrator(settings, self.renderer)
        self.supervisor = ResilienceSupervisor(settings, self.orchestrator, self.sessions)
        self.controller = SessionLifecycleController(
            settings,
            self.sessions,
            self.orchestrator,
            self.supervisor,
            self.broadcaster,
            driver_factory=driver_factory,
        )
        self.gateway = EventIngestionGateway(
            settings,
            self.sessions,
            self.controller,
            self.broadcaster,
            self.supervisor,
        )

    async def shutdown(self) -> None:
        """Stop every live session, then any sidecar this process started."""
        stopped = await self.controller.shutdown()
        if stopped:
            logger.info(f"Stopped {len(stopped)} session(s) on shutdown")
        await SidecarProcess.shutdown_all()
