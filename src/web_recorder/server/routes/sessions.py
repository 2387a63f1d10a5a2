"""
Session API Routes - Start and control recordings.

Provides endpoints for:
- Starting/pausing/resuming/stopping sessions
- Reinjecting the recorder into a degraded page
- Exporting the recorded event list
- Injection diagnostics
- Real-time notifications via SSE
"""

import asyncio
import json
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from web_recorder.interfaces.driver import Viewport
from web_recorder.recorder.lifecycle import build_recording_config
from web_recorder.server.routes import get_state
from web_recorder.server.state import RecorderState

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 30.0


class StartSessionRequest(BaseModel):
    """Request to start a recording session. Accepts snake_case or camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: Optional[str] = Field(None, description="Start page; 'about:blank' is opened as-is")
    name: Optional[str] = Field(None, description="Human-readable label")
    browser_kind: Optional[str] = Field(None, description="e.g. chrome-playwright, firefox, chromium-sidecar")
    headless: Optional[bool] = Field(None, description="Run without a window (settings default if unset)")
    viewport_width: Optional[int] = Field(None, ge=320, le=3840)
    viewport_height: Optional[int] = Field(None, ge=240, le=2160)
    environment_variables: Dict[str, str] = Field(default_factory=dict)
    capture_network: bool = False
    capture_console: bool = False
    capture_screenshots: bool = False
    max_event_count: int = Field(0, ge=0, description="0 for unbounded")


@router.post("", status_code=201)
async def start_session(request: StartSessionRequest, state: RecorderState = Depends(get_state)):
    """Launch a browser and start recording."""
    viewport = None
    if request.viewport_width or request.viewport_height:
        browser = state.settings.browser
        viewport = Viewport(
            width=request.viewport_width or browser.viewport_width,
            height=request.viewport_height or browser.viewport_height,
        )

    config = build_recording_config(
        state.settings,
        browser_kind=request.browser_kind,
        headless=request.headless,
        viewport=viewport,
        base_url=request.url,
        name=request.name,
        environment_variables=dict(request.environment_variables),
        capture_network=request.capture_network,
        capture_console=request.capture_console,
        capture_screenshots=request.capture_screenshots,
        max_event_count=request.max_event_count,
    )
    session = await state.controller.start(config)
    return session.to_dict()


@router.get("")
async def list_sessions(state: RecorderState = Depends(get_state)):
    """List live and recently finished sessions."""
    return {"sessions": [s.to_dict() for s in state.sessions.list_sessions()]}


@router.get("/stream")
async def stream_notifications(
    session_id: Optional[str] = None,
    state: RecorderState = Depends(get_state),
) -> StreamingResponse:
    """Server-Sent Events stream of recorder notifications."""
    broadcaster = state.broadcaster

    async def event_generator():
        queue = broadcaster.subscribe()
        try:
            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                if session_id and message.get("sessionId") != session_id:
                    continue
                yield f"event: {message['type']}\ndata: {json.dumps(message)}\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            broadcaster.unsubscribe(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


@router.get("/{session_id}")
async def get_session(session_id: str, state: RecorderState = Depends(get_state)):
    """Info for one session."""
    return state.gateway.session_info(session_id)


@router.post("/{session_id}/pause")
async def pause_session(session_id: str, state: RecorderState = Depends(get_state)):
    session = await state.controller.pause(session_id)
    return session.to_dict()


@router.post("/{session_id}/resume")
async def resume_session(session_id: str, state: RecorderState = Depends(get_state)):
    session = await state.controller.resume(session_id)
    return session.to_dict()


@router.post("/{session_id}/stop")
async def stop_session(session_id: str, state: RecorderState = Depends(get_state)):
    """Stop recording and close the browser."""
    session = await state.controller.stop(session_id)
    return session.to_dict()


@router.post("/{session_id}/reconnect")
async def reconnect_session(session_id: str, force: bool = False, state: RecorderState = Depends(get_state)):
    """Replace an unresponsive browser (or any browser with ``force``)."""
    session = await state.controller.reconnect(session_id, force=force)
    return session.to_dict()


@router.post("/{session_id}/reinject")
async def reinject_session(session_id: str, state: RecorderState = Depends(get_state)):
    """Inject the recorder again into the live page."""
    outcome = await state.controller.reinject(session_id)
    session = state.sessions.require(session_id).session
    return {"success": outcome.success, "injection": outcome.to_dict(), "session": session.to_dict()}


@router.get("/{session_id}/events")
async def session_events(session_id: str, state: RecorderState = Depends(get_state)):
    """The recorded events, in order."""
    events = state.gateway.session_events(session_id)
    return {"sessionId": session_id, "count": len(events), "events": events}


@router.get("/{session_id}/debug")
async def session_debug(session_id: str, state: RecorderState = Depends(get_state)):
    """Injection diagnostics and the live in-page state."""
    return await state.controller.debug_info(session_id)
