"""
Hook Routes - Endpoints the injected page script posts to.

The page sends bodies as ``text/plain`` JSON (no CORS preflight, works from
``sendBeacon``), so bodies are decoded here rather than through a pydantic
model.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from web_recorder.exceptions import InvalidEventPayload, WebRecorderError
from web_recorder.server.routes import get_state
from web_recorder.server.state import RecorderState

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_json(request: Request) -> Any:
    """Decode the request body as JSON whatever its content type."""
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        raise InvalidEventPayload("Request body is not valid JSON")


@router.post("/{session_id}/event", status_code=201)
async def record_event(session_id: str, request: Request, state: RecorderState = Depends(get_state)):
    """Record one interaction event."""
    payload = await read_json(request)
    try:
        event_id = state.gateway.process_event(session_id, payload)
    except WebRecorderError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error recording event for session {session_id}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return {"success": True, "message": "Event recorded", "eventId": event_id}


@router.post("/{session_id}/status")
async def update_status(session_id: str, request: Request, state: RecorderState = Depends(get_state)):
    """Change the session status (pause, resume, stop)."""
    payload = await read_json(request)
    value = payload.get("status") if isinstance(payload, dict) else payload
    session = await state.gateway.update_status(session_id, value)
    return {
        "success": True,
        "message": f"Session is {session.status.value}",
        "status": session.status.value,
    }


@router.post("/{session_id}/browser-info")
async def browser_info(session_id: str, request: Request, state: RecorderState = Depends(get_state)):
    """Store browser details. Always answers 200."""
    try:
        payload = await read_json(request)
    except InvalidEventPayload:
        payload = None
    stored = state.gateway.process_browser_info(session_id, payload)
    return {"success": True, "stored": stored}


@router.get("/{session_id}/info")
async def session_info(session_id: str, state: RecorderState = Depends(get_state)):
    """Session info for the page script and tools."""
    return state.gateway.session_info(session_id)


@router.post("/{session_id}/control")
async def control(session_id: str, request: Request, state: RecorderState = Depends(get_state)):
    """In-page indicator buttons and the unload beacon."""
    payload = await read_json(request)
    if not isinstance(payload, dict):
        raise InvalidEventPayload("Control body must be a JSON object", field="action")
    result = await state.gateway.process_control(session_id, payload.get("action"), payload.get("reason"))
    return {"success": True, **result}
