"""
Recorder Server - FastAPI application hosting the recorder.

Provides:
- Hook endpoints the injected page script posts to
- Session control API and live notification stream
- Health check endpoint
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from web_recorder import __version__
from web_recorder.config import Settings, get_settings
from web_recorder.exceptions import (
    DriverError,
    InvalidEventPayload,
    InvalidStatusTransition,
    SessionNotFound,
    UnsupportedEventType,
    WebRecorderError,
)
from web_recorder.server.state import RecorderState

logger = logging.getLogger(__name__)

# Most specific first; the first matching class decides the status code.
ERROR_STATUS_CODES = [
    (SessionNotFound, 404),
    (InvalidEventPayload, 400),
    (UnsupportedEventType, 400),
    (InvalidStatusTransition, 409),
    (DriverError, 502),
    (WebRecorderError, 500),
]


def error_status(error: WebRecorderError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


def _base_path(settings: Settings) -> str:
    path = settings.server.base_path.strip("/")
    return f"/{path}" if path else ""


def create_app(
    settings: Optional[Settings] = None,
    state: Optional[RecorderState] = None,
    debug: bool = False,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Settings to run with (global settings if None)
        state: Prebuilt component graph (built from settings if None)
        debug: Enable debug mode

    Returns:
        FastAPI application instance
    """
    if state is None:
        state = RecorderState(settings or get_settings())
    settings = state.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Recorder callbacks at {settings.server.callback_base_url}/hooks")
        yield
        await state.shutdown()

    app = FastAPI(
        title="Web Recorder",
        description="Records user interactions in remote-controlled browsers",
        version=__version__,
        debug=debug or settings.debug,
        lifespan=lifespan,
    )
    app.state.recorder = state

    # The injected script posts from arbitrary page origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WebRecorderError)
    async def recorder_error_handler(request: Request, exc: WebRecorderError) -> JSONResponse:
        status_code = error_status(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.debug(f"{request.method} {request.url.path} rejected: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_response())

    base_path = _base_path(settings)

    from web_recorder.server.routes import register_routes
    register_routes(app, base_path)

    @app.get(f"{base_path}/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "active_sessions": len(state.sessions),
            "version": __version__,
        }

    return app


def run_server(settings: Settings, debug: bool = False) -> None:
    """
    Run the recorder server with uvicorn (blocking).

    Args:
        settings: Settings to run with; host and port come from ``settings.server``
        debug: Enable debug mode
    """
    import uvicorn

    app = create_app(settings, debug=debug)
    logger.info(f"Starting Web Recorder at http://{settings.server.host}:{settings.server.port}")
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level="info" if debug else "warning",
    )
