"""
Server routes - Hook endpoints and the session control API.
"""

from fastapi import FastAPI, Request

from web_recorder.server.state import RecorderState


def get_state(request: Request) -> RecorderState:
    """FastAPI dependency returning the app's recorder state."""
    return request.app.state.recorder


def register_routes(app: FastAPI, base_path: str = "") -> None:
    """
    Register the route groups with the FastAPI app.

    Args:
        app: FastAPI application instance
        base_path: Prefix for every route ("" or "/something")
    """
    from web_recorder.server.routes import hooks, sessions

    app.include_router(hooks.router, prefix=f"{base_path}/hooks", tags=["hooks"])
    app.include_router(sessions.router, prefix=f"{base_path}/api/sessions", tags=["sessions"])
