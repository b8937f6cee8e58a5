"""UI module - Web API and WebSocket streaming."""

from ui.web_server import create_app, run_server, run_server_async

__all__ = [
    "create_app",          # FastAPI app bound to a pipeline
    "run_server",          # Blocking uvicorn run
    "run_server_async",    # Run web server async
]
