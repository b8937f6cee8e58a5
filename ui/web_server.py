"""
FastAPI server for pipeline state and live event streaming.

REST reads for bars, ticks, signals and metrics, the start/stop command surface, and a
WebSocket that sends an initial_state message followed by every pipeline event
as {"type", "data"}.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
import uvicorn

from core.errors import StorageUnavailableError
from core.events import EventType
from core.logging_utils import get_logger
from core.models import Bar, MetricSnapshot, Signal, Tick
from core.pipeline import Pipeline
from core.record_store import KIND_TICK

logger = get_logger(__name__)


def to_payload(obj: Any) -> Any:
    """JSON-ready form of an event payload."""
    if isinstance(obj, (Bar, Signal, MetricSnapshot, Tick)):
        return obj.to_record()
    return obj


class Broadcaster:
    """Fans pipeline events out to connected WebSocket clients.

    Events may be emitted from worker threads, so sends are scheduled onto the
    server loop captured at startup.
    """

    def __init__(self):
        self.clients: set[WebSocket] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def publish(self, event_type: EventType, payload: Any) -> None:
        if self._loop is None or not self.clients or self._loop.is_closed():
            return
        message = {"type": event_type.value, "data": to_payload(payload)}
        asyncio.run_coroutine_threadsafe(self._send_all(message), self._loop)

    async def _send_all(self, message: dict) -> None:
        for ws in list(self.clients):
            try:
                await ws.send_json(message)
            except Exception as e:
                logger.debug("[WEB] Dropping client after send error: %s", e)
                self.clients.discard(ws)


def metrics_payload(pipeline: Pipeline) -> dict:
    latest = pipeline.engine.latest_metrics()
    data = latest.to_record() if latest else {}
    data["dynamic_success_rate"] = pipeline.engine.decayed_success_rate()
    return data


def initial_state(pipeline: Pipeline, bar_limit: int = 100, signal_limit: int = 20) -> dict:
    current = pipeline.aggregator.current()
    return {
        "ts": datetime.now(timezone.utc).isoformat(),
        "running": pipeline.running,
        "current_bar": current.to_record() if current else None,
        "bars": [b.to_record() for b in reversed(pipeline.aggregator.history(bar_limit))],
        "signals": [s.to_record() for s in pipeline.engine.recent_signals(signal_limit)],
        "metrics": metrics_payload(pipeline),
    }


def create_app(pipeline: Pipeline, autostart: bool = False) -> FastAPI:
    """Build the app; registers the broadcast listener, so call before start."""
    broadcaster = Broadcaster()
    pipeline.events.subscribe_all(broadcaster.publish)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        broadcaster.bind(asyncio.get_running_loop())
        if autostart:
            await pipeline.start()
        try:
            yield
        finally:
            await pipeline.stop()

    app = FastAPI(title="SignalLoop API", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.state.broadcaster = broadcaster

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Initial snapshot, then pushed events until the client leaves."""
        await websocket.accept()
        broadcaster.clients.add(websocket)
        try:
            await websocket.send_json({"type": "initial_state", "data": initial_state(pipeline)})
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            broadcaster.clients.discard(websocket)

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "ok",
            "running": pipeline.running,
            "model_version": pipeline.predictor.version,
            "clients": len(broadcaster.clients),
        }

    @app.get("/api/status")
    async def get_status():
        return pipeline.status()

    @app.get("/api/bars")
    async def get_bars(limit: int = Query(100, ge=1, le=1440)):
        """Closed bars, most recent first."""
        return [b.to_record() for b in reversed(pipeline.aggregator.history(limit))]

    @app.get("/api/ticks")
    async def get_ticks(limit: int = Query(100, ge=1, le=1000)):
        """Persisted ticks, most recent first. Empty unless tick persistence is on."""
        try:
            return pipeline.store.recent(KIND_TICK, limit)
        except StorageUnavailableError as e:
            logger.warning("[WEB] Tick read failed: %s", e)
            raise HTTPException(status_code=503, detail="storage unavailable")

    @app.get("/api/signals")
    async def get_signals(limit: int = Query(20, ge=1, le=1000)):
        return [s.to_record() for s in pipeline.engine.recent_signals(limit)]

    @app.get("/api/prediction/latest")
    async def get_latest_prediction():
        signal = pipeline.engine.latest_signal()
        return signal.to_record() if signal else None

    @app.get("/api/metrics")
    async def get_metrics():
        return metrics_payload(pipeline)

    @app.post("/api/control/start")
    async def start_pipeline():
        await pipeline.start()
        logger.info("[WEB] Pipeline started via API")
        return {"status": "started", "running": pipeline.running}

    @app.post("/api/control/stop")
    async def stop_pipeline():
        await pipeline.stop()
        logger.info("[WEB] Pipeline stopped via API")
        return {"status": "stopped", "running": pipeline.running}

    return app


def run_server(pipeline: Pipeline, host: str = "0.0.0.0", port: int = 8080, autostart: bool = True):
    """Run the web server (blocking)."""
    app = create_app(pipeline, autostart=autostart)
    uvicorn.run(app, host=host, port=port, log_level="warning")


async def run_server_async(pipeline: Pipeline, host: str = "0.0.0.0", port: int = 8080, autostart: bool = True):
    """Run the web server as async task."""
    app = create_app(pipeline, autostart=autostart)
    config = uvicorn.Config(app, host=host, port=port, log_level="warning")
    server = uvicorn.Server(config)
    await server.serve()
