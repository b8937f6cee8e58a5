"""Tests for the FastAPI surface."""

import pytest
from fastapi.testclient import TestClient

from core.config import load_settings
from core.errors import ListenerRegistrationClosed
from core.events import EventType
from core.models import Tick
from core.pipeline import Pipeline
from ui.web_server import create_app


class _IdleTicks:
    def __init__(self):
        self.on_tick = None

    async def start(self):
        pass

    async def stop(self):
        pass


@pytest.fixture
def pipeline(clock):
    settings = load_settings(seed=1, generate_interval_seconds=60, verify_interval_seconds=60, train_interval_seconds=60)
    return Pipeline(settings, tick_source=_IdleTicks(), clock=clock)


def _close_bars(pipeline, clock, prices):
    for price in prices:
        pipeline.aggregator.ingest(price)
        clock.advance(60)
        pipeline.aggregator.tick()


def test_health(pipeline):
    with TestClient(create_app(pipeline)) as client:
        data = client.get("/api/health").json()
    assert data["status"] == "ok"
    assert data["running"] is False
    assert data["model_version"] == pipeline.predictor.version


def test_bars_most_recent_first(pipeline, clock):
    _close_bars(pipeline, clock, [1.0, 1.1, 1.2])
    with TestClient(create_app(pipeline)) as client:
        bars = client.get("/api/bars", params={"limit": 2}).json()
    assert [b["close"] for b in bars] == [1.2, 1.1]


def test_signals_and_latest_prediction(pipeline, clock):
    _close_bars(pipeline, clock, [1.08 + i * 0.0001 for i in range(25)])
    with TestClient(create_app(pipeline)) as client:
        assert client.get("/api/prediction/latest").json() is None
        signal = pipeline.engine.generate_signal()
        latest = client.get("/api/prediction/latest").json()
        signals = client.get("/api/signals").json()
    assert latest["id"] == signal.id
    assert latest["is_correct"] is None
    assert [s["id"] for s in signals] == [signal.id]


def test_metrics_include_dynamic_success_rate(pipeline, clock):
    _close_bars(pipeline, clock, [1.08 + i * 0.0001 for i in range(25)])
    with TestClient(create_app(pipeline)) as client:
        assert client.get("/api/metrics").json() == {"dynamic_success_rate": 0.0}
        pipeline.engine.generate_signal()
        clock.advance(60)
        pipeline.engine.verify_pending()
        data = client.get("/api/metrics").json()
    assert data["total_signals"] == 1
    assert "accuracy" in data
    assert 0.0 <= data["dynamic_success_rate"] <= 1.0


def test_control_start_stop(pipeline):
    with TestClient(create_app(pipeline)) as client:
        assert client.post("/api/control/start").json() == {"status": "started", "running": True}
        assert client.post("/api/control/start").json()["running"] is True
        assert pipeline.running
        assert client.post("/api/control/stop").json() == {"status": "stopped", "running": False}
        assert not pipeline.running


def test_autostart_runs_pipeline_for_app_lifetime(pipeline):
    with TestClient(create_app(pipeline, autostart=True)) as client:
        assert client.get("/api/health").json()["running"] is True
    assert not pipeline.running


def test_websocket_initial_state_then_events(pipeline, clock):
    app = create_app(pipeline)
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            first = ws.receive_json()
            assert first["type"] == "initial_state"
            assert first["data"]["running"] is False

            pipeline.aggregator.ingest(1.085)
            bar = pipeline.aggregator.close_current()
            message = ws.receive_json()
            while message["type"] != EventType.BAR_CLOSED.value:
                message = ws.receive_json()
            assert message["data"]["close"] == bar.close


def test_app_must_be_created_before_start(pipeline):
    pipeline.events.seal()
    with pytest.raises(ListenerRegistrationClosed):
        create_app(pipeline)


def test_ticks_most_recent_first(clock):
    settings = load_settings(seed=1, persist_ticks=True)
    pipeline = Pipeline(settings, tick_source=_IdleTicks(), clock=clock)
    for price in (1.0801, 1.0802, 1.0803):
        pipeline.handle_tick(Tick.from_quote(price, price, clock()))
        clock.advance(1)
    with TestClient(create_app(pipeline)) as client:
        ticks = client.get("/api/ticks", params={"limit": 2}).json()
        assert client.get("/api/ticks", params={"limit": 0}).status_code == 422
    assert [t["mid"] for t in ticks] == [1.0803, 1.0802]


def test_ticks_empty_without_persistence(pipeline, clock):
    pipeline.handle_tick(Tick.from_quote(1.08, 1.08, clock()))
    with TestClient(create_app(pipeline)) as client:
        assert client.get("/api/ticks").json() == []
