"""Tests for settings, the tick simulator and the composed pipeline."""

import asyncio

import pytest
from pydantic import ValidationError

from core.config import Settings, load_settings
from core.errors import ListenerRegistrationClosed
from core.models import Tick
from core.pipeline import Pipeline
from core.record_store import KIND_BAR, KIND_TICK, JsonlRecordStore, MemoryRecordStore
from datafeeds.tick_simulator import TickSimulator
from logic.predictors import LogisticPredictor, NeuralPredictor


class _ManualTicks:
    """Tick source driven by the test."""

    def __init__(self):
        self.on_tick = None
        self.started = 0
        self.stopped = 0

    async def start(self):
        self.started += 1

    async def stop(self):
        self.stopped += 1

    def push(self, price, timestamp):
        self.on_tick(Tick.from_quote(price, price, timestamp))


def _fast_settings(**overrides) -> Settings:
    base = dict(
        seed=1,
        bar_check_seconds=0.01,
        generate_interval_seconds=0.05,
        verify_interval_seconds=0.05,
        train_interval_seconds=0.05,
        tick_interval_seconds=0.01,
    )
    base.update(overrides)
    return load_settings(**base)


class TestSettings:

    def test_defaults(self):
        s = Settings()
        assert s.bar_interval_seconds == 60
        assert s.horizon_seconds == 60
        assert s.min_labeled_for_training == 32
        assert s.train_batch_size == 64
        assert s.metrics_window == 100
        assert s.decay_factor == 0.01
        assert not s.uses_disk_store

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("SIGNALLOOP_PREDICTOR_KIND", "baseline")
        monkeypatch.setenv("SIGNALLOOP_METRICS_WINDOW", "50")
        s = Settings()
        assert s.predictor_kind == "baseline"
        assert s.metrics_window == 50

    def test_load_settings_overrides(self):
        s = load_settings(store_kind="jsonl", web_port=9000)
        assert s.uses_disk_store
        assert s.web_port == 9000


class TestTickSimulator:

    def test_seeded_walk_is_reproducible(self, clock):
        a = TickSimulator(seed=42, clock=clock)
        b = TickSimulator(seed=42, clock=clock)
        assert [a.next_tick().mid for _ in range(50)] == [b.next_tick().mid for _ in range(50)]

    def test_price_stays_in_band(self, clock):
        sim = TickSimulator(seed=3, volatility=0.05, clock=clock)
        for _ in range(500):
            tick = sim.next_tick()
            assert TickSimulator.PRICE_FLOOR <= tick.mid <= TickSimulator.PRICE_CEILING
            assert tick.spread == pytest.approx(TickSimulator.SPREAD)

    @pytest.mark.asyncio
    async def test_emits_ticks_while_running(self):
        ticks = []
        sim = TickSimulator(interval_seconds=0.01, seed=1, on_tick=ticks.append)
        await sim.start()
        await asyncio.sleep(0.05)
        await sim.stop()
        assert len(ticks) >= 2
        assert sim.ticks_emitted == len(ticks)


class TestPipeline:

    def test_predictor_kind_from_settings(self):
        assert isinstance(Pipeline(_fast_settings(predictor_kind="baseline")).predictor, LogisticPredictor)
        assert isinstance(Pipeline(_fast_settings(predictor_kind="mlp")).predictor, NeuralPredictor)

    def test_ticks_fold_into_bars(self, clock):
        ticks = _ManualTicks()
        store = MemoryRecordStore()
        pipeline = Pipeline(_fast_settings(persist_ticks=True), store=store, tick_source=ticks, clock=clock)
        seen = []
        pipeline.events.on_tick(seen.append)

        for i in range(3):
            ticks.push(1.08 + i * 0.001, clock())
            clock.advance(10)
        assert pipeline.aggregator.current().count == 3
        assert len(seen) == 3
        assert store.count(KIND_TICK) == 3

        clock.advance(60)
        pipeline.aggregator.tick()
        assert store.latest(KIND_BAR)["close"] == pytest.approx(1.082)

    def test_pipelines_are_independent(self):
        first = Pipeline(_fast_settings(), tick_source=_ManualTicks())
        second = Pipeline(_fast_settings(), tick_source=_ManualTicks())
        assert first.store is not second.store
        assert first.events is not second.events
        assert first.buffer is not second.buffer

    @pytest.mark.asyncio
    async def test_start_stop_idempotent(self):
        ticks = _ManualTicks()
        pipeline = Pipeline(_fast_settings(), tick_source=ticks)
        await pipeline.start()
        await pipeline.start()
        assert pipeline.running
        assert pipeline.engine.running
        assert pipeline.aggregator.running
        assert ticks.started == 1

        await pipeline.stop()
        await pipeline.stop()
        assert not pipeline.running
        assert not pipeline.engine.running
        assert ticks.stopped == 1

    @pytest.mark.asyncio
    async def test_listeners_must_register_before_start(self):
        pipeline = Pipeline(_fast_settings(), tick_source=_ManualTicks())
        await pipeline.start()
        try:
            with pytest.raises(ListenerRegistrationClosed):
                pipeline.events.on_signal(lambda s: None)
        finally:
            await pipeline.stop()

    @pytest.mark.asyncio
    async def test_runs_with_simulator(self):
        pipeline = Pipeline(_fast_settings(bar_interval_seconds=0.02))
        await pipeline.start()
        await asyncio.sleep(0.2)
        await pipeline.stop()
        assert pipeline.aggregator.ticks_ingested > 0
        assert pipeline.aggregator.bars_closed > 0
        # Not enough bars for features yet: cycles skip without errors
        assert pipeline.engine.signals_generated == 0
        assert pipeline.engine.insufficient_data > 0

    def test_restart_recovers_bars_from_jsonl(self, tmp_path, clock):
        ticks = _ManualTicks()
        store = JsonlRecordStore(tmp_path)
        pipeline = Pipeline(_fast_settings(), store=store, tick_source=ticks, clock=clock)
        for i in range(3):
            ticks.push(1.08 + i * 0.001, clock())
            pipeline.aggregator.close_current()

        restarted = Pipeline(_fast_settings(), store=JsonlRecordStore(tmp_path), tick_source=_ManualTicks(), clock=clock)
        assert len(restarted.aggregator.history()) == 3

    def test_restart_recovers_signals_and_metrics_from_jsonl(self, tmp_path, clock):
        ticks = _ManualTicks()
        settings = _fast_settings(predictor_kind="baseline")
        pipeline = Pipeline(settings, store=JsonlRecordStore(tmp_path), tick_source=ticks, clock=clock)
        for i in range(25):
            ticks.push(1.08 + i * 0.0001, clock())
            pipeline.aggregator.close_current()
        verified = pipeline.engine.generate_signal()
        clock.advance(60)
        ticks.push(1.09, clock())
        pipeline.aggregator.close_current()
        assert pipeline.engine.verify_pending() == [verified]
        unverified = pipeline.engine.generate_signal()

        restarted = Pipeline(settings, store=JsonlRecordStore(tmp_path), tick_source=_ManualTicks(), clock=clock)
        engine = restarted.engine
        assert [s.id for s in engine.recent_signals()] == [unverified.id, verified.id]
        assert engine.latest_signal().id == unverified.id
        assert engine.recent_signals()[1].is_verified
        assert engine.verified_window()[0].id == verified.id
        assert engine.pending_count() == 0

        metrics = engine.latest_metrics()
        assert metrics is not None
        assert metrics.total_signals == 1
        assert metrics.accuracy == pipeline.engine.latest_metrics().accuracy
        assert engine.decayed_success_rate() == pipeline.engine.decayed_success_rate()


def test_unknown_overrides_are_ignored():
    s = load_settings(not_a_setting=1, metrics_window=10)
    assert s.metrics_window == 10
    assert not hasattr(s, "not_a_setting")


def test_overrides_are_validated(monkeypatch):
    monkeypatch.setenv("SIGNALLOOP_HORIZON_SECONDS", "30")
    s = load_settings(metrics_window="10")
    assert s.metrics_window == 10
    assert s.horizon_seconds == 30
    with pytest.raises(ValidationError):
        load_settings(predictor_kind="forest")
    with pytest.raises(ValidationError):
        load_settings(metrics_window="ten")
