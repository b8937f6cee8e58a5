"""
Pipeline composition.

Builds every component from Settings and wires them together:
tick source -> BarAggregator -> PredictionEngine (features, predictor, replay buffer).
Nothing here is a module-level singleton; several pipelines can share a process.
"""

import random
from datetime import datetime
from typing import Callable, Optional

from core.config import Settings, load_settings
from core.errors import StorageUnavailableError
from core.events import EventType, PipelineEventBus
from core.interfaces import IPredictor, IRecordStore, ITickSource
from core.logging_utils import get_logger
from core.models import Tick, utc_now
from core.record_store import KIND_TICK, create_record_store
from datafeeds.tick_simulator import TickSimulator
from logic.bar_aggregator import BarAggregator
from logic.feature_engine import FEATURE_COUNT, FeatureEngine
from logic.prediction_engine import PredictionEngine
from logic.predictors import create_predictor
from logic.replay_buffer import ReplayBuffer

logger = get_logger(__name__)


class Pipeline:
    """Owns all components and exposes the start/stop command surface."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[IRecordStore] = None,
        predictor: Optional[IPredictor] = None,
        tick_source: Optional[ITickSource] = None,
        events: Optional[PipelineEventBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or load_settings()
        s = self.settings
        self.events = events or PipelineEventBus()
        self.store = store or create_record_store(s.store_kind, s.store_dir)

        self.aggregator = BarAggregator(
            interval_seconds=s.bar_interval_seconds,
            retention=s.bar_retention,
            check_seconds=s.bar_check_seconds,
            align_to_wall_clock=s.align_bars_to_wall_clock,
            store=self.store,
            events=self.events,
            update_throttle_seconds=s.bar_update_throttle_seconds,
            clock=clock,
        )
        self.feature_engine = FeatureEngine(min_bars=s.min_feature_bars)
        self.predictor = predictor or create_predictor(
            kind=s.predictor_kind,
            input_size=FEATURE_COUNT,
            min_batch_size=s.min_train_batch,
            seed=s.seed,
            learning_rate=s.learning_rate if s.predictor_kind == "baseline" else s.mlp_learning_rate,
            epochs=s.baseline_epochs if s.predictor_kind == "baseline" else s.mlp_epochs,
            batch_size=s.mlp_batch_size,
        )
        self.buffer = ReplayBuffer(capacity=s.buffer_capacity, rng=random.Random(s.seed))
        self.engine = PredictionEngine(
            aggregator=self.aggregator,
            feature_engine=self.feature_engine,
            predictor=self.predictor,
            buffer=self.buffer,
            store=self.store,
            events=self.events,
            generate_interval=s.generate_interval_seconds,
            verify_interval=s.verify_interval_seconds,
            train_interval=s.train_interval_seconds,
            horizon_seconds=s.horizon_seconds,
            min_labeled_for_training=s.min_labeled_for_training,
            train_batch_size=s.train_batch_size,
            metrics_window=s.metrics_window,
            signal_history=s.signal_history,
            signal_lookup_limit=s.signal_lookup_limit,
            decay_factor=s.decay_factor,
            history_for_features=s.history_for_features,
            clock=clock,
        )

        if tick_source is None:
            tick_source = TickSimulator(interval_seconds=s.tick_interval_seconds, seed=s.seed, clock=clock)
        self.tick_source = tick_source
        self.tick_source.on_tick = self.handle_tick

        self._running = False
        self.aggregator.load_history()
        self.engine.load_history()

    @classmethod
    def from_settings(cls, **overrides) -> "Pipeline":
        return cls(settings=load_settings(**overrides))

    @property
    def running(self) -> bool:
        return self._running

    def handle_tick(self, tick: Tick) -> None:
        """Tick source callback: fold into the open bar, then notify."""
        self.aggregator.ingest(tick.mid, tick.timestamp)
        if self.settings.persist_ticks:
            try:
                self.store.append(KIND_TICK, tick.to_record())
            except StorageUnavailableError as e:
                logger.warning("[PIPELINE] Could not persist tick: %s", e)
        self.events.emit(EventType.TICK, tick)

    async def start(self) -> None:
        if self._running:
            return
        self.events.seal()
        self.aggregator.start()
        self.engine.start()
        await self.tick_source.start()
        self._running = True
        logger.info(
            "[PIPELINE] Started (%s predictor, %s store)",
            self.predictor.version, type(self.store).__name__,
        )

    async def stop(self) -> None:
        if not self._running:
            return
        await self.tick_source.stop()
        await self.engine.stop()
        await self.aggregator.stop()
        self._running = False
        logger.info("[PIPELINE] Stopped")

    def status(self) -> dict:
        current = self.aggregator.current()
        metrics = self.engine.latest_metrics()
        return {
            "running": self._running,
            "model_version": self.predictor.version,
            "current_bar": current.to_record() if current else None,
            "bars_closed": self.aggregator.bars_closed,
            "ticks_ingested": self.aggregator.ticks_ingested,
            "metrics": metrics.to_record() if metrics else None,
            "engine": self.engine.status(),
        }
