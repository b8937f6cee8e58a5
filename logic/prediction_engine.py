"""
Prediction Engine

Drives the closed learning loop on three clocks:
- Generate (60s): features -> predict -> pending signal + unlabeled replay sample
- Verify (5s): after the horizon, compare against realized price, label sample
- Train (10s): sample labeled replay data, train the predictor, refresh metrics

Each signal moves pending -> verified exactly once. Metrics use the window of
recent *verified* signals; recent_signals() is a separate history window.
"""

import asyncio
from collections import deque
from datetime import datetime
import math
import threading
from typing import Callable, Deque, Dict, List, Optional, Sequence

from core.errors import StorageUnavailableError
from core.events import EventType, PipelineEventBus
from core.interfaces import IPredictor, IRecordStore
from core.logging_utils import get_logger
from core.models import Direction, MetricSnapshot, ReplaySample, Signal, utc_now
from core.record_store import KIND_BAR, KIND_METRIC, KIND_SIGNAL, KIND_VERIFIED
from core.scheduler import PeriodicTask
from logic.bar_aggregator import BarAggregator
from logic.feature_engine import FeatureEngine
from logic.replay_buffer import ReplayBuffer

logger = get_logger(__name__)


def compute_window_metrics(signals: Sequence[Signal]) -> dict:
    """Accuracy plus UP-class precision/recall over verified signals."""
    verified = [s for s in signals if s.is_verified]
    total = len(verified)
    correct = sum(1 for s in verified if s.is_correct)
    predicted_up = [s for s in verified if s.direction is Direction.UP]
    correct_up = sum(1 for s in predicted_up if s.is_correct)
    actual_up = sum(1 for s in verified if s.actual_direction is Direction.UP)
    return {
        "accuracy": correct / total if total else 0.0,
        "precision": correct_up / len(predicted_up) if predicted_up else 0.0,
        "recall": correct_up / actual_up if actual_up else 0.0,
        "total_signals": total,
        "correct_signals": correct,
    }


def decayed_accuracy(signals: Sequence[Signal], now: datetime, decay: float) -> float:
    """Time-weighted accuracy with weight exp(-decay * age_hours)."""
    weighted_correct = 0.0
    total_weight = 0.0
    for signal in signals:
        if not signal.is_verified:
            continue
        age_hours = signal.age_seconds(now) / 3600
        weight = math.exp(-decay * age_hours)
        weighted_correct += (1.0 if signal.is_correct else 0.0) * weight
        total_weight += weight
    return weighted_correct / total_weight if total_weight > 0 else 0.0


class PredictionEngine:
    """Owns the pending-signal set and orchestrates all cross-component calls."""

    def __init__(
        self,
        aggregator: BarAggregator,
        feature_engine: FeatureEngine,
        predictor: IPredictor,
        buffer: ReplayBuffer,
        store: IRecordStore,
        events: Optional[PipelineEventBus] = None,
        generate_interval: float = 60.0,
        verify_interval: float = 5.0,
        train_interval: float = 10.0,
        horizon_seconds: float = 60.0,
        min_labeled_for_training: int = 32,
        train_batch_size: int = 64,
        metrics_window: int = 100,
        signal_history: int = 1000,
        signal_lookup_limit: int = 1000,
        decay_factor: float = 0.01,
        history_for_features: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.aggregator = aggregator
        self.feature_engine = feature_engine
        self.predictor = predictor
        self.buffer = buffer
        self.store = store
        self.events = events
        self.horizon_seconds = horizon_seconds
        self.min_labeled_for_training = min_labeled_for_training
        self.train_batch_size = train_batch_size
        self.metrics_window = metrics_window
        self.signal_lookup_limit = signal_lookup_limit
        self.decay_factor = decay_factor
        self.history_for_features = history_for_features
        self.clock = clock

        self._pending: Dict[str, Signal] = {}
        self._signals: Deque[Signal] = deque(maxlen=signal_history)
        self._verified: Deque[Signal] = deque(maxlen=max(signal_history, metrics_window))
        self._latest_metrics: Optional[MetricSnapshot] = None
        self._lock = threading.Lock()

        self._tasks = [
            PeriodicTask("generate", generate_interval, self.generate_signal),
            PeriodicTask("verify", verify_interval, self.verify_pending),
            PeriodicTask("train", train_interval, self.train_step),
        ]

        # Stats
        self.signals_generated = 0
        self.signals_verified = 0
        self.stale_signals = 0
        self.insufficient_data = 0
        self.storage_failures = 0
        self.training_runs = 0
        self.training_skipped = 0

    # === Generate ===

    def generate_signal(self) -> Optional[Signal]:
        """One prediction cycle. Returns None when the cycle is skipped."""
        bars = self.aggregator.history(self.history_for_features)
        vector = self.feature_engine.extract(bars)
        if vector is None:
            self.insufficient_data += 1
            logger.info("[ENGINE] Not enough bars for prediction (%s)", len(bars))
            return None

        prediction = self.predictor.predict(vector)
        signal = Signal(
            direction=prediction.direction,
            probability=prediction.confidence,
            model_version=self.predictor.version,
            price_at_prediction=bars[-1].close,
            created_at=self.clock(),
            features=vector.raw.to_dict() if vector.raw else None,
        )

        try:
            self.store.append(KIND_SIGNAL, signal.to_record())
        except StorageUnavailableError as e:
            self.storage_failures += 1
            logger.warning("[ENGINE] Could not persist signal, cycle aborted: %s", e)
            return None

        self.buffer.add(ReplaySample(id=signal.id, features=vector.values, created_at=signal.created_at))
        with self._lock:
            self._pending[signal.id] = signal
            self._signals.append(signal)
            self.signals_generated += 1

        logger.info(
            "[ENGINE] Generated %s signal with %.1f%% confidence at price %.5f (%s)",
            signal.direction.value, signal.probability * 100, signal.price_at_prediction, signal.model_version,
        )
        self._emit(EventType.SIGNAL_GENERATED, signal)
        return signal

    # === Verify ===

    def verify_pending(self) -> List[Signal]:
        """Verify every pending signal older than the horizon."""
        now = self.clock()
        with self._lock:
            due = [s for s in self._pending.values() if s.age_seconds(now) >= self.horizon_seconds]
        if not due:
            return []

        try:
            latest_bar = self.store.latest(KIND_BAR)
            stored_ids = {r.get("id") for r in self.store.recent(KIND_SIGNAL, self.signal_lookup_limit)}
        except StorageUnavailableError as e:
            self.storage_failures += 1
            logger.warning("[ENGINE] Storage unavailable during verification: %s", e)
            return []

        if latest_bar is None:
            self.insufficient_data += 1
            logger.debug("[ENGINE] No realized price yet, %s signals stay pending", len(due))
            return []
        price = float(latest_bar["close"])

        verified: List[Signal] = []
        for signal in due:
            with self._lock:
                if self._pending.pop(signal.id, None) is None:
                    continue
                if signal.id not in stored_ids:
                    self.stale_signals += 1
                    logger.warning("[ENGINE] Signal %s vanished from storage, dropping", signal.id)
                    continue
                outcome = signal.verify(price, verified_at=now)
                self._verified.append(signal)
                self.signals_verified += 1

            self.buffer.label_by_id(signal.id, outcome.actual_direction.label)
            logger.info(
                "[ENGINE] Verified signal %s: predicted %s, actual %s, %s",
                signal.id, signal.direction.value, outcome.actual_direction.value,
                "CORRECT" if outcome.is_correct else "INCORRECT",
            )
            try:
                self.store.append(KIND_VERIFIED, signal.to_record())
            except StorageUnavailableError as e:
                self.storage_failures += 1
                logger.warning("[ENGINE] Could not persist verification of %s: %s", signal.id, e)
            self._emit(EventType.SIGNAL_VERIFIED, signal)
            verified.append(signal)

        if verified:
            self.update_metrics()
        return verified

    # === Train ===

    def _sample_and_train(self) -> bool:
        batch = self.buffer.sample_labeled(self.train_batch_size)
        vectors = [s.features for s in batch]
        labels = [s.label for s in batch]
        return self.predictor.train_batch(vectors, labels)

    def train_now(self) -> bool:
        """Synchronous training cycle; True when the predictor was updated."""
        if not self._ready_to_train():
            return False
        return self._after_training(self._sample_and_train())

    async def train_step(self) -> bool:
        """Training cycle with the model fit pushed off the event loop."""
        if not self._ready_to_train():
            return False
        trained = await asyncio.to_thread(self._sample_and_train)
        return self._after_training(trained)

    def _ready_to_train(self) -> bool:
        labeled = self.buffer.labeled_count()
        if labeled < self.min_labeled_for_training:
            self.training_skipped += 1
            logger.debug("[ENGINE] %s labeled samples, need %s", labeled, self.min_labeled_for_training)
            return False
        if self.predictor.is_training:
            self.training_skipped += 1
            return False
        return True

    def _after_training(self, trained: bool) -> bool:
        if not trained:
            self.training_skipped += 1
            return False
        self.training_runs += 1
        self.update_metrics()
        return True

    # === Metrics ===

    def verified_window(self, limit: Optional[int] = None) -> List[Signal]:
        """Most recent verified signals, oldest first."""
        limit = self.metrics_window if limit is None else limit
        with self._lock:
            window = list(self._verified)
        return window[-limit:] if limit > 0 else []

    def update_metrics(self) -> Optional[MetricSnapshot]:
        window = self.verified_window()
        if not window:
            return None
        snapshot = MetricSnapshot(
            model_version=self.predictor.version,
            window_size=self.metrics_window,
            timestamp=self.clock(),
            **compute_window_metrics(window),
        )
        self._latest_metrics = snapshot
        try:
            self.store.append(KIND_METRIC, snapshot.to_record())
        except StorageUnavailableError as e:
            self.storage_failures += 1
            logger.warning("[ENGINE] Could not persist metrics: %s", e)
        logger.info(
            "[ENGINE] Metrics %s: acc=%.3f prec=%.3f rec=%.3f over %s signals",
            snapshot.model_version, snapshot.accuracy, snapshot.precision, snapshot.recall, snapshot.total_signals,
        )
        self._emit(EventType.METRICS_UPDATED, snapshot)
        return snapshot

    def decayed_success_rate(self, window: int = 100, decay: Optional[float] = None) -> float:
        decay = self.decay_factor if decay is None else decay
        return decayed_accuracy(self.verified_window(window), self.clock(), decay)

    # === Restart recovery ===

    def load_history(self) -> int:
        """Rehydrate signal history, verified window and last metrics from the store.

        Signals without a verification record come back as history only. Their
        replay samples did not survive the restart, so they are not re-queued.
        """
        try:
            signal_records = self.store.recent(KIND_SIGNAL, self._signals.maxlen or 0)
            verified_records = self.store.recent(KIND_VERIFIED, self._verified.maxlen or 0)
            metric_record = self.store.latest(KIND_METRIC)
        except StorageUnavailableError as e:
            self.storage_failures += 1
            logger.warning("[ENGINE] Could not load signal history: %s", e)
            return 0

        verified = [Signal.from_record(r) for r in reversed(verified_records)]
        by_id = {s.id: s for s in verified}
        signals = []
        for record in reversed(signal_records):
            signals.append(by_id.get(record.get("id")) or Signal.from_record(record))

        with self._lock:
            self._signals.clear()
            self._signals.extend(signals)
            self._verified.clear()
            self._verified.extend(verified)
        if metric_record is not None:
            self._latest_metrics = MetricSnapshot.from_record(metric_record)

        if signals or verified:
            logger.info(
                "[ENGINE] Loaded %s signals (%s verified) from store", len(signals), len(verified),
            )
        return len(signals)

    # === Read access ===

    def latest_metrics(self) -> Optional[MetricSnapshot]:
        return self._latest_metrics

    def recent_signals(self, limit: int = 20) -> List[Signal]:
        """History window of signals in any state, most recent first."""
        with self._lock:
            signals = list(self._signals)
        return list(reversed(signals[-limit:])) if limit > 0 else []

    def latest_signal(self) -> Optional[Signal]:
        with self._lock:
            return self._signals[-1] if self._signals else None

    def pending_signals(self) -> List[Signal]:
        with self._lock:
            return list(self._pending.values())

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def status(self) -> dict:
        return {
            "running": self.running,
            "model_version": self.predictor.version,
            "pending": self.pending_count(),
            "signals_generated": self.signals_generated,
            "signals_verified": self.signals_verified,
            "stale_signals": self.stale_signals,
            "insufficient_data": self.insufficient_data,
            "storage_failures": self.storage_failures,
            "training_runs": self.training_runs,
            "training_skipped": self.training_skipped,
            "buffer": self.buffer.stats(),
        }

    # === Lifecycle ===

    @property
    def running(self) -> bool:
        return any(t.running for t in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        for task in self._tasks:
            task.start()
        logger.info("[ENGINE] Started prediction engine with %s", self.predictor.version)

    async def stop(self) -> None:
        """Halt all clocks; pending signals are kept for resume."""
        if not self.running:
            return
        for task in self._tasks:
            await task.stop()
        logger.info("[ENGINE] Stopped prediction engine (%s pending)", self.pending_count())

    def _emit(self, event_type: EventType, payload) -> None:
        if self.events is not None:
            self.events.emit(event_type, payload)
