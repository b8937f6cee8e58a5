"""Tests for core data models."""

from datetime import datetime, timedelta, timezone

import pytest

from core.errors import SignalAlreadyVerified
from core.models import Bar, Direction, MetricSnapshot, OpenBar, Prediction, Signal, Tick


class TestSignal:

    def _signal(self, direction=Direction.UP, price=1.0850) -> Signal:
        return Signal(direction=direction, probability=0.7, model_version="v1.0.0-baseline", price_at_prediction=price)

    def test_starts_pending(self):
        sig = self._signal()
        assert sig.is_pending
        assert sig.is_correct is None
        assert sig.actual_direction is None

    def test_verify_exactly_once(self):
        sig = self._signal()
        outcome = sig.verify(1.0860)
        assert outcome.is_correct
        assert sig.is_verified
        with pytest.raises(SignalAlreadyVerified):
            sig.verify(1.0800)
        assert sig.is_correct is True

    def test_flat_price_counts_as_up(self):
        sig = self._signal(direction=Direction.DOWN)
        sig.verify(1.0850)
        assert sig.actual_direction is Direction.UP
        assert sig.is_correct is False

    def test_record_round_trip_keeps_outcome(self):
        sig = self._signal()
        sig.verify(1.0900)
        restored = Signal.from_record(sig.to_record())
        assert restored.id == sig.id
        assert restored.outcome == sig.outcome
        assert restored.created_at == sig.created_at

    def test_age_seconds(self):
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        sig = Signal(direction=Direction.UP, probability=0.6, model_version="x", price_at_prediction=1.0, created_at=created)
        assert sig.age_seconds(created + timedelta(minutes=2)) == 120


class TestPrediction:

    def test_down_confidence_is_complement(self):
        pred = Prediction.from_probability(0.3)
        assert pred.direction is Direction.DOWN
        assert pred.confidence == pytest.approx(0.7)

    def test_half_is_up(self):
        assert Prediction.from_probability(0.5).direction is Direction.UP

    def test_labels(self):
        assert Direction.UP.label == 1
        assert Direction.DOWN.label == 0


class TestBars:

    def test_tick_mid_and_spread(self):
        tick = Tick.from_quote(bid=1.08495, ask=1.08505)
        assert tick.mid == pytest.approx(1.085)
        assert tick.spread == pytest.approx(0.0001)

    def test_open_bar_freeze_is_consistent(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        open_bar = OpenBar.first(1.0, start)
        for price in (1.2, 0.9, 1.1):
            open_bar.update(price)
        bar = open_bar.freeze()
        assert (bar.open, bar.high, bar.low, bar.close, bar.count) == (1.0, 1.2, 0.9, 1.1, 4)
        assert bar.is_consistent
        assert bar.is_green

    def test_bar_from_record(self):
        record = {"ts": "2024-01-01T00:00:00Z", "open": 1, "high": 2, "low": 0.5, "close": 1.5, "count": 3}
        bar = Bar.from_record(record)
        assert bar.start_time.tzinfo is not None
        assert bar.upper_wick == pytest.approx(0.5)
        assert bar.lower_wick == pytest.approx(0.5)


def test_metric_snapshot_record():
    snap = MetricSnapshot(
        model_version="v2.0.3-mlp", accuracy=0.6, precision=0.5, recall=0.75,
        total_signals=10, correct_signals=6, window_size=100,
    )
    restored = MetricSnapshot.from_record(snap.to_record())
    assert restored == snap
