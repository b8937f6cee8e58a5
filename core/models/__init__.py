"""Typed data models for the prediction pipeline."""

from core.models.candle import Bar, OpenBar, Tick, parse_ts, utc_now
from core.models.metrics import MetricSnapshot
from core.models.sample import ReplaySample
from core.models.signal import Direction, Prediction, Signal, SignalOutcome

__all__ = [
    "Bar",
    "Direction",
    "MetricSnapshot",
    "OpenBar",
    "Prediction",
    "ReplaySample",
    "Signal",
    "SignalOutcome",
    "Tick",
    "parse_ts",
    "utc_now",
]
