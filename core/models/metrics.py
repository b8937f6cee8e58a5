"""Rolling model performance snapshot."""

from dataclasses import dataclass, field
from datetime import datetime

from core.models.candle import parse_ts, utc_now


@dataclass(frozen=True)
class MetricSnapshot:
    model_version: str
    accuracy: float
    precision: float
    recall: float
    total_signals: int
    correct_signals: int
    window_size: int
    timestamp: datetime = field(default_factory=utc_now)

    def to_record(self) -> dict:
        return {
            "ts": self.timestamp.isoformat(),
            "model_version": self.model_version,
            "accuracy": self.accuracy,
            "precision": self.precision,
            "recall": self.recall,
            "total_signals": self.total_signals,
            "correct_signals": self.correct_signals,
            "window_size": self.window_size,
        }

    @classmethod
    def from_record(cls, record: dict) -> "MetricSnapshot":
        return cls(
            model_version=record["model_version"],
            accuracy=float(record["accuracy"]),
            precision=float(record["precision"]),
            recall=float(record["recall"]),
            total_signals=int(record["total_signals"]),
            correct_signals=int(record["correct_signals"]),
            window_size=int(record["window_size"]),
            timestamp=parse_ts(record["ts"]),
        )
