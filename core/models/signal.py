"""Prediction signal and its verification outcome."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import uuid

from core.errors import SignalAlreadyVerified
from core.models.candle import parse_ts, utc_now


class Direction(str, Enum):
    UP = "UP"
    DOWN = "DOWN"

    @classmethod
    def from_probability(cls, probability_up: float) -> "Direction":
        return cls.UP if probability_up >= 0.5 else cls.DOWN

    @classmethod
    def from_move(cls, price_before: float, price_after: float) -> "Direction":
        # Flat counts as UP
        return cls.UP if price_after >= price_before else cls.DOWN

    @property
    def label(self) -> int:
        return 1 if self is Direction.UP else 0


@dataclass(frozen=True)
class Prediction:
    """Predictor output: direction plus confidence in that direction."""
    direction: Direction
    confidence: float
    probability_up: float

    @classmethod
    def from_probability(cls, probability_up: float) -> "Prediction":
        p = float(probability_up)
        direction = Direction.from_probability(p)
        return cls(
            direction=direction,
            confidence=p if direction is Direction.UP else 1.0 - p,
            probability_up=p,
        )


@dataclass(frozen=True)
class SignalOutcome:
    actual_direction: Direction
    is_correct: bool
    price_after_horizon: float
    verified_at: datetime


@dataclass
class Signal:
    """
    One directional prediction.

    ``probability`` is the confidence in ``direction`` (always >= 0.5).
    ``outcome`` is None while pending and set exactly once by verify().
    """
    direction: Direction
    probability: float
    model_version: str
    price_at_prediction: float
    created_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    features: Optional[dict] = None
    outcome: Optional[SignalOutcome] = None

    @property
    def is_pending(self) -> bool:
        return self.outcome is None

    @property
    def is_verified(self) -> bool:
        return self.outcome is not None

    @property
    def is_correct(self) -> Optional[bool]:
        return self.outcome.is_correct if self.outcome else None

    @property
    def actual_direction(self) -> Optional[Direction]:
        return self.outcome.actual_direction if self.outcome else None

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()

    def verify(self, realized_price: float, verified_at: Optional[datetime] = None) -> SignalOutcome:
        """Transition pending -> verified against the realized price."""
        if self.outcome is not None:
            raise SignalAlreadyVerified(self.id)
        actual = Direction.from_move(self.price_at_prediction, realized_price)
        self.outcome = SignalOutcome(
            actual_direction=actual,
            is_correct=actual == self.direction,
            price_after_horizon=realized_price,
            verified_at=verified_at or utc_now(),
        )
        return self.outcome

    def to_record(self) -> dict:
        record = {
            "id": self.id,
            "ts": self.created_at.isoformat(),
            "direction": self.direction.value,
            "probability": self.probability,
            "model_version": self.model_version,
            "price_at_prediction": self.price_at_prediction,
            "features": self.features,
            "actual_direction": None,
            "is_correct": None,
            "price_after_horizon": None,
            "verified_at": None,
        }
        if self.outcome:
            record.update({
                "actual_direction": self.outcome.actual_direction.value,
                "is_correct": self.outcome.is_correct,
                "price_after_horizon": self.outcome.price_after_horizon,
                "verified_at": self.outcome.verified_at.isoformat(),
            })
        return record

    @classmethod
    def from_record(cls, record: dict) -> "Signal":
        outcome = None
        if record.get("is_correct") is not None:
            outcome = SignalOutcome(
                actual_direction=Direction(record["actual_direction"]),
                is_correct=bool(record["is_correct"]),
                price_after_horizon=float(record["price_after_horizon"]),
                verified_at=parse_ts(record.get("verified_at") or record["ts"]),
            )
        return cls(
            id=record["id"],
            created_at=parse_ts(record["ts"]),
            direction=Direction(record["direction"]),
            probability=float(record["probability"]),
            model_version=record["model_version"],
            price_at_prediction=float(record["price_at_prediction"]),
            features=record.get("features"),
            outcome=outcome,
        )
