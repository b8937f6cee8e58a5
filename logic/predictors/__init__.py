"""Predictor strategies behind one contract; pick one at construction."""

from typing import Optional

from logic.feature_engine import FEATURE_COUNT
from logic.predictors.base import BasePredictor
from logic.predictors.logistic import LogisticPredictor
from logic.predictors.neural import NeuralPredictor

PREDICTOR_KINDS = ("baseline", "mlp")


def create_predictor(
    kind: str = "mlp",
    input_size: int = FEATURE_COUNT,
    min_batch_size: int = 16,
    seed: Optional[int] = None,
    learning_rate: Optional[float] = None,
    epochs: Optional[int] = None,
    batch_size: int = 32,
) -> BasePredictor:
    """Build the configured predictor strategy."""
    if kind == "baseline":
        return LogisticPredictor(
            input_size=input_size,
            learning_rate=0.01 if learning_rate is None else learning_rate,
            epochs=10 if epochs is None else epochs,
            min_batch_size=min_batch_size,
            seed=seed,
        )
    if kind == "mlp":
        return NeuralPredictor(
            input_size=input_size,
            learning_rate=0.001 if learning_rate is None else learning_rate,
            epochs=5 if epochs is None else epochs,
            batch_size=batch_size,
            min_batch_size=min_batch_size,
            seed=seed,
        )
    raise ValueError(f"Unknown predictor kind: {kind} (expected one of {PREDICTOR_KINDS})")


__all__ = [
    "BasePredictor",
    "LogisticPredictor",
    "NeuralPredictor",
    "PREDICTOR_KINDS",
    "create_predictor",
]
