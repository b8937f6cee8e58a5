"""Logistic baseline: weighted sum plus bias through a sigmoid, SGD updates."""

from typing import Optional

import numpy as np

from logic.feature_engine import FEATURE_COUNT
from logic.predictors.base import BasePredictor, sigmoid


class LogisticPredictor(BasePredictor):
    name = "baseline"

    def __init__(
        self,
        input_size: int = FEATURE_COUNT,
        learning_rate: float = 0.01,
        epochs: int = 10,
        min_batch_size: int = 16,
        seed: Optional[int] = None,
    ):
        super().__init__(input_size=input_size, min_batch_size=min_batch_size, seed=seed)
        self.learning_rate = learning_rate
        self.epochs = epochs
        # Small random weights
        self.weights = (self._rng.random(input_size) - 0.5) * 0.1
        self.bias = 0.0

    def _format_version(self, revision: int) -> str:
        return f"v1.0.{revision}-baseline"

    def _get_params(self) -> dict:
        return {"weights": self.weights.copy(), "bias": self.bias}

    def _set_params(self, params: dict) -> None:
        self.weights = params["weights"]
        self.bias = params["bias"]

    def _probability_up(self, x: np.ndarray) -> float:
        return float(sigmoid(x @ self.weights + self.bias))

    def _online_step(self, x: np.ndarray, label: float) -> float:
        p = float(sigmoid(x @ self.weights + self.bias))
        error = p - label
        gradient = error * p * (1 - p)
        self.weights -= self.learning_rate * gradient * x
        self.bias -= self.learning_rate * gradient
        return error * error

    def _fit_batch(self, X: np.ndarray, y: np.ndarray) -> float:
        avg_loss = 0.0
        for _ in range(self.epochs):
            total = 0.0
            for i in self._rng.permutation(len(y)):
                total += self._online_step(X[i], y[i])
            avg_loss = total / len(y)
        return avg_loss
