"""
Base predictor interface.

All predictors inherit from BasePredictor and share:
- Prediction shaping (confidence is always the mass on the predicted side)
- Minimum batch gate (small batches are skipped, not trained on)
- Non-reentrant training (a call that arrives mid-training is dropped)
- Training fits a private copy of the parameters; predict() only waits for the swap
- Version string that advances after every successful training pass
"""

from abc import ABC, abstractmethod
import copy
import threading
from typing import Optional, Sequence

import numpy as np

from core.logging_utils import get_logger
from core.models import Prediction
from logic.feature_engine import FEATURE_COUNT

logger = get_logger(__name__)


def sigmoid(z):
    return 1.0 / (1.0 + np.exp(-np.clip(z, -500, 500)))


class BasePredictor(ABC):
    """Shared contract; subclasses implement the maths."""

    name: str = "base"

    def __init__(
        self,
        input_size: int = FEATURE_COUNT,
        min_batch_size: int = 16,
        seed: Optional[int] = None,
    ):
        self.input_size = input_size
        self.min_batch_size = min_batch_size
        self._rng = np.random.default_rng(seed)
        self._weights_lock = threading.Lock()
        self._train_guard = threading.Lock()
        self._revision = 0

        # Stats
        self.training_passes = 0
        self.skipped_small = 0
        self.skipped_busy = 0
        self.failed_passes = 0
        self.last_loss: Optional[float] = None

    # === Subclass hooks ===

    @abstractmethod
    def _format_version(self, revision: int) -> str:
        ...

    @abstractmethod
    def _probability_up(self, x: np.ndarray) -> float:
        ...

    @abstractmethod
    def _online_step(self, x: np.ndarray, label: float) -> float:
        """Single-example update; returns the example loss."""
        ...

    @abstractmethod
    def _fit_batch(self, X: np.ndarray, y: np.ndarray) -> float:
        """Full training pass over a batch; returns the final loss."""
        ...

    @abstractmethod
    def _get_params(self) -> dict:
        """Independent copy of every trainable value and optimizer state."""
        ...

    @abstractmethod
    def _set_params(self, params: dict) -> None:
        ...

    # === Contract ===

    @property
    def version(self) -> str:
        return self._format_version(self._revision)

    @property
    def is_training(self) -> bool:
        return self._train_guard.locked()

    def predict(self, vector) -> Prediction:
        x = self._as_input(vector)
        with self._weights_lock:
            p = self._probability_up(x)
        return Prediction.from_probability(p)

    def train_online(self, vector, label: int) -> bool:
        x = self._as_input(vector)
        y = self._as_label(label)
        return self._run_training(lambda model: model._online_step(x, y), n_samples=1)

    def train_batch(self, vectors: Sequence, labels: Sequence[int]) -> bool:
        if len(vectors) != len(labels):
            raise ValueError(f"{len(vectors)} vectors but {len(labels)} labels")
        if len(vectors) < self.min_batch_size:
            self.skipped_small += 1
            logger.info(
                "[MODEL] Not enough samples for training batch (%s < %s)",
                len(vectors), self.min_batch_size,
            )
            return False
        X = np.vstack([self._as_input(v) for v in vectors])
        y = np.array([self._as_label(l) for l in labels], dtype=float)
        return self._run_training(lambda model: model._fit_batch(X, y), n_samples=len(y))

    def _run_training(self, step, n_samples: int) -> bool:
        if not self._train_guard.acquire(blocking=False):
            self.skipped_busy += 1
            logger.debug("[MODEL] Training already in progress, dropping call")
            return False
        try:
            with self._weights_lock:
                params = self._get_params()
            shadow = copy.copy(self)
            shadow._set_params(params)
            loss = step(shadow)
            trained = shadow._get_params()
            with self._weights_lock:
                self._set_params(trained)
                self._revision += 1
            self.training_passes += 1
            self.last_loss = float(loss)
            logger.info(
                "[MODEL] Trained %s on %s samples - loss %.4f -> %s",
                self.name, n_samples, self.last_loss, self.version,
            )
            return True
        except Exception as e:
            self.failed_passes += 1
            logger.exception("[MODEL] Training error: %s", e)
            return False
        finally:
            self._train_guard.release()

    def stats(self) -> dict:
        return {
            "kind": self.name,
            "version": self.version,
            "training_passes": self.training_passes,
            "skipped_small": self.skipped_small,
            "skipped_busy": self.skipped_busy,
            "failed_passes": self.failed_passes,
            "last_loss": self.last_loss,
        }

    # === Helpers ===

    def _as_input(self, vector) -> np.ndarray:
        values = getattr(vector, "values", vector)
        x = np.asarray(values, dtype=float).reshape(-1)
        if x.shape[0] != self.input_size:
            raise ValueError(f"Expected {self.input_size} features, got {x.shape[0]}")
        return x

    @staticmethod
    def _as_label(label) -> float:
        if label not in (0, 1):
            raise ValueError(f"Label must be 0 or 1, got {label!r}")
        return float(label)
