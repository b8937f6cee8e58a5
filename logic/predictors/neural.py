"""
Feed-forward network predictor (numpy).

Architecture: input -> 64 -> 32 -> 16 -> 1
- ReLU hidden layers, He-normal init
- Dropout 0.3 / 0.2 after the first two hidden layers (training only)
- L2 0.001 on the first two hidden layers
- Sigmoid output, binary cross-entropy, Adam
"""

import copy
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from logic.feature_engine import FEATURE_COUNT
from logic.predictors.base import BasePredictor, sigmoid

BCE_EPS = 1e-7


@dataclass
class DenseLayer:
    W: np.ndarray
    b: np.ndarray
    dropout: float = 0.0
    l2: float = 0.0
    # Adam moments
    mW: Optional[np.ndarray] = None
    vW: Optional[np.ndarray] = None
    mb: Optional[np.ndarray] = None
    vb: Optional[np.ndarray] = None

    def __post_init__(self):
        self.mW = np.zeros_like(self.W)
        self.vW = np.zeros_like(self.W)
        self.mb = np.zeros_like(self.b)
        self.vb = np.zeros_like(self.b)


class NeuralPredictor(BasePredictor):
    name = "mlp"

    def __init__(
        self,
        input_size: int = FEATURE_COUNT,
        hidden: Sequence[int] = (64, 32, 16),
        dropout: Sequence[float] = (0.3, 0.2, 0.0),
        l2: Sequence[float] = (0.001, 0.001, 0.0),
        learning_rate: float = 0.001,
        epochs: int = 5,
        batch_size: int = 32,
        min_batch_size: int = 16,
        seed: Optional[int] = None,
    ):
        super().__init__(input_size=input_size, min_batch_size=min_batch_size, seed=seed)
        if not (len(hidden) == len(dropout) == len(l2)):
            raise ValueError("hidden, dropout and l2 must have the same length")
        self.learning_rate = learning_rate
        self.epochs = epochs
        self.batch_size = batch_size
        self.beta1 = 0.9
        self.beta2 = 0.999
        self._step = 0
        self.layers: List[DenseLayer] = self._build(input_size, hidden, dropout, l2)

    def _build(self, input_size, hidden, dropout, l2) -> List[DenseLayer]:
        layers = []
        fan_in = input_size
        for units, rate, reg in zip(hidden, dropout, l2):
            W = self._rng.normal(0.0, np.sqrt(2.0 / fan_in), size=(fan_in, units))
            layers.append(DenseLayer(W=W, b=np.zeros(units), dropout=rate, l2=reg))
            fan_in = units
        # Glorot-normal output layer
        W = self._rng.normal(0.0, np.sqrt(2.0 / (fan_in + 1)), size=(fan_in, 1))
        layers.append(DenseLayer(W=W, b=np.zeros(1)))
        return layers

    def _format_version(self, revision: int) -> str:
        return f"v2.0.{revision}-mlp"

    # === Forward / backward ===

    def _forward(self, X: np.ndarray, training: bool):
        """Returns output probabilities and the cache needed for backprop."""
        a = X
        cache = []
        for layer in self.layers[:-1]:
            z = a @ layer.W + layer.b
            out = np.maximum(z, 0.0)
            mask = None
            if training and layer.dropout > 0:
                keep = 1.0 - layer.dropout
                mask = (self._rng.random(out.shape) < keep) / keep
                out = out * mask
            cache.append((a, z, mask))
            a = out
        head = self.layers[-1]
        p = sigmoid(a @ head.W + head.b)
        cache.append((a, None, None))
        return p, cache

    def _loss(self, p: np.ndarray, y: np.ndarray) -> float:
        p = np.clip(p, BCE_EPS, 1 - BCE_EPS)
        bce = -np.mean(y * np.log(p) + (1 - y) * np.log(1 - p))
        penalty = sum(layer.l2 * np.sum(layer.W ** 2) for layer in self.layers if layer.l2)
        return float(bce + penalty)

    def _train_step(self, X: np.ndarray, y: np.ndarray) -> float:
        y = y.reshape(-1, 1)
        p, cache = self._forward(X, training=True)
        loss = self._loss(p, y)

        # Sigmoid + BCE gradient
        dz = (p - y) / len(y)
        grads = []
        for idx in range(len(self.layers) - 1, -1, -1):
            layer = self.layers[idx]
            a_prev = cache[idx][0]
            dW = a_prev.T @ dz
            if layer.l2:
                dW = dW + 2 * layer.l2 * layer.W
            db = dz.sum(axis=0)
            grads.append((layer, dW, db))
            if idx > 0:
                da = dz @ layer.W.T
                _, z_prev, mask_prev = cache[idx - 1]
                if mask_prev is not None:
                    da = da * mask_prev
                dz = da * (z_prev > 0)

        self._apply_adam(grads)
        return loss

    def _apply_adam(self, grads) -> None:
        self._step += 1
        t = self._step
        lr = self.learning_rate
        b1, b2 = self.beta1, self.beta2
        for layer, dW, db in grads:
            layer.mW = b1 * layer.mW + (1 - b1) * dW
            layer.vW = b2 * layer.vW + (1 - b2) * dW ** 2
            layer.mb = b1 * layer.mb + (1 - b1) * db
            layer.vb = b2 * layer.vb + (1 - b2) * db ** 2
            mW_hat = layer.mW / (1 - b1 ** t)
            vW_hat = layer.vW / (1 - b2 ** t)
            mb_hat = layer.mb / (1 - b1 ** t)
            vb_hat = layer.vb / (1 - b2 ** t)
            layer.W -= lr * mW_hat / (np.sqrt(vW_hat) + BCE_EPS)
            layer.b -= lr * mb_hat / (np.sqrt(vb_hat) + BCE_EPS)

    # === BasePredictor hooks ===

    def _get_params(self) -> dict:
        return {"layers": copy.deepcopy(self.layers), "step": self._step}

    def _set_params(self, params: dict) -> None:
        self.layers = params["layers"]
        self._step = params["step"]

    def _probability_up(self, x: np.ndarray) -> float:
        p, _ = self._forward(x.reshape(1, -1), training=False)
        return float(p[0, 0])

    def _online_step(self, x: np.ndarray, label: float) -> float:
        return self._train_step(x.reshape(1, -1), np.array([label]))

    def _fit_batch(self, X: np.ndarray, y: np.ndarray) -> float:
        batch_size = min(self.batch_size, len(y))
        epoch_loss = 0.0
        for _ in range(self.epochs):
            order = self._rng.permutation(len(y))
            losses = []
            for start in range(0, len(y), batch_size):
                idx = order[start:start + batch_size]
                losses.append(self._train_step(X[idx], y[idx]))
            epoch_loss = float(np.mean(losses))
        return epoch_loss

    def evaluate(self, X: np.ndarray, y: np.ndarray) -> dict:
        """Loss and accuracy without dropout or weight updates."""
        with self._weights_lock:
            p, _ = self._forward(np.asarray(X, dtype=float), training=False)
        y = np.asarray(y, dtype=float).reshape(-1, 1)
        return {
            "loss": self._loss(p, y),
            "accuracy": float(np.mean((p >= 0.5) == (y == 1))),
        }
