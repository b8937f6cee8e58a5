"""Component interfaces for swappable pipeline collaborators."""

from typing import Callable, Optional, Protocol, Sequence

import numpy as np

from core.models import Prediction, Tick


class IRecordStore(Protocol):
    """Append-only record store with read-back by recency.

    Implementations raise StorageUnavailableError on any I/O failure.
    """

    def append(self, kind: str, record: dict) -> str:
        ...

    def recent(self, kind: str, limit: int) -> list[dict]:
        """Most recent first."""
        ...

    def latest(self, kind: str) -> Optional[dict]:
        ...


class IPredictor(Protocol):
    """Maps a feature vector to a directional probability."""

    @property
    def version(self) -> str:
        ...

    @property
    def is_training(self) -> bool:
        ...

    def predict(self, vector: np.ndarray) -> Prediction:
        ...

    def train_online(self, vector: np.ndarray, label: int) -> bool:
        ...

    def train_batch(self, vectors: Sequence[np.ndarray], labels: Sequence[int]) -> bool:
        ...


class ITickSource(Protocol):
    """Producer of price ticks."""

    on_tick: Optional[Callable[[Tick], None]]

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...
