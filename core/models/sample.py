"""Replay buffer training sample."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import numpy as np

from core.models.candle import utc_now


@dataclass
class ReplaySample:
    """Feature vector paired with a delayed label (None = pending)."""
    id: str
    features: np.ndarray
    label: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_labeled(self) -> bool:
        return self.label is not None
