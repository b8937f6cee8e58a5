"""
Replay Buffer

Bounded FIFO of (features, label) samples waiting for, or carrying, their
delayed outcome label.

- add(): new samples start unlabeled; the oldest sample is evicted past capacity
- label_by_id(): sets a label exactly once
- sample_labeled(): uniform draws with replacement from labeled samples
"""

from collections import OrderedDict
import random
import threading
from typing import List, Optional

from core.logging_utils import get_logger
from core.models import ReplaySample

logger = get_logger(__name__)


class ReplayBuffer:
    """Owns its samples; the only mutation from outside is label_by_id()."""

    def __init__(self, capacity: int = 50_000, rng: Optional[random.Random] = None):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._rng = rng or random.Random()
        self._samples: "OrderedDict[str, ReplaySample]" = OrderedDict()
        self._labeled = 0
        self._lock = threading.Lock()

        # Stats
        self.evicted = 0
        self.evicted_unlabeled = 0

    def add(self, sample: ReplaySample) -> Optional[ReplaySample]:
        """Append a pending sample; returns the evicted sample, if any."""
        if sample.label is not None:
            raise ValueError("new samples must be unlabeled")
        with self._lock:
            if sample.id in self._samples:
                logger.warning("[BUFFER] Duplicate sample id %s ignored", sample.id)
                return None
            self._samples[sample.id] = sample
            if len(self._samples) <= self.capacity:
                return None
            _, evicted = self._samples.popitem(last=False)
            self.evicted += 1
            if evicted.label is not None:
                self._labeled -= 1
            else:
                self.evicted_unlabeled += 1
        return evicted

    def label_by_id(self, sample_id: str, label: int) -> bool:
        """Set the label once. Returns False if unknown or already labeled."""
        if label not in (0, 1):
            raise ValueError(f"Label must be 0 or 1, got {label!r}")
        with self._lock:
            sample = self._samples.get(sample_id)
            if sample is None or sample.label is not None:
                return False
            sample.label = int(label)
            self._labeled += 1
        logger.debug("[BUFFER] Labeled sample %s: %s", sample_id, label)
        return True

    def sample_labeled(self, n: int) -> List[ReplaySample]:
        """Up to ``n`` uniform draws, with replacement, from labeled samples."""
        with self._lock:
            labeled = [s for s in self._samples.values() if s.label is not None]
        if not labeled or n <= 0:
            return []
        return [self._rng.choice(labeled) for _ in range(min(n, len(labeled)))]

    def labeled_count(self) -> int:
        with self._lock:
            return self._labeled

    def get(self, sample_id: str) -> Optional[ReplaySample]:
        with self._lock:
            return self._samples.get(sample_id)

    def peek_last(self) -> Optional[ReplaySample]:
        with self._lock:
            if not self._samples:
                return None
            return next(reversed(self._samples.values()))

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()
            self._labeled = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def stats(self) -> dict:
        with self._lock:
            size = len(self._samples)
            labeled = self._labeled
        return {
            "size": size,
            "capacity": self.capacity,
            "labeled": labeled,
            "pending": size - labeled,
            "evicted": self.evicted,
            "evicted_unlabeled": self.evicted_unlabeled,
        }
