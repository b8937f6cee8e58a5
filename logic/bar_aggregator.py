"""
Bar Aggregator

Folds the tick stream into fixed-interval OHLC bars.

- ingest() opens or updates the single open bar
- tick() runs on a short cadence and closes the bar once its interval elapsed
- closed bars go to bounded history, the record store and bar_closed listeners
"""

import threading
from collections import deque
from datetime import datetime, timezone
from typing import Callable, Deque, List, Optional

from core.errors import StorageUnavailableError
from core.events import EventType, PipelineEventBus
from core.interfaces import IRecordStore
from core.logging_utils import get_logger
from core.models import Bar, OpenBar, utc_now
from core.record_store import KIND_BAR
from core.scheduler import PeriodicTask

logger = get_logger(__name__)


def floor_to_interval(ts: datetime, interval_seconds: float) -> datetime:
    """Align a timestamp down to the interval boundary (UTC epoch based)."""
    epoch = ts.timestamp()
    floored = epoch - (epoch % interval_seconds)
    return datetime.fromtimestamp(floored, tz=timezone.utc)


class BarAggregator:
    """Owns the open bar and the closed-bar history."""

    def __init__(
        self,
        interval_seconds: float = 60.0,
        retention: int = 1440,
        check_seconds: float = 0.5,
        align_to_wall_clock: bool = False,
        store: Optional[IRecordStore] = None,
        events: Optional[PipelineEventBus] = None,
        update_throttle_seconds: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.interval_seconds = interval_seconds
        self.align_to_wall_clock = align_to_wall_clock
        self.store = store
        self.events = events
        self.update_throttle_seconds = update_throttle_seconds
        self.clock = clock

        self._open: Optional[OpenBar] = None
        self._history: Deque[Bar] = deque(maxlen=retention)
        self._lock = threading.Lock()
        self._last_update_emit: Optional[datetime] = None
        self._ticker = PeriodicTask("bar-close", check_seconds, self.tick)

        # Stats
        self.ticks_ingested = 0
        self.bars_closed = 0
        self.store_failures = 0

    # === Tick intake ===

    def ingest(self, price: float, timestamp: Optional[datetime] = None) -> Bar:
        """Fold one price into the open bar; returns a snapshot of it."""
        ts = timestamp or self.clock()
        with self._lock:
            if self._open is None:
                start = floor_to_interval(ts, self.interval_seconds) if self.align_to_wall_clock else ts
                self._open = OpenBar.first(price, start)
            else:
                self._open.update(price)
            self.ticks_ingested += 1
            snapshot = self._open.freeze()

        self._maybe_emit_update(snapshot, ts)
        return snapshot

    def _maybe_emit_update(self, snapshot: Bar, ts: datetime) -> None:
        if self.events is None:
            return
        last = self._last_update_emit
        if last is not None and (ts - last).total_seconds() < self.update_throttle_seconds:
            return
        self._last_update_emit = ts
        self.events.emit(EventType.BAR_UPDATE, snapshot)

    # === Closing ===

    def tick(self, now: Optional[datetime] = None) -> Optional[Bar]:
        """Close the open bar if its interval has elapsed."""
        now = now or self.clock()
        with self._lock:
            if self._open is None:
                return None
            elapsed = (now - self._open.start_time).total_seconds()
            if elapsed < self.interval_seconds:
                return None
            bar = self._close_locked()
        self._publish(bar)
        return bar

    def close_current(self) -> Optional[Bar]:
        """Force-close the open bar regardless of elapsed time."""
        with self._lock:
            if self._open is None:
                return None
            bar = self._close_locked()
        self._publish(bar)
        return bar

    def _close_locked(self) -> Bar:
        bar = self._open.freeze()
        self._open = None
        self._history.append(bar)
        self.bars_closed += 1
        return bar

    def _publish(self, bar: Bar) -> None:
        logger.info(
            "[AGG] Closed bar %s: O=%.5f H=%.5f L=%.5f C=%.5f n=%s",
            bar.start_time.isoformat(), bar.open, bar.high, bar.low, bar.close, bar.count,
        )
        if self.store is not None:
            try:
                self.store.append(KIND_BAR, bar.to_record())
            except StorageUnavailableError as e:
                self.store_failures += 1
                logger.warning("[AGG] Could not persist bar: %s", e)
        if self.events is not None:
            self.events.emit(EventType.BAR_CLOSED, bar)

    # === Read access ===

    def current(self) -> Optional[Bar]:
        with self._lock:
            return self._open.freeze() if self._open else None

    def history(self, limit: Optional[int] = None) -> List[Bar]:
        """Closed bars, oldest first."""
        with self._lock:
            bars = list(self._history)
        if limit is not None:
            bars = bars[-limit:] if limit > 0 else []
        return bars

    def latest_bar(self) -> Optional[Bar]:
        with self._lock:
            return self._history[-1] if self._history else None

    def load_history(self, limit: Optional[int] = None) -> int:
        """Rehydrate closed-bar history from the store (restart recovery)."""
        if self.store is None:
            return 0
        limit = limit or self._history.maxlen or 0
        try:
            records = self.store.recent(KIND_BAR, limit)
        except StorageUnavailableError as e:
            logger.warning("[AGG] Could not load bar history: %s", e)
            return 0
        bars = [Bar.from_record(r) for r in reversed(records)]
        with self._lock:
            self._history.clear()
            self._history.extend(bars)
        if bars:
            logger.info("[AGG] Loaded %s bars from store", len(bars))
        return len(bars)

    # === Lifecycle ===

    @property
    def running(self) -> bool:
        return self._ticker.running

    def start(self) -> None:
        if self._ticker.running:
            return
        self._ticker.start()
        logger.info("[AGG] Started bar aggregation (%ss bars)", self.interval_seconds)

    async def stop(self) -> None:
        """Halt the close-check ticker; the open bar is kept for resume."""
        if not self._ticker.running:
            return
        await self._ticker.stop()
        logger.info("[AGG] Stopped bar aggregation")
