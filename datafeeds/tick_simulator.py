"""Random-walk tick source for running the pipeline without a market feed."""

import random
from datetime import datetime
from typing import Callable, Optional

from core.logging_utils import get_logger
from core.models import Tick, utc_now
from core.scheduler import PeriodicTask

logger = get_logger(__name__)


class TickSimulator:
    """Emits bid/ask quotes around a base price on a fixed cadence."""

    # Random walk settings
    BASE_PRICE = 1.085
    VOLATILITY = 0.0001
    TREND = 0.00001
    SPREAD = 0.00005          # Half a pip
    PRICE_FLOOR = 1.05
    PRICE_CEILING = 1.12

    def __init__(
        self,
        interval_seconds: float = 0.1,
        base_price: float = BASE_PRICE,
        volatility: float = VOLATILITY,
        trend: float = TREND,
        spread: float = SPREAD,
        seed: Optional[int] = None,
        on_tick: Optional[Callable[[Tick], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.interval_seconds = interval_seconds
        self.volatility = volatility
        self.trend = trend
        self.spread = spread
        self.on_tick = on_tick
        self.clock = clock
        self._price = base_price
        self._rng = random.Random(seed)
        self._ticker = PeriodicTask("ticks", interval_seconds, self.emit_tick, initial_delay=0)

        # Stats
        self.ticks_emitted = 0

    @property
    def price(self) -> float:
        return self._price

    @property
    def running(self) -> bool:
        return self._ticker.running

    def next_tick(self) -> Tick:
        """Advance the walk one step; biased slightly upward."""
        random_change = (self._rng.random() - 0.5) * self.volatility
        trend_change = self.trend * (self._rng.random() - 0.3)
        self._price = min(self.PRICE_CEILING, max(self.PRICE_FLOOR, self._price + random_change + trend_change))
        half = self.spread / 2
        return Tick.from_quote(bid=self._price - half, ask=self._price + half, timestamp=self.clock())

    def emit_tick(self) -> Tick:
        tick = self.next_tick()
        self.ticks_emitted += 1
        if self.on_tick:
            self.on_tick(tick)
        return tick

    async def start(self) -> None:
        if self._ticker.running:
            return
        self._ticker.start()
        logger.info("[SIM] Tick simulator started at %.5f (every %ss)", self._price, self.interval_seconds)

    async def stop(self) -> None:
        if not self._ticker.running:
            return
        await self._ticker.stop()
        logger.info("[SIM] Tick simulator stopped after %s ticks", self.ticks_emitted)
