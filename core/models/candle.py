"""Tick and bar primitives."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_ts(value) -> datetime:
    """Parse an ISO timestamp (or pass through a datetime), forcing UTC."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class Tick:
    """Single quote from the tick source."""
    timestamp: datetime
    bid: float
    ask: float
    mid: float

    @classmethod
    def from_quote(cls, bid: float, ask: float, timestamp: Optional[datetime] = None) -> "Tick":
        return cls(
            timestamp=timestamp or utc_now(),
            bid=bid,
            ask=ask,
            mid=(bid + ask) / 2,
        )

    @property
    def spread(self) -> float:
        return self.ask - self.bid

    def to_record(self) -> dict:
        return {
            "ts": self.timestamp.isoformat(),
            "bid": self.bid,
            "ask": self.ask,
            "mid": self.mid,
        }


@dataclass(frozen=True)
class Bar:
    """Closed OHLC bar. ``count`` is the number of ticks folded in."""
    start_time: datetime
    open: float
    high: float
    low: float
    close: float
    count: int

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def is_green(self) -> bool:
        return self.close >= self.open

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_consistent(self) -> bool:
        return self.low <= min(self.open, self.close) and max(self.open, self.close) <= self.high

    def to_record(self) -> dict:
        return {
            "ts": self.start_time.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "count": self.count,
        }

    @classmethod
    def from_record(cls, record: dict) -> "Bar":
        return cls(
            start_time=parse_ts(record["ts"]),
            open=float(record["open"]),
            high=float(record["high"]),
            low=float(record["low"]),
            close=float(record["close"]),
            count=int(record.get("count", 0)),
        )


@dataclass
class OpenBar:
    """The bar currently accumulating ticks."""
    start_time: datetime
    open: float
    high: float
    low: float
    close: float
    count: int = 1

    @classmethod
    def first(cls, price: float, start_time: datetime) -> "OpenBar":
        return cls(start_time=start_time, open=price, high=price, low=price, close=price)

    def update(self, price: float) -> None:
        self.high = max(self.high, price)
        self.low = min(self.low, price)
        self.close = price
        self.count += 1

    def freeze(self) -> Bar:
        return Bar(
            start_time=self.start_time,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            count=self.count,
        )
