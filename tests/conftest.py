import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from core.models import Bar  # noqa: E402


class FakeClock:
    """Manually advanced UTC clock for components that take ``clock=``."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def make_bars(closes, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc), interval: int = 60) -> list[Bar]:
    """Consistent bars whose open is the previous close."""
    bars = []
    prev = closes[0]
    for i, close in enumerate(closes):
        open_price = prev
        bars.append(
            Bar(
                start_time=start + timedelta(seconds=interval * i),
                open=open_price,
                high=max(open_price, close) + 0.0001,
                low=min(open_price, close) - 0.0001,
                close=close,
                count=10,
            )
        )
        prev = close
    return bars


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rising_closes():
    return [1.08 + i * 0.0001 for i in range(30)]
