"""
Feature Engine

Turns closed-bar history into the fixed-length model input.

Indicators:
- Log returns over 1/2/5/10 bars
- Candle shape (body and wick ratios of the latest bar)
- SMA / EMA at 3, 5, 13 bars
- RSI 14 (momentum oscillator)
- ATR 14 (volatility)
- Time of day / day of week

extract() is a pure function of its input: same bars, same vector.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional, Sequence

import numpy as np

from core.logging_utils import get_logger
from core.models import Bar

logger = get_logger(__name__)

MIN_BARS = 20

FEATURE_NAMES = (
    "ret_1",
    "ret_2",
    "ret_5",
    "ret_10",
    "body_ratio",
    "upper_wick_ratio",
    "lower_wick_ratio",
    "sma_3",
    "sma_5",
    "sma_13",
    "ema_3",
    "ema_5",
    "ema_13",
    "rsi_14",
    "atr_14",
    "hour",
    "minute",
    "day_of_week",
)
FEATURE_COUNT = len(FEATURE_NAMES)

# (horizon in bars, clamp band in percent)
RETURN_WINDOWS = ((1, 5.0), (2, 5.0), (5, 10.0), (10, 15.0))
MA_PERIODS = (3, 5, 13)
RSI_PERIOD = 14
ATR_PERIOD = 14
MA_DEVIATION_CLAMP = 1.0
ATR_RATIO_CLAMP = 1.0


@dataclass
class TechnicalFeatures:
    """Raw (un-normalised) indicator values for the latest bar."""
    timestamp: datetime
    price: float

    ret_1: float = 0.0
    ret_2: float = 0.0
    ret_5: float = 0.0
    ret_10: float = 0.0

    body_ratio: float = 0.0
    upper_wick_ratio: float = 0.0
    lower_wick_ratio: float = 0.0

    sma_3: float = 0.0
    sma_5: float = 0.0
    sma_13: float = 0.0
    ema_3: float = 0.0
    ema_5: float = 0.0
    ema_13: float = 0.0

    rsi_14: float = 50.0
    atr_14: float = 0.0

    hour: int = 0
    minute: int = 0
    day_of_week: int = 0            # Sunday = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class FeatureVector:
    """Normalised, clamped model input."""
    values: np.ndarray
    timestamp: datetime
    raw: Optional[TechnicalFeatures] = field(default=None, compare=False)

    def __len__(self) -> int:
        return len(self.values)

    def as_list(self) -> list[float]:
        return [float(v) for v in self.values]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class FeatureEngine:
    """Computes indicators and the normalised feature vector from bars."""

    def __init__(self, min_bars: int = MIN_BARS):
        if min_bars < ATR_PERIOD + 1:
            raise ValueError(f"min_bars must cover the longest lookback ({ATR_PERIOD + 1})")
        self.min_bars = min_bars

    # === Public API ===

    def extract(self, bars: Sequence[Bar]) -> Optional[FeatureVector]:
        """Feature vector for the latest bar, or None when history is too short."""
        features = self.compute_indicators(bars)
        if features is None:
            return None
        return FeatureVector(values=self.to_vector(features), timestamp=features.timestamp, raw=features)

    def compute_indicators(self, bars: Sequence[Bar]) -> Optional[TechnicalFeatures]:
        if len(bars) < self.min_bars:
            logger.debug("[FEAT] Insufficient history: %s < %s bars", len(bars), self.min_bars)
            return None

        latest = bars[-1]
        closes = np.array([b.close for b in bars], dtype=float)
        ts = latest.start_time

        f = TechnicalFeatures(timestamp=ts, price=float(closes[-1]))
        f.ret_1 = self._log_return(closes, 1)
        f.ret_2 = self._log_return(closes, 2)
        f.ret_5 = self._log_return(closes, 5)
        f.ret_10 = self._log_return(closes, 10)

        f.body_ratio, f.upper_wick_ratio, f.lower_wick_ratio = self._candle_ratios(latest)

        f.sma_3 = self._compute_sma(closes, 3)
        f.sma_5 = self._compute_sma(closes, 5)
        f.sma_13 = self._compute_sma(closes, 13)
        f.ema_3 = self._compute_ema(closes, 3)
        f.ema_5 = self._compute_ema(closes, 5)
        f.ema_13 = self._compute_ema(closes, 13)

        f.rsi_14 = self._compute_rsi(closes, RSI_PERIOD)
        f.atr_14 = self._compute_atr(bars, ATR_PERIOD)

        f.hour = ts.hour
        f.minute = ts.minute
        f.day_of_week = ts.isoweekday() % 7
        return f

    def to_vector(self, f: TechnicalFeatures) -> np.ndarray:
        """Normalise raw indicators; every component ends up bounded."""
        ref = f.price
        returns = (f.ret_1, f.ret_2, f.ret_5, f.ret_10)
        values = [
            _clamp(r * 100, -band, band) / band
            for r, (_, band) in zip(returns, RETURN_WINDOWS)
        ]
        values += [
            _clamp(f.body_ratio, 0.0, 1.0),
            _clamp(f.upper_wick_ratio, 0.0, 1.0),
            _clamp(f.lower_wick_ratio, 0.0, 1.0),
        ]
        for ma in (f.sma_3, f.sma_5, f.sma_13, f.ema_3, f.ema_5, f.ema_13):
            deviation = (ma - ref) / ref if ref else 0.0
            values.append(_clamp(deviation, -MA_DEVIATION_CLAMP, MA_DEVIATION_CLAMP))
        values.append(_clamp((f.rsi_14 - 50) / 50, -1.0, 1.0))
        values.append(_clamp(f.atr_14 / ref, 0.0, ATR_RATIO_CLAMP) if ref else 0.0)
        values += [f.hour / 24, f.minute / 60, f.day_of_week / 7]
        return np.array(values, dtype=float)

    # === Indicators ===

    @staticmethod
    def _log_return(closes: np.ndarray, period: int) -> float:
        if len(closes) < period + 1:
            return 0.0
        previous = closes[-1 - period]
        if previous <= 0 or closes[-1] <= 0:
            return 0.0
        return float(np.log(closes[-1] / previous))

    @staticmethod
    def _candle_ratios(bar: Bar) -> tuple[float, float, float]:
        rng = bar.range
        if rng == 0:
            return 0.0, 0.0, 0.0
        return bar.body / rng, bar.upper_wick / rng, bar.lower_wick / rng

    @staticmethod
    def _compute_sma(data: np.ndarray, period: int) -> float:
        if len(data) < period:
            return float(data[-1])
        return float(np.mean(data[-period:]))

    def _compute_ema(self, data: np.ndarray, period: int) -> float:
        series = self._compute_ema_series(data, period)
        return float(series[-1])

    @staticmethod
    def _compute_ema_series(data: np.ndarray, period: int) -> np.ndarray:
        """EMA seeded with the SMA of the first ``period`` values."""
        if len(data) < period:
            return np.array([data[-1]], dtype=float)
        multiplier = 2 / (period + 1)
        ema = float(np.mean(data[:period]))
        out = [ema]
        for price in data[period:]:
            ema = (price - ema) * multiplier + ema
            out.append(ema)
        return np.array(out, dtype=float)

    @staticmethod
    def _compute_rsi(closes: np.ndarray, period: int) -> float:
        if len(closes) < period + 1:
            return 50.0
        changes = np.diff(closes)[-period:]
        avg_gain = float(changes[changes > 0].sum()) / period
        avg_loss = float(-changes[changes < 0].sum()) / period
        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return 100 - (100 / (1 + rs))

    @staticmethod
    def _compute_atr(bars: Sequence[Bar], period: int) -> float:
        if len(bars) < period + 1:
            return 0.0
        tr_values = []
        for i in range(len(bars) - period, len(bars)):
            high = bars[i].high
            low = bars[i].low
            prev_close = bars[i - 1].close
            tr_values.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
        return float(np.mean(tr_values))
