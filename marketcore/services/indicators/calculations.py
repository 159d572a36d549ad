"""
Technical Indicator Calculations

Pure NumPy implementations of technical indicators.
All functions return full-length arrays padded with NaN where the value is
undefined; use get_last_valid() to read the latest value.
"""

import numpy as np
from typing import Optional
from dataclasses import dataclass

from marketcore.schemas.indicators import Pivot
from marketcore.schemas.market import Bar


@dataclass
class OHLCVData:
    """OHLCV data arrays for calculations."""

    timestamps: np.ndarray
    opens: np.ndarray
    highs: np.ndarray
    lows: np.ndarray
    closes: np.ndarray
    volumes: np.ndarray

    @classmethod
    def from_bars(cls, bars: list[Bar]) -> "OHLCVData":
        return cls(
            timestamps=np.array([b.time for b in bars], dtype=np.int64),
            opens=np.array([b.open for b in bars], dtype=float),
            highs=np.array([b.high for b in bars], dtype=float),
            lows=np.array([b.low for b in bars], dtype=float),
            closes=np.array([b.close for b in bars], dtype=float),
            volumes=np.array([b.volume for b in bars], dtype=float),
        )

    def __len__(self) -> int:
        return len(self.closes)


# =============================================================================
# MOVING AVERAGES
# =============================================================================


def sma(data: np.ndarray, period: int) -> np.ndarray:
    """Simple Moving Average."""
    if len(data) < period:
        return np.full(len(data), np.nan)

    result = np.full(len(data), np.nan)
    for i in range(period - 1, len(data)):
        result[i] = np.mean(data[i - period + 1 : i + 1])
    return result


def ema(data: np.ndarray, period: int, seed: str = "sma") -> np.ndarray:
    """
    Exponential Moving Average.

    seed="sma": starts at the SMA of the first `period` values (undefined
        before that).
    seed="first": starts at the first value and is defined everywhere.
    """
    multiplier = 2 / (period + 1)
    result = np.full(len(data), np.nan)

    if seed == "first":
        if len(data) == 0:
            return result
        result[0] = data[0]
        for i in range(1, len(data)):
            result[i] = data[i] * multiplier + result[i - 1] * (1 - multiplier)
        return result

    if len(data) < period:
        return result

    # Start with SMA
    result[period - 1] = np.mean(data[:period])

    for i in range(period, len(data)):
        result[i] = data[i] * multiplier + result[i - 1] * (1 - multiplier)

    return result


# =============================================================================
# MOMENTUM INDICATORS
# =============================================================================


def rsi(closes: np.ndarray, period: int = 14) -> np.ndarray:
    """
    Relative Strength Index over simple averages of the last `period` changes.

    100 when there were no losses in the window. Needs period + 1 closes.
    """
    if len(closes) < period + 1:
        return np.full(len(closes), np.nan)

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    result = np.full(len(closes), np.nan)

    for i in range(period, len(closes)):
        up = np.sum(gains[i - period : i])
        down = np.sum(losses[i - period : i])
        if down == 0:
            result[i] = 100.0
        else:
            rs = (up / period) / (down / period)
            result[i] = 100 - (100 / (1 + rs))

    return result


def macd(
    closes: np.ndarray,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    MACD (Moving Average Convergence Divergence).

    All three EMAs are seeded at their first input value. Undefined (all NaN)
    with fewer than slow_period + signal_period closes.

    Returns: (macd_line, signal_line, histogram)
    """
    if len(closes) < slow_period + signal_period:
        empty = np.full(len(closes), np.nan)
        return empty, empty.copy(), empty.copy()

    fast_ema = ema(closes, fast_period, seed="first")
    slow_ema = ema(closes, slow_period, seed="first")

    macd_line = fast_ema - slow_ema

    # Signal line is EMA of MACD line
    signal_line = ema(macd_line, signal_period, seed="first")

    histogram = macd_line - signal_line

    return macd_line, signal_line, histogram


# =============================================================================
# VOLATILITY
# =============================================================================


def true_range(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    """True Range. The first bar has no previous close and stays NaN."""
    tr = np.full(len(closes), np.nan)

    for i in range(1, len(closes)):
        tr[i] = max(
            highs[i] - lows[i],
            abs(highs[i] - closes[i - 1]),
            abs(lows[i] - closes[i - 1]),
        )

    return tr


def atr(
    highs: np.ndarray, lows: np.ndarray, closes: np.ndarray, period: int = 14
) -> np.ndarray:
    """Average True Range as a simple mean of the last `period` true ranges."""
    if len(closes) < period + 1:
        return np.full(len(closes), np.nan)

    tr = true_range(highs, lows, closes)
    result = np.full(len(closes), np.nan)
    for i in range(period, len(closes)):
        result[i] = np.mean(tr[i - period + 1 : i + 1])
    return result


# =============================================================================
# SUPPORT / RESISTANCE
# =============================================================================


def find_pivots(
    highs: np.ndarray,
    lows: np.ndarray,
    timestamps: np.ndarray,
    left: int = 4,
    right: int = 4,
    max_count: int = 10,
) -> tuple[list[Pivot], list[Pivot]]:
    """
    Find swing highs and lows.

    A pivot high is strictly above the `left` highs before it and the `right`
    highs after it; pivot lows mirror that on lows. Only the most recent
    `max_count` of each are kept.

    Returns: (pivot_highs, pivot_lows)
    """
    pivot_highs: list[Pivot] = []
    pivot_lows: list[Pivot] = []

    for i in range(left, len(highs) - right):
        window_h = np.concatenate((highs[i - left : i], highs[i + 1 : i + right + 1]))
        window_l = np.concatenate((lows[i - left : i], lows[i + 1 : i + right + 1]))

        if np.all(window_h < highs[i]):
            pivot_highs.append(Pivot(price=float(highs[i]), index=i, time=int(timestamps[i])))
        if np.all(window_l > lows[i]):
            pivot_lows.append(Pivot(price=float(lows[i]), index=i, time=int(timestamps[i])))

    return pivot_highs[-max_count:], pivot_lows[-max_count:]


def support_resistance(
    data: OHLCVData,
    current_price: Optional[float] = None,
    left: int = 4,
    right: int = 4,
    max_count: int = 10,
    lookback: int = 50,
    min_bars: int = 10,
) -> tuple[Optional[float], Optional[float]]:
    """
    Nearest pivot low below and pivot high above the current price.

    A missing side falls back to the lowest low / highest high of the last
    `lookback` bars. Fewer than `min_bars` bars gives (None, None).

    Returns: (support, resistance)
    """
    if len(data) < min_bars:
        return None, None

    price = float(data.closes[-1]) if current_price is None else float(current_price)
    pivot_highs, pivot_lows = find_pivots(
        data.highs, data.lows, data.timestamps, left, right, max_count
    )

    below = [p.price for p in pivot_lows if p.price < price]
    above = [p.price for p in pivot_highs if p.price > price]

    support = max(below) if below else None
    resistance = min(above) if above else None

    look = min(lookback, len(data))
    if support is None:
        support = float(np.min(data.lows[-look:]))
    if resistance is None:
        resistance = float(np.max(data.highs[-look:]))

    return support, resistance


def range_extremes(data: OHLCVData, lookback: int = 50) -> tuple[float, float]:
    """(lowest low, highest high) over the last `lookback` bars."""
    look = min(lookback, len(data))
    return float(np.min(data.lows[-look:])), float(np.max(data.highs[-look:]))


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_last_valid(arr: np.ndarray) -> Optional[float]:
    """Get last non-NaN value from array."""
    valid = arr[~np.isnan(arr)]
    return float(valid[-1]) if len(valid) > 0 else None
