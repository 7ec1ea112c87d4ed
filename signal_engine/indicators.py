"""
Technical indicator library.

Pure functions over a price (or volume) sequence. Every function returns a
numpy array aligned to the tail of its input: the most recent value is the
last element. Too little input yields an empty array, which callers treat
as "insufficient data". Degenerate numeric cases (zero variance, zero
denominators) resolve to 0 rather than raising.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from numpy.typing import NDArray
from scipy import stats

ArrayLike = Union[Sequence[float], NDArray[np.float64]]

_EMPTY = np.empty(0, dtype=np.float64)


def _as_array(values: ArrayLike) -> NDArray[np.float64]:
    return np.asarray(values, dtype=np.float64)


# =============================================================================
# MOVING AVERAGES
# =============================================================================

def sma(values: ArrayLike, period: int) -> NDArray[np.float64]:
    """
    Simple moving average.

    Args:
        values: Input series (oldest first)
        period: Window length

    Returns:
        Array of length ``len(values) - period + 1`` (empty if too short)
    """
    arr = _as_array(values)
    if period <= 0 or arr.size < period:
        return _EMPTY.copy()
    return sliding_window_view(arr, period).mean(axis=1)


def ema(values: ArrayLike, period: int) -> NDArray[np.float64]:
    """
    Exponential moving average seeded with the SMA of the first ``period`` values.

    smoothing = 2 / (period + 1)

    Returns:
        Array of length ``len(values) - period + 1`` (empty if too short)
    """
    arr = _as_array(values)
    if period <= 0 or arr.size < period:
        return _EMPTY.copy()

    alpha = 2.0 / (period + 1)
    out = np.empty(arr.size - period + 1, dtype=np.float64)
    out[0] = arr[:period].mean()
    for i in range(1, out.size):
        out[i] = (arr[period - 1 + i] - out[i - 1]) * alpha + out[i - 1]
    return out


# =============================================================================
# OSCILLATORS
# =============================================================================

def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(values: ArrayLike, period: int = 14) -> NDArray[np.float64]:
    """
    Relative Strength Index with Wilder smoothing.

    The first value uses simple averages of the first ``period`` changes;
    subsequent values use ``avg = (avg * (period - 1) + x) / period``.
    A flat window reads 50.

    Returns:
        Array of length ``len(values) - period`` (empty if fewer than
        ``period + 1`` values)
    """
    arr = _as_array(values)
    if period <= 0 or arr.size < period + 1:
        return _EMPTY.copy()

    changes = np.diff(arr)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())

    out = np.empty(changes.size - period + 1, dtype=np.float64)
    out[0] = _rsi_value(avg_gain, avg_loss)
    for i in range(period, changes.size):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i - period + 1] = _rsi_value(avg_gain, avg_loss)
    return out


@dataclass(frozen=True)
class MACDResult:
    macd: NDArray[np.float64]
    signal: NDArray[np.float64]
    histogram: NDArray[np.float64]

    @property
    def empty(self) -> bool:
        return self.signal.size == 0


def macd(
    values: ArrayLike,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDResult:
    """
    MACD line, its signal line and histogram.

    The MACD line is ``EMA(fast) - EMA(slow)`` over their common tail, the
    signal line is an EMA of the MACD line and the histogram is the MACD
    tail minus the signal line. All three are empty when the input cannot
    support a signal line.
    """
    fast = ema(values, fast_period)
    slow = ema(values, slow_period)
    if fast.size == 0 or slow.size == 0:
        return MACDResult(_EMPTY.copy(), _EMPTY.copy(), _EMPTY.copy())

    common = min(fast.size, slow.size)
    line = fast[-common:] - slow[-common:]
    signal = ema(line, signal_period)
    if signal.size == 0:
        return MACDResult(line, _EMPTY.copy(), _EMPTY.copy())
    histogram = line[-signal.size:] - signal
    return MACDResult(line, signal, histogram)


# =============================================================================
# BANDS AND DISPERSION
# =============================================================================

@dataclass(frozen=True)
class BollingerResult:
    upper: NDArray[np.float64]
    middle: NDArray[np.float64]
    lower: NDArray[np.float64]

    @property
    def empty(self) -> bool:
        return self.middle.size == 0


def bollinger(values: ArrayLike, period: int = 20, std_devs: float = 2.0) -> BollingerResult:
    """Bollinger bands using the population standard deviation of each window."""
    arr = _as_array(values)
    if period <= 0 or arr.size < period:
        return BollingerResult(_EMPTY.copy(), _EMPTY.copy(), _EMPTY.copy())

    windows = sliding_window_view(arr, period)
    middle = windows.mean(axis=1)
    std = windows.std(axis=1)
    return BollingerResult(middle + std_devs * std, middle, middle - std_devs * std)


def zscore(values: ArrayLike, period: int) -> NDArray[np.float64]:
    """
    Rolling z-score of the last value in each window.

    z = (x - mean) / std  (population std, 0 when the window is flat)
    """
    arr = _as_array(values)
    if period <= 0 or arr.size < period:
        return _EMPTY.copy()

    windows = sliding_window_view(arr, period)
    mean = windows.mean(axis=1)
    std = windows.std(axis=1)
    out = np.zeros(windows.shape[0], dtype=np.float64)
    np.divide(windows[:, -1] - mean, std, out=out, where=std > 0)
    return out


def relative_volatility(values: ArrayLike, period: int = 20) -> float:
    """Population std of the last ``period`` values divided by their mean."""
    arr = _as_array(values)
    if period <= 0 or arr.size < period:
        return 0.0
    window = arr[-period:]
    mean = float(window.mean())
    return float(window.std()) / mean if mean != 0 else 0.0


def annualized_volatility(values: ArrayLike, period: int = 20, periods_per_year: int = 252) -> float:
    """Sample std of the last ``period`` simple returns, annualized."""
    arr = _as_array(values)
    if arr.size < 3:
        return 0.0
    prev = arr[:-1]
    returns = np.divide(np.diff(arr), prev, out=np.zeros(prev.size), where=prev != 0)
    returns = returns[-period:]
    if returns.size < 2:
        return 0.0
    return float(np.std(returns, ddof=1)) * math.sqrt(periods_per_year)


# =============================================================================
# TREND
# =============================================================================

def momentum(values: ArrayLike, window: int) -> float:
    """Fractional change from the first to the last of the last ``window`` values."""
    arr = _as_array(values)
    if window < 2 or arr.size < window:
        return 0.0
    base = float(arr[-window])
    return (float(arr[-1]) - base) / base if base != 0 else 0.0


def trend_slope(values: ArrayLike, period: int) -> float:
    """
    Least-squares slope of the last ``period`` values, normalized by their mean.

    Multiply by ``period - 1`` to get the fitted move across the window as
    a fraction of price.
    """
    arr = _as_array(values)
    if period < 2 or arr.size < period:
        return 0.0
    window = arr[-period:]
    mean = float(window.mean())
    if mean == 0 or float(np.ptp(window)) == 0:
        return 0.0
    fit = stats.linregress(np.arange(period, dtype=np.float64), window)
    return float(fit.slope) / mean
