"""
Shared pieces for the strategy variants.

Each variant lives in its own module as a frozen ``...Params`` dataclass
plus a pure ``analyze_...(series, params) -> Signal`` function. This module
holds the variant tag, the numpy view of a bar series they all consume,
and the small helpers they share.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from signal_engine.types import Action, MarketBar, Signal, prepare_series


class StrategyKind(str, Enum):
    """Closed set of strategy variants."""
    MOMENTUM = "momentum"
    TREND = "trend"
    BANDS = "bands"
    CROSSOVER = "crossover"
    MEAN_REVERSION = "mean_reversion"


@dataclass(frozen=True)
class PriceSeries:
    """Column view of a validated, time-ordered bar series."""
    closes: NDArray[np.float64]
    highs: NDArray[np.float64]
    lows: NDArray[np.float64]
    volumes: NDArray[np.float64]

    def __len__(self) -> int:
        return int(self.closes.size)

    @property
    def last_close(self) -> float:
        return float(self.closes[-1])

    @property
    def last_volume(self) -> float:
        return float(self.volumes[-1])

    @classmethod
    def from_bars(cls, bars: Sequence[MarketBar]) -> "PriceSeries":
        ordered = prepare_series(bars)
        return cls(
            closes=np.array([b.close for b in ordered], dtype=np.float64),
            highs=np.array([b.high for b in ordered], dtype=np.float64),
            lows=np.array([b.low for b in ordered], dtype=np.float64),
            volumes=np.array([b.volume for b in ordered], dtype=np.float64),
        )

    @classmethod
    def from_closes(cls, closes: Sequence[float], volume: float = 1000.0) -> "PriceSeries":
        arr = np.asarray(closes, dtype=np.float64)
        return cls(closes=arr, highs=arr.copy(), lows=arr.copy(), volumes=np.full(arr.size, volume))


def insufficient_data(label: str, needed: int, got: int) -> Signal:
    return Signal.hold(f"Insufficient data for {label}: {got}/{needed} bars")


def low_confidence(confidence: float) -> Signal:
    return Signal.hold(f"Low confidence: {confidence:.2f}", risk_score=0.2)


def volume_ratio(volumes: NDArray[np.float64], period: int = 20) -> float:
    """Current volume over the mean of the last ``period`` volumes (current included)."""
    window = volumes[-period:]
    if window.size == 0:
        return 0.0
    avg = float(window.mean())
    return float(volumes[-1]) / avg if avg > 0 else 0.0


def protective_levels(price: float, action: Action, stop_pct: float, take_pct: float) -> Tuple[float, float]:
    """Static stop-loss and take-profit prices for percentages given in percent units."""
    stop = stop_pct / 100.0
    take = take_pct / 100.0
    if action is Action.BUY:
        return price * (1 - stop), price * (1 + take)
    return price * (1 + stop), price * (1 - take)


def aligned(action: Action, bullish: bool) -> bool:
    return (action is Action.BUY and bullish) or (action is Action.SELL and not bullish)
