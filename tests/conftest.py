"""Shared bar factories for the signal engine tests."""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import pytest

from signal_engine.types import MarketBar

T0 = datetime(2024, 1, 2, 9, 30)


def bars_from_closes(
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    spread: float = 0.005,
    start: datetime = T0,
    step: timedelta = timedelta(days=1),
) -> List[MarketBar]:
    vols = list(volumes) if volumes is not None else [1000.0] * len(closes)
    return [
        MarketBar(
            timestamp=start + step * i,
            open=c,
            high=c * (1 + spread),
            low=c * (1 - spread),
            close=c,
            volume=v,
        )
        for i, (c, v) in enumerate(zip(closes, vols))
    ]


def rsi_oversold_closes() -> List[float]:
    """60 bars: a choppy drift up, then a grinding decline with weak bounces."""
    closes = [100.0]
    for i in range(1, 60):
        if i < 20:
            closes.append(closes[-1] + (0.2 if i % 2 else -0.15))
        else:
            closes.append(closes[-1] + (0.03 if i % 2 else -0.15))
    return closes


def golden_cross_closes() -> List[float]:
    """Flat at 100 for 49 bars, then a jump to 110 that lifts SMA10 over SMA30."""
    return [100.0] * 49 + [110.0]


def macd_crossover_closes() -> List[float]:
    """Linear decline, a sharper three-bar drop, then a reversal bar."""
    closes = [130.0 - 0.5 * i for i in range(56)]
    for _ in range(3):
        closes.append(closes[-1] - 1.5)
    closes.append(110.0)
    return closes


def bollinger_lower_break_closes() -> List[float]:
    """Alternating 100/101, then a close well below the lower band."""
    return [100.0 if i % 2 == 0 else 101.0 for i in range(29)] + [97.0]


def exhaustion_closes() -> List[float]:
    """Flat for 20 bars, then ten consecutive 2.5% gains."""
    return [100.0] * 20 + [100.0 * 1.025 ** k for k in range(1, 11)]


@pytest.fixture
def make_bars():
    return bars_from_closes


@pytest.fixture
def flat_bars():
    return bars_from_closes([100.0] * 60)


class FakeClock:
    """Manually advanced clock for cooldown tests."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
