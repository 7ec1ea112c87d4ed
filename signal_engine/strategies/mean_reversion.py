"""
Statistical mean-reversion strategy (z-score + RSI, volatility-regime aware).

Annualized volatility of recent returns picks a regime. Each regime has its
own z-score lookback and trigger threshold: LOW volatility reacts earlier
on a shorter window, HIGH volatility waits for larger deviations on a
longer one. Entries need both a z-score breach and RSI agreement, and are
suppressed entirely while the exhaustion guard sees a trending market.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Tuple

from signal_engine import indicators
from signal_engine.config import ExhaustionConfig
from signal_engine.errors import ConfigurationInvalid
from signal_engine.strategies.base import PriceSeries, insufficient_data
from signal_engine.types import Action, Signal, clamp

logger = logging.getLogger(__name__)


class VolatilityRegime(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# regime -> (z-score lookback, z-score threshold, stop %, take-profit %)
_REGIME_TABLE: Dict[VolatilityRegime, Tuple[int, float, float, float]] = {
    VolatilityRegime.LOW: (15, 1.5, 1.5, 2.5),
    VolatilityRegime.MEDIUM: (20, 2.0, 2.0, 3.0),
    VolatilityRegime.HIGH: (30, 2.5, 3.0, 4.0),
}


@dataclass(frozen=True)
class MeanReversionParams:
    low_volatility: float = 0.15
    """Annualized volatility below this is the LOW regime."""

    high_volatility: float = 0.30
    """Annualized volatility at or above this is the HIGH regime."""

    volatility_window: int = 20
    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    exhaustion: ExhaustionConfig = field(default_factory=ExhaustionConfig)
    min_bars: int = 30

    def validate(self) -> None:
        if not 0 < self.low_volatility < self.high_volatility:
            raise ConfigurationInvalid("volatility regime bounds must satisfy 0 < low < high")
        if self.volatility_window < 2:
            raise ConfigurationInvalid("volatility_window must be at least 2")
        if not 0 < self.rsi_oversold < self.rsi_overbought < 100:
            raise ConfigurationInvalid("RSI levels must satisfy 0 < oversold < overbought < 100")
        longest = max(lookback for lookback, _, _, _ in _REGIME_TABLE.values())
        if self.min_bars < max(longest, self.rsi_period + 1):
            raise ConfigurationInvalid(f"min_bars must be at least {max(longest, self.rsi_period + 1)}")
        self.exhaustion.validate()


def classify_regime(closes: indicators.ArrayLike, params: MeanReversionParams) -> Tuple[VolatilityRegime, float]:
    vol = indicators.annualized_volatility(closes, params.volatility_window)
    if vol < params.low_volatility:
        return VolatilityRegime.LOW, vol
    if vol < params.high_volatility:
        return VolatilityRegime.MEDIUM, vol
    return VolatilityRegime.HIGH, vol


def exhaustion_state(closes: indicators.ArrayLike, cfg: ExhaustionConfig) -> Tuple[bool, float, float]:
    """Return (exhausted, momentum, fitted trend move) for the trailing windows."""
    move = indicators.momentum(closes, cfg.momentum_window)
    trend = indicators.trend_slope(closes, cfg.trend_window) * (cfg.trend_window - 1)
    exhausted = abs(move) > cfg.momentum_threshold or abs(trend) > cfg.trend_threshold
    return exhausted, move, trend


def _risk_score(z: float, rsi_extreme: bool, regime: VolatilityRegime, confidence: float) -> float:
    risk = 0.5
    if regime is VolatilityRegime.HIGH:
        risk += 0.2
    elif regime is VolatilityRegime.LOW:
        risk -= 0.1
    if abs(z) > 3:
        risk += 0.15
    if rsi_extreme:
        risk -= 0.15
    risk -= (confidence - 0.5) * 0.3
    return clamp(risk, 0.1, 0.9)


def analyze_mean_reversion(series: PriceSeries, params: MeanReversionParams) -> Signal:
    if len(series) < params.min_bars:
        return insufficient_data("statistical mean reversion", params.min_bars, len(series))

    closes = series.closes
    regime, vol = classify_regime(closes, params)
    lookback, threshold, stop_pct, take_pct = _REGIME_TABLE[regime]

    z_values = indicators.zscore(closes, lookback)
    rsi_values = indicators.rsi(closes, params.rsi_period)
    if z_values.size == 0 or rsi_values.size == 0:
        return Signal.hold("Unable to calculate z-score/RSI")
    z = float(z_values[-1])
    rsi = float(rsi_values[-1])

    if abs(z) < threshold:
        return Signal.hold(
            f"Enhanced mean reversion holding: Z-score {z:.2f}, Volatility: {regime.value}",
            confidence=0.3,
            risk_score=0.3,
        )

    exhausted, move, trend = exhaustion_state(closes, params.exhaustion)
    if exhausted:
        logger.debug("Exhaustion guard active: momentum=%.3f trend=%.3f z=%.2f", move, trend, z)
        return Signal.hold(
            f"Trend exhaustion: momentum {move * 100:.1f}%, trend {trend * 100:.1f}% "
            f"- mean reversion suspended (Z={z:.2f})",
            confidence=0.3,
            risk_score=0.6,
        )

    action = Action.BUY if z < 0 else Action.SELL
    rsi_confirms = (
        (action is Action.BUY and rsi <= params.rsi_oversold)
        or (action is Action.SELL and rsi >= params.rsi_overbought)
    )
    if not rsi_confirms:
        return Signal.hold(
            f"Z-score {z:.2f} without RSI confirmation (RSI {rsi:.1f})",
            confidence=0.3,
            risk_score=0.4,
        )

    confidence = 0.5 + min(1.0, abs(z) / 3.0) * 0.3 + 0.2
    if regime is VolatilityRegime.LOW:
        confidence += 0.1
    elif regime is VolatilityRegime.HIGH:
        confidence -= 0.1
    confidence = clamp(confidence, 0.1, 0.95)

    price = series.last_close
    if action is Action.BUY:
        stop_loss, take_profit = price * (1 - stop_pct / 100), price * (1 + take_pct / 100)
    else:
        stop_loss, take_profit = price * (1 + stop_pct / 100), price * (1 - take_pct / 100)

    logger.debug("Mean reversion %s z=%.2f rsi=%.1f vol=%.3f (%s)", action.value, z, rsi, vol, regime.value)
    return Signal(
        action=action,
        confidence=confidence,
        reason=f"Enhanced {action.value}: Z={z:.2f}, RSI={rsi:.1f}, Vol={regime.value}",
        risk_score=_risk_score(z, True, regime, confidence),
        stop_loss=stop_loss,
        take_profit=take_profit,
    )
