"""
Momentum strategy (RSI based).

Core trigger is RSI extremity against oversold/overbought levels that widen
with recent price volatility. The base confidence is then multiplied by a
set of confirmations:

- Trend: price more than 2% away from the trend SMA (aligned x1.2, opposed x0.8)
- Volume: current volume above 1.2x the 20-bar average (x1.15, else x0.9)
- Momentum: price more than 1% away from the EMA (aligned x1.1, opposed x0.85)
- Support/resistance: BUY within 2% of the 20-bar low, SELL within 2% of
  the 20-bar high (x1.1)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Tuple

from signal_engine import indicators
from signal_engine.errors import ConfigurationInvalid
from signal_engine.strategies.base import (
    PriceSeries,
    aligned,
    insufficient_data,
    protective_levels,
    volume_ratio,
)
from signal_engine.types import Action, Signal, clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MomentumParams:
    rsi_period: int = 14
    oversold: float = 30.0
    overbought: float = 70.0
    dynamic_thresholds: bool = True
    """Widen the RSI levels by up to 10 points in volatile markets."""

    trend_filter_period: int = 50
    ema_period: int = 20
    volume_confirmation: bool = True
    volume_threshold: float = 1.2
    support_resistance_window: int = 20
    stop_loss_pct: float = 2.0
    take_profit_pct: float = 4.0
    max_position_size: float = 0.05
    """Fraction of the portfolio at full confidence."""

    min_bars: int = 50

    def validate(self) -> None:
        if self.rsi_period < 2:
            raise ConfigurationInvalid("rsi_period must be at least 2")
        if not 0 < self.oversold < self.overbought < 100:
            raise ConfigurationInvalid(
                f"RSI levels must satisfy 0 < oversold < overbought < 100, "
                f"got {self.oversold}/{self.overbought}"
            )
        if self.trend_filter_period < 1 or self.ema_period < 1 or self.support_resistance_window < 1:
            raise ConfigurationInvalid("indicator periods must be positive")
        if self.min_bars < self.rsi_period + 1:
            raise ConfigurationInvalid("min_bars must cover at least one RSI value")
        if self.stop_loss_pct <= 0 or self.take_profit_pct <= 0:
            raise ConfigurationInvalid("stop-loss and take-profit percentages must be positive")
        if not 0 < self.max_position_size <= 1:
            raise ConfigurationInvalid("max_position_size must be in (0, 1]")


def dynamic_levels(closes: indicators.ArrayLike, params: MomentumParams) -> Tuple[float, float]:
    if not params.dynamic_thresholds:
        return params.oversold, params.overbought
    adjustment = min(10.0, indicators.relative_volatility(closes, 20) * 100)
    return max(20.0, params.oversold - adjustment), min(80.0, params.overbought + adjustment)


def _risk_score(rsi: float, confidence: float, confirmations: int) -> float:
    risk = 0.5
    if rsi <= 20 or rsi >= 80:
        risk += 0.1
    elif rsi <= 30 or rsi >= 70:
        risk -= 0.1
    risk -= confirmations * 0.1
    risk -= (confidence - 0.5) * 0.3
    return clamp(risk, 0.1, 0.9)


def analyze_momentum(series: PriceSeries, params: MomentumParams) -> Signal:
    if len(series) < params.min_bars:
        return insufficient_data("RSI analysis", params.min_bars, len(series))

    closes = series.closes
    rsi_values = indicators.rsi(closes, params.rsi_period)
    if rsi_values.size == 0:
        return Signal.hold("Unable to calculate RSI")

    rsi = float(rsi_values[-1])
    price = series.last_close
    oversold, overbought = dynamic_levels(closes, params)

    if rsi <= oversold:
        action = Action.BUY
        base = min(1.0, (oversold - rsi) / 15 + 0.3)
        reasons: List[str] = [f"RSI oversold: {rsi:.1f} <= {oversold:.1f}"]
    elif rsi >= overbought:
        action = Action.SELL
        base = min(1.0, (rsi - overbought) / 15 + 0.3)
        reasons = [f"RSI overbought: {rsi:.1f} >= {overbought:.1f}"]
    else:
        return Signal.hold(
            f"RSI neutral: {rsi:.1f} ({oversold:.1f}-{overbought:.1f})",
            confidence=0.5,
            risk_score=0.4,
        )

    multiplier = 1.0
    confirmations = 0

    sma = indicators.sma(closes, params.trend_filter_period)
    if sma.size:
        trend_ma = float(sma[-1])
        deviation = abs(price - trend_ma) / trend_ma
        if deviation > 0.02:
            confirmations += 1
            bullish = price > trend_ma
            multiplier *= 1.2 if aligned(action, bullish) else 0.8
            side = "above" if bullish else "below"
            reasons.append(f"Trend: Price {side} SMA by {deviation * 100:.1f}%")

    if params.volume_confirmation:
        ratio = volume_ratio(series.volumes, 20)
        if ratio > params.volume_threshold:
            confirmations += 1
            multiplier *= 1.15
            reasons.append(f"Volume: {ratio:.1f}x average (confirmed)")
        else:
            multiplier *= 0.9

    ema = indicators.ema(closes, params.ema_period)
    if ema.size:
        ema_now = float(ema[-1])
        drift = (price - ema_now) / ema_now
        if abs(drift) > 0.01:
            confirmations += 1
            multiplier *= 1.1 if aligned(action, drift > 0) else 0.85
            reasons.append(f"Momentum: {drift * 100:.2f}%")

    window = params.support_resistance_window
    support = float(series.lows[-window:].min())
    resistance = float(series.highs[-window:].max())
    near_support = support > 0 and abs(price - support) / support < 0.02
    near_resistance = resistance > 0 and abs(price - resistance) / resistance < 0.02
    if near_support or near_resistance:
        confirmations += 1
    if action is Action.BUY and near_support:
        multiplier *= 1.1
        reasons.append(f"Near support {support:.2f}")
    elif action is Action.SELL and near_resistance:
        multiplier *= 1.1
        reasons.append(f"Near resistance {resistance:.2f}")

    confidence = clamp(base * multiplier, 0.1, 1.0)
    stop_loss, take_profit = protective_levels(price, action, params.stop_loss_pct, params.take_profit_pct)
    signal = Signal(
        action=action,
        confidence=confidence,
        reason=" | ".join(reasons),
        risk_score=_risk_score(rsi, confidence, confirmations),
        stop_loss=stop_loss,
        take_profit=take_profit,
        suggested_size=params.max_position_size * (0.1 + 0.9 * confidence),
    )
    logger.debug("RSI signal %s conf=%.2f rsi=%.1f", action.value, confidence, rsi)
    return signal
