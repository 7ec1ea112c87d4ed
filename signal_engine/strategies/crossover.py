"""Dual moving-average crossover strategy (golden/death cross plus trend continuation)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from signal_engine import indicators
from signal_engine.errors import ConfigurationInvalid
from signal_engine.strategies.base import (
    PriceSeries,
    insufficient_data,
    low_confidence,
    protective_levels,
    volume_ratio,
)
from signal_engine.types import Action, Signal, clamp

logger = logging.getLogger(__name__)

MA_TYPES = ("SMA", "EMA")


@dataclass(frozen=True)
class CrossoverParams:
    fast_period: int = 10
    slow_period: int = 30
    ma_type: str = "SMA"
    min_trend_strength: float = 0.02
    """MA separation (fraction of the slow MA) below which the trend is weak."""

    continuation_band: float = 0.01
    volume_confirmation: bool = True
    volume_threshold: float = 1.3
    stop_loss_pct: float = 3.0
    take_profit_pct: float = 6.0
    min_confidence: float = 0.5

    @property
    def min_bars(self) -> int:
        return self.slow_period + 10

    def validate(self) -> None:
        if self.fast_period < 1:
            raise ConfigurationInvalid("fast_period must be positive")
        if self.fast_period >= self.slow_period:
            raise ConfigurationInvalid(
                f"fast_period ({self.fast_period}) must be below slow_period ({self.slow_period})"
            )
        if self.ma_type not in MA_TYPES:
            raise ConfigurationInvalid(f"ma_type must be one of {MA_TYPES}, got {self.ma_type!r}")
        if self.continuation_band <= 0:
            raise ConfigurationInvalid("continuation_band must be positive")
        if not 0 <= self.min_confidence <= 1:
            raise ConfigurationInvalid("min_confidence must be in [0, 1]")
        if self.stop_loss_pct <= 0 or self.take_profit_pct <= 0:
            raise ConfigurationInvalid("stop-loss and take-profit percentages must be positive")


def _moving_average(closes, period: int, ma_type: str):
    if ma_type == "EMA":
        return indicators.ema(closes, period)
    return indicators.sma(closes, period)


def _crossover_confidence(fast: float, slow: float, price: float, action: Action) -> float:
    confidence = 0.7 + min(0.2, abs(fast - slow) / slow * 10)
    if (action is Action.BUY and price > fast) or (action is Action.SELL and price < fast):
        confidence += 0.1
    return min(0.95, confidence)


def _risk_score(fast: float, slow: float, price: float, confidence: float) -> float:
    risk = 0.5 - abs(fast - slow) / slow * 2 + abs(price - fast) / fast * 1.5 - (confidence - 0.5) * 0.3
    return clamp(risk, 0.1, 0.9)


def dynamic_stop(price: float, action: Action, fast: float, stop_loss_pct: float) -> float:
    """
    Tighter of the static percentage stop and a stop 2% beyond the fast MA.

    A fast-MA stop that would sit on the wrong side of price is ignored.
    """
    static = price * (1 - stop_loss_pct / 100) if action is Action.BUY else price * (1 + stop_loss_pct / 100)
    if action is Action.BUY:
        candidate = max(fast * 0.98, static)
        return candidate if candidate < price else static
    candidate = min(fast * 1.02, static)
    return candidate if candidate > price else static


def analyze_crossover(series: PriceSeries, params: CrossoverParams) -> Signal:
    if len(series) < params.min_bars:
        return insufficient_data("MA crossover", params.min_bars, len(series))

    closes = series.closes
    fast_ma = _moving_average(closes, params.fast_period, params.ma_type)
    slow_ma = _moving_average(closes, params.slow_period, params.ma_type)
    if fast_ma.size < 2 or slow_ma.size < 2:
        return Signal.hold("Unable to calculate moving averages")

    fast, fast_prev = float(fast_ma[-1]), float(fast_ma[-2])
    slow, slow_prev = float(slow_ma[-1]), float(slow_ma[-2])
    price = series.last_close
    label = params.ma_type

    if fast > slow and fast_prev <= slow_prev:
        action = Action.BUY
        confidence = _crossover_confidence(fast, slow, price, action)
        reason = (
            f"Golden Cross: {label}{params.fast_period}({fast:.2f}) > "
            f"{label}{params.slow_period}({slow:.2f})"
        )
    elif fast < slow and fast_prev >= slow_prev:
        action = Action.SELL
        confidence = _crossover_confidence(fast, slow, price, action)
        reason = (
            f"Death Cross: {label}{params.fast_period}({fast:.2f}) < "
            f"{label}{params.slow_period}({slow:.2f})"
        )
    else:
        distance = abs(price - fast) / fast
        if fast > slow:
            if distance < params.continuation_band and price > fast:
                action = Action.BUY
                reason = f"Uptrend continuation: Price near fast MA support at {fast:.2f}"
            else:
                return Signal.hold("In uptrend but no clear entry", confidence=0.4, risk_score=0.3)
        else:
            if distance < params.continuation_band and price < fast:
                action = Action.SELL
                reason = f"Downtrend continuation: Price near fast MA resistance at {fast:.2f}"
            else:
                return Signal.hold("In downtrend but no clear entry", confidence=0.4, risk_score=0.3)
        confidence = 0.6

    if abs(fast - slow) / slow < params.min_trend_strength:
        confidence *= 0.6
        reason += " | Weak trend"
    else:
        confidence *= 1.2
        reason += " | Strong trend"

    if params.volume_confirmation:
        if volume_ratio(series.volumes, 20) > params.volume_threshold:
            confidence *= 1.1
            reason += " | Volume confirmed"
        else:
            confidence *= 0.8
            reason += " | Low volume"

    if price > max(fast, slow):
        confidence *= 1.1
        reason += " | Price above both MAs"
    elif price < min(fast, slow):
        confidence *= 1.1
        reason += " | Price below both MAs"
    else:
        confidence *= 0.9
        reason += " | Price between MAs"

    if confidence < params.min_confidence:
        return low_confidence(confidence)

    confidence = clamp(confidence, 0.1, 0.95)
    _, take_profit = protective_levels(price, action, params.stop_loss_pct, params.take_profit_pct)
    logger.debug("Crossover signal %s conf=%.2f fast=%.2f slow=%.2f", action.value, confidence, fast, slow)
    return Signal(
        action=action,
        confidence=confidence,
        reason=reason,
        risk_score=_risk_score(fast, slow, price, confidence),
        stop_loss=dynamic_stop(price, action, fast, params.stop_loss_pct),
        take_profit=take_profit,
    )
