"""Trend strategy (MACD crossovers and histogram momentum)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from signal_engine import indicators
from signal_engine.errors import ConfigurationInvalid
from signal_engine.strategies.base import (
    PriceSeries,
    aligned,
    insufficient_data,
    low_confidence,
    protective_levels,
)
from signal_engine.types import Action, Signal, clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrendParams:
    fast_period: int = 12
    slow_period: int = 26
    signal_period: int = 9
    histogram_threshold: float = 0.1
    """|histogram| above this counts as momentum when there is no crossover."""

    trend_filter_period: int = 50
    min_confidence: float = 0.3
    stop_loss_pct: float = 2.5
    take_profit_pct: float = 5.0
    min_bars: int = 50

    def validate(self) -> None:
        if self.fast_period < 1 or self.signal_period < 1:
            raise ConfigurationInvalid("MACD periods must be positive")
        if self.fast_period >= self.slow_period:
            raise ConfigurationInvalid(
                f"fast_period ({self.fast_period}) must be below slow_period ({self.slow_period})"
            )
        if self.trend_filter_period < 1:
            raise ConfigurationInvalid("trend_filter_period must be positive")
        if self.min_bars < self.slow_period + self.signal_period:
            raise ConfigurationInvalid("min_bars must cover the slow EMA and the signal line")
        if not 0 <= self.min_confidence <= 1:
            raise ConfigurationInvalid("min_confidence must be in [0, 1]")
        if self.stop_loss_pct <= 0 or self.take_profit_pct <= 0:
            raise ConfigurationInvalid("stop-loss and take-profit percentages must be positive")


def _crossover_confidence(separation: float, histogram: float, params: TrendParams) -> float:
    confidence = min(0.9, separation * 10 + abs(histogram) * 5)
    if abs(histogram) > params.histogram_threshold:
        confidence *= 1.1
    return max(0.1, confidence)


def _risk_score(separation: float, histogram: float, confidence: float) -> float:
    risk = 0.5 - separation * 2 - abs(histogram) * 1.5 - (confidence - 0.5) * 0.3
    return clamp(risk, 0.1, 0.9)


def analyze_trend(series: PriceSeries, params: TrendParams) -> Signal:
    if len(series) < params.min_bars:
        return insufficient_data("MACD analysis", params.min_bars, len(series))

    closes = series.closes
    result = indicators.macd(closes, params.fast_period, params.slow_period, params.signal_period)
    if result.signal.size < 2:
        return Signal.hold("Unable to calculate MACD")

    line = result.macd[-result.signal.size:]
    signal_line = result.signal
    hist = result.histogram
    macd_now, macd_prev = float(line[-1]), float(line[-2])
    sig_now, sig_prev = float(signal_line[-1]), float(signal_line[-2])
    hist_now, hist_prev = float(hist[-1]), float(hist[-2])
    separation = abs(macd_now - sig_now)

    if macd_now > sig_now and macd_prev <= sig_prev:
        action = Action.BUY
        confidence = _crossover_confidence(separation, hist_now, params)
        reason = f"MACD bullish crossover: MACD({macd_now:.3f}) > Signal({sig_now:.3f})"
        risk = _risk_score(separation, hist_now, confidence)
    elif macd_now < sig_now and macd_prev >= sig_prev:
        action = Action.SELL
        confidence = _crossover_confidence(separation, hist_now, params)
        reason = f"MACD bearish crossover: MACD({macd_now:.3f}) < Signal({sig_now:.3f})"
        risk = _risk_score(separation, hist_now, confidence)
    elif abs(hist_now) > params.histogram_threshold:
        if hist_now > hist_prev and hist_now > 0:
            action = Action.BUY
            reason = f"MACD histogram increasing momentum: {hist_now:.3f}"
        elif hist_now < hist_prev and hist_now < 0:
            action = Action.SELL
            reason = f"MACD histogram decreasing momentum: {hist_now:.3f}"
        else:
            return Signal.hold("MACD mixed signals", confidence=0.5, risk_score=0.4)
        confidence = min(0.7, abs(hist_now) * 5)
        risk = min(0.8, abs(hist_now) * 3)
    else:
        return Signal.hold("MACD neutral zone", confidence=0.5, risk_score=0.3)

    trend_ma = indicators.sma(closes, params.trend_filter_period)
    if trend_ma.size:
        bullish = series.last_close > float(trend_ma[-1])
        if aligned(action, bullish):
            confidence *= 1.2
            reason += " | With trend"
        else:
            confidence *= 0.7
            reason += " | Against trend"

    if confidence < params.min_confidence:
        return low_confidence(confidence)

    confidence = clamp(confidence, 0.1, 0.95)
    stop_loss, take_profit = protective_levels(
        series.last_close, action, params.stop_loss_pct, params.take_profit_pct
    )
    logger.debug("MACD signal %s conf=%.2f hist=%.3f", action.value, confidence, hist_now)
    return Signal(
        action=action,
        confidence=confidence,
        reason=reason,
        risk_score=clamp(risk, 0.0, 1.0),
        stop_loss=stop_loss,
        take_profit=take_profit,
    )
