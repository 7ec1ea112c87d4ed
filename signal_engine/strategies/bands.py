"""
Band mean-reversion strategy (Bollinger).

The price's fractional position inside ``[lower, upper]`` drives the call:
within ``edge`` of the lower band is a BUY, within ``edge`` of the upper
band a SELL. A band narrower than ``squeeze_threshold`` of the middle band
is reported as a squeeze and never given a direction.
"""

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


@dataclass(frozen=True)
class BandsParams:
    period: int = 20
    std_devs: float = 2.0
    edge: float = 0.05
    squeeze_threshold: float = 0.02
    volume_confirmation: bool = True
    volume_threshold: float = 1.2
    stop_loss_pct: float = 1.5
    take_profit_pct: float = 3.0
    min_confidence: float = 0.4

    @property
    def min_bars(self) -> int:
        return self.period + 10

    def validate(self) -> None:
        if self.period < 2:
            raise ConfigurationInvalid("band period must be at least 2")
        if self.std_devs <= 0:
            raise ConfigurationInvalid("std_devs must be positive")
        if not 0 < self.edge < 0.5:
            raise ConfigurationInvalid("edge must be in (0, 0.5)")
        if self.squeeze_threshold < 0:
            raise ConfigurationInvalid("squeeze_threshold must be non-negative")
        if not 0 <= self.min_confidence <= 1:
            raise ConfigurationInvalid("min_confidence must be in [0, 1]")
        if self.stop_loss_pct <= 0 or self.take_profit_pct <= 0:
            raise ConfigurationInvalid("stop-loss and take-profit percentages must be positive")


def _confidence(action: Action, position: float, bandwidth: float) -> float:
    confidence = 0.5 + abs(position - 0.5) * 1.5 + min(0.3, bandwidth * 5)
    if (action is Action.BUY and position < 0.1) or (action is Action.SELL and position > 0.9):
        confidence *= 1.3
    return clamp(confidence, 0.1, 0.95)


def _risk_score(position: float, bandwidth: float, confidence: float) -> float:
    risk = 0.5 - abs(position - 0.5) * 0.4 + min(0.3, bandwidth * 3) - (confidence - 0.5) * 0.3
    return clamp(risk, 0.1, 0.9)


def analyze_bands(series: PriceSeries, params: BandsParams) -> Signal:
    if len(series) < params.min_bars:
        return insufficient_data("Bollinger Bands", params.min_bars, len(series))

    bands = indicators.bollinger(series.closes, params.period, params.std_devs)
    if bands.empty:
        return Signal.hold("Unable to calculate Bollinger Bands")

    price = series.last_close
    upper = float(bands.upper[-1])
    middle = float(bands.middle[-1])
    lower = float(bands.lower[-1])
    width = upper - lower
    bandwidth = width / middle if middle > 0 else 0.0

    if bandwidth < params.squeeze_threshold or width <= 0:
        return Signal.hold(
            f"BB Squeeze detected: band width {bandwidth * 100:.2f}% - awaiting breakout",
            confidence=0.6,
            risk_score=0.4,
        )

    position = (price - lower) / width
    if position <= params.edge:
        action = Action.BUY
        reason = f"Price oversold: {position * 100:.1f}% of band range, BB lower: {lower:.2f}"
    elif position >= 1 - params.edge:
        action = Action.SELL
        reason = f"Price overbought: {position * 100:.1f}% of band range, BB upper: {upper:.2f}"
    else:
        return Signal.hold(
            f"Price in middle zone: {position * 100:.1f}% of band range",
            confidence=0.3,
            risk_score=0.3,
        )

    confidence = _confidence(action, position, bandwidth)
    if params.volume_confirmation:
        if volume_ratio(series.volumes, 20) > params.volume_threshold:
            confidence *= 1.15
            reason += " | Volume confirmed"
        else:
            confidence *= 0.7
            reason += " | Low volume"

    if confidence < params.min_confidence:
        return low_confidence(confidence)

    confidence = clamp(confidence, 0.1, 0.95)
    stop_loss, take_profit = protective_levels(price, action, params.stop_loss_pct, params.take_profit_pct)
    logger.debug("Bollinger signal %s conf=%.2f position=%.3f", action.value, confidence, position)
    return Signal(
        action=action,
        confidence=confidence,
        reason=reason,
        risk_score=_risk_score(position, bandwidth, confidence),
        stop_loss=stop_loss,
        take_profit=take_profit,
    )
