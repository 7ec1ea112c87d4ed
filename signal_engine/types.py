"""
Core type definitions for the signal engine.

Bars flow in, ``Signal`` objects flow out of every strategy, and the
engine emits one ``Decision`` per cycle to the execution collaborator.
Strategy transitions are reported as ``SwitchResult`` values rather than
log lines so callers can assert on them.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class Action(str, Enum):
    """Trading action recommended by a strategy or by the engine."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

    def inverted(self) -> "Action":
        if self is Action.BUY:
            return Action.SELL
        if self is Action.SELL:
            return Action.BUY
        return Action.HOLD


@dataclass(frozen=True)
class MarketBar:
    """OHLCV price bar. Immutable once produced."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Signal:
    """
    A strategy's recommendation for one evaluation cycle.

    ``confidence`` answers "how sure", ``risk_score`` answers "how
    dangerous if wrong". Both live in [0, 1].
    """
    action: Action
    confidence: float
    reason: str
    risk_score: float = 0.5
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    suggested_size: Optional[float] = None

    @property
    def is_actionable(self) -> bool:
        return self.action is not Action.HOLD

    @staticmethod
    def hold(reason: str, confidence: float = 0.0, risk_score: float = 0.5) -> "Signal":
        return Signal(action=Action.HOLD, confidence=confidence, reason=reason, risk_score=risk_score)

    def inverted(self) -> "Signal":
        """Flip BUY/SELL; protective levels swap so they stay on the right side of price."""
        if not self.is_actionable:
            return self
        return replace(
            self,
            action=self.action.inverted(),
            stop_loss=self.take_profit,
            take_profit=self.stop_loss,
            reason=f"{self.reason} | Inverted",
        )


@dataclass(frozen=True)
class StrategySignal:
    """A ``Signal`` tagged with the strategy that produced it."""
    strategy_id: str
    strategy_name: str
    signal: Signal

    @property
    def action(self) -> Action:
        return self.signal.action

    @property
    def confidence(self) -> float:
        return self.signal.confidence


@dataclass(frozen=True)
class SwitchResult:
    """Outcome of one selection cycle."""
    switched: bool
    from_id: Optional[str] = None
    to_id: Optional[str] = None
    reason: str = ""
    reset: bool = False

    @property
    def authoritative(self) -> Optional[str]:
        return self.to_id if self.switched else self.from_id


@dataclass(frozen=True)
class Decision:
    """Final engine output handed to the execution collaborator."""
    symbol: str
    action: Action
    confidence: float
    size: float
    reason: str
    strategy_id: Optional[str] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_score: float = 0.5
    testing: bool = False
    switch: Optional[SwitchResult] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "action": self.action.value,
            "confidence": self.confidence,
            "size": self.size,
            "reason": self.reason,
            "strategy_id": self.strategy_id,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "risk_score": self.risk_score,
            "testing": self.testing,
        }


def clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def prepare_series(bars: Sequence[MarketBar]) -> List[MarketBar]:
    """
    Return bars sorted ascending by timestamp with malformed bars dropped.

    A bar is malformed when its close is non-finite or non-positive, or its
    volume is negative. The input is never mutated.
    """
    valid = [
        b for b in bars
        if math.isfinite(b.close) and b.close > 0
        and math.isfinite(b.volume) and b.volume >= 0
    ]
    return sorted(valid, key=lambda b: b.timestamp)
