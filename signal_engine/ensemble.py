"""
Ensemble aggregation across all enabled strategies.

Every enabled strategy analyses the same immutable bar snapshot in a
thread pool; results are gathered back into registration order so vote
counting and tie-breaks are reproducible. Two views are produced:

- Consensus: one vote per strategy, ``agreement = max_votes / total``.
- Weighted signal: each vote carries a manual weight if one is set,
  otherwise a performance weight once the strategy has enough closed
  trades, otherwise a flat weight of 1. Ties between actions go to HOLD.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from signal_engine.performance import PerformanceTracker, StrategyPerformance, composite_score
from signal_engine.strategies import Strategy
from signal_engine.types import Action, MarketBar, Signal, StrategySignal, clamp

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 1.0
_TIE_TOLERANCE = 1e-9


@dataclass(frozen=True)
class Consensus:
    buy_votes: int = 0
    sell_votes: int = 0
    hold_votes: int = 0
    average_confidence: float = 0.0
    agreement: float = 0.0

    @property
    def total_votes(self) -> int:
        return self.buy_votes + self.sell_votes + self.hold_votes


@dataclass(frozen=True)
class WeightedSignal:
    action: Action
    confidence: float
    reasoning: str
    weights: Dict[str, float] = field(default_factory=dict)
    """Normalized weight per strategy id."""


@dataclass(frozen=True)
class BestStrategy:
    strategy_id: str
    name: str
    score: float


@dataclass(frozen=True)
class EnsembleResult:
    signals: List[StrategySignal]
    consensus: Consensus
    weighted_signal: WeightedSignal
    best_strategy: Optional[BestStrategy]
    recommended: Optional[StrategySignal]

    def signal_for(self, strategy_id: str) -> Optional[StrategySignal]:
        for s in self.signals:
            if s.strategy_id == strategy_id:
                return s
        return None


def performance_weight(perf: StrategyPerformance) -> float:
    """0.35 win rate + 0.25 normalized Sharpe + 0.25 consistency + 0.15 profitable flag."""
    sharpe_term = clamp(perf.sharpe_ratio / 2, 0.0, 1.0)
    profit_term = 1.0 if perf.total_pnl > 0 else 0.5
    return perf.win_rate * 0.35 + sharpe_term * 0.25 + perf.consistency * 0.25 + profit_term * 0.15


def build_consensus(signals: Sequence[StrategySignal]) -> Consensus:
    if not signals:
        return Consensus()
    buys = sum(1 for s in signals if s.action is Action.BUY)
    sells = sum(1 for s in signals if s.action is Action.SELL)
    holds = len(signals) - buys - sells
    return Consensus(
        buy_votes=buys,
        sell_votes=sells,
        hold_votes=holds,
        average_confidence=sum(s.confidence for s in signals) / len(signals),
        agreement=max(buys, sells, holds) / len(signals),
    )


def _winning_action(totals: Dict[Action, float]) -> Action:
    best = max(totals.values())
    leaders = [a for a, w in totals.items() if abs(w - best) <= _TIE_TOLERANCE]
    return leaders[0] if len(leaders) == 1 else Action.HOLD


class EnsembleAggregator:
    """
    Registry of strategies participating in the ensemble.

    Holds the enable flag and optional manual weight for each strategy;
    performance figures are read from the shared ``PerformanceTracker``.
    """

    def __init__(
        self,
        tracker: PerformanceTracker,
        max_workers: Optional[int] = None,
        min_trades_for_weighting: int = 10,
    ):
        self.tracker = tracker
        self.max_workers = max_workers
        self.min_trades_for_weighting = min_trades_for_weighting

        self._strategies: Dict[str, Strategy] = {}
        self._enabled: Dict[str, bool] = {}
        self._manual_weights: Dict[str, float] = {}

    # ── registry ───────────────────────────────────────────────────────

    def add(self, strategy: Strategy) -> None:
        self._strategies[strategy.id] = strategy
        self._enabled[strategy.id] = True

    def remove(self, strategy_id: str) -> None:
        self._strategies.pop(strategy_id, None)
        self._enabled.pop(strategy_id, None)
        self._manual_weights.pop(strategy_id, None)

    def get(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    def strategies(self) -> List[Strategy]:
        return list(self._strategies.values())

    def enabled_strategies(self) -> List[Strategy]:
        return [s for s in self._strategies.values() if self._enabled.get(s.id, False)]

    def is_enabled(self, strategy_id: str) -> bool:
        return self._enabled.get(strategy_id, False)

    def set_enabled(self, strategy_id: str, enabled: bool) -> bool:
        if strategy_id not in self._strategies:
            logger.warning("set_enabled for unknown strategy %s", strategy_id)
            return False
        self._enabled[strategy_id] = bool(enabled)
        logger.info("Strategy %s %s", strategy_id, "enabled" if enabled else "disabled")
        return True

    def set_weight(self, strategy_id: str, weight: Optional[float]) -> bool:
        """Set a manual weight in [0, 1]; ``None`` clears it."""
        if strategy_id not in self._strategies:
            logger.warning("set_weight for unknown strategy %s", strategy_id)
            return False
        if weight is None:
            self._manual_weights.pop(strategy_id, None)
        else:
            self._manual_weights[strategy_id] = clamp(float(weight), 0.0, 1.0)
        return True

    def manual_weight(self, strategy_id: str) -> Optional[float]:
        return self._manual_weights.get(strategy_id)

    # ── analysis ───────────────────────────────────────────────────────

    def _run(self, strategy: Strategy, bars: Sequence[MarketBar]) -> StrategySignal:
        try:
            signal = strategy.analyze(bars)
        except Exception as exc:
            logger.error("Strategy %s raised during analysis: %s", strategy.id, exc, exc_info=True)
            signal = Signal.hold(f"Analysis error: {exc}", risk_score=1.0)
        return StrategySignal(strategy_id=strategy.id, strategy_name=strategy.name, signal=signal)

    def evaluate(self, bars: Sequence[MarketBar]) -> List[StrategySignal]:
        """Run every enabled strategy; results are in registration order."""
        active = self.enabled_strategies()
        if not active:
            return []
        snapshot = tuple(bars)
        workers = self.max_workers or len(active)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {s.id: executor.submit(self._run, s, snapshot) for s in active}
            return [futures[s.id].result() for s in active]

    def weight_for(self, strategy_id: str) -> float:
        manual = self._manual_weights.get(strategy_id)
        if manual is not None:
            return manual
        perf = self.tracker.get(strategy_id)
        if perf is not None and perf.total_trades >= self.min_trades_for_weighting:
            return performance_weight(perf)
        return DEFAULT_WEIGHT

    def weighted_signal(self, signals: Sequence[StrategySignal]) -> WeightedSignal:
        if not signals:
            return WeightedSignal(Action.HOLD, 0.0, "No strategies available")

        raw = {s.strategy_id: self.weight_for(s.strategy_id) for s in signals}
        total = sum(raw.values())
        if total > 0:
            weights = {k: v / total for k, v in raw.items()}
        else:
            weights = {k: 1.0 / len(signals) for k in raw}

        totals = {Action.BUY: 0.0, Action.SELL: 0.0, Action.HOLD: 0.0}
        confidence = 0.0
        for s in signals:
            w = weights[s.strategy_id]
            totals[s.action] += w
            confidence += s.confidence * w

        action = _winning_action(totals)
        top = sorted(signals, key=lambda s: -raw[s.strategy_id])[:3]
        reasoning = (
            f"Performance-weighted analysis: {action.value} "
            f"({max(totals.values()) * 100:.0f}% agreement). Top strategies: "
            + ", ".join(f"{s.strategy_name} ({s.action.value}, {s.confidence * 100:.0f}%)" for s in top)
        )
        return WeightedSignal(
            action=action,
            confidence=clamp(confidence, 0.0, 1.0),
            reasoning=reasoning,
            weights=weights,
        )

    def best_strategy(self) -> Optional[BestStrategy]:
        best: Optional[BestStrategy] = None
        for strategy in self.enabled_strategies():
            perf = self.tracker.get(strategy.id)
            score = composite_score(perf) if perf is not None else 0.0
            if best is None or score > best.score:
                best = BestStrategy(strategy_id=strategy.id, name=strategy.name, score=score)
        return best

    def analyze_all(self, bars: Sequence[MarketBar]) -> EnsembleResult:
        signals = self.evaluate(bars)
        consensus = build_consensus(signals)
        weighted = self.weighted_signal(signals)
        best = self.best_strategy()

        recommended: Optional[StrategySignal] = None
        if best is not None:
            recommended = next((s for s in signals if s.strategy_id == best.strategy_id), None)
        if recommended is None and signals:
            recommended = next((s for s in signals if s.action is weighted.action), signals[0])

        logger.debug(
            "Ensemble: %d signals, buy=%d sell=%d hold=%d, weighted %s (%.2f)",
            len(signals), consensus.buy_votes, consensus.sell_votes, consensus.hold_votes,
            weighted.action.value, weighted.confidence,
        )
        return EnsembleResult(
            signals=signals,
            consensus=consensus,
            weighted_signal=weighted,
            best_strategy=best,
            recommended=recommended,
        )
