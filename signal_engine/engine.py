"""
Adaptive signal engine.

Facade over the strategy registry, ensemble, performance tracker,
adaptive selector and position sizer. One ``decide`` call is one decision
cycle::

    select authoritative strategy -> run ensemble -> take the authoritative
    strategy's signal -> size it -> apply inverse mode -> Decision

Trade outcomes come back through ``record_trade`` (or ``open_trade`` /
``close_trade``). All reads and writes of engine state are serialized by
a single re-entrant lock; strategy analysis itself is pure.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from signal_engine.config import EngineConfig
from signal_engine.ensemble import EnsembleAggregator, EnsembleResult
from signal_engine.errors import ConfigurationInvalid
from signal_engine.performance import (
    PerformanceTracker,
    StrategyComparison,
    StrategyPerformance,
    TradeUpdate,
)
from signal_engine.selector import (
    ALL_FAILED_REASON,
    AdaptiveSelector,
    EngineState,
    status_of,
)
from signal_engine.sizing import PositionSizer
from signal_engine.strategies import Strategy, StrategyKind, create_default_strategies
from signal_engine.types import Action, Decision, MarketBar, SwitchResult

logger = logging.getLogger(__name__)


class SignalEngine:
    """
    Adaptive multi-strategy signal engine.

    Args:
        config: Engine configuration; validated here
        strategies: Initial strategies (default: the five standard ones)
        clock: Source of "now" for cooldowns and trade timestamps
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        strategies: Optional[Iterable[Strategy]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config or EngineConfig()
        self.config.validate()
        self._clock = clock
        self._lock = threading.RLock()

        self.tracker = PerformanceTracker(
            window=self.config.performance_window,
            test_trades_required=self.config.test_trades_required,
            test_pass_win_rate=self.config.test_pass_win_rate,
            test_pass_profit_min=self.config.test_pass_profit_min,
        )
        self.ensemble = EnsembleAggregator(
            self.tracker,
            max_workers=self.config.max_workers,
            min_trades_for_weighting=self.config.min_trades_for_weighting,
        )
        self.state = EngineState(
            registry=self.ensemble,
            performances=self.tracker,
            inverse_mode=self.config.inverse_mode,
        )
        self.selector = AdaptiveSelector(self.config, self.state)
        self.sizer = PositionSizer(self.config.position_sizing)

        if strategies is None:
            strategies = create_default_strategies(self.config.exhaustion)
        for strategy in strategies:
            self.add_strategy(strategy)

    # ── registry ───────────────────────────────────────────────────────

    def add_strategy(self, strategy: Strategy) -> bool:
        with self._lock:
            if self.ensemble.get(strategy.id) is not None:
                logger.warning("Strategy %s already registered", strategy.id)
                return False
            self.ensemble.add(strategy)
            self.tracker.register(strategy.id, strategy.name)
            logger.info("Registered strategy %s (%s)", strategy.id, strategy.name)
            return True

    def register_strategy(
        self,
        strategy_id: str,
        kind: StrategyKind,
        params: Optional[Any] = None,
        name: Optional[str] = None,
    ) -> bool:
        """Build and register a strategy. Invalid parameters exclude it; the engine carries on."""
        try:
            strategy = Strategy(strategy_id, kind, params, name)
        except ConfigurationInvalid as exc:
            logger.warning("Rejected strategy %s: %s", strategy_id, exc)
            return False
        return self.add_strategy(strategy)

    def remove_strategy(self, strategy_id: str) -> bool:
        """
        Unregister a strategy and drop its performance record.

        If it was authoritative, the next ``decide`` selects a replacement.
        """
        with self._lock:
            if self.ensemble.get(strategy_id) is None:
                logger.warning("remove_strategy for unknown strategy %s", strategy_id)
                return False
            self.ensemble.remove(strategy_id)
            dropped = self.tracker.remove(strategy_id)
            logger.info("Removed strategy %s (%d open trades dropped)", strategy_id, dropped)
            return True

    def strategy_ids(self) -> List[str]:
        with self._lock:
            return [s.id for s in self.ensemble.strategies()]

    @property
    def authoritative_strategy(self) -> Optional[str]:
        with self._lock:
            return self.state.authoritative_id

    @property
    def inverse_mode(self) -> bool:
        return self.state.inverse_mode

    # ── manual control ─────────────────────────────────────────────────

    def set_inverse_mode(self, enabled: bool) -> None:
        with self._lock:
            self.state.inverse_mode = bool(enabled)
            logger.info("Inverse mode %s", "ON" if enabled else "OFF")

    def set_strategy_enabled(self, strategy_id: str, enabled: bool) -> bool:
        with self._lock:
            return self.ensemble.set_enabled(strategy_id, enabled)

    def set_strategy_weight(self, strategy_id: str, weight: Optional[float]) -> bool:
        with self._lock:
            return self.ensemble.set_weight(strategy_id, weight)

    def set_active_strategy(self, strategy_id: str) -> SwitchResult:
        with self._lock:
            return self.selector.force(strategy_id, self._clock())

    # ── decision cycle ─────────────────────────────────────────────────

    def analyze_all(self, bars: Sequence[MarketBar]) -> EnsembleResult:
        with self._lock:
            return self.ensemble.analyze_all(bars)

    def decide(self, symbol: str, bars: Sequence[MarketBar], now: Optional[datetime] = None) -> Decision:
        """Run one decision cycle for ``symbol``. Never raises for market data problems."""
        with self._lock:
            now = now or self._clock()
            switch = self.selector.select(now)
            result = self.ensemble.analyze_all(bars)
            metadata = {
                "ensemble": result,
                "weighted_action": result.weighted_signal.action.value,
                "weighted_confidence": result.weighted_signal.confidence,
                "agreement": result.consensus.agreement,
            }

            authoritative = self.state.authoritative_id
            if authoritative is None:
                reason = ALL_FAILED_REASON if switch.reset else (switch.reason or "no authoritative strategy")
                return Decision(
                    symbol=symbol,
                    action=Action.HOLD,
                    confidence=0.0,
                    size=0.0,
                    reason=reason,
                    switch=switch,
                    metadata=metadata,
                )

            tagged = result.signal_for(authoritative)
            perf = self.tracker.get(authoritative)
            testing = perf.testing.testing_mode if perf is not None else True
            if tagged is None:
                return Decision(
                    symbol=symbol,
                    action=Action.HOLD,
                    confidence=0.0,
                    size=0.0,
                    reason=f"No signal from {authoritative}",
                    strategy_id=authoritative,
                    testing=testing,
                    switch=switch,
                    metadata=metadata,
                )

            signal = tagged.signal
            size = self.sizer.size(perf, signal.confidence) if signal.is_actionable else 0.0
            if self.state.inverse_mode:
                signal = signal.inverted()

            decision = Decision(
                symbol=symbol,
                action=signal.action,
                confidence=signal.confidence,
                size=size,
                reason=f"[{tagged.strategy_name}] {signal.reason}",
                strategy_id=authoritative,
                stop_loss=signal.stop_loss,
                take_profit=signal.take_profit,
                risk_score=signal.risk_score,
                testing=testing,
                switch=switch,
                metadata=metadata,
            )
            if decision.action is not Action.HOLD:
                logger.info(
                    "%s %s via %s: confidence %.2f, size $%.2f%s",
                    decision.action.value, symbol, authoritative, decision.confidence, size,
                    " (testing)" if testing else "",
                )
            return decision

    # ── feedback ───────────────────────────────────────────────────────

    def record_trade(
        self,
        strategy_id: str,
        symbol: str,
        pnl: float,
        timestamp: Optional[datetime] = None,
    ) -> Optional[TradeUpdate]:
        with self._lock:
            return self.tracker.record_trade(strategy_id, symbol, pnl, timestamp or self._clock())

    def open_trade(
        self,
        strategy_id: str,
        symbol: str,
        entry_price: Optional[float] = None,
        timestamp: Optional[datetime] = None,
    ) -> Optional[str]:
        with self._lock:
            return self.tracker.open_trade(strategy_id, symbol, timestamp or self._clock(), entry_price)

    def close_trade(self, trade_id: str, pnl: float, timestamp: Optional[datetime] = None) -> Optional[TradeUpdate]:
        with self._lock:
            return self.tracker.close_trade(trade_id, pnl, timestamp or self._clock())

    # ── persistence hooks ──────────────────────────────────────────────

    def load_performances(self, records: Iterable[StrategyPerformance]) -> int:
        with self._lock:
            return self.tracker.load_performances(records)

    def snapshot(self) -> List[StrategyPerformance]:
        """Deep copies of every performance record, safe to hand to a store."""
        with self._lock:
            return [p.copy() for p in self.tracker.all()]

    def get_strategy_comparison(self) -> StrategyComparison:
        with self._lock:
            return self.tracker.get_strategy_comparison()

    def get_status(self) -> Dict[str, Any]:
        """Return a summary dict for logging / CLI output."""
        with self._lock:
            strategies = {}
            for strategy in self.ensemble.strategies():
                perf = self.tracker.get(strategy.id)
                if perf is None:
                    continue
                strategies[strategy.id] = {
                    "name": strategy.name,
                    "kind": strategy.kind.value,
                    "enabled": self.ensemble.is_enabled(strategy.id),
                    "status": status_of(perf).value,
                    "weight": self.ensemble.weight_for(strategy.id),
                    "manual_weight": self.ensemble.manual_weight(strategy.id),
                    "total_trades": perf.total_trades,
                    "win_rate": perf.win_rate,
                    "total_pnl": perf.total_pnl,
                    "sharpe_ratio": perf.sharpe_ratio,
                    "max_drawdown": perf.max_drawdown,
                    "testing": perf.testing.to_dict(),
                    "open_trades": len(self.tracker.open_trades(strategy.id)),
                }
            last = self.state.last_switch_time
            return {
                "authoritative_strategy": self.state.authoritative_id,
                "last_switch_time": last.isoformat() if last is not None else None,
                "inverse_mode": self.state.inverse_mode,
                "auto_switch_enabled": self.config.auto_switch_enabled,
                "switches": len(self.state.switch_log),
                "strategies": strategies,
            }
