"""
Adaptive strategy selection.

Decides which strategy is authoritative for live trading. Per strategy the
lifecycle is::

    UNTESTED -> TESTING -> PASSED
                        -> FAILED   (excluded until a global reset)

On each decision cycle ``AdaptiveSelector.select`` either keeps the current
strategy or switches away from it when it failed probation, its win rate
collapsed, or its cumulative P&L broke the loss floor. Switches are
debounced by a cooldown. When every strategy has failed, probation is
restarted for all of them and the engine goes cold for that cycle.

A reset only re-queues strategies: cumulative win rate and P&L survive it,
so a strategy whose lifetime record already breaks the poor-performance or
loss-floor condition is switched away from again once the cooldown ends,
before it completes a new probation trade.

Every transition is returned as a ``SwitchResult``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from signal_engine.config import EngineConfig
from signal_engine.ensemble import EnsembleAggregator
from signal_engine.performance import PerformanceTracker, StrategyPerformance
from signal_engine.types import SwitchResult

logger = logging.getLogger(__name__)

ALL_FAILED_REASON = "all strategies failed testing"


class StrategyStatus(str, Enum):
    UNTESTED = "UNTESTED"
    TESTING = "TESTING"
    PASSED = "PASSED"
    FAILED = "FAILED"


def status_of(perf: StrategyPerformance) -> StrategyStatus:
    testing = perf.testing
    if testing.passed is True:
        return StrategyStatus.PASSED
    if testing.passed is False:
        return StrategyStatus.FAILED
    if testing.trades_completed == 0:
        return StrategyStatus.UNTESTED
    return StrategyStatus.TESTING


@dataclass
class EngineState:
    """Mutable engine state. Owned by the selector, read by everything else."""
    registry: EnsembleAggregator
    performances: PerformanceTracker
    authoritative_id: Optional[str] = None
    last_switch_time: Optional[datetime] = None
    inverse_mode: bool = False
    switch_log: List[SwitchResult] = field(default_factory=list)


class AdaptiveSelector:
    def __init__(self, config: EngineConfig, state: EngineState):
        self.config = config
        self.state = state

    @property
    def cooldown(self) -> timedelta:
        return timedelta(milliseconds=self.config.switch_cooldown_ms)

    # ── candidates ─────────────────────────────────────────────────────

    def _eligible(self) -> List[StrategyPerformance]:
        out = []
        for strategy in self.state.registry.enabled_strategies():
            perf = self.state.performances.get(strategy.id)
            if perf is not None:
                out.append(perf)
        return out

    def status(self, strategy_id: str) -> Optional[StrategyStatus]:
        perf = self.state.performances.get(strategy_id)
        return status_of(perf) if perf is not None else None

    def best_candidate(self, exclude: Optional[str] = None) -> Optional[str]:
        """
        Best non-failed strategy: strategies without a verdict first (to gather
        data), then by total P&L, then by win rate. Registration order breaks
        remaining ties.
        """
        candidates = [
            p for p in self._eligible()
            if p.strategy_id != exclude and status_of(p) is not StrategyStatus.FAILED
        ]
        if not candidates:
            return None
        candidates.sort(
            key=lambda p: (0 if p.testing.passed is None else 1, -p.total_pnl, -p.win_rate)
        )
        return candidates[0].strategy_id

    def all_failed(self) -> bool:
        eligible = self._eligible()
        return bool(eligible) and all(status_of(p) is StrategyStatus.FAILED for p in eligible)

    def switch_reason(self, perf: StrategyPerformance) -> Optional[str]:
        cfg = self.config
        if status_of(perf) is StrategyStatus.FAILED:
            return (
                f"{perf.strategy_name} failed testing "
                f"({perf.testing.win_rate * 100:.1f}% win rate, ${perf.testing.pnl:.2f})"
            )
        if perf.total_trades >= cfg.min_trades_before_switch and perf.win_rate < cfg.poor_performance_threshold:
            return (
                f"{perf.strategy_name} poor performance ({perf.win_rate * 100:.1f}% win rate < "
                f"{cfg.poor_performance_threshold * 100:.0f}% threshold)"
            )
        if perf.total_trades >= cfg.loss_floor_min_trades and perf.total_pnl < cfg.loss_floor:
            return f"{perf.strategy_name} losing badly (${perf.total_pnl:.2f} P&L)"
        return None

    def in_cooldown(self, now: datetime) -> bool:
        last = self.state.last_switch_time
        return last is not None and now - last < self.cooldown

    # ── transitions ────────────────────────────────────────────────────

    def _record(self, result: SwitchResult) -> SwitchResult:
        if result.switched or result.reset:
            self.state.switch_log.append(result)
        return result

    def _global_reset(self, from_id: Optional[str], now: datetime) -> SwitchResult:
        self.state.performances.reset_testing()
        self.state.authoritative_id = None
        self.state.last_switch_time = now
        return self._record(SwitchResult(
            switched=from_id is not None,
            from_id=from_id,
            to_id=None,
            reason=ALL_FAILED_REASON,
            reset=True,
        ))

    def _activate(self, to_id: str, from_id: Optional[str], reason: str, now: datetime) -> SwitchResult:
        self.state.authoritative_id = to_id
        self.state.last_switch_time = now
        perf = self.state.performances.get(to_id)
        logger.info(
            "Strategy switch %s -> %s: %s (P&L $%.2f, win rate %.1f%%)",
            from_id, to_id, reason,
            perf.total_pnl if perf else 0.0,
            (perf.win_rate * 100) if perf else 0.0,
        )
        return self._record(SwitchResult(switched=True, from_id=from_id, to_id=to_id, reason=reason))

    def select(self, now: datetime) -> SwitchResult:
        """Run one selection cycle."""
        state = self.state
        current = state.authoritative_id

        if current is not None and not state.registry.is_enabled(current):
            logger.info("Authoritative strategy %s is no longer enabled", current)
            state.authoritative_id = None
            previous: Optional[str] = current
        else:
            previous = None

        if state.authoritative_id is None:
            candidate = self.best_candidate()
            if candidate is None:
                if self.all_failed():
                    logger.warning("No eligible strategy: %s", ALL_FAILED_REASON)
                    return self._global_reset(previous, now)
                return SwitchResult(switched=previous is not None, from_id=previous, reason="no strategies available")
            return self._activate(candidate, previous, "initial selection", now)

        if not self.config.auto_switch_enabled:
            return SwitchResult(switched=False, from_id=current, reason="auto-switch disabled")
        if self.in_cooldown(now):
            return SwitchResult(switched=False, from_id=current, reason="switch cooldown active")

        perf = state.performances.get(current)
        reason = self.switch_reason(perf) if perf is not None else "performance record missing"
        if reason is None:
            return SwitchResult(switched=False, from_id=current)

        logger.warning("Switch condition met: %s", reason)
        candidate = self.best_candidate(exclude=current)
        if candidate is None:
            if self.all_failed():
                return self._global_reset(current, now)
            return SwitchResult(switched=False, from_id=current, reason=f"{reason}; no alternative strategy")
        return self._activate(candidate, current, reason, now)

    def force(self, strategy_id: str, now: datetime) -> SwitchResult:
        """Make ``strategy_id`` authoritative regardless of performance or cooldown."""
        current = self.state.authoritative_id
        if self.state.performances.get(strategy_id) is None or not self.state.registry.is_enabled(strategy_id):
            logger.warning("Cannot activate unknown or disabled strategy %s", strategy_id)
            return SwitchResult(switched=False, from_id=current, reason=f"unknown or disabled strategy {strategy_id}")
        if strategy_id == current:
            return SwitchResult(switched=False, from_id=current, reason="already active")
        return self._activate(strategy_id, current, "manual selection", now)
