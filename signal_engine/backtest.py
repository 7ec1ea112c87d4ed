"""
Walk-forward replay of the adaptive engine over historical bars.

Each bar after the warmup is one decision cycle with the bar's timestamp
as the engine clock. Actionable decisions open a position at the bar's
close; a position closes on its stop-loss or take-profit (checked against
the next bars' high/low, stop first), on an opposite decision, or at the
end of the data. Realized P&L is fed back through the engine so the
adaptive selector reacts exactly as it would live.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from signal_engine.engine import SignalEngine
from signal_engine.performance import drawdowns
from signal_engine.persistence import SqliteStore
from signal_engine.types import Action, Decision, MarketBar, SwitchResult, prepare_series

logger = logging.getLogger(__name__)


@dataclass
class ReplayPosition:
    """An open position during replay."""
    trade_id: str
    strategy_id: str
    direction: int  # 1 for long, -1 for short
    entry_price: float
    entry_time: datetime
    size: float
    stop_loss: Optional[float]
    take_profit: Optional[float]


@dataclass(frozen=True)
class ReplayTrade:
    trade_id: str
    strategy_id: str
    symbol: str
    direction: str
    entry_time: datetime
    entry_price: float
    exit_time: datetime
    exit_price: float
    size: float
    pnl: float
    exit_reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "strategy_id": self.strategy_id,
            "symbol": self.symbol,
            "direction": self.direction,
            "entry_time": self.entry_time.isoformat(),
            "entry_price": self.entry_price,
            "exit_time": self.exit_time.isoformat(),
            "exit_price": self.exit_price,
            "size": self.size,
            "pnl": self.pnl,
            "exit_reason": self.exit_reason,
        }


@dataclass
class BacktestResult:
    symbol: str
    bars_processed: int = 0
    decisions: int = 0
    trades: List[ReplayTrade] = field(default_factory=list)
    switches: List[SwitchResult] = field(default_factory=list)

    @property
    def total_pnl(self) -> float:
        return sum(t.pnl for t in self.trades)

    @property
    def win_rate(self) -> float:
        wins = sum(1 for t in self.trades if t.pnl > 0)
        losses = sum(1 for t in self.trades if t.pnl < 0)
        return wins / (wins + losses) if wins + losses else 0.0

    @property
    def max_drawdown(self) -> float:
        pnls = np.array([t.pnl for t in self.trades], dtype=np.float64)
        return drawdowns(pnls)[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "bars_processed": self.bars_processed,
            "decisions": self.decisions,
            "total_trades": len(self.trades),
            "total_pnl": self.total_pnl,
            "win_rate": self.win_rate,
            "max_drawdown": self.max_drawdown,
            "switches": [
                {"from": s.from_id, "to": s.to_id, "reason": s.reason, "reset": s.reset}
                for s in self.switches
            ],
        }


class ReplayBacktester:
    """
    Replays bars through a ``SignalEngine``.

    Args:
        engine: Engine to drive; its performance state is mutated
        store: Optional store receiving every decision
        run_id: Run id for decisions logged to ``store``
    """

    def __init__(
        self,
        engine: SignalEngine,
        store: Optional[SqliteStore] = None,
        run_id: Optional[int] = None,
    ):
        self.engine = engine
        self.store = store
        self.run_id = run_id
        self._position: Optional[ReplayPosition] = None

    def run(self, symbol: str, bars: Sequence[MarketBar], warmup: int = 50) -> BacktestResult:
        history = prepare_series(bars)
        result = BacktestResult(symbol=symbol)
        self._position = None
        if len(history) <= warmup:
            logger.warning("Backtest %s: %d bars is not more than warmup %d", symbol, len(history), warmup)
            return result

        for i in range(warmup, len(history)):
            bar = history[i]
            result.bars_processed += 1

            if self._position is not None:
                self._check_exits(symbol, bar, result)

            decision = self.engine.decide(symbol, history[: i + 1], now=bar.timestamp)
            result.decisions += 1
            if decision.switch is not None and (decision.switch.switched or decision.switch.reset):
                result.switches.append(decision.switch)
            if self.store is not None:
                self.store.log_decision(decision, run_id=self.run_id, ts=bar.timestamp)

            self._act(symbol, bar, decision, result)

        if self._position is not None:
            last = history[-1]
            self._close(symbol, last.close, last.timestamp, "Backtest end", result)

        logger.info(
            "Backtest %s: %d bars, %d trades, P&L $%.2f, win rate %.1f%%",
            symbol, result.bars_processed, len(result.trades), result.total_pnl, result.win_rate * 100,
        )
        return result

    def _check_exits(self, symbol: str, bar: MarketBar, result: BacktestResult) -> None:
        pos = self._position
        if pos.stop_loss is not None:
            if (pos.direction > 0 and bar.low <= pos.stop_loss) or (pos.direction < 0 and bar.high >= pos.stop_loss):
                self._close(symbol, pos.stop_loss, bar.timestamp, "Stop loss hit", result)
                return
        if pos.take_profit is not None:
            if (pos.direction > 0 and bar.high >= pos.take_profit) or (pos.direction < 0 and bar.low <= pos.take_profit):
                self._close(symbol, pos.take_profit, bar.timestamp, "Take profit hit", result)

    def _act(self, symbol: str, bar: MarketBar, decision: Decision, result: BacktestResult) -> None:
        if decision.action is Action.HOLD:
            return
        direction = 1 if decision.action is Action.BUY else -1

        if self._position is not None:
            if self._position.direction != direction:
                self._close(symbol, bar.close, bar.timestamp, "Opposite signal", result)
            return

        if decision.strategy_id is None or decision.size <= 0:
            return
        trade_id = self.engine.open_trade(decision.strategy_id, symbol, bar.close, timestamp=bar.timestamp)
        if trade_id is None:
            return
        self._position = ReplayPosition(
            trade_id=trade_id,
            strategy_id=decision.strategy_id,
            direction=direction,
            entry_price=bar.close,
            entry_time=bar.timestamp,
            size=decision.size,
            stop_loss=decision.stop_loss,
            take_profit=decision.take_profit,
        )

    def _close(
        self,
        symbol: str,
        exit_price: float,
        timestamp: datetime,
        reason: str,
        result: BacktestResult,
    ) -> None:
        pos = self._position
        if pos is None:
            return
        # Size is dollars committed, so P&L scales with the fractional move.
        pnl = (exit_price - pos.entry_price) / pos.entry_price * pos.size * pos.direction
        self.engine.close_trade(pos.trade_id, pnl, timestamp=timestamp)
        result.trades.append(ReplayTrade(
            trade_id=pos.trade_id,
            strategy_id=pos.strategy_id,
            symbol=symbol,
            direction="LONG" if pos.direction > 0 else "SHORT",
            entry_time=pos.entry_time,
            entry_price=pos.entry_price,
            exit_time=timestamp,
            exit_price=exit_price,
            size=pos.size,
            pnl=pnl,
            exit_reason=reason,
        ))
        self._position = None
