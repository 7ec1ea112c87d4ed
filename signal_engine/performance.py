"""
Per-strategy performance tracking.

Every closed trade updates exactly one ``StrategyPerformance``: cumulative
counters (trades, wins, losses, P&L) never forget, while the rolling
metrics (Sharpe, drawdown, consistency, volatility) are recomputed over
the trailing ``window`` closed trades. Open trades are held aside and
never touch the metrics until they close.

Testing (probation) bookkeeping lives in a ``ProbationRecord`` per strategy.
Graduation is evaluated exactly once, on the trade that completes the
required count, and is returned to the caller as a ``ProbationOutcome``.

Not thread-safe on its own: the engine serializes all mutation.
"""

from __future__ import annotations

import copy
import itertools
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

ANNUALIZATION_DAYS = 252
MIN_TRADES_FOR_SCORING = 10


@dataclass
class ProbationRecord:
    """Probation state for one strategy."""
    testing_mode: bool = True
    trades_required: int = 5
    trades_completed: int = 0
    wins: int = 0
    pnl: float = 0.0
    passed: Optional[bool] = None

    @property
    def win_rate(self) -> float:
        return self.wins / self.trades_completed if self.trades_completed else 0.0

    def restart(self) -> None:
        self.testing_mode = True
        self.trades_completed = 0
        self.wins = 0
        self.pnl = 0.0
        self.passed = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "testing_mode": self.testing_mode,
            "trades_required": self.trades_required,
            "trades_completed": self.trades_completed,
            "wins": self.wins,
            "pnl": self.pnl,
            "passed": self.passed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProbationRecord":
        return cls(
            testing_mode=bool(data.get("testing_mode", True)),
            trades_required=int(data.get("trades_required", 5)),
            trades_completed=int(data.get("trades_completed", 0)),
            wins=int(data.get("wins", 0)),
            pnl=float(data.get("pnl", 0.0)),
            passed=data.get("passed"),
        )


@dataclass(frozen=True)
class ProbationOutcome:
    """Result of a completed probation period."""
    strategy_id: str
    passed: bool
    win_rate: float
    pnl: float
    trades: int


@dataclass(frozen=True)
class TradeUpdate:
    """What one closed trade did to its strategy."""
    strategy_id: str
    pnl: float
    total_trades: int
    win_rate: float
    total_pnl: float
    probation: Optional[ProbationOutcome] = None


@dataclass
class TradeRecord:
    """A trade attributed to a strategy. ``pnl`` is None while the trade is open."""
    strategy_id: str
    symbol: str
    timestamp: datetime
    pnl: Optional[float] = None
    closed_at: Optional[datetime] = None
    entry_price: Optional[float] = None
    trade_id: str = ""

    @property
    def is_open(self) -> bool:
        return self.pnl is None


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class StrategyPerformance:
    strategy_id: str
    strategy_name: str
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: float = 0.0
    win_rate: float = 0.0
    avg_pnl: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    current_drawdown: float = 0.0
    volatility: float = 0.0
    risk_adjusted_return: float = 0.0
    consistency: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    last_trade_time: Optional[datetime] = None
    testing: ProbationRecord = field(default_factory=ProbationRecord)
    window: Deque[float] = field(default_factory=lambda: deque(maxlen=100))

    def copy(self) -> "StrategyPerformance":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy_id": self.strategy_id,
            "strategy_name": self.strategy_name,
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "losing_trades": self.losing_trades,
            "total_pnl": self.total_pnl,
            "win_rate": self.win_rate,
            "avg_pnl": self.avg_pnl,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "current_drawdown": self.current_drawdown,
            "volatility": self.volatility,
            "risk_adjusted_return": self.risk_adjusted_return,
            "consistency": self.consistency,
            "consecutive_wins": self.consecutive_wins,
            "consecutive_losses": self.consecutive_losses,
            "last_trade_time": _iso(self.last_trade_time),
            "testing": self.testing.to_dict(),
            "window": list(self.window),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], window: int = 100) -> "StrategyPerformance":
        perf = cls(
            strategy_id=str(data["strategy_id"]),
            strategy_name=str(data.get("strategy_name") or data["strategy_id"]),
            total_trades=int(data.get("total_trades", 0)),
            winning_trades=int(data.get("winning_trades", 0)),
            losing_trades=int(data.get("losing_trades", 0)),
            total_pnl=float(data.get("total_pnl", 0.0)),
            consecutive_wins=int(data.get("consecutive_wins", 0)),
            consecutive_losses=int(data.get("consecutive_losses", 0)),
            last_trade_time=_parse_ts(data.get("last_trade_time")),
            testing=ProbationRecord.from_dict(data.get("testing") or {}),
            window=deque((float(x) for x in data.get("window") or []), maxlen=window),
        )
        # Derived fields are recomputed rather than trusted.
        refresh_metrics(perf)
        return perf


# ────────────────────────────────────────────────────────────────────────────
# Metric computation
# ────────────────────────────────────────────────────────────────────────────

def sharpe_ratio(pnls: np.ndarray) -> float:
    """mean / population std, scaled by sqrt(252 / N). 0 for flat or empty input."""
    if pnls.size == 0:
        return 0.0
    std = float(pnls.std())
    if std == 0:
        return 0.0
    return float(pnls.mean()) / std * math.sqrt(ANNUALIZATION_DAYS / pnls.size)


def drawdowns(pnls: np.ndarray) -> Tuple[float, float]:
    """(max, current) peak-to-trough drawdown of cumulative P&L; the peak starts at 0."""
    if pnls.size == 0:
        return 0.0, 0.0
    cumulative = np.cumsum(pnls)
    peaks = np.maximum.accumulate(np.maximum(cumulative, 0.0))
    dd = peaks - cumulative
    return float(dd.max()), float(dd[-1])


def refresh_metrics(perf: StrategyPerformance) -> None:
    decided = perf.winning_trades + perf.losing_trades
    perf.win_rate = perf.winning_trades / decided if decided else 0.0
    perf.avg_pnl = perf.total_pnl / perf.total_trades if perf.total_trades else 0.0

    pnls = np.fromiter(perf.window, dtype=np.float64, count=len(perf.window))
    perf.sharpe_ratio = sharpe_ratio(pnls)
    perf.max_drawdown, perf.current_drawdown = drawdowns(pnls)
    perf.volatility = float(pnls.std()) if pnls.size else 0.0
    perf.risk_adjusted_return = perf.avg_pnl / perf.volatility * 100 if perf.volatility > 0 else 0.0
    perf.consistency = float((pnls > 0).mean()) if pnls.size else 0.0


def composite_score(perf: StrategyPerformance) -> float:
    """
    Ranking score in [0, 100].

    Below ten closed trades the score is ``5 * trades`` so data gathering is
    rewarded but never outranks an established strategy. Otherwise:
    win rate 25, profit 20, Sharpe 20, consistency 15, drawdown 10,
    trade volume 10.
    """
    if perf.total_trades < MIN_TRADES_FOR_SCORING:
        return perf.total_trades * 5.0
    win_rate_score = perf.win_rate * 25
    profit_score = min(perf.avg_pnl / 10 * 20, 20.0)
    sharpe_score = min(perf.sharpe_ratio * 10, 20.0)
    consistency_score = perf.consistency * 15
    drawdown_score = max(0.0, (1 - perf.max_drawdown / 1000) * 10)
    volume_score = min(perf.total_trades / 10, 10.0)
    return win_rate_score + profit_score + sharpe_score + consistency_score + drawdown_score + volume_score


def recommendation_for(top: Optional["RankedStrategy"]) -> str:
    if top is None:
        return "No strategies initialized yet. Start trading to collect performance data."
    perf = top.performance
    if perf.total_trades < MIN_TRADES_FOR_SCORING:
        return f"Collecting data for {perf.strategy_name}. Need more trades for accurate comparison."
    if top.score > 70:
        return (
            f"{perf.strategy_name} is performing exceptionally well with {perf.win_rate * 100:.1f}% "
            f"win rate and ${perf.total_pnl:.2f} total P&L. Continue using this strategy."
        )
    if top.score > 50:
        return (
            f"{perf.strategy_name} is showing solid performance. Win rate: {perf.win_rate * 100:.1f}%. "
            f"Monitor closely for optimization opportunities."
        )
    return (
        f"{perf.strategy_name} is currently leading but performance is below optimal. "
        f"Consider reviewing strategy parameters or market conditions."
    )


@dataclass(frozen=True)
class RankedStrategy:
    rank: int
    strategy_id: str
    score: float
    performance: StrategyPerformance


@dataclass(frozen=True)
class StrategyComparison:
    ranking: List[RankedStrategy]
    recommendation: str

    @property
    def top(self) -> Optional[RankedStrategy]:
        return self.ranking[0] if self.ranking else None


# ────────────────────────────────────────────────────────────────────────────
# Tracker
# ────────────────────────────────────────────────────────────────────────────

class PerformanceTracker:
    """
    Owns the map of ``StrategyPerformance`` records.

    Args:
        window: Closed trades kept for rolling metrics
        test_trades_required: Probation length in closed trades
        test_pass_win_rate: Minimum probation win rate (fraction)
        test_pass_profit_min: Minimum probation P&L
    """

    def __init__(
        self,
        window: int = 100,
        test_trades_required: int = 5,
        test_pass_win_rate: float = 0.40,
        test_pass_profit_min: float = 0.0,
    ):
        self.window = window
        self.test_trades_required = test_trades_required
        self.test_pass_win_rate = test_pass_win_rate
        self.test_pass_profit_min = test_pass_profit_min

        self._performances: Dict[str, StrategyPerformance] = {}
        self._open_trades: Dict[str, TradeRecord] = {}
        self._trade_ids = itertools.count(1)

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._performances

    def register(self, strategy_id: str, strategy_name: str) -> StrategyPerformance:
        """Create a fresh record (idempotent: an existing record is kept)."""
        perf = self._performances.get(strategy_id)
        if perf is None:
            perf = StrategyPerformance(
                strategy_id=strategy_id,
                strategy_name=strategy_name,
                testing=ProbationRecord(trades_required=self.test_trades_required),
                window=deque(maxlen=self.window),
            )
            self._performances[strategy_id] = perf
        return perf

    def get(self, strategy_id: str) -> Optional[StrategyPerformance]:
        return self._performances.get(strategy_id)

    def all(self) -> List[StrategyPerformance]:
        return list(self._performances.values())

    # ── closed-trade path ──────────────────────────────────────────────

    def record_trade(
        self,
        strategy_id: str,
        symbol: str,
        pnl: float,
        timestamp: Optional[datetime] = None,
    ) -> Optional[TradeUpdate]:
        """Apply one closed trade. Unknown strategies are ignored with a warning."""
        perf = self._performances.get(strategy_id)
        if perf is None:
            logger.warning("record_trade for unknown strategy %s (%s, pnl=%.2f)", strategy_id, symbol, pnl)
            return None
        if not math.isfinite(pnl):
            logger.warning("Ignoring non-finite P&L for %s on %s", strategy_id, symbol)
            return None

        perf.total_trades += 1
        perf.total_pnl += pnl
        perf.last_trade_time = timestamp or datetime.now()
        if pnl > 0:
            perf.winning_trades += 1
            perf.consecutive_wins += 1
            perf.consecutive_losses = 0
        elif pnl < 0:
            perf.losing_trades += 1
            perf.consecutive_losses += 1
            perf.consecutive_wins = 0
        perf.window.append(pnl)
        refresh_metrics(perf)

        outcome = self._advance_testing(perf, pnl)
        logger.debug(
            "%s: %d trades, %.1f%% win rate, $%.2f P&L",
            strategy_id, perf.total_trades, perf.win_rate * 100, perf.total_pnl,
        )
        return TradeUpdate(
            strategy_id=strategy_id,
            pnl=pnl,
            total_trades=perf.total_trades,
            win_rate=perf.win_rate,
            total_pnl=perf.total_pnl,
            probation=outcome,
        )

    def _advance_testing(self, perf: StrategyPerformance, pnl: float) -> Optional[ProbationOutcome]:
        testing = perf.testing
        if not testing.testing_mode:
            return None

        testing.trades_completed += 1
        testing.pnl += pnl
        if pnl > 0:
            testing.wins += 1
        if testing.trades_completed < testing.trades_required:
            return None

        testing.passed = (
            testing.win_rate >= self.test_pass_win_rate and testing.pnl >= self.test_pass_profit_min
        )
        testing.testing_mode = False
        logger.info(
            "Testing complete for %s: %s (win rate %.1f%%, P&L $%.2f)",
            perf.strategy_id,
            "PASSED" if testing.passed else "FAILED",
            testing.win_rate * 100,
            testing.pnl,
        )
        return ProbationOutcome(
            strategy_id=perf.strategy_id,
            passed=testing.passed,
            win_rate=testing.win_rate,
            pnl=testing.pnl,
            trades=testing.trades_completed,
        )

    # ── open/close lifecycle ───────────────────────────────────────────

    def open_trade(
        self,
        strategy_id: str,
        symbol: str,
        timestamp: Optional[datetime] = None,
        entry_price: Optional[float] = None,
    ) -> Optional[str]:
        """Record an open position. It has no effect on metrics until closed."""
        if strategy_id not in self._performances:
            logger.warning("open_trade for unknown strategy %s", strategy_id)
            return None
        trade_id = f"{strategy_id}-{next(self._trade_ids)}"
        self._open_trades[trade_id] = TradeRecord(
            strategy_id=strategy_id,
            symbol=symbol,
            timestamp=timestamp or datetime.now(),
            entry_price=entry_price,
            trade_id=trade_id,
        )
        return trade_id

    def close_trade(
        self,
        trade_id: str,
        pnl: float,
        timestamp: Optional[datetime] = None,
    ) -> Optional[TradeUpdate]:
        trade = self._open_trades.pop(trade_id, None)
        if trade is None:
            logger.warning("close_trade for unknown or already closed trade %s", trade_id)
            return None
        trade.pnl = pnl
        trade.closed_at = timestamp or datetime.now()
        return self.record_trade(trade.strategy_id, trade.symbol, pnl, trade.closed_at)

    def open_trades(self, strategy_id: Optional[str] = None) -> List[TradeRecord]:
        return [
            t for t in self._open_trades.values()
            if strategy_id is None or t.strategy_id == strategy_id
        ]

    # ── ranking, restore, reset ────────────────────────────────────────

    def get_strategy_comparison(self) -> StrategyComparison:
        """Rank strategies by composite score. Ties keep registration order."""
        scored = [(composite_score(p), p) for p in self._performances.values()]
        scored.sort(key=lambda item: -item[0])
        ranking = [
            RankedStrategy(rank=i + 1, strategy_id=p.strategy_id, score=score, performance=p.copy())
            for i, (score, p) in enumerate(scored)
        ]
        top = ranking[0] if ranking else None
        return StrategyComparison(ranking=ranking, recommendation=recommendation_for(top))

    def load_performances(self, records: Iterable[StrategyPerformance]) -> int:
        """
        Replace tracked state with previously saved records.

        Only records for registered strategies are applied; returns how many were.
        """
        loaded = 0
        for record in records:
            if record.strategy_id not in self._performances:
                logger.warning("Skipping saved performance for unregistered strategy %s", record.strategy_id)
                continue
            restored = record.copy()
            restored.window = deque(restored.window, maxlen=self.window)
            refresh_metrics(restored)
            self._performances[record.strategy_id] = restored
            loaded += 1
        logger.info("Loaded %d strategy performance records", loaded)
        return loaded

    def reset_testing(self) -> None:
        """Restart probation for every strategy. Cumulative stats are kept."""
        for perf in self._performances.values():
            perf.testing.restart()
        logger.warning("All strategies failed testing; probation restarted for %d strategies", len(self._performances))

    def remove(self, strategy_id: str) -> int:
        """Forget a strategy and its open trades; returns how many open trades were dropped."""
        self._performances.pop(strategy_id, None)
        orphaned = [tid for tid, t in self._open_trades.items() if t.strategy_id == strategy_id]
        for tid in orphaned:
            del self._open_trades[tid]
        return len(orphaned)
