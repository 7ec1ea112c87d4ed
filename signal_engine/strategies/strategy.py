"""
Strategy registry entry.

A ``Strategy`` is a tagged variant: an id, a display name, a
``StrategyKind`` and the parameter dataclass for that kind. ``analyze``
dispatches to the variant's pure analysis function and guarantees a
well-formed ``Signal`` whatever happens inside it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from signal_engine.config import ExhaustionConfig
from signal_engine.errors import ConfigurationInvalid
from signal_engine.strategies.bands import BandsParams, analyze_bands
from signal_engine.strategies.base import PriceSeries, StrategyKind
from signal_engine.strategies.crossover import CrossoverParams, analyze_crossover
from signal_engine.strategies.mean_reversion import MeanReversionParams, analyze_mean_reversion
from signal_engine.strategies.momentum import MomentumParams, analyze_momentum
from signal_engine.strategies.trend import TrendParams, analyze_trend
from signal_engine.types import MarketBar, Signal

logger = logging.getLogger(__name__)

_ANALYZERS: Dict[StrategyKind, Callable[[PriceSeries, Any], Signal]] = {
    StrategyKind.MOMENTUM: analyze_momentum,
    StrategyKind.TREND: analyze_trend,
    StrategyKind.BANDS: analyze_bands,
    StrategyKind.CROSSOVER: analyze_crossover,
    StrategyKind.MEAN_REVERSION: analyze_mean_reversion,
}

_PARAM_TYPES: Dict[StrategyKind, type] = {
    StrategyKind.MOMENTUM: MomentumParams,
    StrategyKind.TREND: TrendParams,
    StrategyKind.BANDS: BandsParams,
    StrategyKind.CROSSOVER: CrossoverParams,
    StrategyKind.MEAN_REVERSION: MeanReversionParams,
}

_DEFAULT_NAMES: Dict[StrategyKind, str] = {
    StrategyKind.MOMENTUM: "RSI Momentum",
    StrategyKind.TREND: "MACD Trend",
    StrategyKind.BANDS: "Bollinger Bands",
    StrategyKind.CROSSOVER: "MA Crossover",
    StrategyKind.MEAN_REVERSION: "Statistical Mean Reversion",
}


class Strategy:
    """One registered strategy. Parameters are validated at construction."""

    def __init__(
        self,
        strategy_id: str,
        kind: StrategyKind,
        params: Optional[Any] = None,
        name: Optional[str] = None,
    ) -> None:
        if not strategy_id:
            raise ConfigurationInvalid("strategy_id must be non-empty")
        expected = _PARAM_TYPES[kind]
        if params is None:
            params = expected()
        elif not isinstance(params, expected):
            raise ConfigurationInvalid(
                f"{kind.value} strategy needs {expected.__name__}, got {type(params).__name__}"
            )
        params.validate()

        self.id = strategy_id
        self.kind = kind
        self.params = params
        self.name = name or _DEFAULT_NAMES[kind]

    @property
    def min_bars(self) -> int:
        return int(self.params.min_bars)

    def analyze(self, bars: Sequence[MarketBar]) -> Signal:
        """Analyze a bar series. Never raises; failures become HOLD/0."""
        try:
            series = PriceSeries.from_bars(bars)
            return _ANALYZERS[self.kind](series, self.params)
        except Exception as exc:
            logger.error("Strategy %s analysis error: %s", self.id, exc, exc_info=True)
            return Signal.hold(f"Analysis error: {exc}", risk_score=1.0)

    def __repr__(self) -> str:
        return f"Strategy(id={self.id!r}, kind={self.kind.value})"


def create_default_strategies(exhaustion: Optional[ExhaustionConfig] = None) -> List[Strategy]:
    """The five standard strategies, in registration order."""
    mean_reversion = MeanReversionParams(exhaustion=exhaustion or ExhaustionConfig())
    return [
        Strategy("momentum", StrategyKind.MOMENTUM),
        Strategy("trend", StrategyKind.TREND),
        Strategy("bands", StrategyKind.BANDS),
        Strategy("crossover", StrategyKind.CROSSOVER),
        Strategy("mean_reversion", StrategyKind.MEAN_REVERSION, mean_reversion),
    ]
