"""
Adaptive Multi-Strategy Trading Signal Engine

Runs several independent technical-analysis strategies over one price
series, combines them into a consensus and a performance-weighted signal,
tracks each strategy's live trade outcomes, and adaptively chooses which
strategy governs trading and how large a position it may take.

Strategies:
  - RSI Momentum: volatility-adjusted RSI extremes with trend/volume/EMA confirmation
  - MACD Trend: signal-line crossovers and histogram acceleration
  - Bollinger Bands: band-edge reversion with squeeze detection
  - MA Crossover: golden/death crosses and trend continuation
  - Statistical Mean Reversion: regime-aware z-score with an exhaustion guard

Architecture:
  ``SignalEngine`` owns one ``EngineState``. Each ``decide`` call runs the
  ``AdaptiveSelector`` (probation and switching), the ``EnsembleAggregator``
  and the ``PositionSizer``; outcomes flow back through ``record_trade``.
"""

from .config import EngineConfig, ExhaustionConfig, PositionSizingConfig
from .engine import SignalEngine
from .errors import ConfigurationInvalid
from .types import Action, Decision, MarketBar, Signal, SwitchResult

__all__ = [
    "Action",
    "ConfigurationInvalid",
    "Decision",
    "EngineConfig",
    "ExhaustionConfig",
    "MarketBar",
    "PositionSizingConfig",
    "Signal",
    "SignalEngine",
    "SwitchResult",
]
