"""
Strategy variants.

Each variant is a parameter dataclass plus a pure analysis function;
``Strategy`` tags one variant with an id and dispatches to it.
"""

from .bands import BandsParams, analyze_bands
from .base import PriceSeries, StrategyKind
from .crossover import CrossoverParams, analyze_crossover
from .mean_reversion import (
    MeanReversionParams,
    VolatilityRegime,
    analyze_mean_reversion,
)
from .momentum import MomentumParams, analyze_momentum
from .strategy import Strategy, create_default_strategies
from .trend import TrendParams, analyze_trend

__all__ = [
    "BandsParams",
    "CrossoverParams",
    "MeanReversionParams",
    "MomentumParams",
    "PriceSeries",
    "Strategy",
    "StrategyKind",
    "TrendParams",
    "VolatilityRegime",
    "analyze_bands",
    "analyze_crossover",
    "analyze_mean_reversion",
    "analyze_momentum",
    "analyze_trend",
    "create_default_strategies",
]
