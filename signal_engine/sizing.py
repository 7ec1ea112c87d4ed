"""
Position sizing.

Maps the governing strategy's performance and the signal confidence to a
dollar amount. A strategy still on probation trades between the test
bounds; afterwards the production bounds apply, scaled up while the
strategy is profitable and down while it is losing.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from signal_engine.config import PositionSizingConfig
from signal_engine.performance import StrategyPerformance
from signal_engine.types import clamp

logger = logging.getLogger(__name__)

MIN_SIZING_CONFIDENCE = 0.6


class PositionSizer:
    """Deterministic; holds nothing but its configuration."""

    def __init__(self, config: Optional[PositionSizingConfig] = None):
        self.config = config or PositionSizingConfig()

    def production_bounds(self, perf: StrategyPerformance) -> Tuple[float, float]:
        cfg = self.config
        low, high = cfg.min_prod_size, cfg.max_prod_size
        if perf.total_pnl > 0 and perf.win_rate > 0.5:
            low *= cfg.profit_multiplier
            high *= cfg.profit_multiplier
        elif perf.total_pnl < 0 or perf.win_rate < 0.4:
            low *= cfg.loss_multiplier
            high *= cfg.loss_multiplier
        return low, high

    def size(self, perf: Optional[StrategyPerformance], confidence: float) -> float:
        """
        Dollar size for one position.

        Args:
            perf: Performance of the strategy that produced the signal
            confidence: Signal confidence in [0, 1]

        Returns:
            Size within [min_test_size, max_test_size] on probation, else
            within [min_test_size, max_prod_size]
        """
        cfg = self.config
        scale = max(MIN_SIZING_CONFIDENCE, clamp(confidence, 0.0, 1.0))

        if perf is None or perf.testing.testing_mode:
            size = cfg.min_test_size + (cfg.max_test_size - cfg.min_test_size) * scale
            return clamp(size, cfg.min_test_size, cfg.max_test_size)

        low, high = self.production_bounds(perf)
        size = low + (high - low) * scale
        final = clamp(size, cfg.min_test_size, cfg.max_prod_size)
        logger.debug(
            "Sizing %s: bounds [%.2f, %.2f], confidence %.2f -> $%.2f",
            perf.strategy_id, low, high, confidence, final,
        )
        return final
