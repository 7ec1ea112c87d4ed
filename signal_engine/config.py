"""
Engine configuration.

Every threshold that affects selection, graduation or sizing is exposed
here as a frozen dataclass field so it can be tuned without touching the
algorithms. ``EngineConfig.from_env()`` reads ``SIGNAL_ENGINE_*`` overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from signal_engine.errors import ConfigurationInvalid


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None or value == "" else value


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _get_env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class PositionSizingConfig:
    """Dollar bounds for probation and production sizing."""

    min_test_size: float = 0.01
    """Smallest order while a strategy is being tested."""

    max_test_size: float = 1.00
    """Largest order while a strategy is being tested."""

    min_prod_size: float = 10.0
    """Lower production bound before profit/loss multipliers."""

    max_prod_size: float = 200.0
    """Upper production bound; also the absolute ceiling."""

    profit_multiplier: float = 1.5
    """Applied to both production bounds when P&L > 0 and win rate > 50%."""

    loss_multiplier: float = 0.5
    """Applied to both production bounds when P&L < 0 or win rate < 40%."""

    def validate(self) -> None:
        if min(self.min_test_size, self.max_test_size, self.min_prod_size, self.max_prod_size) < 0:
            raise ConfigurationInvalid("position sizes must be non-negative")
        if self.min_test_size > self.max_test_size:
            raise ConfigurationInvalid("min_test_size must not exceed max_test_size")
        if self.min_prod_size > self.max_prod_size:
            raise ConfigurationInvalid("min_prod_size must not exceed max_prod_size")
        if self.min_test_size > self.max_prod_size:
            raise ConfigurationInvalid("min_test_size must not exceed max_prod_size")
        if self.profit_multiplier <= 0 or self.loss_multiplier <= 0:
            raise ConfigurationInvalid("size multipliers must be positive")


@dataclass(frozen=True)
class ExhaustionConfig:
    """Trend-exhaustion guard used by the statistical mean-reversion strategy."""

    momentum_threshold: float = 0.15
    """|rate of change| over ``momentum_window`` bars that counts as trending."""

    trend_threshold: float = 0.20
    """|regression move| over ``trend_window`` bars that counts as trending."""

    momentum_window: int = 10
    trend_window: int = 20

    def validate(self) -> None:
        if self.momentum_threshold <= 0 or self.trend_threshold <= 0:
            raise ConfigurationInvalid("exhaustion thresholds must be positive")
        if self.momentum_window < 2 or self.trend_window < 2:
            raise ConfigurationInvalid("exhaustion windows need at least 2 bars")


@dataclass(frozen=True)
class EngineConfig:
    """
    Complete configuration for the adaptive engine.

    Defaults match the production values of the live bot.
    """

    # ── Strategy switching ────────────────────────────────────────────
    auto_switch_enabled: bool = True
    min_trades_before_switch: int = 5
    poor_performance_threshold: float = 0.25
    """Switch away when win rate falls below this fraction."""

    switch_cooldown_ms: int = 5 * 60 * 1000
    loss_floor: float = -20.0
    """Switch away when cumulative P&L drops below this (dollars)."""

    loss_floor_min_trades: int = 10

    # ── Testing / probation ───────────────────────────────────────────
    test_trades_required: int = 5
    test_pass_win_rate: float = 0.40
    test_pass_profit_min: float = 0.0

    # ── Weighting and tracking ────────────────────────────────────────
    performance_window: int = 100
    """Closed trades kept in memory per strategy for rolling metrics."""

    min_trades_for_weighting: int = 10
    """Closed trades before the ensemble uses performance weights."""

    max_workers: Optional[int] = None
    """Thread pool size for ensemble evaluation (None = one per strategy)."""

    # ── Output transform ──────────────────────────────────────────────
    inverse_mode: bool = False

    position_sizing: PositionSizingConfig = field(default_factory=PositionSizingConfig)
    exhaustion: ExhaustionConfig = field(default_factory=ExhaustionConfig)

    def validate(self) -> None:
        if self.min_trades_before_switch < 0 or self.loss_floor_min_trades < 0:
            raise ConfigurationInvalid("trade-count thresholds must be non-negative")
        if self.test_trades_required < 1:
            raise ConfigurationInvalid("test_trades_required must be at least 1")
        for name in ("poor_performance_threshold", "test_pass_win_rate"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationInvalid(f"{name} must be a fraction in [0, 1], got {value}")
        if self.switch_cooldown_ms < 0:
            raise ConfigurationInvalid("switch_cooldown_ms must be non-negative")
        if self.performance_window < 2:
            raise ConfigurationInvalid("performance_window must hold at least 2 trades")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigurationInvalid("max_workers must be positive")
        self.position_sizing.validate()
        self.exhaustion.validate()

    @staticmethod
    def from_env() -> "EngineConfig":
        defaults = EngineConfig()
        sizing_defaults = defaults.position_sizing
        sizing = PositionSizingConfig(
            min_test_size=_get_env_float("SIGNAL_ENGINE_MIN_TEST_SIZE", sizing_defaults.min_test_size),
            max_test_size=_get_env_float("SIGNAL_ENGINE_MAX_TEST_SIZE", sizing_defaults.max_test_size),
            min_prod_size=_get_env_float("SIGNAL_ENGINE_MIN_PROD_SIZE", sizing_defaults.min_prod_size),
            max_prod_size=_get_env_float("SIGNAL_ENGINE_MAX_PROD_SIZE", sizing_defaults.max_prod_size),
            profit_multiplier=_get_env_float("SIGNAL_ENGINE_PROFIT_MULTIPLIER", sizing_defaults.profit_multiplier),
            loss_multiplier=_get_env_float("SIGNAL_ENGINE_LOSS_MULTIPLIER", sizing_defaults.loss_multiplier),
        )
        exhaustion_defaults = defaults.exhaustion
        exhaustion = ExhaustionConfig(
            momentum_threshold=_get_env_float(
                "SIGNAL_ENGINE_EXHAUSTION_MOMENTUM", exhaustion_defaults.momentum_threshold
            ),
            trend_threshold=_get_env_float(
                "SIGNAL_ENGINE_EXHAUSTION_TREND", exhaustion_defaults.trend_threshold
            ),
        )
        workers = _get_env("SIGNAL_ENGINE_MAX_WORKERS", "").strip()
        cfg = EngineConfig(
            auto_switch_enabled=_get_env_bool("SIGNAL_ENGINE_AUTO_SWITCH", defaults.auto_switch_enabled),
            min_trades_before_switch=_get_env_int(
                "SIGNAL_ENGINE_MIN_TRADES_BEFORE_SWITCH", defaults.min_trades_before_switch
            ),
            poor_performance_threshold=_get_env_float(
                "SIGNAL_ENGINE_POOR_PERFORMANCE_THRESHOLD", defaults.poor_performance_threshold
            ),
            switch_cooldown_ms=_get_env_int("SIGNAL_ENGINE_SWITCH_COOLDOWN_MS", defaults.switch_cooldown_ms),
            loss_floor=_get_env_float("SIGNAL_ENGINE_LOSS_FLOOR", defaults.loss_floor),
            loss_floor_min_trades=_get_env_int(
                "SIGNAL_ENGINE_LOSS_FLOOR_MIN_TRADES", defaults.loss_floor_min_trades
            ),
            test_trades_required=_get_env_int("SIGNAL_ENGINE_TEST_TRADES_REQUIRED", defaults.test_trades_required),
            test_pass_win_rate=_get_env_float("SIGNAL_ENGINE_TEST_PASS_WIN_RATE", defaults.test_pass_win_rate),
            test_pass_profit_min=_get_env_float(
                "SIGNAL_ENGINE_TEST_PASS_PROFIT_MIN", defaults.test_pass_profit_min
            ),
            performance_window=_get_env_int("SIGNAL_ENGINE_PERFORMANCE_WINDOW", defaults.performance_window),
            min_trades_for_weighting=_get_env_int(
                "SIGNAL_ENGINE_MIN_TRADES_FOR_WEIGHTING", defaults.min_trades_for_weighting
            ),
            max_workers=int(workers) if workers else None,
            inverse_mode=_get_env_bool("SIGNAL_ENGINE_INVERSE_MODE", defaults.inverse_mode),
            position_sizing=sizing,
            exhaustion=exhaustion,
        )
        cfg.validate()
        return cfg
