"""Tests for configuration defaults, validation and environment overrides."""

import pytest

from signal_engine.config import EngineConfig, ExhaustionConfig, PositionSizingConfig
from signal_engine.errors import ConfigurationInvalid


class TestDefaults:
    def test_production_defaults(self):
        cfg = EngineConfig()
        cfg.validate()
        assert cfg.auto_switch_enabled is True
        assert cfg.min_trades_before_switch == 5
        assert cfg.poor_performance_threshold == 0.25
        assert cfg.switch_cooldown_ms == 300_000
        assert cfg.loss_floor == -20.0
        assert cfg.test_trades_required == 5
        assert cfg.test_pass_win_rate == 0.40
        assert cfg.position_sizing.max_prod_size == 200.0
        assert cfg.exhaustion.momentum_threshold == 0.15


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"poor_performance_threshold": 1.5},
        {"test_pass_win_rate": -0.1},
        {"test_trades_required": 0},
        {"switch_cooldown_ms": -1},
        {"performance_window": 1},
        {"max_workers": 0},
        {"min_trades_before_switch": -1},
    ])
    def test_engine_config_rejects(self, kwargs):
        with pytest.raises(ConfigurationInvalid):
            EngineConfig(**kwargs).validate()

    @pytest.mark.parametrize("kwargs", [
        {"min_test_size": 2.0, "max_test_size": 1.0},
        {"min_prod_size": 300.0},
        {"min_test_size": -1.0},
        {"loss_multiplier": 0.0},
    ])
    def test_sizing_config_rejects(self, kwargs):
        with pytest.raises(ConfigurationInvalid):
            PositionSizingConfig(**kwargs).validate()

    def test_nested_configs_are_validated(self):
        cfg = EngineConfig(exhaustion=ExhaustionConfig(momentum_threshold=0.0))
        with pytest.raises(ConfigurationInvalid):
            cfg.validate()

    def test_configuration_invalid_is_value_error(self):
        assert issubclass(ConfigurationInvalid, ValueError)


class TestFromEnv:
    def test_unset_env_gives_defaults(self, monkeypatch):
        monkeypatch.delenv("SIGNAL_ENGINE_AUTO_SWITCH", raising=False)
        monkeypatch.delenv("SIGNAL_ENGINE_MAX_WORKERS", raising=False)
        assert EngineConfig.from_env() == EngineConfig()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SIGNAL_ENGINE_AUTO_SWITCH", "false")
        monkeypatch.setenv("SIGNAL_ENGINE_SWITCH_COOLDOWN_MS", "1000")
        monkeypatch.setenv("SIGNAL_ENGINE_TEST_PASS_WIN_RATE", "0.55")
        monkeypatch.setenv("SIGNAL_ENGINE_MAX_PROD_SIZE", "500")
        monkeypatch.setenv("SIGNAL_ENGINE_EXHAUSTION_TREND", "0.3")
        monkeypatch.setenv("SIGNAL_ENGINE_MAX_WORKERS", "2")
        monkeypatch.setenv("SIGNAL_ENGINE_INVERSE_MODE", "yes")

        cfg = EngineConfig.from_env()
        assert cfg.auto_switch_enabled is False
        assert cfg.switch_cooldown_ms == 1000
        assert cfg.test_pass_win_rate == 0.55
        assert cfg.position_sizing.max_prod_size == 500.0
        assert cfg.exhaustion.trend_threshold == 0.3
        assert cfg.max_workers == 2
        assert cfg.inverse_mode is True

    def test_empty_value_means_default(self, monkeypatch):
        monkeypatch.setenv("SIGNAL_ENGINE_LOSS_FLOOR", "")
        assert EngineConfig.from_env().loss_floor == -20.0

    def test_invalid_override_raises(self, monkeypatch):
        monkeypatch.setenv("SIGNAL_ENGINE_POOR_PERFORMANCE_THRESHOLD", "25")
        with pytest.raises(ConfigurationInvalid):
            EngineConfig.from_env()
