"""Tests for the SignalEngine facade."""

import threading

import pytest

from conftest import bars_from_closes, golden_cross_closes
from signal_engine import ConfigurationInvalid, EngineConfig, SignalEngine
from signal_engine.strategies import MomentumParams, Strategy, StrategyKind
from signal_engine.types import Action


def _golden_cross_bars():
    return bars_from_closes(golden_cross_closes(), [1000.0] * 49 + [2000.0])


def _crossover_engine(**config):
    return SignalEngine(EngineConfig(**config), strategies=[Strategy("crossover", StrategyKind.CROSSOVER)])


class TestDecide:
    def test_flat_market_holds_with_zero_size(self, flat_bars):
        engine = SignalEngine()
        decision = engine.decide("AAPL", flat_bars)
        assert decision.action is Action.HOLD
        assert decision.size == 0.0
        assert decision.testing is True
        assert decision.strategy_id == "momentum"
        assert decision.reason.startswith("[RSI Momentum] RSI neutral")
        assert decision.metadata["ensemble"].consensus.total_votes == 5

    def test_actionable_signal_is_sized_for_testing(self):
        engine = _crossover_engine()
        decision = engine.decide("AAPL", _golden_cross_bars())
        assert decision.action is Action.BUY
        assert decision.testing is True
        assert 0.01 <= decision.size <= 1.0
        assert decision.size == pytest.approx(0.01 + 0.99 * max(0.6, decision.confidence))
        assert decision.reason.startswith("[MA Crossover] Golden Cross")

    def test_inverse_mode_flips_and_swaps_levels(self):
        bars = _golden_cross_bars()
        plain = _crossover_engine().decide("AAPL", bars)
        inverted = _crossover_engine(inverse_mode=True).decide("AAPL", bars)

        assert plain.action is Action.BUY
        assert inverted.action is Action.SELL
        assert inverted.confidence == pytest.approx(plain.confidence)
        assert inverted.size == pytest.approx(plain.size)
        assert inverted.stop_loss == plain.take_profit
        assert inverted.take_profit == plain.stop_loss
        assert inverted.reason.endswith("| Inverted")

    def test_inverse_mode_leaves_hold_alone(self, flat_bars):
        engine = SignalEngine()
        engine.set_inverse_mode(True)
        assert engine.inverse_mode
        decision = engine.decide("AAPL", flat_bars)
        assert decision.action is Action.HOLD
        assert "Inverted" not in decision.reason

    def test_short_history_is_hold(self):
        engine = SignalEngine()
        decision = engine.decide("AAPL", bars_from_closes([100.0] * 5))
        assert decision.action is Action.HOLD
        assert "Insufficient data" in decision.reason

    def test_decision_to_dict(self, flat_bars):
        data = SignalEngine().decide("AAPL", flat_bars).to_dict()
        assert data["action"] == "HOLD"
        assert data["symbol"] == "AAPL"
        assert set(data) >= {"confidence", "size", "reason", "strategy_id", "testing"}


class TestRegistry:
    def test_invalid_parameters_are_rejected(self):
        engine = SignalEngine(strategies=[])
        ok = engine.register_strategy("bad", StrategyKind.MOMENTUM, MomentumParams(oversold=80, overbought=20))
        assert ok is False
        assert engine.strategy_ids() == []

    def test_duplicate_id_is_rejected(self):
        engine = SignalEngine()
        assert engine.register_strategy("momentum", StrategyKind.TREND) is False
        assert engine.register_strategy("fast_rsi", StrategyKind.MOMENTUM, MomentumParams(rsi_period=7)) is True
        assert engine.strategy_ids()[-1] == "fast_rsi"

    def test_remove_strategy(self, flat_bars):
        engine = SignalEngine()
        engine.decide("AAPL", flat_bars)
        trade_id = engine.open_trade("momentum", "AAPL", entry_price=100.0)

        assert engine.remove_strategy("momentum") is True
        assert "momentum" not in engine.strategy_ids()
        assert engine.tracker.get("momentum") is None
        assert engine.tracker.open_trades() == []
        assert engine.close_trade(trade_id, 5.0) is None
        assert engine.remove_strategy("momentum") is False

        decision = engine.decide("AAPL", flat_bars)
        assert decision.switch.from_id == "momentum"
        assert decision.switch.to_id == "trend"
        assert "momentum" not in engine.get_status()["strategies"]

    def test_invalid_config_raises(self):
        with pytest.raises(ConfigurationInvalid):
            SignalEngine(EngineConfig(poor_performance_threshold=25))


class TestFeedback:
    def test_unknown_strategy_is_ignored(self):
        engine = SignalEngine()
        assert engine.record_trade("ghost", "AAPL", 10.0) is None
        assert "ghost" not in engine.get_status()["strategies"]

    def test_open_close_round_trip(self, clock):
        engine = SignalEngine(clock=clock)
        trade_id = engine.open_trade("trend", "AAPL", entry_price=100.0)
        assert engine.get_status()["strategies"]["trend"]["open_trades"] == 1
        clock.advance(hours=2)
        update = engine.close_trade(trade_id, 4.0)
        assert update.total_trades == 1
        assert engine.tracker.get("trend").last_trade_time == clock.now
        assert engine.get_status()["strategies"]["trend"]["open_trades"] == 0

    def test_concurrent_records_are_all_applied(self):
        engine = SignalEngine()

        def worker():
            for _ in range(50):
                engine.record_trade("bands", "AAPL", 1.0)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert engine.tracker.get("bands").total_trades == 200


class TestStateTransfer:
    def test_snapshot_and_load_are_equivalent(self, clock, flat_bars):
        source = SignalEngine(clock=clock)
        for pnl in (2.0, -1.0, 3.0, 1.0, -0.5, 4.0):
            source.record_trade("trend", "AAPL", pnl)
        source.record_trade("bands", "AAPL", -2.0)

        target = SignalEngine(clock=clock)
        assert target.load_performances(source.snapshot()) == 5

        a = source.get_strategy_comparison()
        b = target.get_strategy_comparison()
        assert [(r.strategy_id, r.score) for r in a.ranking] == [(r.strategy_id, r.score) for r in b.ranking]
        assert source.decide("AAPL", flat_bars).strategy_id == target.decide("AAPL", flat_bars).strategy_id

    def test_snapshot_is_detached(self):
        engine = SignalEngine()
        snap = engine.snapshot()
        snap[0].total_trades = 42
        assert engine.tracker.get(snap[0].strategy_id).total_trades == 0


class TestStatus:
    def test_status_shape(self, flat_bars):
        engine = SignalEngine()
        engine.set_strategy_weight("bands", 0.3)
        engine.decide("AAPL", flat_bars)
        status = engine.get_status()
        assert status["authoritative_strategy"] == "momentum"
        assert status["last_switch_time"] is not None
        assert status["inverse_mode"] is False
        assert status["auto_switch_enabled"] is True
        assert status["switches"] == 1
        assert list(status["strategies"]) == engine.strategy_ids()

        bands = status["strategies"]["bands"]
        assert bands["manual_weight"] == pytest.approx(0.3)
        assert bands["weight"] == pytest.approx(0.3)
        assert bands["status"] == "UNTESTED"
        assert bands["enabled"] is True
        assert bands["kind"] == "bands"
