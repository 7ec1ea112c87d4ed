"""Tests for adaptive strategy selection, switching and global reset."""

import pytest

from signal_engine.config import EngineConfig
from signal_engine.engine import SignalEngine
from signal_engine.performance import ProbationRecord, StrategyPerformance
from signal_engine.selector import ALL_FAILED_REASON, StrategyStatus, status_of
from signal_engine.types import Action

DEFAULT_IDS = ["momentum", "trend", "bands", "crossover", "mean_reversion"]


@pytest.fixture
def engine(clock):
    return SignalEngine(clock=clock)


def _feed(engine, strategy_id, pnls):
    for pnl in pnls:
        engine.record_trade(strategy_id, "AAPL", pnl)


# ────────────────────────────────────────────────────────────────────────
# Lifecycle status
# ────────────────────────────────────────────────────────────────────────

class TestStatus:
    def test_status_progression(self):
        perf = StrategyPerformance("x", "X")
        assert status_of(perf) is StrategyStatus.UNTESTED
        perf.testing = ProbationRecord(trades_completed=2)
        assert status_of(perf) is StrategyStatus.TESTING
        perf.testing = ProbationRecord(testing_mode=False, trades_completed=5, passed=True)
        assert status_of(perf) is StrategyStatus.PASSED
        perf.testing = ProbationRecord(testing_mode=False, trades_completed=5, passed=False)
        assert status_of(perf) is StrategyStatus.FAILED


# ────────────────────────────────────────────────────────────────────────
# Candidate ordering
# ────────────────────────────────────────────────────────────────────────

class TestBestCandidate:
    def test_initial_pick_is_first_registered(self, engine, flat_bars):
        decision = engine.decide("AAPL", flat_bars)
        assert engine.authoritative_strategy == "momentum"
        assert decision.switch.switched
        assert decision.switch.reason == "initial selection"
        assert decision.strategy_id == "momentum"

    def test_untested_preferred_over_passed(self, engine):
        _feed(engine, "momentum", [5.0] * 5)
        assert engine.selector.status("momentum") is StrategyStatus.PASSED
        assert engine.selector.best_candidate() == "trend"

    def test_higher_pnl_wins_within_group(self, engine):
        _feed(engine, "bands", [3.0, 3.0])
        _feed(engine, "trend", [1.0])
        assert engine.selector.best_candidate() == "bands"

    def test_failed_never_a_candidate(self, engine):
        _feed(engine, "momentum", [-1.0] * 5)
        assert engine.selector.best_candidate() == "trend"

    def test_disabled_never_a_candidate(self, engine):
        engine.set_strategy_enabled("momentum", False)
        assert engine.selector.best_candidate() == "trend"


# ────────────────────────────────────────────────────────────────────────
# Switching
# ────────────────────────────────────────────────────────────────────────

class TestSwitching:
    def test_switch_after_failed_testing(self, engine, clock, flat_bars):
        engine.decide("AAPL", flat_bars)
        _feed(engine, "momentum", [1.0, -1.0, -1.0, -1.0, -1.0])
        assert engine.selector.status("momentum") is StrategyStatus.FAILED

        clock.advance(minutes=6)
        decision = engine.decide("AAPL", flat_bars)
        assert decision.switch.switched
        assert decision.switch.from_id == "momentum"
        assert decision.switch.to_id == "trend"
        assert "failed testing" in decision.switch.reason
        assert engine.authoritative_strategy == "trend"

    def test_switch_on_poor_win_rate(self, clock, flat_bars):
        engine = SignalEngine(EngineConfig(test_trades_required=50), clock=clock)
        engine.decide("AAPL", flat_bars)
        _feed(engine, "momentum", [1.0, -1.0, -1.0, -1.0, -1.0])

        clock.advance(minutes=6)
        switch = engine.decide("AAPL", flat_bars).switch
        assert switch.switched
        assert "poor performance" in switch.reason
        assert "20.0% win rate" in switch.reason

    def test_switch_on_loss_floor(self, clock, flat_bars):
        engine = SignalEngine(EngineConfig(test_trades_required=50), clock=clock)
        engine.decide("AAPL", flat_bars)
        _feed(engine, "momentum", [1.0, -6.0] * 5)

        clock.advance(minutes=6)
        switch = engine.decide("AAPL", flat_bars).switch
        assert switch.switched
        assert "losing badly" in switch.reason

    def test_loss_floor_needs_enough_trades(self, clock, flat_bars):
        engine = SignalEngine(EngineConfig(test_trades_required=50), clock=clock)
        engine.decide("AAPL", flat_bars)
        _feed(engine, "momentum", [1.0, -30.0, 1.0, 1.0])

        clock.advance(minutes=6)
        switch = engine.decide("AAPL", flat_bars).switch
        assert not switch.switched
        assert engine.authoritative_strategy == "momentum"

    def test_healthy_strategy_is_kept(self, engine, clock, flat_bars):
        engine.decide("AAPL", flat_bars)
        _feed(engine, "momentum", [2.0, 1.0, -1.0, 3.0, 1.0])
        clock.advance(minutes=6)
        switch = engine.decide("AAPL", flat_bars).switch
        assert not switch.switched
        assert switch.authoritative == "momentum"

    def test_cooldown_debounces_switches(self, engine, clock, flat_bars):
        engine.decide("AAPL", flat_bars)
        _feed(engine, "momentum", [-1.0] * 5)
        clock.advance(minutes=6)
        assert engine.decide("AAPL", flat_bars).switch.to_id == "trend"

        # trend fails immediately; the cooldown holds it in place
        _feed(engine, "trend", [-1.0] * 5)
        clock.advance(minutes=1)
        switch = engine.decide("AAPL", flat_bars).switch
        assert not switch.switched
        assert switch.reason == "switch cooldown active"
        assert engine.authoritative_strategy == "trend"

        clock.advance(minutes=5)
        switch = engine.decide("AAPL", flat_bars).switch
        assert switch.switched
        assert switch.to_id == "bands"
        assert len(engine.state.switch_log) == 3

    def test_auto_switch_disabled(self, clock, flat_bars):
        engine = SignalEngine(EngineConfig(auto_switch_enabled=False), clock=clock)
        engine.decide("AAPL", flat_bars)
        _feed(engine, "momentum", [-1.0] * 5)
        clock.advance(minutes=6)
        switch = engine.decide("AAPL", flat_bars).switch
        assert not switch.switched
        assert switch.reason == "auto-switch disabled"
        assert engine.authoritative_strategy == "momentum"


# ────────────────────────────────────────────────────────────────────────
# Global reset
# ────────────────────────────────────────────────────────────────────────

class TestGlobalReset:
    def test_all_failed_resets_probation(self, clock, flat_bars):
        engine = SignalEngine(EngineConfig(switch_cooldown_ms=0), clock=clock)
        engine.decide("AAPL", flat_bars)
        for sid in DEFAULT_IDS:
            _feed(engine, sid, [-1.0] * 5)

        clock.advance(seconds=1)
        decision = engine.decide("AAPL", flat_bars)
        assert decision.action is Action.HOLD
        assert decision.size == 0.0
        assert decision.confidence == 0.0
        assert decision.reason == ALL_FAILED_REASON
        assert decision.switch.reset
        assert decision.switch.from_id == "momentum"
        assert engine.authoritative_strategy is None

        for sid in DEFAULT_IDS:
            assert engine.selector.status(sid) is StrategyStatus.UNTESTED
            perf = engine.tracker.get(sid)
            assert perf.total_trades == 5
            assert perf.total_pnl == pytest.approx(-5.0)

        # the next cycle selects again from the fresh probation state
        clock.advance(seconds=1)
        decision = engine.decide("AAPL", flat_bars)
        assert decision.switch.reason == "initial selection"
        assert engine.authoritative_strategy == "momentum"

    def test_reset_only_requeues_strategies(self, engine, clock, flat_bars):
        engine.decide("AAPL", flat_bars)
        for sid in DEFAULT_IDS:
            _feed(engine, sid, [-1.0] * 5)
        clock.advance(minutes=6)
        assert engine.decide("AAPL", flat_bars).switch.reset

        clock.advance(seconds=1)
        assert engine.decide("AAPL", flat_bars).switch.to_id == "momentum"

        # lifetime win rate is still 0%, so the next cycle after the cooldown moves on
        clock.advance(minutes=6)
        switch = engine.decide("AAPL", flat_bars).switch
        assert switch.switched
        assert switch.from_id == "momentum"
        assert switch.to_id == "trend"
        assert "poor performance" in switch.reason
        assert engine.tracker.get("momentum").testing.trades_completed == 0

    def test_reset_before_any_selection(self, engine, flat_bars):
        for sid in DEFAULT_IDS:
            _feed(engine, sid, [-1.0] * 5)
        decision = engine.decide("AAPL", flat_bars)
        assert decision.switch.reset
        assert not decision.switch.switched
        assert decision.reason == ALL_FAILED_REASON

    def test_no_strategies_enabled(self, engine, flat_bars):
        for sid in DEFAULT_IDS:
            engine.set_strategy_enabled(sid, False)
        decision = engine.decide("AAPL", flat_bars)
        assert decision.action is Action.HOLD
        assert decision.reason == "no strategies available"
        assert decision.strategy_id is None


# ────────────────────────────────────────────────────────────────────────
# Manual control
# ────────────────────────────────────────────────────────────────────────

class TestManualControl:
    def test_force_ignores_cooldown(self, engine, flat_bars):
        engine.decide("AAPL", flat_bars)
        result = engine.set_active_strategy("bands")
        assert result.switched
        assert result.reason == "manual selection"
        assert result.from_id == "momentum"
        assert engine.authoritative_strategy == "bands"

    def test_force_same_is_noop(self, engine, flat_bars):
        engine.decide("AAPL", flat_bars)
        result = engine.set_active_strategy("momentum")
        assert not result.switched
        assert result.reason == "already active"

    def test_force_unknown_or_disabled(self, engine, flat_bars):
        engine.decide("AAPL", flat_bars)
        assert not engine.set_active_strategy("ghost").switched
        engine.set_strategy_enabled("bands", False)
        assert not engine.set_active_strategy("bands").switched
        assert engine.authoritative_strategy == "momentum"

    def test_disabling_authoritative_reselects(self, engine, flat_bars):
        engine.decide("AAPL", flat_bars)
        engine.set_strategy_enabled("momentum", False)
        decision = engine.decide("AAPL", flat_bars)
        assert decision.switch.switched
        assert decision.switch.from_id == "momentum"
        assert decision.switch.to_id == "trend"
        assert decision.strategy_id == "trend"
