"""Tests for probation and production position sizing."""

import pytest

from signal_engine.config import PositionSizingConfig
from signal_engine.performance import ProbationRecord, StrategyPerformance
from signal_engine.sizing import PositionSizer


def _graduated(total_pnl, win_rate):
    return StrategyPerformance(
        "s",
        "S",
        total_trades=20,
        total_pnl=total_pnl,
        win_rate=win_rate,
        testing=ProbationRecord(testing_mode=False, trades_completed=5, passed=True),
    )


@pytest.fixture
def sizer():
    return PositionSizer()


class TestProbationSizing:
    def test_confidence_floor(self, sizer):
        perf = StrategyPerformance("s", "S")
        assert sizer.size(perf, 0.5) == pytest.approx(0.604)
        assert sizer.size(perf, 0.0) == pytest.approx(0.604)

    def test_full_confidence_hits_max(self, sizer):
        assert sizer.size(StrategyPerformance("s", "S"), 1.0) == pytest.approx(1.0)

    def test_unknown_performance_is_treated_as_testing(self, sizer):
        assert sizer.size(None, 0.8) == pytest.approx(0.01 + 0.99 * 0.8)

    def test_confidence_above_one_is_clamped(self, sizer):
        assert sizer.size(None, 3.0) == pytest.approx(1.0)


class TestProductionSizing:
    def test_profitable_bounds_are_scaled_up(self, sizer):
        perf = _graduated(50.0, 0.6)
        assert sizer.production_bounds(perf) == pytest.approx((15.0, 300.0))
        # 15 + 285 * 0.8 = 243, capped at the absolute maximum
        assert sizer.size(perf, 0.8) == pytest.approx(200.0)

    def test_losing_bounds_are_scaled_down(self, sizer):
        perf = _graduated(-10.0, 0.55)
        assert sizer.production_bounds(perf) == pytest.approx((5.0, 100.0))
        assert sizer.size(perf, 0.6) == pytest.approx(62.0)

    def test_low_win_rate_counts_as_losing(self, sizer):
        perf = _graduated(10.0, 0.3)
        assert sizer.production_bounds(perf) == pytest.approx((5.0, 100.0))

    def test_neutral_bounds(self, sizer):
        perf = _graduated(5.0, 0.45)
        assert sizer.production_bounds(perf) == pytest.approx((10.0, 200.0))
        assert sizer.size(perf, 0.7) == pytest.approx(143.0)

    def test_custom_config(self):
        cfg = PositionSizingConfig(min_prod_size=100.0, max_prod_size=100.0)
        sizer = PositionSizer(cfg)
        assert sizer.size(_graduated(5.0, 0.45), 0.9) == pytest.approx(100.0)

    @pytest.mark.parametrize("confidence", [0.0, 0.3, 0.6, 0.75, 0.9, 1.0])
    @pytest.mark.parametrize("pnl,win_rate", [(50.0, 0.7), (-50.0, 0.2), (0.0, 0.45)])
    def test_always_within_absolute_bounds(self, sizer, confidence, pnl, win_rate):
        size = sizer.size(_graduated(pnl, win_rate), confidence)
        assert 0.01 <= size <= 200.0
