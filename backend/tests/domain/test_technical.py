"""Tests for pure technical indicators in domain/analysis/technical.py."""

import pytest

from domain.analysis import (
    analyze_swing,
    compute_ema,
    compute_rsi,
    count_weeks_below,
    detect_weekly_crossover,
)

# ---------------------------------------------------------------------------
# compute_ema
# ---------------------------------------------------------------------------


class TestComputeEMA:
    def test_compute_ema_should_return_sma_seed_when_exactly_period_values(self):
        assert compute_ema([1.0, 2.0, 3.0, 4.0, 5.0], 5) == 3.0

    def test_compute_ema_should_return_none_when_fewer_values_than_period(self):
        assert compute_ema([1.0, 2.0, 3.0], 5) is None

    def test_compute_ema_should_smooth_values_after_seed(self):
        # seed 3.0, multiplier 2/6 → (6 - 3) / 3 + 3 = 4.0
        assert compute_ema([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], 5) == pytest.approx(4.0)

    def test_compute_ema_should_return_none_for_empty_input(self):
        assert compute_ema([]) is None


# ---------------------------------------------------------------------------
# compute_rsi
# ---------------------------------------------------------------------------


class TestComputeRSI:
    def test_compute_rsi_should_return_100_for_strictly_increasing_closes(self):
        closes = [float(i) for i in range(1, 16)]  # period + 1 values
        assert compute_rsi(closes, 14) == 100.0

    def test_compute_rsi_should_return_none_when_not_enough_values(self):
        closes = [float(i) for i in range(1, 15)]  # exactly period values
        assert compute_rsi(closes, 14) is None

    def test_compute_rsi_should_return_zero_for_strictly_decreasing_closes(self):
        closes = [float(i) for i in range(15, 0, -1)]
        assert compute_rsi(closes, 14) == pytest.approx(0.0)

    def test_compute_rsi_should_return_50_when_gains_equal_losses(self):
        closes = [1.0 if i % 2 == 0 else 2.0 for i in range(15)]
        assert compute_rsi(closes, 14) == pytest.approx(50.0)

    def test_compute_rsi_should_not_round_result(self):
        closes = [10.0, 11.0, 10.5, 11.2, 11.1, 11.8, 12.0, 11.7, 12.3, 12.1,
                  12.6, 12.4, 13.0, 12.8, 13.3, 13.1]
        result = compute_rsi(closes, 14)
        assert result is not None
        assert result != round(result, 2)


# ---------------------------------------------------------------------------
# Weekly EMA crossover
# ---------------------------------------------------------------------------

# EMA(5): 10.0, 9.667, 9.111, 10.074 for the tail of CROSSOVER_CLOSES
CROSSOVER_CLOSES = [10.0, 10.0, 10.0, 10.0, 10.0, 9.0, 8.0, 12.0]
BELOW_CLOSES = [10.0, 10.0, 10.0, 10.0, 10.0, 9.0, 8.0]


class TestDetectWeeklyCrossover:
    def test_detect_weekly_crossover_should_count_weeks_below_before_cross(self):
        assert detect_weekly_crossover(CROSSOVER_CLOSES, 5) == 3

    def test_detect_weekly_crossover_should_return_none_when_already_above(self):
        closes = [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0]
        assert detect_weekly_crossover(closes, 5) is None

    def test_detect_weekly_crossover_should_return_none_when_latest_below(self):
        assert detect_weekly_crossover(BELOW_CLOSES, 5) is None

    def test_detect_weekly_crossover_should_need_period_plus_one_values(self):
        assert detect_weekly_crossover([1.0, 2.0, 3.0, 4.0, 5.0], 5) is None


class TestCountWeeksBelow:
    def test_count_weeks_below_should_include_latest_week(self):
        assert count_weeks_below(BELOW_CLOSES, 5) == 3

    def test_count_weeks_below_should_return_none_when_latest_above(self):
        assert count_weeks_below(CROSSOVER_CLOSES, 5) is None


# ---------------------------------------------------------------------------
# analyze_swing
# ---------------------------------------------------------------------------


class TestAnalyzeSwing:
    def test_analyze_swing_should_pick_highest_significant_high_as_breakout(self):
        # Act
        result = analyze_swing([100.0, 95.0, 80.0, 85.0, 70.0])

        # Assert
        assert result.breakout_price == 100.0
        assert result.breakout_index == 0
        assert result.significant_highs == ((0, 100.0), (3, 85.0))
        assert all(price < 100.0 for _, price in result.significant_highs[1:])

    def test_analyze_swing_should_have_no_breakdown_without_10pct_rebound(self):
        result = analyze_swing([100.0, 95.0, 80.0, 85.0, 70.0])
        assert result.breakdown_price is None
        assert result.breakdown_index is None

    def test_analyze_swing_should_pick_highest_priced_significant_low(self):
        # Arrange: lows at 80 (idx 1) and 85 (idx 3)
        closes = [100.0, 80.0, 95.0, 85.0, 100.0]

        # Act
        result = analyze_swing(closes)

        # Assert
        assert result.significant_lows == ((1, 80.0), (3, 85.0))
        assert result.breakdown_price == 85.0
        assert result.breakdown_index == 3
        assert result.breakout_price == 100.0

    def test_analyze_swing_should_return_all_none_for_empty_input(self):
        result = analyze_swing([])
        assert result.breakout_price is None
        assert result.breakdown_price is None
        assert result.significant_highs == ()

    def test_analyze_swing_should_prefer_earliest_index_on_ties(self):
        result = analyze_swing([100.0, 80.0, 100.0, 80.0])
        assert result.breakout_price == 100.0
        assert result.breakout_index == 0

    def test_analyze_swing_should_ignore_moves_below_threshold(self):
        result = analyze_swing([100.0, 95.0, 99.0, 94.0])
        assert result.significant_highs == ()
        assert result.significant_lows == ()
