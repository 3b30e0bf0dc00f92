"""
Tests for the Trend Analyzer.

Covers:
- Direction by slope and metric polarity
- Confidence growth with series length and snapshot confidence
- Days-to-breach projection
"""

import pytest

from covenantwatch.engine.trend import (
    analyze_trend,
    linear_regression_slope,
    project_days_to_breach,
    trend_confidence,
    velocity,
)
from covenantwatch.schemas.covenants import TrendDirection


class TestSlope:
    def test_linear_series(self):
        assert linear_regression_slope([1.0, 2.0, 3.0, 4.0]) == pytest.approx(1.0)

    def test_flat_series(self):
        assert linear_regression_slope([2.0, 2.0, 2.0]) == pytest.approx(0.0)

    def test_single_point(self):
        assert linear_regression_slope([5.0]) == 0.0


class TestDirection:
    def test_rising_higher_is_better_improves(self):
        result = analyze_trend([1.0, 1.5, 2.0])
        assert result.direction == TrendDirection.IMPROVING

    def test_rising_leverage_deteriorates(self):
        result = analyze_trend([2.0, 2.4, 2.8, 3.2], lower_is_better=True)
        assert result.direction == TrendDirection.DETERIORATING
        assert result.slope == pytest.approx(0.4)

    def test_falling_leverage_improves(self):
        result = analyze_trend([3.2, 2.8, 2.4], lower_is_better=True)
        assert result.direction == TrendDirection.IMPROVING

    def test_small_slope_is_stable(self):
        result = analyze_trend([2.0, 2.01, 2.02, 2.03])
        assert result.direction == TrendDirection.STABLE

    def test_fewer_than_two_points_is_stable_with_zero_confidence(self):
        result = analyze_trend([2.0])
        assert result.direction == TrendDirection.STABLE
        assert result.confidence == 0.0


class TestConfidence:
    def test_two_points_default_data_confidence(self):
        assert trend_confidence(2) == pytest.approx(0.6)

    def test_length_bonus_is_capped(self):
        assert trend_confidence(20, [1.0] * 20) == pytest.approx(1.0)

    def test_unknown_snapshot_confidence_counts_as_half(self):
        assert trend_confidence(3, [None, 1.0, None]) == pytest.approx(
            0.5 + 0.1 + (2 / 3) * 0.2
        )


class TestDaysToBreach:
    def test_projection_from_velocity(self):
        values = [2.0, 2.2, 2.4, 2.6]
        assert velocity(values) == pytest.approx(0.2)
        assert project_days_to_breach(values, 2.6, 3.0) == 180

    def test_no_movement(self):
        assert project_days_to_breach([2.0, 2.0], 2.0, 3.0) is None

    def test_not_enough_history(self):
        assert project_days_to_breach([2.0], 2.0, 3.0) is None

    def test_missing_current_value(self):
        assert project_days_to_breach([2.0, 2.5], None, 3.0) is None

    def test_custom_period_length(self):
        assert project_days_to_breach([1.0, 2.0], 2.0, 3.0, days_per_period=30) == 30
