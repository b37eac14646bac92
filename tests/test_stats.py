"""Tests for ridemetrics.stats -- percentiles and line fits."""

import pytest

from ridemetrics.stats import (
    linear_regression_slope,
    median,
    ols_fit,
    percentile,
    r_squared,
    round_half_up,
    safe_ratio,
    theil_sen_fit,
)


class TestPercentile:
    def test_empty_is_zero(self):
        for p in (0.0, 0.25, 0.5, 1.0):
            assert percentile([], p) == 0.0

    def test_p0_is_min(self):
        assert percentile([7.0, 3.0, 9.0, 1.0], 0.0) == 1.0

    def test_p1_is_max(self):
        assert percentile([7.0, 3.0, 9.0, 1.0], 1.0) == 9.0

    def test_linear_interpolation(self):
        # index (4 - 1) * 0.5 = 1.5 -> halfway between 20 and 30
        assert percentile([10.0, 20.0, 30.0, 40.0], 0.5) == pytest.approx(25.0)

    def test_unsorted_input(self):
        assert percentile([40.0, 10.0, 30.0, 20.0], 0.25) == pytest.approx(17.5)

    def test_single_value(self):
        assert percentile([5.0], 0.95) == 5.0

    def test_p_is_clamped(self):
        assert percentile([1.0, 2.0], 1.5) == 2.0
        assert percentile([1.0, 2.0], -0.5) == 1.0


class TestMedian:
    def test_odd(self):
        assert median([3.0, 1.0, 2.0]) == 2.0

    def test_even(self):
        assert median([1.0, 2.0, 3.0, 4.0]) == pytest.approx(2.5)

    def test_empty(self):
        assert median([]) == 0.0


class TestLinearRegressionSlope:
    def test_empty(self):
        assert linear_regression_slope([]) == 0.0

    def test_zero_x_variance(self):
        assert linear_regression_slope([(1.0, 2.0), (1.0, 5.0)]) == 0.0

    def test_exact_line(self):
        points = [(0.0, 1.0), (1.0, 3.0), (2.0, 5.0)]
        assert linear_regression_slope(points) == pytest.approx(2.0)


class TestRSquared:
    def test_perfect_fit(self):
        r2, ss_res, _ = r_squared([(0.0, 1.0), (1.0, 3.0)], 2.0, 1.0)
        assert r2 == pytest.approx(1.0)
        assert ss_res == pytest.approx(0.0)

    def test_no_variance_is_one(self):
        r2, _, ss_tot = r_squared([(0.0, 4.0), (1.0, 4.0)], 1.0, 0.0)
        assert ss_tot == 0.0
        assert r2 == 1.0

    def test_empty(self):
        assert r_squared([], 1.0, 0.0) == (0.0, 0.0, 0.0)


class TestOlsFit:
    def test_too_few_points(self):
        assert ols_fit([(1.0, 1.0)]) is None

    def test_constant_x(self):
        assert ols_fit([(2.0, 1.0), (2.0, 3.0)]) is None

    def test_fit(self):
        fit = ols_fit([(0.0, 1.0), (1.0, 3.0), (2.0, 5.0)])
        assert fit.slope == pytest.approx(2.0)
        assert fit.intercept == pytest.approx(1.0)
        assert fit.r2 == pytest.approx(1.0)


class TestTheilSenFit:
    def test_too_few_points(self):
        assert theil_sen_fit([(1.0, 1.0)]) is None

    def test_constant_x(self):
        assert theil_sen_fit([(2.0, 1.0), (2.0, 3.0)]) is None

    def test_two_points(self):
        fit = theil_sen_fit([(95.0, 140.0), (105.0, 150.0)])
        assert fit.slope == pytest.approx(1.0)
        assert fit.intercept == pytest.approx(45.0)

    def test_robust_to_outlier(self):
        points = [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0), (4.0, 100.0)]
        fit = theil_sen_fit(points)
        assert fit.slope == pytest.approx(1.0)
        assert ols_fit(points).slope > 10


class TestHelpers:
    def test_safe_ratio(self):
        assert safe_ratio(1.0, 4.0) == 0.25
        assert safe_ratio(1.0, 0.0) == 0.0
        assert safe_ratio(1.0, 0.0, default=1.0) == 1.0

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4) == 2
        assert round_half_up(0.5) == 1
