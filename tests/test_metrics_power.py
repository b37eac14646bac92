"""Tests for the normalized / stabilized power modules."""

import pytest

from ridemetrics.config import PowerConfig
from ridemetrics.metrics import MetricContext, NormalizedPowerMetric, StabilizedPowerMetric
from tests.conftest import make_samples


def _ctx(rate=1.0):
    return MetricContext(sample_rate_hz=rate)


class TestNormalizedPower:
    def test_definition(self):
        definition = NormalizedPowerMetric().definition
        assert definition.key == "normalized-power"
        assert definition.units == "W"
        assert definition.compute_config["windowSeconds"] == 30.0

    def test_constant_power(self):
        samples = make_samples(60, power=200.0)
        result = NormalizedPowerMetric().compute(samples, _ctx())
        assert result.summary["normalized_power_w"] == pytest.approx(200.0)
        assert result.summary["average_power_w"] == pytest.approx(200.0)
        assert result.summary["variability_index"] == pytest.approx(1.0)
        assert result.summary["rolling_window_count"] == 31

    def test_null_power_samples_skipped(self):
        samples = make_samples(10, power=100.0) + make_samples(5, power=None, start=10)
        metric = NormalizedPowerMetric(PowerConfig(window_seconds=5))
        result = metric.compute(samples, _ctx())
        summary = result.summary
        assert summary["valid_power_samples"] == 10
        assert summary["total_samples"] == 15
        assert summary["rolling_window_count"] == 6
        assert summary["normalized_power_w"] == pytest.approx(100.0)
        assert summary["variability_index"] == pytest.approx(1.0)
        assert summary["coasting_share"] == 0.0
        assert len(result.series) == 6
        assert result.series[0] == {"t": 4.0, "rolling_avg_power_w": 100.0}

    def test_non_finite_power_skipped(self):
        samples = make_samples(10, power=100.0) + make_samples(2, power=[float("nan"), float("inf")], start=10)
        result = NormalizedPowerMetric(PowerConfig(window_seconds=5)).compute(samples, _ctx())
        summary = result.summary
        assert summary["valid_power_samples"] == 10
        assert summary["total_samples"] == 12
        assert summary["average_power_w"] == pytest.approx(100.0)
        assert summary["normalized_power_w"] == pytest.approx(100.0)

    def test_variable_power_above_average(self):
        power = [100.0, 300.0] * 30
        result = NormalizedPowerMetric(PowerConfig(window_seconds=1)).compute(
            make_samples(60, power=power), _ctx()
        )
        assert result.summary["normalized_power_w"] > result.summary["average_power_w"]
        assert result.summary["variability_index"] > 1.0

    def test_window_scales_with_sample_rate(self):
        result = NormalizedPowerMetric().compute(make_samples(200, power=150.0, step=0.25), _ctx(4.0))
        assert result.summary["window_sample_count"] == 120
        assert result.summary["rolling_window_count"] == 81

    def test_missing_sample_rate_defaults_to_1hz(self):
        result = NormalizedPowerMetric().compute(make_samples(40, power=150.0), MetricContext())
        assert result.summary["window_sample_count"] == 30

    def test_no_power(self):
        result = NormalizedPowerMetric().compute(make_samples(20, heart_rate=120.0), _ctx())
        assert result.summary["normalized_power_w"] is None
        assert result.summary["average_power_w"] is None
        assert result.summary["coasting_share"] is None
        assert result.summary["valid_power_samples"] == 0
        assert result.series is None

    def test_shorter_than_window(self):
        result = NormalizedPowerMetric().compute(make_samples(10, power=150.0), _ctx())
        assert result.summary["normalized_power_w"] is None
        assert result.summary["average_power_w"] == pytest.approx(150.0)
        assert result.summary["variability_index"] is None
        assert result.series is None

    def test_coasting_share(self):
        power = [0.0] * 10 + [200.0] * 30
        result = NormalizedPowerMetric().compute(make_samples(40, power=power), _ctx())
        assert result.summary["coasting_share"] == pytest.approx(0.25)


class TestStabilizedPower:
    def test_headline_field(self):
        result = StabilizedPowerMetric().compute(make_samples(60, power=180.0), _ctx())
        assert result.summary["stabilized_power_w"] == pytest.approx(180.0)
        assert "normalized_power_w" not in result.summary

    def test_matches_normalized(self):
        power = [float(100 + (i % 7) * 20) for i in range(90)]
        samples = make_samples(90, power=power)
        np_value = NormalizedPowerMetric().compute(samples, _ctx()).summary["normalized_power_w"]
        sp_value = StabilizedPowerMetric().compute(samples, _ctx()).summary["stabilized_power_w"]
        assert np_value == sp_value

    def test_key(self):
        assert StabilizedPowerMetric().key == "stabilized-power"
