"""Tests for ridemetrics.regression -- cadence buckets and HR fits."""

import pytest

from ridemetrics.models import Sample
from ridemetrics.regression import (
    build_buckets,
    fit_buckets,
    fit_points,
    half_split_slopes,
    piecewise_r2,
)
from tests.conftest import cadence_block, make_samples


class TestBuildBuckets:
    def test_single_bucket(self):
        buckets, valid_seconds = build_buckets(cadence_block(92, 140, 60))
        assert len(buckets) == 1
        assert buckets[0].cadence_start == 90
        assert buckets[0].cadence_mid == 95
        assert buckets[0].median_hr == 140
        assert valid_seconds == pytest.approx(60.0)

    def test_bucket_below_coverage_dropped(self):
        buckets, valid_seconds = build_buckets(cadence_block(92, 140, 59))
        assert buckets == []
        assert valid_seconds == pytest.approx(59.0)

    def test_top_bucket_is_open_ended(self):
        samples = cadence_block(131, 160, 30) + cadence_block(170, 170, 30, start=30)
        buckets, _ = build_buckets(samples)
        assert len(buckets) == 1
        assert buckets[0].cadence_start == 130
        assert buckets[0].cadence_mid == 135

    def test_low_cadence_and_missing_hr_excluded(self):
        samples = (
            cadence_block(10, 120, 100)
            + make_samples(100, cadence=90, heart_rate=None, start=100)
        )
        buckets, valid_seconds = build_buckets(samples)
        assert buckets == []
        assert valid_seconds == 0.0

    def test_non_finite_cadence_and_hr_excluded(self):
        samples = cadence_block(92, 140, 60) + [
            Sample(t=60, heart_rate=140.0, cadence=float("nan")),
            Sample(t=61, heart_rate=float("nan"), cadence=92.0),
        ]
        buckets, valid_seconds = build_buckets(samples)
        assert len(buckets) == 1
        assert buckets[0].median_hr == 140
        assert valid_seconds == pytest.approx(60.0)

    def test_buckets_sorted_by_midpoint(self):
        samples = cadence_block(105, 150, 60) + cadence_block(85, 130, 60, start=60)
        buckets, _ = build_buckets(samples)
        assert [b.cadence_mid for b in buckets] == [85, 105]

    def test_durations_use_sample_gaps(self):
        # 30 samples two seconds apart cover 60 seconds
        samples = make_samples(30, cadence=90, heart_rate=140, step=2.0)
        buckets, valid_seconds = build_buckets(samples)
        assert len(buckets) == 1
        assert valid_seconds == pytest.approx(60.0)

    def test_quartiles(self):
        hrs = [130.0] * 30 + [150.0] * 30
        samples = make_samples(60, cadence=95, heart_rate=hrs)
        bucket = build_buckets(samples)[0][0]
        assert bucket.hr25 == pytest.approx(130.0)
        assert bucket.hr75 == pytest.approx(150.0)


class TestFit:
    def test_fewer_than_two_points(self):
        assert fit_points([(95.0, 140.0)]) is None

    def test_single_bucket_has_no_fit(self):
        result = fit_buckets(cadence_block(92, 140, 60) + cadence_block(101, 150, 20, start=60))
        assert len(result.buckets) == 1
        assert result.fit is None
        assert result.nonlinearity_delta is None

    def test_two_buckets(self):
        samples = cadence_block(92, 140, 60) + cadence_block(101, 150, 60, start=60)
        result = fit_buckets(samples)
        assert result.fit.slope == pytest.approx(1.0)
        assert result.fit.intercept == pytest.approx(45.0)
        assert result.fit.r2 == pytest.approx(1.0)
        assert result.piecewise_r2 is None  # needs 4 buckets


class TestPiecewise:
    def test_needs_four_points(self):
        assert piecewise_r2([(0.0, 0.0), (1.0, 1.0), (2.0, 2.0)]) is None

    def test_v_shape(self):
        points = [(0.0, 0.0), (1.0, 1.0), (2.0, 1.0), (3.0, 0.0)]
        assert piecewise_r2(points) == pytest.approx(1.0)
        assert fit_points(points).r2 < 0.5

    def test_straight_line_no_gain(self):
        points = [(float(x), 2.0 * x) for x in range(6)]
        assert piecewise_r2(points) == pytest.approx(1.0)


class TestHalfSplit:
    def test_fatigue_slope_change(self):
        samples = (
            cadence_block(92, 140, 60)
            + cadence_block(101, 150, 60, start=60)
            + cadence_block(92, 140, 60, start=121)
            + cadence_block(101, 160, 60, start=181)
        )
        first, second = half_split_slopes(samples, duration_sec=241)
        assert first == pytest.approx(1.0)
        assert second == pytest.approx(2.0)

    def test_half_without_fit(self):
        samples = cadence_block(92, 140, 60) + cadence_block(101, 150, 60, start=60)
        first, second = half_split_slopes(samples, duration_sec=400)
        assert first == pytest.approx(1.0)
        assert second is None

    def test_split_boundary_goes_to_first_half(self):
        samples = [Sample(t=10.0, cadence=90, heart_rate=140)]
        first, second = half_split_slopes(samples, duration_sec=20)
        assert (first, second) == (None, None)
