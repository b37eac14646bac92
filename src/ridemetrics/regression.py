"""Bucketed median regression of heart rate against cadence.

Algorithm:
1. Keep samples with cadence >= the minimum and a finite heart rate.
2. Give each sample a duration (gap to the next sample, else to the
   previous one, else ``1 / sample_rate``).
3. Bin cadence into fixed-width buckets; cadence at or above the top
   bucket start shares one open-ended bucket.
4. A bucket counts only once it holds enough seconds.  Each counted
   bucket becomes one point ``(midpoint, median HR)``.
5. Fit the points with Theil-Sen, falling back to OLS.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from ridemetrics.models import Sample, is_finite
from ridemetrics.rolling import resolve_sample_rate
from ridemetrics.stats import LinearFit, median, ols_fit, percentile, r_squared, theil_sen_fit


MIN_CADENCE = 20.0
BUCKET_WIDTH = 10.0
MIN_BUCKET_SECONDS = 60.0
TOP_BUCKET_START = 130.0

# Float sums of sample durations can land a hair under the threshold
_COVERAGE_EPSILON = 1e-6


@dataclass
class CadenceBucket:
    """Heart-rate statistics for one cadence bin."""

    cadence_start: float
    cadence_mid: float
    seconds: float
    median_hr: float
    hr25: float
    hr75: float


@dataclass
class BucketFit:
    """Result of fitting bucket medians."""

    buckets: list[CadenceBucket]
    valid_seconds: float
    fit: LinearFit | None
    piecewise_r2: float | None = None

    @property
    def points(self) -> list[tuple[float, float]]:
        return [(b.cadence_mid, b.median_hr) for b in self.buckets]

    @property
    def nonlinearity_delta(self) -> float | None:
        if self.piecewise_r2 is None or self.fit is None:
            return None
        return self.piecewise_r2 - self.fit.r2


def _bucket_start(cadence: float, width: float, top_start: float) -> float:
    if cadence >= top_start:
        return top_start
    return math.floor(cadence / width) * width


def _bucket_mid(start: float, width: float, top_start: float) -> float:
    if start >= top_start:
        return top_start + width / 2.0
    return start + width / 2.0


def _sample_duration(samples: Sequence[Sample], index: int, default: float) -> float:
    current = samples[index]
    if index < len(samples) - 1:
        delta = samples[index + 1].t - current.t
        if delta > 0:
            return delta
    if index > 0:
        delta = current.t - samples[index - 1].t
        if delta > 0:
            return delta
    return default


def build_buckets(
    samples: Sequence[Sample],
    sample_rate_hz: float | None = None,
    min_cadence: float = MIN_CADENCE,
    bucket_width: float = BUCKET_WIDTH,
    min_bucket_seconds: float = MIN_BUCKET_SECONDS,
    top_bucket_start: float = TOP_BUCKET_START,
) -> tuple[list[CadenceBucket], float]:
    """Bin samples by cadence.

    Durations come from the full (sorted) sample sequence, so a filtered-out
    neighbour still bounds a valid sample's duration.

    Returns:
        ``(buckets, valid_seconds)``: the buckets meeting the coverage
        threshold sorted by midpoint, and the seconds of all valid samples.
    """
    ordered = sorted((s for s in samples if is_finite(s.t)), key=lambda s: s.t)
    default_interval = 1.0 / resolve_sample_rate(sample_rate_hz)

    heart_rates: dict[float, list[float]] = {}
    seconds: dict[float, float] = {}
    valid_seconds = 0.0

    for i, sample in enumerate(ordered):
        if not (is_finite(sample.heart_rate) and is_finite(sample.cadence)):
            continue
        if sample.cadence < min_cadence:
            continue
        duration = _sample_duration(ordered, i, default_interval)
        valid_seconds += duration
        key = _bucket_start(sample.cadence, bucket_width, top_bucket_start)
        heart_rates.setdefault(key, []).append(sample.heart_rate)
        seconds[key] = seconds.get(key, 0.0) + duration

    buckets: list[CadenceBucket] = []
    for key, hrs in heart_rates.items():
        if seconds[key] + _COVERAGE_EPSILON < min_bucket_seconds:
            continue
        buckets.append(CadenceBucket(
            cadence_start=key,
            cadence_mid=_bucket_mid(key, bucket_width, top_bucket_start),
            seconds=seconds[key],
            median_hr=median(hrs),
            hr25=percentile(hrs, 0.25),
            hr75=percentile(hrs, 0.75),
        ))

    buckets.sort(key=lambda b: b.cadence_mid)
    return buckets, valid_seconds


def fit_points(points: Sequence[tuple[float, float]]) -> LinearFit | None:
    """Theil-Sen fit with an OLS fallback; None below 2 points."""
    if len(points) < 2:
        return None
    return theil_sen_fit(points) or ols_fit(points)


def piecewise_r2(points: Sequence[tuple[float, float]]) -> float | None:
    """R² of a two-segment OLS fit split at the middle index.

    Needs at least 4 points.  Measured against the total variance of all
    points, so it is directly comparable with the single-line R².
    """
    if len(points) < 4:
        return None
    mid = len(points) // 2
    first = ols_fit(points[:mid])
    second = ols_fit(points[mid:])
    if first is None or second is None:
        return None

    _, _, ss_tot = r_squared(points, 0.0, 0.0)
    ss_res = 0.0
    for i, (x, y) in enumerate(points):
        line = first if i < mid else second
        ss_res += (y - (line.slope * x + line.intercept)) ** 2
    if ss_tot == 0:
        return 1.0
    return 1.0 - ss_res / ss_tot


def fit_buckets(
    samples: Sequence[Sample],
    sample_rate_hz: float | None = None,
    min_cadence: float = MIN_CADENCE,
    bucket_width: float = BUCKET_WIDTH,
    min_bucket_seconds: float = MIN_BUCKET_SECONDS,
) -> BucketFit:
    """Full bucket-and-fit pipeline over *samples*."""
    buckets, valid_seconds = build_buckets(
        samples,
        sample_rate_hz=sample_rate_hz,
        min_cadence=min_cadence,
        bucket_width=bucket_width,
        min_bucket_seconds=min_bucket_seconds,
    )
    result = BucketFit(buckets=buckets, valid_seconds=valid_seconds, fit=None)
    points = result.points
    result.fit = fit_points(points)
    if result.fit is not None:
        result.piecewise_r2 = piecewise_r2(points)
    return result


def half_split_slopes(
    samples: Sequence[Sample],
    duration_sec: float,
    sample_rate_hz: float | None = None,
    min_cadence: float = MIN_CADENCE,
    bucket_width: float = BUCKET_WIDTH,
    min_bucket_seconds: float = MIN_BUCKET_SECONDS,
) -> tuple[float | None, float | None]:
    """Slope for the first and second time halves of an activity.

    The halves are split at ``floor(duration / 2)`` seconds: the first half
    keeps ``t <= half``, the second ``t > half``.  Each half runs the whole
    bucket-and-fit pipeline on its own.
    """
    half = math.floor(duration_sec / 2)
    first = [s for s in samples if s.t <= half]
    second = [s for s in samples if s.t > half]
    slopes: list[float | None] = []
    for part in (first, second):
        result = fit_buckets(
            part,
            sample_rate_hz=sample_rate_hz,
            min_cadence=min_cadence,
            bucket_width=bucket_width,
            min_bucket_seconds=min_bucket_seconds,
        )
        slopes.append(result.fit.slope if result.fit is not None else None)
    return slopes[0], slopes[1]
