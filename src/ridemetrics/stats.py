"""Numeric primitives shared by the metric modules and the aggregator.

  - Percentile with linear interpolation between order statistics
  - Median
  - Closed-form least-squares slope and full OLS fit
  - Theil-Sen robust fit
  - Coefficient of determination for a given line
  - Half-up rounding for durations
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
from scipy import stats as sp_stats


Point = tuple[float, float]


# ---------------------------------------------------------------------------
# Order statistics
# ---------------------------------------------------------------------------


def percentile(values: Sequence[float], p: float) -> float:
    """Linearly interpolated percentile, ``p`` in [0, 1].

    The fractional index is ``(n - 1) * p``.  ``p=0`` gives the minimum,
    ``p=1`` the maximum.  ``p`` outside [0, 1] is clamped to the nearer
    end.  Empty input gives 0.
    """
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=np.float64)
    return float(np.quantile(arr, min(max(p, 0.0), 1.0)))


def median(values: Sequence[float]) -> float:
    """Median (50th percentile); 0 for empty input."""
    return percentile(values, 0.5)


# ---------------------------------------------------------------------------
# Regression
# ---------------------------------------------------------------------------


@dataclass
class LinearFit:
    """A fitted line plus its goodness-of-fit terms."""

    slope: float
    intercept: float
    r2: float
    ss_res: float
    ss_tot: float


def _as_xy(points: Sequence[Point]) -> tuple[np.ndarray, np.ndarray]:
    arr = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return arr[:, 0], arr[:, 1]


def linear_regression_slope(points: Sequence[Point]) -> float:
    """Closed-form least-squares slope.

    Returns 0 for empty input or when x has zero variance.
    """
    if len(points) == 0:
        return 0.0
    x, y = _as_xy(points)
    n = len(x)
    denominator = n * float(np.sum(x * x)) - float(np.sum(x)) ** 2
    if denominator == 0:
        return 0.0
    numerator = n * float(np.sum(x * y)) - float(np.sum(x)) * float(np.sum(y))
    return numerator / denominator


def r_squared(
    points: Sequence[Point],
    slope: float,
    intercept: float,
) -> tuple[float, float, float]:
    """Return ``(r2, ss_res, ss_tot)`` of a line against *points*.

    R² is 1 when the points have no variance, 0 for empty input.
    """
    if len(points) == 0:
        return 0.0, 0.0, 0.0
    x, y = _as_xy(points)
    predicted = slope * x + intercept
    ss_tot = float(np.sum((y - np.mean(y)) ** 2))
    ss_res = float(np.sum((y - predicted) ** 2))
    r2 = 1.0 if ss_tot == 0 else 1.0 - ss_res / ss_tot
    return r2, ss_res, ss_tot


def ols_fit(points: Sequence[Point]) -> LinearFit | None:
    """Ordinary least squares fit.

    Returns None with fewer than 2 points or zero x-variance.
    """
    if len(points) < 2:
        return None
    x, y = _as_xy(points)
    if float(np.ptp(x)) == 0.0:
        return None
    slope = linear_regression_slope(points)
    intercept = float(np.mean(y)) - slope * float(np.mean(x))
    r2, ss_res, ss_tot = r_squared(points, slope, intercept)
    return LinearFit(slope=slope, intercept=intercept, r2=r2, ss_res=ss_res, ss_tot=ss_tot)


def theil_sen_fit(points: Sequence[Point]) -> LinearFit | None:
    """Theil-Sen robust fit.

    Slope is the median of all pairwise slopes (pairs sharing an x value
    are skipped); intercept is the median of ``y - slope * x``.  An even
    number of slopes takes the mean of the two middle values.

    Returns None with fewer than 2 points or no pair with distinct x.
    """
    if len(points) < 2:
        return None
    x, y = _as_xy(points)
    if float(np.ptp(x)) == 0.0:
        return None
    result = sp_stats.theilslopes(y, x, method="joint")
    slope = float(result.slope)
    intercept = float(result.intercept)
    r2, ss_res, ss_tot = r_squared(points, slope, intercept)
    return LinearFit(slope=slope, intercept=intercept, r2=r2, ss_res=ss_res, ss_tot=ss_tot)


def safe_ratio(numerator: float, denominator: float, default: float = 0.0) -> float:
    """``numerator / denominator`` or *default* when the denominator is 0."""
    if denominator == 0:
        return default
    return numerator / denominator


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (``2.5 -> 3``), unlike ``round``."""
    return int(np.floor(value + 0.5))
