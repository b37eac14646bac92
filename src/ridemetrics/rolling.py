"""Fixed-size sliding window over a power stream.

Used by the normalized/stabilized power modules.  The window slides one
sample at a time and emits one mean per full-window position, so the
number of windows is ``n - window + 1`` for ``n >= window``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np


DEFAULT_WINDOW_SECONDS = 30.0
DEFAULT_COASTING_THRESHOLD_WATTS = 5.0


def resolve_sample_rate(sample_rate_hz: float | None) -> float:
    """Return a usable sample rate; anything missing or non-positive is 1 Hz."""
    if sample_rate_hz is None or not math.isfinite(sample_rate_hz) or sample_rate_hz <= 0:
        return 1.0
    return float(sample_rate_hz)


def window_sample_count(window_seconds: float, sample_rate_hz: float | None) -> int:
    """Number of samples in a time window, at least 1."""
    return max(1, int(round(window_seconds * resolve_sample_rate(sample_rate_hz))))


def rolling_means(values: Sequence[float], window: int) -> np.ndarray:
    """Mean of each full window, advancing one sample at a time.

    Args:
        values: Finite scalar samples in time order.
        window: Window length in samples.

    Returns:
        Array of length ``len(values) - window + 1`` (empty if too short).
        A window of 1 returns the values themselves.
    """
    arr = np.asarray(values, dtype=np.float64)
    if window <= 1:
        return arr.copy()
    if len(arr) < window:
        return np.empty(0, dtype=np.float64)
    cumsum = np.cumsum(arr)
    cumsum = np.insert(cumsum, 0, 0.0)
    return (cumsum[window:] - cumsum[:-window]) / window


def fourth_power_mean(rolling: np.ndarray) -> float | None:
    """4th root of the mean of the 4th powers; None when there are no windows."""
    if len(rolling) == 0:
        return None
    mean_fourth = float(np.mean(rolling ** 4))
    if mean_fourth <= 0:
        return 0.0
    return mean_fourth ** 0.25


def coasting_share(values: Sequence[float], threshold: float) -> float | None:
    """Fraction of samples at or below *threshold*; None for no samples."""
    if len(values) == 0:
        return None
    arr = np.asarray(values, dtype=np.float64)
    return float(np.count_nonzero(arr <= threshold)) / len(arr)


def variability_index(weighted: float | None, mean: float | None) -> float | None:
    """Weighted power over arithmetic mean power."""
    if weighted is None or mean is None or mean == 0:
        return None
    return weighted / mean


@dataclass
class PowerWindowStats:
    """Unrounded rolling-window statistics for a power stream."""

    weighted_power: float | None
    average_power: float | None
    variability_index: float | None
    coasting_share: float | None
    valid_samples: int
    window_size: int
    rolling: np.ndarray  # one mean per full window
    rolling_t: np.ndarray  # time of the last sample in each window


def power_window_stats(
    t: Sequence[float],
    power: Sequence[float],
    window_size: int,
    coasting_threshold: float = DEFAULT_COASTING_THRESHOLD_WATTS,
) -> PowerWindowStats:
    """Compute weighted power and pacing diagnostics.

    Args:
        t: Sample times (seconds), same length as *power*.
        power: Finite power values in time order.
        window_size: Rolling window length in samples.
        coasting_threshold: Samples at or below this count as coasting.
    """
    if len(t) != len(power):
        raise ValueError("t and power must have the same length")

    arr = np.asarray(power, dtype=np.float64)
    times = np.asarray(t, dtype=np.float64)
    rolling = rolling_means(arr, window_size)
    rolling_t = times[len(times) - len(rolling):] if len(rolling) else np.empty(0)

    average = float(np.mean(arr)) if len(arr) else None
    weighted = fourth_power_mean(rolling)

    return PowerWindowStats(
        weighted_power=weighted,
        average_power=average,
        variability_index=variability_index(weighted, average),
        coasting_share=coasting_share(arr, coasting_threshold),
        valid_samples=len(arr),
        window_size=window_size,
        rolling=rolling,
        rolling_t=rolling_t,
    )
