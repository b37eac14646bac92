"""Watts-per-heart-rate efficiency across fixed ride intervals."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from ridemetrics.config import IntervalConfig
from ridemetrics.metrics.base import MetricContext, MetricModule, round_or_none
from ridemetrics.models import MetricComputation, MetricDefinition, Sample, is_finite
from ridemetrics.stats import round_half_up


@dataclass
class _Channel:
    total: float = 0.0
    count: int = 0

    def add(self, value: float | None) -> None:
        if is_finite(value):
            self.total += value
            self.count += 1

    @property
    def mean(self) -> float | None:
        return self.total / self.count if self.count else None


@dataclass
class _IntervalAccumulator:
    power: _Channel
    heart_rate: _Channel
    cadence: _Channel
    temperature: _Channel

    @classmethod
    def empty(cls) -> "_IntervalAccumulator":
        return cls(_Channel(), _Channel(), _Channel(), _Channel())

    def add(self, sample: Sample) -> None:
        self.power.add(sample.power)
        self.heart_rate.add(sample.heart_rate)
        self.cadence.add(sample.cadence)
        self.temperature.add(sample.temperature)

    def summarize(self, index: int) -> dict:
        avg_power = self.power.mean
        avg_hr = self.heart_rate.mean
        avg_cadence = self.cadence.mean
        w_per_hr = None
        if avg_power is not None and avg_hr is not None and avg_hr > 0:
            w_per_hr = round(avg_power / avg_hr, 2)
        return {
            "interval": index + 1,
            "avg_power": round_half_up(avg_power) if avg_power is not None else None,
            "avg_hr": round_half_up(avg_hr) if avg_hr is not None else None,
            "avg_cadence": round_half_up(avg_cadence) if avg_cadence is not None else None,
            "avg_temp": round_or_none(self.temperature.mean, 1),
            "w_per_hr": w_per_hr,
        }


class IntervalEfficiencyMetric(MetricModule):
    def __init__(self, config: IntervalConfig | None = None) -> None:
        self.config = config or IntervalConfig()
        self._definition = MetricDefinition(
            key="interval-efficiency",
            name="Interval Efficiency",
            version=1,
            description=(
                "Tracks watts-per-heart-rate efficiency across "
                f"{self.config.interval_seconds / 3600:g}-hour ride intervals."
            ),
            units="W/bpm",
            compute_config={"intervalSeconds": self.config.interval_seconds},
        )

    @property
    def definition(self) -> MetricDefinition:
        return self._definition

    def compute(self, samples: Sequence[Sample], context: MetricContext) -> MetricComputation:
        width = self.config.interval_seconds or 1.0
        buckets: dict[int, _IntervalAccumulator] = {}
        for sample in samples:
            if not is_finite(sample.t):
                continue
            index = math.floor(sample.t / width)
            buckets.setdefault(index, _IntervalAccumulator.empty()).add(sample)

        # Interval numbers follow the bucket index, so gaps in the ride show
        # up as missing interval numbers rather than being renumbered.
        series = [buckets[i].summarize(i) for i in sorted(buckets)]
        summary = {
            "interval_seconds": self.config.interval_seconds,
            "interval_count": len(series),
            "activity_duration_sec": context.duration_sec,
        }
        return MetricComputation(summary=summary, series=series)
