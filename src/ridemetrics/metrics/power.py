"""Normalized and stabilized power.

Both modules run the same rolling 4th-power mean; they differ only in
their key and the name of the headline summary field.
"""

from __future__ import annotations

from typing import Sequence

from ridemetrics.config import PowerConfig
from ridemetrics.metrics.base import MetricContext, MetricModule, round_or_none
from ridemetrics.models import MetricComputation, MetricDefinition, Sample, is_finite
from ridemetrics.rolling import power_window_stats, window_sample_count


class _RollingPowerMetric(MetricModule):
    key_name: str
    display_name: str
    headline_field: str

    def __init__(self, config: PowerConfig | None = None) -> None:
        self.config = config or PowerConfig()
        self._definition = MetricDefinition(
            key=self.key_name,
            name=self.display_name,
            version=1,
            description=(
                f"Computes {self.display_name.lower()} using "
                f"{self.config.window_seconds:g}-second rolling averages "
                "alongside pacing diagnostics."
            ),
            units="W",
            compute_config={
                "windowSeconds": self.config.window_seconds,
                "coastingThresholdWatts": self.config.coasting_threshold_watts,
            },
        )

    @property
    def definition(self) -> MetricDefinition:
        return self._definition

    def compute(self, samples: Sequence[Sample], context: MetricContext) -> MetricComputation:
        window_size = window_sample_count(self.config.window_seconds, context.sample_rate_hz)
        valid = sorted(
            (s for s in samples if is_finite(s.power) and is_finite(s.t)),
            key=lambda s: s.t,
        )

        stats = power_window_stats(
            [s.t for s in valid],
            [s.power for s in valid],
            window_size,
            coasting_threshold=self.config.coasting_threshold_watts,
        )

        summary = {
            self.headline_field: round_or_none(stats.weighted_power, 1),
            "average_power_w": round_or_none(stats.average_power, 1),
            "variability_index": round_or_none(stats.variability_index, 3),
            "coasting_share": round_or_none(stats.coasting_share, 4),
            "valid_power_samples": stats.valid_samples,
            "total_samples": len(samples),
            "rolling_window_count": len(stats.rolling),
            "window_sample_count": window_size,
            "window_seconds": self.config.window_seconds,
        }

        series = [
            {"t": float(t), "rolling_avg_power_w": round(float(avg), 1)}
            for t, avg in zip(stats.rolling_t, stats.rolling)
        ]
        return MetricComputation(summary=summary, series=series or None)


class NormalizedPowerMetric(_RollingPowerMetric):
    key_name = "normalized-power"
    display_name = "Normalized Power"
    headline_field = "normalized_power_w"


class StabilizedPowerMetric(_RollingPowerMetric):
    key_name = "stabilized-power"
    display_name = "Stabilized Power"
    headline_field = "stabilized_power_w"
