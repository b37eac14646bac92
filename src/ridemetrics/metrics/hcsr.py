"""HR-to-cadence scaling ratio (HCSR).

Quantifies how heart rate scales with cadence across cadence buckets, with
a two-segment nonlinearity check and a first-half/second-half fatigue
check.
"""

from __future__ import annotations

from typing import Sequence

from ridemetrics.config import HcsrConfig
from ridemetrics.metrics.base import MetricContext, MetricModule, round_or_none
from ridemetrics.models import MetricComputation, MetricDefinition, Sample
from ridemetrics.regression import fit_buckets, half_split_slopes


class HcsrMetric(MetricModule):
    def __init__(self, config: HcsrConfig | None = None) -> None:
        self.config = config or HcsrConfig()
        self._definition = MetricDefinition(
            key="hcsr",
            name="HR-to-Cadence Scaling Ratio",
            version=2,
            description=(
                "Quantifies how heart rate scales with cadence across cadence "
                "buckets with fatigue diagnostics."
            ),
            units="bpm/rpm",
            compute_config={
                "cadenceBucketSize": self.config.bucket_width,
                "minCadence": self.config.min_cadence,
                "requiredSecondsPerBucket": self.config.min_bucket_seconds,
            },
        )

    @property
    def definition(self) -> MetricDefinition:
        return self._definition

    def compute(self, samples: Sequence[Sample], context: MetricContext) -> MetricComputation:
        options = dict(
            sample_rate_hz=context.sample_rate_hz,
            min_cadence=self.config.min_cadence,
            bucket_width=self.config.bucket_width,
            min_bucket_seconds=self.config.min_bucket_seconds,
        )
        result = fit_buckets(samples, **options)
        fit = result.fit

        first, second = half_split_slopes(samples, context.resolve_duration(samples), **options)
        delta_slope = second - first if first is not None and second is not None else None

        summary = {
            "slope_bpm_per_rpm": round_or_none(fit.slope if fit else None, 4),
            "intercept_bpm": round_or_none(fit.intercept if fit else None, 2),
            "r2": round_or_none(fit.r2 if fit else None, 4),
            "nonlinearity_delta": round_or_none(result.nonlinearity_delta, 4),
            "half_split_delta_slope": round_or_none(delta_slope, 4),
            "valid_seconds": round(result.valid_seconds, 3),
            "bucket_count": len(result.buckets),
            "piecewise_r2": round_or_none(result.piecewise_r2, 4),
        }

        series = [
            {
                "cadenceMid": bucket.cadence_mid,
                "medianHR": bucket.median_hr,
                "seconds": round(bucket.seconds, 3),
                "hr25": bucket.hr25,
                "hr75": bucket.hr75,
            }
            for bucket in result.buckets
        ]
        return MetricComputation(summary=summary, series=series)
