"""Late-ride aerobic efficiency.

Average power over average heart rate in the closing stretch of a ride:
by default the 35 minutes before the end, minus the final 5 minutes so a
sprint finish or cool-down does not dominate.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ridemetrics.config import LateAerobicConfig
from ridemetrics.metrics.base import MetricContext, MetricModule
from ridemetrics.models import MetricComputation, MetricDefinition, Sample, is_finite


def late_window(duration_sec: float, window_sec: float, buffer_sec: float) -> tuple[float, float]:
    """``(start, end)`` offsets of the analysis window, clamped at 0."""
    end = duration_sec - buffer_sec
    if end <= 0:
        return 0.0, 0.0
    start = max(0.0, min(duration_sec - window_sec, end))
    return start, end


class LateAerobicEfficiencyMetric(MetricModule):
    def __init__(self, config: LateAerobicConfig | None = None) -> None:
        self.config = config or LateAerobicConfig()
        self._definition = MetricDefinition(
            key="late-aerobic-efficiency",
            name="Late-ride Aerobic Efficiency",
            version=1,
            description=(
                "Evaluates aerobic durability by averaging power-to-heart-rate "
                f"efficiency over the final {self.config.analysis_window_minutes:g} minutes "
                f"(excluding the last {self.config.exclusion_buffer_minutes:g} minutes)."
            ),
            units="W/bpm",
            compute_config={
                "analysisWindowMinutes": self.config.analysis_window_minutes,
                "exclusionBufferMinutes": self.config.exclusion_buffer_minutes,
            },
        )

    @property
    def definition(self) -> MetricDefinition:
        return self._definition

    def compute(self, samples: Sequence[Sample], context: MetricContext) -> MetricComputation:
        requested = self.config.analysis_window_minutes * 60.0
        start, end = late_window(
            context.resolve_duration(samples),
            requested,
            self.config.exclusion_buffer_minutes * 60.0,
        )

        summary = {
            "watts_per_bpm": None,
            "average_power_w": None,
            "average_heart_rate_bpm": None,
            "valid_sample_count": 0,
            "total_window_sample_count": 0,
            "requested_window_seconds": requested,
            "analyzed_window_seconds": end - start,
            "window_start_offset_sec": start,
            "window_end_offset_sec": end,
        }
        if end <= start:
            return MetricComputation(summary=summary)

        window = [s for s in samples if start <= s.t < end]
        valid = [s for s in window if is_finite(s.power) and is_finite(s.heart_rate)]
        summary["total_window_sample_count"] = len(window)
        summary["valid_sample_count"] = len(valid)
        if not valid:
            return MetricComputation(summary=summary)

        avg_power = float(np.mean([s.power for s in valid]))
        avg_hr = float(np.mean([s.heart_rate for s in valid]))
        summary["average_power_w"] = round(avg_power, 1)
        summary["average_heart_rate_bpm"] = round(avg_hr, 1)
        if avg_hr > 0:
            summary["watts_per_bpm"] = round(avg_power / avg_hr, 3)
        return MetricComputation(summary=summary)
