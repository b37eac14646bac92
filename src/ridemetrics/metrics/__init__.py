"""Per-activity metric modules.

Modules:
    base                -- MetricModule interface and MetricContext
    power               -- Normalized / stabilized power (rolling 4th-power mean)
    hcsr                -- HR-to-cadence scaling ratio (bucketed robust regression)
    interval_efficiency -- Hourly watts-per-heart-rate buckets
    late_aerobic        -- Late-ride aerobic efficiency
    registry            -- Fixed key -> module table
    runner              -- Run a set of modules over one activity
"""

from ridemetrics.metrics.base import MetricContext, MetricModule
from ridemetrics.metrics.power import NormalizedPowerMetric, StabilizedPowerMetric
from ridemetrics.metrics.hcsr import HcsrMetric
from ridemetrics.metrics.interval_efficiency import IntervalEfficiencyMetric
from ridemetrics.metrics.late_aerobic import LateAerobicEfficiencyMetric
from ridemetrics.metrics.registry import (
    METRIC_REGISTRY,
    build_registry,
    get_metric_module,
    list_metric_definitions,
)
from ridemetrics.metrics.runner import MetricOutcome, run_metrics

__all__ = [
    # base
    "MetricContext",
    "MetricModule",
    # modules
    "NormalizedPowerMetric",
    "StabilizedPowerMetric",
    "HcsrMetric",
    "IntervalEfficiencyMetric",
    "LateAerobicEfficiencyMetric",
    # registry
    "METRIC_REGISTRY",
    "build_registry",
    "get_metric_module",
    "list_metric_definitions",
    # runner
    "MetricOutcome",
    "run_metrics",
]
