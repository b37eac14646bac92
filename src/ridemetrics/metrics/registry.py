"""Fixed table of metric modules, keyed by metric key."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from ridemetrics.config import DEFAULT_CONFIG, RideMetricsConfig
from ridemetrics.errors import UnknownMetricError
from ridemetrics.metrics.base import MetricModule
from ridemetrics.metrics.hcsr import HcsrMetric
from ridemetrics.metrics.interval_efficiency import IntervalEfficiencyMetric
from ridemetrics.metrics.late_aerobic import LateAerobicEfficiencyMetric
from ridemetrics.metrics.power import NormalizedPowerMetric, StabilizedPowerMetric
from ridemetrics.models import MetricDefinition


def build_registry(config: RideMetricsConfig = DEFAULT_CONFIG) -> Mapping[str, MetricModule]:
    """Instantiate every metric module with *config* applied.

    The returned mapping is read-only.
    """
    modules: tuple[MetricModule, ...] = (
        HcsrMetric(config.hcsr),
        IntervalEfficiencyMetric(config.intervals),
        NormalizedPowerMetric(config.power),
        StabilizedPowerMetric(config.power),
        LateAerobicEfficiencyMetric(config.late_aerobic),
    )
    return MappingProxyType({module.key: module for module in modules})


METRIC_REGISTRY = build_registry()


def list_metric_definitions(
    registry: Mapping[str, MetricModule] = METRIC_REGISTRY,
) -> list[MetricDefinition]:
    return [module.definition for module in registry.values()]


def get_metric_module(
    key: str,
    registry: Mapping[str, MetricModule] = METRIC_REGISTRY,
) -> MetricModule:
    """Look up a module; raises :class:`UnknownMetricError` for unknown keys."""
    try:
        return registry[key]
    except KeyError:
        raise UnknownMetricError(key) from None
